"""Core configuration, persistence, security and observability."""
