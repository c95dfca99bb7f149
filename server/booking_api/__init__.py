"""Booking sync API: REST backend over bookings synchronized from an external booking system."""

__version__ = "1.0.0"
