"""Transactional mail: account activation and password reset."""

import logging
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Optional

import aiosmtplib

from ..core.exceptions import MailDeliveryError

logger = logging.getLogger(__name__)

BUTTON_STYLE = (
    "background-color:#609966;color:#ffffff;padding:10px 20px;"
    "text-decoration:none;border-radius:4px;display:inline-block"
)


def _mask(email: str) -> str:
    local, _, domain = email.partition("@")
    return f"{local[:1]}***@{domain}" if domain else "***"


class Mailer:
    """Renders and hands messages to an SMTP server."""

    TIMEOUT = 10  # seconds

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int = 465,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        from_email: Optional[str] = None,
        frontend_url: str = "http://localhost:3000",
        app_name: str = "Huski",
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_email = from_email or smtp_user
        self.frontend_url = frontend_url.rstrip("/")
        self.app_name = app_name

    def activation_link(self, token: str) -> str:
        return f"{self.frontend_url}/activationemail/{token}"

    def reset_link(self, user_id: int, token: str) -> str:
        return f"{self.frontend_url}/resetPage/{user_id}/{token}"

    def build_message(self, recipient: str, subject: str, text: str, html: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.from_email
        message["To"] = recipient
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        message.set_content(text)
        message.add_alternative(html, subtype="html")
        return message

    async def send(self, message: EmailMessage) -> None:
        """
        Deliver one message.

        Raises:
            MailDeliveryError: If the SMTP exchange fails
        """
        masked = _mask(str(message["To"]))
        if not self.from_email:
            raise MailDeliveryError("Sender address is not configured")

        try:
            # Port 465 uses implicit TLS, 587 upgrades with STARTTLS
            async with aiosmtplib.SMTP(
                hostname=self.smtp_host,
                port=self.smtp_port,
                timeout=self.TIMEOUT,
                use_tls=self.smtp_port == 465,
                start_tls=self.smtp_port == 587,
            ) as smtp:
                if self.smtp_user and self.smtp_password:
                    await smtp.login(self.smtp_user, self.smtp_password)
                await smtp.send_message(message)
        except (aiosmtplib.SMTPException, TimeoutError, OSError) as e:
            logger.error(
                "Mail delivery failed",
                extra={"recipient": masked, "subject": message["Subject"], "error": type(e).__name__},
            )
            raise MailDeliveryError(f"Could not deliver mail to {masked}") from e

        logger.info("Mail sent", extra={"recipient": masked, "subject": message["Subject"]})

    async def send_activation(self, email: str, name: str, token: str) -> None:
        link = self.activation_link(token)
        text = (
            f"Hello {name},\n\n"
            f"You registered an account on {self.app_name}. Before you can use it, "
            f"please verify your email address by opening this link:\n\n{link}\n"
        )
        html = (
            f"<h2>Hello {name},</h2>"
            f"<p>You registered an account on {self.app_name}, before being able to use "
            f"your account you need to verify that this is your email address by "
            f"clicking here:</p>"
            f'<a href="{link}" style="{BUTTON_STYLE}">Click here</a>'
        )
        await self.send(self.build_message(email, "Activate your account", text, html))

    async def send_password_reset(self, email: str, user_id: int, token: str) -> None:
        link = self.reset_link(user_id, token)
        text = f"A password reset was requested for your {self.app_name} account:\n\n{link}\n"
        html = (
            f"<p>A password reset was requested for your {self.app_name} account.</p>"
            f'<a href="{link}" style="{BUTTON_STYLE}">Reset password</a>'
            f"<p>The link expires in 30 minutes.</p>"
        )
        await self.send(self.build_message(email, "Reset your password", text, html))
