"""
Password Reset Mail

tinyauth usernames are email addresses, so the reset link goes to the
username itself. Without an SMTP host configured the link is logged
instead, which is how development setups pick it up.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from urllib.parse import quote

logger = logging.getLogger(__name__)


class MailError(Exception):
    """Sending a mail failed."""


class SMTPMailer:
    """Send password reset links over SMTP."""

    def __init__(
        self,
        host: str = "",
        port: int = 587,
        username: str = "",
        password: str = "",
        from_addr: str = "noreply@example.local",
        base_url: str = "http://localhost:8080",
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_addr = from_addr
        self.base_url = base_url.rstrip("/")

    def reset_link(self, token: str) -> str:
        return f"{self.base_url}/reset-password?token={quote(token)}"

    def send_reset_email(self, username: str, token: str) -> None:
        """
        Raises:
            MailError: SMTP delivery failed
        """
        link = self.reset_link(token)
        if not self.host:
            logger.warning("SMTP_HOST not set; reset link for %s: %s", username, link)
            return

        text_content = f"""
Hello {username},

A password reset was requested for your account.

Reset your password here: {link}

If you didn't request this, you can safely ignore this email.
"""
        html_content = f"""
<!DOCTYPE html>
<html>
<body style="font-family: sans-serif;">
    <p>Hello {username},</p>
    <p>A password reset was requested for your account.</p>
    <p><a href="{link}">Reset your password</a></p>
    <p style="color: #888; font-size: 0.9em;">
        If you didn't request this, you can safely ignore this email.
    </p>
</body>
</html>
"""
        msg = MIMEMultipart("alternative")
        msg["Subject"] = "Password reset"
        msg["From"] = self.from_addr
        msg["To"] = username
        msg.attach(MIMEText(text_content, "plain"))
        msg.attach(MIMEText(html_content, "html"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=30) as server:
                if self.username and self.password:
                    server.starttls()
                    server.login(self.username, self.password)
                server.sendmail(self.from_addr, [username], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            # Error type only; the message may echo the address
            logger.error("Failed to send reset email: %s", type(e).__name__)
            raise MailError(f"send reset email: {type(e).__name__}") from e
