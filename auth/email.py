"""
auth/email.py -- Outgoing account emails over SMTP.

Only two messages exist: the password reset link and the password-changed
confirmation. Both are multipart (plain text + HTML).

Delivery failures are logged and reported as False instead of raised: a
dead mail relay must not turn a password reset request into a 500, and the
reset endpoint answers identically either way to avoid email enumeration.

EMAIL_SECURE=true means implicit TLS (SMTP_SSL, usually port 465); otherwise
the connection is upgraded with STARTTLS when the server offers it.

Recipient addresses never go to the log; the service logs user ids.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from core.config import Settings

logger = logging.getLogger("authtemplate.auth.email")

_TIMEOUT_SECONDS = 10

_RESET_TEXT = (
    "You requested a password reset. Please click on the following link, or paste it into your "
    "browser to complete the process:\n\n{link}\n\n"
    "If you did not request this, please ignore this email and your password will remain unchanged.\n"
)

_RESET_HTML = """
<h2>Password Reset Request</h2>
<p>You requested a password reset. Please click on the button below, or paste the link into your browser to complete the process:</p>
<p>
  <a href="{link}" style="padding: 12px 24px; background-color: #4CAF50; color: white; text-decoration: none; border-radius: 4px;">Reset Password</a>
</p>
<p>Or copy and paste this link: <br><a href="{link}">{link}</a></p>
<p>If you did not request this, please ignore this email and your password will remain unchanged.</p>
"""

_CHANGED_TEXT = "This is a confirmation that the password for your account has just been changed.\n"

_CHANGED_HTML = """
<h2>Password Changed</h2>
<p>This is a confirmation that the password for your account has just been changed.</p>
<p>If you did not change your password, please contact support immediately.</p>
"""


class EmailService:
    def __init__(self, settings: Settings) -> None:
        self.host = settings.email_host
        self.port = settings.email_port
        self.secure = settings.email_secure
        self.user = settings.email_user
        self.password = settings.email_pass
        self.sender = settings.email_from

    def _connect(self) -> smtplib.SMTP:
        if self.secure:
            server: smtplib.SMTP = smtplib.SMTP_SSL(self.host, self.port, timeout=_TIMEOUT_SECONDS)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=_TIMEOUT_SECONDS)
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls()
                server.ehlo()
        if self.user and self.password:
            server.login(self.user, self.password)
        return server

    def verify_connection(self) -> bool:
        """Open and close one SMTP session. Called once at startup."""
        try:
            with self._connect() as server:
                server.noop()
        except (smtplib.SMTPException, OSError):
            logger.exception("Email service configuration error (host=%s port=%d)", self.host, self.port)
            return False
        logger.info("Email service is ready to take messages")
        return True

    def _send(self, to: str, subject: str, text: str, html: str) -> bool:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        msg.attach(MIMEText(text, "plain"))
        msg.attach(MIMEText(html, "html"))
        try:
            with self._connect() as server:
                server.sendmail(self.sender, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            # Exception text can echo the recipient (e.g. SMTPRecipientsRefused); log the type only.
            logger.error("Error sending %r email: %s", subject, type(exc).__name__)
            return False
        logger.info("%s email sent", subject)
        return True

    def send_password_reset_email(self, to: str, reset_link: str) -> bool:
        return self._send(
            to,
            "Password Reset Request",
            _RESET_TEXT.format(link=reset_link),
            _RESET_HTML.format(link=escape(reset_link, quote=True)),
        )

    def send_password_changed_email(self, to: str) -> bool:
        return self._send(to, "Password Changed Confirmation", _CHANGED_TEXT, _CHANGED_HTML)


def create_email_service(settings: Settings) -> EmailService | None:
    """Return an EmailService when EMAIL_HOST is configured, else None."""
    if not settings.email_host:
        logger.info("EMAIL_HOST not set -- password reset emails are disabled")
        return None
    return EmailService(settings)
