"""
Email delivery for budget notifications.

Provides the sender capability used by the notification trigger, an SMTP
implementation of it, and the HTML template notification emails use.
Delivery is best-effort: ``send_email_notification`` logs failures and
never raises.
"""

import html
import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

from config_manager import NotificationSettings
from exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)

SEVERITY_COLORS = {
    "error": "#ef4444",
    "warning": "#f59e0b",
    "info": "#3b82f6",
}

EMAIL_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; margin: 0; padding: 0; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background-color: {color}; color: white; padding: 20px; text-align: center; border-radius: 5px 5px 0 0; }}
        .content {{ background-color: #f9f9f9; padding: 20px; border-radius: 0 0 5px 5px; border: 1px solid #ddd; border-top: none; }}
        .footer {{ text-align: center; margin-top: 20px; font-size: 12px; color: #666; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h1>{title}</h1></div>
        <div class="content">
            <p>Hello {user_name},</p>
            <p>{message}</p>
            <p>Log in to your Expense Assistant dashboard to review your budget and expenses.</p>
        </div>
        <div class="footer">
            <p>This is an automated message from Expense Assistant. Please do not reply to this email.</p>
        </div>
    </div>
</body>
</html>
"""


class EmailSender(Protocol):
    """Anything that can deliver an HTML email."""

    def send(self, to_address: str, subject: str, html_body: str) -> None:
        ...


def create_email_template(title: str, message: str, user_name: str, severity: str = "info") -> str:
    """
    Render the notification email body.

    Args:
        title: Heading shown in the coloured banner
        message: Notification message (escaped)
        user_name: Name used in the greeting (escaped)
        severity: "error", "warning" or "info"; selects the banner colour

    Returns:
        HTML document
    """
    return EMAIL_TEMPLATE.format(
        title=html.escape(title),
        color=SEVERITY_COLORS.get(severity, SEVERITY_COLORS["info"]),
        user_name=html.escape(user_name),
        message=html.escape(message),
    )


class SmtpEmailSender:
    """Sends notification emails through an SMTP server."""

    def __init__(self, settings: NotificationSettings):
        self.settings = settings

    def send(self, to_address: str, subject: str, html_body: str) -> None:
        """
        Deliver one message.

        Raises:
            EmailDeliveryError: If the headers are malformed (e.g. an address
                containing a line break) or the SMTP conversation fails
        """
        try:
            message = EmailMessage()
            message["From"] = f"Expense Assistant <{self.settings.email_from}>"
            message["To"] = to_address
            message["Subject"] = subject
            message.set_content("This message requires an HTML capable email client.")
            message.add_alternative(html_body, subtype="html")

            with smtplib.SMTP(
                self.settings.smtp_host,
                self.settings.smtp_port,
                timeout=self.settings.timeout
            ) as smtp:
                if self.settings.use_tls:
                    smtp.starttls()
                if self.settings.smtp_username:
                    smtp.login(self.settings.smtp_username, self.settings.smtp_password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError, ValueError) as e:
            raise EmailDeliveryError(
                "Failed to send email",
                details={"to": to_address, "smtp_host": self.settings.smtp_host},
                original_error=e
            ) from e
        logger.info(f"Email notification sent to {to_address}")


def send_email_notification(sender: EmailSender, to_address: str, subject: str, html_body: str) -> bool:
    """
    Send an email, logging instead of raising on any sender failure.

    Returns:
        True if the sender accepted the message, False otherwise
    """
    try:
        sender.send(to_address, subject, html_body)
        return True
    except EmailDeliveryError as e:
        logger.error(f"Error sending email notification: {e}", exc_info=True)
        return False
    except Exception as e:
        logger.error(f"Unexpected error from email sender for {to_address!r}: {e}", exc_info=True)
        return False
