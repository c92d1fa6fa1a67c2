"""
Unit tests for email templates and SMTP delivery.
"""

import smtplib
from unittest.mock import MagicMock, Mock, patch

import pytest

from config_manager import NotificationSettings
from email_utils import SEVERITY_COLORS, SmtpEmailSender, create_email_template, send_email_notification
from exceptions import EmailDeliveryError


class TestCreateEmailTemplate:
    """Tests for create_email_template."""

    def test_contains_title_message_and_greeting(self):
        body = create_email_template("Budget Exceeded", "Over by $20.00.", "Alice", "error")

        assert "<h1>Budget Exceeded</h1>" in body
        assert "Hello Alice," in body
        assert "Over by $20.00." in body
        assert SEVERITY_COLORS["error"] in body

    def test_escapes_user_content(self):
        body = create_email_template("Alert", "<script>x</script>", "Bob & Co", "warning")

        assert "<script>" not in body
        assert "&lt;script&gt;" in body
        assert "Bob &amp; Co" in body

    def test_unknown_severity_uses_info_color(self):
        assert SEVERITY_COLORS["info"] in create_email_template("T", "M", "U", "bogus")


class TestSmtpEmailSender:
    """Tests for SmtpEmailSender."""

    @pytest.fixture
    def settings(self):
        return NotificationSettings(
            email_enabled=True,
            email_from="budget@example.com",
            smtp_host="mail.example.com",
            smtp_port=2525,
            smtp_username="user",
            smtp_password="secret",
        )

    def test_send_uses_tls_and_login(self, settings):
        with patch("email_utils.smtplib.SMTP") as mock_smtp:
            smtp = MagicMock()
            mock_smtp.return_value.__enter__.return_value = smtp

            SmtpEmailSender(settings).send("alice@example.com", "Subject", "<p>Hi</p>")

        mock_smtp.assert_called_once_with("mail.example.com", 2525, timeout=10)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("user", "secret")
        message = smtp.send_message.call_args[0][0]
        assert message["To"] == "alice@example.com"
        assert message["Subject"] == "Subject"
        assert "budget@example.com" in message["From"]

    def test_smtp_failure_raises_delivery_error(self, settings):
        with patch("email_utils.smtplib.SMTP", side_effect=smtplib.SMTPConnectError(421, b"busy")):
            with pytest.raises(EmailDeliveryError) as exc_info:
                SmtpEmailSender(settings).send("alice@example.com", "Subject", "<p>Hi</p>")

        assert exc_info.value.details["smtp_host"] == "mail.example.com"
        assert exc_info.value.original_error is not None

    def test_address_with_line_break_raises_delivery_error(self, settings):
        with patch("email_utils.smtplib.SMTP") as mock_smtp:
            with pytest.raises(EmailDeliveryError) as exc_info:
                SmtpEmailSender(settings).send("bob@example.com\nBcc: x@y.z", "Subject", "<p>Hi</p>")

        mock_smtp.assert_not_called()
        assert isinstance(exc_info.value.original_error, ValueError)


class TestSendEmailNotification:
    """Tests for the best-effort wrapper."""

    def test_returns_true_on_success(self):
        sender = Mock()

        assert send_email_notification(sender, "a@example.com", "S", "B") is True
        sender.send.assert_called_once_with("a@example.com", "S", "B")

    def test_failure_is_logged_not_raised(self):
        sender = Mock()
        sender.send.side_effect = EmailDeliveryError("Failed to send email")

        with patch("email_utils.logger") as mock_logger:
            assert send_email_notification(sender, "a@example.com", "S", "B") is False
            mock_logger.error.assert_called_once()

    def test_unexpected_sender_error_is_logged_not_raised(self):
        sender = Mock()
        sender.send.side_effect = ConnectionRefusedError("refused")

        with patch("email_utils.logger") as mock_logger:
            assert send_email_notification(sender, "a@example.com", "S", "B") is False
            mock_logger.error.assert_called_once()
