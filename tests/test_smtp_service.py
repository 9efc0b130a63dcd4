"""
ZIMMR Backend — SMTP Mailer Unit Tests
=======================================

What:  Tests for SMTPMailer delivery policy and the circuit breaker.
How:   No network: the blocking SMTP session and the retry wrapper are
       patched out, and settings are swapped where delivery must be enabled.

What we test:
    ✅ Disabled delivery returns False without touching SMTP
    ✅ Circuit breaker state transitions (CLOSED → OPEN → HALF_OPEN → CLOSED)
    ✅ Delivery failures become NotificationError and count against the breaker
    ✅ Authentication errors are not retried
    ✅ The SMTP connection is released even when the session fails midway
    ✅ MIME structure with a PDF attachment
"""

import smtplib
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from zimmr.config import settings
from zimmr.exceptions import CircuitBreakerOpenError, NotificationError
from zimmr.services.mail_base import EmailAttachment, OutgoingEmail
from zimmr.services.smtp_service import CircuitBreaker, SMTPMailer, build_mime_message


@pytest.fixture
def email():
    return OutgoingEmail(
        to="erika@example.com",
        subject="Rechnung INV-202406-1-0001",
        text="Anbei Ihre Rechnung.",
        html="<p>Anbei Ihre Rechnung.</p>",
    )


class TestCircuitBreaker:

    def test_starts_closed(self):
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.can_execute()

    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        for _ in range(3):
            breaker.record_failure()
        assert breaker.state == CircuitBreaker.OPEN
        with pytest.raises(CircuitBreakerOpenError):
            breaker.can_execute()

    def test_half_open_after_timeout(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=10)
        breaker.record_failure()
        breaker.record_failure()
        breaker.last_failure_time -= 11
        assert breaker.can_execute()
        assert breaker.state == CircuitBreaker.HALF_OPEN

    def test_half_open_failure_reopens(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=10)
        breaker.state = CircuitBreaker.HALF_OPEN
        breaker.record_failure()
        assert breaker.state == CircuitBreaker.OPEN

    def test_success_resets(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=10)
        breaker.record_failure()
        breaker.record_success()
        assert breaker.failure_count == 0
        assert breaker.state == CircuitBreaker.CLOSED


class TestSMTPMailer:

    def setup_method(self):
        self.mailer = SMTPMailer()

    @pytest.mark.asyncio
    async def test_disabled_delivery_returns_false(self, email):
        with patch.object(self.mailer, "_send_sync") as send_sync:
            assert await self.mailer.send(email) is False
            send_sync.assert_not_called()

    def test_status_disabled(self):
        assert self.mailer.status() == "disabled"

    @pytest.mark.asyncio
    async def test_failure_raises_notification_error(self, email):
        with patch("zimmr.services.smtp_service.settings") as mock_settings, \
             patch.object(self.mailer, "_deliver_with_retry",
                          AsyncMock(side_effect=OSError("connection refused"))):
            mock_settings.email_enabled = True

            with pytest.raises(NotificationError) as exc_info:
                await self.mailer.send(email)

            assert exc_info.value.context["error_type"] == "OSError"
            assert self.mailer.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_open_circuit_rejects_without_sending(self, email):
        self.mailer.circuit_breaker.state = CircuitBreaker.OPEN
        self.mailer.circuit_breaker.last_failure_time = time.time()
        with patch("zimmr.services.smtp_service.settings") as mock_settings, \
             patch.object(self.mailer, "_deliver_with_retry", AsyncMock()) as deliver:
            mock_settings.email_enabled = True

            with pytest.raises(CircuitBreakerOpenError):
                await self.mailer.send(email)
            deliver.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_authentication_error_is_not_retried(self, email):
        error = smtplib.SMTPAuthenticationError(535, b"authentication failed")
        with patch("zimmr.services.smtp_service.settings") as mock_settings, \
             patch.object(self.mailer, "_send_sync", MagicMock(side_effect=error)) as send_sync:
            mock_settings.email_enabled = True

            with pytest.raises(NotificationError):
                await self.mailer.send(email)
            assert send_sync.call_count == 1

    @pytest.mark.asyncio
    async def test_success_records_success(self, email):
        self.mailer.circuit_breaker.failure_count = 2
        with patch("zimmr.services.smtp_service.settings") as mock_settings, \
             patch.object(self.mailer, "_send_sync", MagicMock()) as send_sync:
            mock_settings.email_enabled = True

            assert await self.mailer.send(email) is True
            send_sync.assert_called_once_with(email)
            assert self.mailer.circuit_breaker.failure_count == 0


class TestRetryPolicy:

    def test_backoff_uses_configured_bounds(self):
        wait = SMTPMailer._deliver_with_retry.retry.wait
        assert wait.multiplier == settings.retry_min_wait
        assert wait.max == settings.retry_max_wait


class TestSmtpSession:

    def setup_method(self):
        self.mailer = SMTPMailer()

    def _settings(self, mock_settings):
        mock_settings.smtp_host = "smtp.example.com"
        mock_settings.smtp_port = 587
        mock_settings.smtp_use_tls = True
        mock_settings.smtp_username = ""
        mock_settings.smtp_timeout = 10
        mock_settings.email_from = "ZIMMR <noreply@zimmr.local>"

    def test_starttls_failure_still_closes_connection(self, email):
        with patch("zimmr.services.smtp_service.settings") as mock_settings, \
             patch("zimmr.services.smtp_service.smtplib.SMTP") as smtp_class:
            self._settings(mock_settings)
            server = smtp_class.return_value
            server.starttls.side_effect = smtplib.SMTPNotSupportedError("STARTTLS not supported")

            with pytest.raises(smtplib.SMTPNotSupportedError):
                self.mailer._send_sync(email)

            server.quit.assert_called_once()
            server.sendmail.assert_not_called()

    def test_dropped_connection_keeps_original_error(self, email):
        with patch("zimmr.services.smtp_service.settings") as mock_settings, \
             patch("zimmr.services.smtp_service.smtplib.SMTP") as smtp_class:
            self._settings(mock_settings)
            server = smtp_class.return_value
            server.sendmail.side_effect = smtplib.SMTPRecipientsRefused({})
            server.quit.side_effect = smtplib.SMTPServerDisconnected("Connection unexpectedly closed")

            with pytest.raises(smtplib.SMTPRecipientsRefused):
                self.mailer._send_sync(email)

            server.close.assert_called_once()

    def test_sends_after_starttls(self, email):
        with patch("zimmr.services.smtp_service.settings") as mock_settings, \
             patch("zimmr.services.smtp_service.smtplib.SMTP") as smtp_class:
            self._settings(mock_settings)
            server = smtp_class.return_value

            self.mailer._send_sync(email)

            server.starttls.assert_called_once()
            assert server.sendmail.call_args.args[:2] == ("noreply@zimmr.local", ["erika@example.com"])
            server.quit.assert_called_once()


class TestMimeMessage:

    def test_headers_and_bodies(self, email):
        message = build_mime_message(email, "ZIMMR <noreply@zimmr.local>")
        assert message["To"] == "erika@example.com"
        assert message["Subject"] == "Rechnung INV-202406-1-0001"
        body = message.get_payload()[0]
        assert [part.get_content_type() for part in body.get_payload()] == ["text/plain", "text/html"]

    def test_pdf_attachment(self, email):
        email.attachments.append(EmailAttachment(filename="invoice_INV-1.pdf", content=b"%PDF-1.4"))
        message = build_mime_message(email, "noreply@zimmr.local")
        attachment = message.get_payload()[1]
        assert attachment.get_content_type() == "application/pdf"
        assert attachment.get_filename() == "invoice_INV-1.pdf"
        assert attachment.get_payload(decode=True) == b"%PDF-1.4"
