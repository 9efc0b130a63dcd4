"""
ZIMMR Backend — SMTP Mail Transport
====================================

What:  Concrete mail transport delivering messages over SMTP (smtplib).
Why:   Customers are notified by email about approvals, rejections and
       invoices; craftsmen about new appointment requests.
How:   The blocking smtplib session runs in a worker thread
       (asyncio.to_thread), wrapped in tenacity retries and a circuit breaker.
Who:   Instantiated once at import; used by NotificationService.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter for transient failures
       (connection drops, 4xx replies). Authentication failures are not retried.
    2. Circuit breaker: after N consecutive failed deliveries, further sends
       fail instantly until the recovery timeout elapses.
    3. Disabled mode: with no SMTP_HOST configured, messages are logged and
       skipped so development setups work without a mail server.
"""

import asyncio
import logging
import smtplib
import ssl
import time
import uuid
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import parseaddr
from typing import Optional

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from zimmr.config import settings
from zimmr.exceptions import CircuitBreakerOpenError, NotificationError
from zimmr.services.mail_base import MailTransport, OutgoingEmail

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Implements the circuit breaker pattern to prevent cascade failures.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow ONE request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Not thread-safe; all callers run on the event loop.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Raises:
            CircuitBreakerOpenError if circuit is OPEN and recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (mail server recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test delivery failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# SMTP Transport
# ══════════════════════════════════════════════════════════════════════════

class SMTPMailer(MailTransport):
    """
    SMTP delivery with retry and circuit breaker.

    Error Handling Chain:
        SMTP call fails → tenacity retries (retry_max_attempts, backoff)
        → All retries fail → record circuit breaker failure → NotificationError
        → Threshold reached → future sends rejected with CircuitBreakerOpenError
        → Recovery timeout → one test send (HALF_OPEN)
    """

    def __init__(self):
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )
        if settings.email_enabled:
            logger.info(
                "SMTPMailer initialized for %s:%d (tls=%s), "
                "circuit_breaker(threshold=%d, recovery=%ds)",
                settings.smtp_host,
                settings.smtp_port,
                settings.smtp_use_tls,
                settings.cb_failure_threshold,
                settings.cb_recovery_timeout,
            )
        else:
            logger.info("SMTPMailer disabled: SMTP_HOST is not set")

    def status(self) -> str:
        if not settings.email_enabled:
            return "disabled"
        if self.circuit_breaker.state == CircuitBreaker.OPEN:
            return "circuit_open"
        return "configured"

    async def send(self, email: OutgoingEmail) -> bool:
        """
        Deliver one message.

        Returns:
            True when delivered, False when delivery is disabled.

        Raises:
            CircuitBreakerOpenError: too many recent delivery failures
            NotificationError: delivery failed after all retry attempts
        """
        delivery_id = str(uuid.uuid4())[:8]

        if not settings.email_enabled:
            logger.info(
                "[%s] Email delivery disabled; skipping '%s' to %s",
                delivery_id,
                email.subject,
                email.to,
            )
            return False

        self.circuit_breaker.can_execute()

        try:
            await self._deliver_with_retry(email, delivery_id)
        except (smtplib.SMTPException, OSError) as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Email delivery to %s failed: %s",
                delivery_id,
                email.to,
                str(e),
            )
            raise NotificationError(
                message="The email could not be delivered. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"delivery_id": delivery_id, "error_type": type(e).__name__},
            )

        self.circuit_breaker.record_success()
        return True

    @retry(
        retry=(
            retry_if_exception_type((smtplib.SMTPException, OSError))
            & retry_if_not_exception_type(smtplib.SMTPAuthenticationError)
        ),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            multiplier=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _deliver_with_retry(self, email: OutgoingEmail, delivery_id: str) -> None:
        start_time = time.time()
        await asyncio.to_thread(self._send_sync, email)
        logger.info(
            "[%s] Email '%s' delivered to %s in %.0fms",
            delivery_id,
            email.subject,
            email.to,
            (time.time() - start_time) * 1000,
        )

    def _send_sync(self, email: OutgoingEmail) -> None:
        """Blocking SMTP session. Port 465 uses implicit TLS, others STARTTLS."""
        message = build_mime_message(email, settings.email_from)
        sender = parseaddr(settings.email_from)[1] or settings.email_from
        context = ssl.create_default_context()

        if settings.smtp_port == 465:
            server = smtplib.SMTP_SSL(
                settings.smtp_host, settings.smtp_port,
                context=context, timeout=settings.smtp_timeout,
            )
        else:
            server = smtplib.SMTP(
                settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout
            )

        try:
            if settings.smtp_port != 465 and settings.smtp_use_tls:
                server.starttls(context=context)
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password)
            server.sendmail(sender, [email.to], message.as_string())
        finally:
            # quit() fails on a dropped connection; close() still frees the socket
            try:
                server.quit()
            except (smtplib.SMTPException, OSError):
                server.close()


def build_mime_message(email: OutgoingEmail, from_address: str) -> MIMEMultipart:
    """multipart/mixed: an alternative text/html body followed by attachments."""
    message = MIMEMultipart("mixed")
    message["Subject"] = email.subject
    message["From"] = from_address
    message["To"] = email.to

    body = MIMEMultipart("alternative")
    body.attach(MIMEText(email.text, "plain", "utf-8"))
    if email.html:
        body.attach(MIMEText(email.html, "html", "utf-8"))
    message.attach(body)

    for attachment in email.attachments:
        subtype = attachment.mime_type.split("/", 1)[-1]
        part = MIMEApplication(attachment.content, _subtype=subtype)
        part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
        message.attach(part)

    return message


# ── Singleton Instance ────────────────────────────────────────────────────
# The circuit breaker state must be shared across all requests
smtp_mailer = SMTPMailer()
