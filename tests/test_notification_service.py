"""
ZIMMR Backend — Notification Service Unit Tests
================================================

What:  Message composition and delivery policy on top of a mocked transport.

What we test:
    ✅ Builders address the right party and skip recipients without email
    ✅ Fire-and-forget notifications swallow transport failures
    ✅ The explicit invoice send propagates transport failures
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from zimmr.exceptions import CircuitBreakerOpenError, NotificationError
from zimmr.services.appointment_service import to_appointment_response
from zimmr.services.notification_service import NotificationService


@pytest.fixture
def transport():
    mock = MagicMock()
    mock.send = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def service(transport):
    return NotificationService(transport=transport)


class TestMessageBuilders:

    def test_approved_email_goes_to_customer(self, service, pending_appointment):
        appointment = to_appointment_response(pending_appointment)
        email = service.appointment_approved_email(appointment)
        assert email.to == "erika@example.com"
        assert "04.06.2024 11:00" in email.subject
        assert "Max Meister" in email.text

    def test_rejected_email_includes_reason(self, service, pending_appointment):
        appointment = to_appointment_response(pending_appointment)
        email = service.appointment_rejected_email(appointment, "Urlaub")
        assert "Grund: Urlaub" in email.text

    def test_new_appointment_email_goes_to_craftsman(self, service, pending_appointment):
        appointment = to_appointment_response(pending_appointment)
        email = service.new_appointment_email(appointment)
        assert email.to == "meister@example.com"
        assert "Erika Mustermann" in email.text

    def test_no_customer_email_means_no_message(self, service, pending_appointment):
        pending_appointment.customer.email = None
        appointment = to_appointment_response(pending_appointment)
        assert service.appointment_approved_email(appointment) is None
        assert service.appointment_rejected_email(appointment, None) is None

    def test_invoice_email_attaches_pdf(self, service, invoice_detail):
        email = service.invoice_email(invoice_detail, b"%PDF-1.4", "invoice_INV-202406-1-0001.pdf")
        assert email.subject == "Rechnung INV-202406-1-0001"
        assert "738,75 €" in email.text
        assert email.attachments[0].filename == "invoice_INV-202406-1-0001.pdf"

    def test_quote_email_wording(self, service, invoice_detail):
        quote = invoice_detail.model_copy(update={"type": "quote", "invoice_number": "QUO-202406-1-0001"})
        email = service.invoice_email(quote, b"%PDF", "quote.pdf")
        assert email.subject.startswith("Angebot")
        assert "gültig bis" in email.text

    def test_overdue_email(self, service, invoice_detail):
        email = service.invoice_overdue_email(invoice_detail)
        assert email.subject == "Zahlungserinnerung: Rechnung INV-202406-1-0001"


class TestDelivery:

    @pytest.mark.asyncio
    async def test_notify_sends_through_transport(self, service, transport, pending_appointment):
        appointment = to_appointment_response(pending_appointment)
        assert await service.notify_appointment_approved(appointment) is True
        transport.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_notify_skips_missing_recipient(self, service, transport, pending_appointment):
        pending_appointment.craftsman.email = None
        appointment = to_appointment_response(pending_appointment)
        assert await service.notify_new_appointment(appointment) is False
        transport.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_notify_swallows_delivery_failure(self, service, transport, pending_appointment):
        transport.send.side_effect = NotificationError("smtp down")
        appointment = to_appointment_response(pending_appointment)
        assert await service.notify_appointment_rejected(appointment, "Krank") is False

    @pytest.mark.asyncio
    async def test_notify_swallows_unexpected_errors(self, service, transport, invoice_detail):
        transport.send.side_effect = RuntimeError("boom")
        assert await service.notify_invoice_overdue(invoice_detail) is False

    @pytest.mark.asyncio
    async def test_explicit_send_propagates(self, service, transport, invoice_detail):
        transport.send.side_effect = CircuitBreakerOpenError(recovery_time=30)
        with pytest.raises(CircuitBreakerOpenError):
            await service.send_invoice(invoice_detail, b"%PDF", "invoice.pdf")
