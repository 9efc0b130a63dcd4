"""
ZIMMR Backend — Invoice Service Unit Tests
===========================================

What:  Tests for totals, numbering, overdue detection, quote conversion,
       invoicing an appointment, delivery and the overdue sweep.
How:   Mock DB sessions and patched collaborators; no database, PDF
       storage or SMTP involved unless a test says so.
"""

import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from zimmr.exceptions import (
    DocumentError,
    InvalidStateError,
    PermissionDeniedError,
    ValidationError,
)
from zimmr.models import Invoice, InvoiceItem
from zimmr.schemas.invoice import InvoiceCreate, InvoiceItemInput, InvoiceUpdate
from zimmr.services.invoice_service import (
    InvoiceService,
    compute_totals,
    default_due_date,
    format_invoice_number,
    is_overdue,
    to_invoice_detail,
)

NOW = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def invoice(craftsman, customer):
    row = Invoice(
        id=100,
        type="invoice",
        invoice_number="INV-202406-1-0001",
        craftsman_id=1,
        customer_id=5,
        status="pending",
        amount=Decimal("100.00"),
        tax_amount=Decimal("19.00"),
        total_amount=Decimal("119.00"),
        due_date=NOW + timedelta(days=14),
        created_at=NOW,
        updated_at=NOW,
    )
    row.customer = customer
    row.craftsman = craftsman
    row.appointment = None
    row.items = [
        InvoiceItem(id=1, description="Montage", quantity=Decimal("2"),
                    unit_price=Decimal("50.00"), amount=Decimal("100.00")),
    ]
    return row


class TestTotals:

    def test_amounts_round_per_line(self):
        items = [
            InvoiceItemInput(description="Fliesen", quantity=Decimal("3.333"), unit_price=Decimal("10.00")),
            InvoiceItemInput(description="Arbeit", quantity=Decimal("1"), unit_price=Decimal("100.00")),
        ]
        assert compute_totals(items) == (Decimal("133.33"), Decimal("0.00"), Decimal("133.33"))

    def test_tax(self):
        items = [InvoiceItemInput(description="Arbeit", unit_price=Decimal("100.00"))]
        assert compute_totals(items, Decimal("0.19")) == (
            Decimal("100.00"), Decimal("19.00"), Decimal("119.00")
        )


class TestNumbering:

    def test_format(self):
        assert format_invoice_number("invoice", NOW, 3, 1) == "INV-202406-3-0001"
        assert format_invoice_number("quote", NOW, 3, 12) == "ANG-202406-3-0012"

    @pytest.mark.asyncio
    async def test_next_number_skips_taken(self, mock_db_session):
        # two documents this year; -0003 is taken, -0004 is free
        mock_db_session.scalar = AsyncMock(side_effect=[2, 1, 0])
        number = await InvoiceService().next_invoice_number(mock_db_session, 1, "invoice", NOW)
        assert number == "INV-202406-1-0004"

    def test_default_due_dates(self):
        assert default_due_date("invoice", NOW) == NOW + timedelta(days=14)
        assert default_due_date("quote", NOW) == NOW + timedelta(days=30)


class TestOverdue:

    def test_pending_past_due(self, invoice):
        assert is_overdue(invoice, now=invoice.due_date + timedelta(minutes=1))

    def test_not_yet_due(self, invoice):
        assert not is_overdue(invoice, now=NOW)

    def test_paid_and_quotes_are_never_overdue(self, invoice):
        later = invoice.due_date + timedelta(days=1)
        invoice.status = "paid"
        assert not is_overdue(invoice, now=later)
        invoice.status = "pending"
        invoice.type = "quote"
        assert not is_overdue(invoice, now=later)

    def test_detail_carries_parties(self, invoice):
        detail = to_invoice_detail(invoice)
        assert detail.customer_email == "erika@example.com"
        assert detail.craftsman_name == "Max Meister"
        assert detail.items[0].amount == Decimal("100.00")
        assert detail.appointment_title is None


class TestConvertQuote:

    def setup_method(self):
        self.service = InvoiceService()

    @pytest.mark.asyncio
    async def test_rejects_invoices(self, mock_db_session, invoice, craftsman_user):
        mock_db_session.get.return_value = invoice
        with pytest.raises(ValidationError):
            await self.service.convert_quote(mock_db_session, 100, craftsman_user)

    @pytest.mark.asyncio
    async def test_rejects_second_conversion(self, mock_db_session, invoice, craftsman_user):
        invoice.type = "quote"
        mock_db_session.get.return_value = invoice
        mock_db_session.scalar.return_value = 101
        with pytest.raises(InvalidStateError):
            await self.service.convert_quote(mock_db_session, 100, craftsman_user)

    @pytest.mark.asyncio
    async def test_copies_items_and_tax_rate(self, mock_db_session, invoice, craftsman_user):
        invoice.type = "quote"
        mock_db_session.get.return_value = invoice
        mock_db_session.scalar.return_value = None
        with patch.object(self.service, "_persist", AsyncMock(return_value=invoice)) as persist:
            await self.service.convert_quote(mock_db_session, 100, craftsman_user)

        kwargs = persist.await_args.kwargs
        assert kwargs["doc_type"] == "invoice"
        assert kwargs["original_quote_id"] == 100
        assert kwargs["tax_rate"] == Decimal("0.19")
        assert [i.description for i in kwargs["items"]] == ["Montage"]

    @pytest.mark.asyncio
    async def test_other_craftsman_is_forbidden(self, mock_db_session, invoice):
        from zimmr.security import TokenUser

        invoice.type = "quote"
        mock_db_session.get.return_value = invoice
        stranger = TokenUser(user_id=99, email="x@example.com", role="craftsman", craftsman_id=2)
        with pytest.raises(PermissionDeniedError):
            await self.service.convert_quote(mock_db_session, 100, stranger)


class TestUpdateInvoice:

    def setup_method(self):
        self.service = InvoiceService()

    @pytest.mark.asyncio
    async def test_null_status_is_a_validation_error(self, mock_db_session, invoice, craftsman_user):
        mock_db_session.get.return_value = invoice
        data = InvoiceUpdate.model_validate({"status": None})

        with pytest.raises(ValidationError) as exc_info:
            await self.service.update_invoice(mock_db_session, 100, data, craftsman_user)

        assert exc_info.value.field == "status"
        assert invoice.status == "pending"
        mock_db_session.flush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_paid_stamps_and_unpaid_clears(self, mock_db_session, invoice, craftsman_user):
        mock_db_session.get.return_value = invoice

        await self.service.update_invoice(
            mock_db_session, 100, InvoiceUpdate(status="paid"), craftsman_user
        )
        assert invoice.paid_at is not None

        await self.service.update_invoice(
            mock_db_session, 100, InvoiceUpdate(status="pending"), craftsman_user
        )
        assert invoice.paid_at is None

    @pytest.mark.asyncio
    async def test_payment_link_can_be_cleared(self, mock_db_session, invoice, craftsman_user):
        invoice.payment_link = "https://pay.example.com/100"
        mock_db_session.get.return_value = invoice
        data = InvoiceUpdate.model_validate({"payment_link": None})

        await self.service.update_invoice(mock_db_session, 100, data, craftsman_user)

        assert invoice.payment_link is None


class TestCreateInvoice:

    def setup_method(self):
        self.service = InvoiceService()

    @pytest.mark.asyncio
    async def test_invoice_for_appointment_completes_it(
        self, mock_db_session, invoice, customer, pending_appointment, craftsman_user
    ):
        pending_appointment.approval_status = "approved"
        data = InvoiceCreate(
            customer_id=customer.id,
            appointment_id=pending_appointment.id,
            items=[InvoiceItemInput(description="Beratung", unit_price=Decimal("80"))],
        )
        with patch("zimmr.services.invoice_service.customer_service") as customers, \
             patch("zimmr.services.invoice_service.appointment_service") as appointments, \
             patch.object(self.service, "_persist", AsyncMock(return_value=invoice)), \
             patch.object(self.service, "load", AsyncMock(return_value=invoice)):
            customers.get_owned_customer = AsyncMock(return_value=customer)
            appointments.load_owned = AsyncMock(return_value=pending_appointment)

            detail = await self.service.create_invoice(mock_db_session, data, craftsman_user)

        assert detail.invoice_number == "INV-202406-1-0001"
        assert pending_appointment.status == "completed"
        assert pending_appointment.completed_at is not None

    @pytest.mark.asyncio
    async def test_cancelled_appointment_cannot_be_invoiced(
        self, mock_db_session, customer, pending_appointment, craftsman_user
    ):
        pending_appointment.status = "cancelled"
        data = InvoiceCreate(
            customer_id=customer.id,
            appointment_id=pending_appointment.id,
            items=[InvoiceItemInput(description="Beratung", unit_price=Decimal("80"))],
        )
        with patch("zimmr.services.invoice_service.customer_service") as customers, \
             patch("zimmr.services.invoice_service.appointment_service") as appointments:
            customers.get_owned_customer = AsyncMock(return_value=customer)
            appointments.load_owned = AsyncMock(return_value=pending_appointment)

            with pytest.raises(InvalidStateError):
                await self.service.create_invoice(mock_db_session, data, craftsman_user)

    @pytest.mark.asyncio
    async def test_appointment_of_another_customer(
        self, mock_db_session, customer, pending_appointment, craftsman_user
    ):
        pending_appointment.customer_id = 999
        data = InvoiceCreate(
            customer_id=customer.id,
            appointment_id=pending_appointment.id,
            items=[InvoiceItemInput(description="Beratung", unit_price=Decimal("80"))],
        )
        with patch("zimmr.services.invoice_service.customer_service") as customers, \
             patch("zimmr.services.invoice_service.appointment_service") as appointments:
            customers.get_owned_customer = AsyncMock(return_value=customer)
            appointments.load_owned = AsyncMock(return_value=pending_appointment)

            with pytest.raises(ValidationError):
                await self.service.create_invoice(mock_db_session, data, craftsman_user)


class TestDelivery:

    def setup_method(self):
        self.service = InvoiceService()

    @pytest.mark.asyncio
    async def test_send_requires_customer_email(self, mock_db_session, invoice_detail, craftsman_user):
        no_email = invoice_detail.model_copy(update={"customer_email": None})
        with patch.object(self.service, "get_invoice", AsyncMock(return_value=no_email)):
            with pytest.raises(ValidationError):
                await self.service.send_invoice(mock_db_session, 100, craftsman_user)

    @pytest.mark.asyncio
    async def test_send_stores_and_emails(self, mock_db_session, invoice_detail, craftsman_user):
        with patch.object(self.service, "get_invoice", AsyncMock(return_value=invoice_detail)), \
             patch("zimmr.services.invoice_service.pdf_service") as pdf, \
             patch("zimmr.services.invoice_service.document_storage") as storage, \
             patch("zimmr.services.invoice_service.notification_service") as notifications:
            pdf.render.return_value = b"%PDF"
            storage.store_document = AsyncMock(return_value=("/abs/x.pdf", "invoices/2024/06/x.pdf"))
            notifications.send_invoice = AsyncMock(return_value=True)

            result = await self.service.send_invoice(mock_db_session, 100, craftsman_user)

        assert result.message == "Invoice sent"
        assert result.recipient == "erika@example.com"
        assert result.document_path == "invoices/2024/06/x.pdf"

    @pytest.mark.asyncio
    async def test_rendering_leaves_the_event_loop(self, invoice_detail):
        render_threads = []

        def fake_render(invoice):
            render_threads.append(threading.get_ident())
            return b"%PDF"

        with patch("zimmr.services.invoice_service.pdf_service") as pdf:
            pdf.render.side_effect = fake_render
            pdf_bytes, filename = await self.service.render_document(invoice_detail)

        assert pdf_bytes == b"%PDF"
        assert filename == "invoice_INV-202406-1-0001.pdf"
        assert render_threads and render_threads[0] != threading.get_ident()

    @pytest.mark.asyncio
    async def test_background_delivery_never_raises(self, invoice_detail):
        with patch("zimmr.services.invoice_service.pdf_service") as pdf, \
             patch("zimmr.services.invoice_service.notification_service") as notifications:
            pdf.render.side_effect = DocumentError()
            notifications.notify_invoice_generated = AsyncMock()

            await self.service.deliver_in_background(invoice_detail)

            notifications.notify_invoice_generated.assert_not_awaited()


class TestOverdueSweep:

    @pytest.mark.asyncio
    async def test_stamps_and_notifies(self, invoice):
        invoice.due_date = datetime.now(timezone.utc) - timedelta(days=1)
        session = AsyncMock()
        result = MagicMock()
        result.scalars.return_value.all.return_value = [invoice]
        session.execute = AsyncMock(return_value=result)
        factory = MagicMock()
        factory.return_value.__aenter__.return_value = session

        with patch("zimmr.services.invoice_service.notification_service") as notifications:
            notifications.notify_invoice_overdue = AsyncMock(return_value=True)
            count = await InvoiceService().send_overdue_reminders(session_factory=factory)

        assert count == 1
        assert invoice.overdue_notified_at is not None
        assert invoice.status == "pending"
        session.commit.assert_awaited_once()
        notifications.notify_invoice_overdue.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_nothing_overdue(self):
        session = AsyncMock()
        result = MagicMock()
        result.scalars.return_value.all.return_value = []
        session.execute = AsyncMock(return_value=result)
        factory = MagicMock()
        factory.return_value.__aenter__.return_value = session

        assert await InvoiceService().send_overdue_reminders(session_factory=factory) == 0
        session.commit.assert_not_awaited()
