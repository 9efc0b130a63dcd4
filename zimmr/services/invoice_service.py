"""
ZIMMR Backend — Invoice Service (Billing Orchestrator)
=======================================================

What:  Invoices and quotes: numbering, totals, CRUD, quote conversion, the
       one-step "complete appointment and invoice" flow, document delivery
       and the overdue reminder sweep.
Who:   /invoices routes and the lifespan reminder task in main.py.

Numbering:
    INV-YYYYMM-<craftsman_id>-<seq:04d>   invoices
    ANG-YYYYMM-<craftsman_id>-<seq:04d>   quotes (Angebot)
    seq = number of the craftsman's documents of that type created this
    calendar year + 1. If that number is taken (a document was deleted),
    the next free sequence is used.

Totals (Decimal, rounded half-up to cents):
    amount       = Σ round(quantity × unit_price, 2)
    tax_amount   = round(amount × tax_rate, 2)
    total_amount = amount + tax_amount

Delivery:
    ┌───────────┐    ┌─────────────┐    ┌──────────────┐    ┌──────────┐
    │  commit   │───▶│ render PDF  │───▶│ store (disk) │───▶│  email   │
    │ (request) │    │ (reportlab) │    │  (aiofiles)  │    │  (SMTP)  │
    └───────────┘    └─────────────┘    └──────────────┘    └──────────┘
    Background delivery swallows and logs every failure; the explicit
    send endpoint lets them propagate (400/500/503).
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from zimmr.config import settings
from zimmr.database import async_session_factory
from zimmr.exceptions import (
    DatabaseError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    ZimmrError,
)
from zimmr.models.appointment import Appointment
from zimmr.models.customer import Customer
from zimmr.models.invoice import Invoice, InvoiceItem
from zimmr.schemas.invoice import (
    CompleteAndInvoiceRequest,
    InvoiceCreate,
    InvoiceDetail,
    InvoiceItemInput,
    InvoiceItemResponse,
    InvoiceResponse,
    InvoiceUpdate,
    SendInvoiceResponse,
)
from zimmr.security import TokenUser
from zimmr.services.access import ensure_owner, partial_changes
from zimmr.services.appointment_service import appointment_service, build_invoice_items
from zimmr.services.customer_service import customer_service
from zimmr.services.document_storage import document_storage
from zimmr.services.notification_service import notification_service
from zimmr.services.pdf_service import pdf_service
from zimmr.services.time_tracking import ensure_utc, quantize_money

logger = logging.getLogger(__name__)

NUMBER_PREFIXES = {"invoice": "INV", "quote": "ANG"}


# ══════════════════════════════════════════════════════════════════════════
# Pure helpers
# ══════════════════════════════════════════════════════════════════════════

def compute_totals(
    items: Iterable[InvoiceItemInput], tax_rate: Decimal = Decimal("0")
) -> Tuple[Decimal, Decimal, Decimal]:
    """Returns (amount, tax_amount, total_amount)."""
    amount = quantize_money(
        sum((quantize_money(i.quantity * i.unit_price) for i in items), Decimal("0"))
    )
    tax_amount = quantize_money(amount * Decimal(tax_rate))
    return amount, tax_amount, amount + tax_amount


def format_invoice_number(doc_type: str, when: datetime, craftsman_id: int, sequence: int) -> str:
    return f"{NUMBER_PREFIXES[doc_type]}-{when.strftime('%Y%m')}-{craftsman_id}-{sequence:04d}"


def default_due_date(doc_type: str, now: datetime) -> datetime:
    days = settings.quote_valid_days if doc_type == "quote" else settings.invoice_due_days
    return now + timedelta(days=days)


def is_overdue(invoice: Invoice, now: Optional[datetime] = None) -> bool:
    """Pending invoices (not quotes) whose due date has passed."""
    if invoice.type != "invoice" or invoice.status != "pending" or invoice.due_date is None:
        return False
    return ensure_utc(invoice.due_date) < (now or datetime.now(timezone.utc))


def _base_fields(invoice: Invoice) -> dict:
    customer = invoice.customer
    return dict(
        id=invoice.id,
        type=invoice.type,
        invoice_number=invoice.invoice_number,
        craftsman_id=invoice.craftsman_id,
        customer_id=invoice.customer_id,
        appointment_id=invoice.appointment_id,
        original_quote_id=invoice.original_quote_id,
        status=invoice.status,
        amount=invoice.amount,
        tax_amount=invoice.tax_amount,
        total_amount=invoice.total_amount,
        notes=invoice.notes,
        due_date=invoice.due_date,
        payment_link=invoice.payment_link,
        paid_at=invoice.paid_at,
        created_at=invoice.created_at,
        updated_at=invoice.updated_at,
        customer_name=customer.name if customer else None,
        is_overdue=is_overdue(invoice),
    )


def to_invoice_response(invoice: Invoice) -> InvoiceResponse:
    return InvoiceResponse(**_base_fields(invoice))


def to_invoice_detail(invoice: Invoice) -> InvoiceDetail:
    customer = invoice.customer
    craftsman = invoice.craftsman
    appointment = invoice.appointment
    return InvoiceDetail(
        **_base_fields(invoice),
        items=[InvoiceItemResponse.model_validate(item) for item in invoice.items],
        customer_email=customer.email if customer else None,
        customer_phone=customer.phone if customer else None,
        customer_address=customer.address if customer else None,
        craftsman_name=craftsman.name if craftsman else None,
        craftsman_email=craftsman.email if craftsman else None,
        craftsman_phone=craftsman.phone if craftsman else None,
        appointment_title=appointment.title if appointment else None,
        appointment_scheduled_at=appointment.scheduled_at if appointment else None,
    )


def document_filename(invoice: InvoiceDetail) -> str:
    return document_storage.document_filename(invoice.type, invoice.invoice_number)


_DETAIL_OPTIONS = (
    selectinload(Invoice.items),
    selectinload(Invoice.customer),
    selectinload(Invoice.craftsman),
    selectinload(Invoice.appointment),
)


# ══════════════════════════════════════════════════════════════════════════
# Service
# ══════════════════════════════════════════════════════════════════════════

class InvoiceService:
    """
    Business logic for invoices and quotes.

    Error Handling Strategy:
        Domain exceptions propagate unchanged; anything unexpected from the
        database is logged and wrapped in DatabaseError.
    """

    # ── Loading ───────────────────────────────────────────────────────────

    async def load(self, db: AsyncSession, invoice_id: int) -> Invoice:
        try:
            invoice = await db.get(
                Invoice, invoice_id, options=list(_DETAIL_OPTIONS), populate_existing=True
            )
        except Exception as e:
            logger.error("Database error fetching invoice %d: %s", invoice_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the invoice. Please try again.",
                context={"invoice_id": invoice_id},
            )
        if invoice is None:
            raise NotFoundError(resource="invoice", resource_id=str(invoice_id))
        return invoice

    async def load_owned(self, db: AsyncSession, invoice_id: int, user: TokenUser) -> Invoice:
        invoice = await self.load(db, invoice_id)
        ensure_owner(invoice.craftsman_id, user, "invoice", invoice_id)
        return invoice

    async def next_invoice_number(
        self, db: AsyncSession, craftsman_id: int, doc_type: str, now: datetime
    ) -> str:
        year_start = datetime(now.year, 1, 1, tzinfo=timezone.utc)
        year_end = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
        count = await db.scalar(
            select(func.count(Invoice.id)).where(
                Invoice.craftsman_id == craftsman_id,
                Invoice.type == doc_type,
                Invoice.created_at >= year_start,
                Invoice.created_at < year_end,
            )
        )
        sequence = int(count or 0) + 1
        while True:
            number = format_invoice_number(doc_type, now, craftsman_id, sequence)
            taken = await db.scalar(
                select(func.count(Invoice.id)).where(Invoice.invoice_number == number)
            )
            if not taken:
                return number
            sequence += 1

    # ── Queries ───────────────────────────────────────────────────────────

    async def list_invoices(
        self,
        db: AsyncSession,
        user: TokenUser,
        doc_type: Optional[str] = None,
        status: Optional[str] = None,
        customer_id: Optional[int] = None,
        overdue: bool = False,
    ) -> List[InvoiceResponse]:
        query = select(Invoice).options(selectinload(Invoice.customer))
        if not user.is_admin:
            query = query.where(Invoice.craftsman_id == user.craftsman_id)
        if doc_type:
            query = query.where(Invoice.type == doc_type)
        if status:
            query = query.where(Invoice.status == status)
        if customer_id is not None:
            query = query.where(Invoice.customer_id == customer_id)
        if overdue:
            query = query.where(
                Invoice.type == "invoice",
                Invoice.status == "pending",
                Invoice.due_date < datetime.now(timezone.utc),
            )
        query = query.order_by(Invoice.created_at.desc())

        try:
            result = await db.execute(query)
            return [to_invoice_response(i) for i in result.scalars().all()]
        except Exception as e:
            logger.error("Database error listing invoices: %s", str(e))
            raise DatabaseError(message="Could not load invoices. Please try again.")

    async def get_invoice(self, db: AsyncSession, invoice_id: int, user: TokenUser) -> InvoiceDetail:
        return to_invoice_detail(await self.load_owned(db, invoice_id, user))

    # ── Creation ──────────────────────────────────────────────────────────

    async def _persist(
        self,
        db: AsyncSession,
        *,
        doc_type: str,
        craftsman_id: int,
        customer_id: int,
        items: List[InvoiceItemInput],
        tax_rate: Decimal = Decimal("0"),
        appointment_id: Optional[int] = None,
        original_quote_id: Optional[int] = None,
        status: str = "pending",
        notes: Optional[str] = None,
        due_date: Optional[datetime] = None,
        payment_link: Optional[str] = None,
    ) -> Invoice:
        now = datetime.now(timezone.utc)
        amount, tax_amount, total_amount = compute_totals(items, tax_rate)
        invoice = Invoice(
            type=doc_type,
            invoice_number=await self.next_invoice_number(db, craftsman_id, doc_type, now),
            craftsman_id=craftsman_id,
            customer_id=customer_id,
            appointment_id=appointment_id,
            original_quote_id=original_quote_id,
            status=status,
            amount=amount,
            tax_amount=tax_amount,
            total_amount=total_amount,
            notes=notes,
            due_date=due_date or default_due_date(doc_type, now),
            payment_link=payment_link,
            created_at=now,
            updated_at=now,
        )
        invoice.items = [
            InvoiceItem(
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                amount=quantize_money(item.quantity * item.unit_price),
                material_id=item.material_id,
                service_type=item.service_type,
            )
            for item in items
        ]
        db.add(invoice)
        await db.flush()
        logger.info(
            "Created %s %s (id=%d, total=%s) for customer %d",
            doc_type,
            invoice.invoice_number,
            invoice.id,
            total_amount,
            customer_id,
        )
        return invoice

    async def create_invoice(
        self, db: AsyncSession, data: InvoiceCreate, user: TokenUser
    ) -> InvoiceDetail:
        """
        Create an invoice or quote with its line items.

        For invoices linked to an appointment, the appointment is marked
        completed in the same transaction.

        Raises:
            NotFoundError, PermissionDeniedError: customer/appointment
            ValidationError: appointment belongs to a different customer
            InvalidStateError: invoicing a cancelled appointment
        """
        customer: Customer = await customer_service.get_owned_customer(db, data.customer_id, user)
        craftsman_id = user.craftsman_id or customer.craftsman_id
        if craftsman_id is None:
            raise ValidationError("The customer is not assigned to a craftsman", field="customer_id")

        try:
            if data.appointment_id is not None:
                appointment = await appointment_service.load_owned(db, data.appointment_id, user)
                if appointment.customer_id != data.customer_id:
                    raise ValidationError(
                        "Appointment belongs to a different customer", field="appointment_id"
                    )
                if data.type == "invoice":
                    self._complete_for_invoice(appointment)

            invoice = await self._persist(
                db,
                doc_type=data.type,
                craftsman_id=craftsman_id,
                customer_id=data.customer_id,
                items=data.items,
                tax_rate=data.tax_rate,
                appointment_id=data.appointment_id,
                status=data.status,
                notes=data.notes,
                due_date=data.due_date,
                payment_link=data.payment_link,
            )
        except ZimmrError:
            raise
        except Exception as e:
            logger.error("Unexpected error creating invoice: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not create the invoice. Please try again.",
                context={"original_error": type(e).__name__},
            )

        return to_invoice_detail(await self.load(db, invoice.id))

    @staticmethod
    def _complete_for_invoice(appointment: Appointment) -> None:
        if appointment.status == "cancelled":
            raise InvalidStateError("Cancelled appointments cannot be invoiced")
        if appointment.status != "completed":
            appointment.status = "completed"
            appointment.completed_at = datetime.now(timezone.utc)
            logger.info("Appointment %d completed by invoicing", appointment.id)

    async def complete_appointment_and_invoice(
        self,
        db: AsyncSession,
        appointment_id: int,
        data: CompleteAndInvoiceRequest,
        user: TokenUser,
    ) -> InvoiceDetail:
        """
        Complete an appointment and create its invoice in one transaction.

        Raises:
            InvalidStateError: appointment already completed or cancelled
            ValidationError: nothing to bill
        """
        appointment = await appointment_service.load_owned(db, appointment_id, user)
        appointment = await appointment_service.mark_completed(
            db, appointment, price=data.price, notes=data.notes, materials=data.materials
        )
        items = data.items or build_invoice_items(appointment)
        if not items:
            raise ValidationError(
                "Nothing to invoice: provide a price, materials or line items", field="items"
            )

        try:
            invoice = await self._persist(
                db,
                doc_type="invoice",
                craftsman_id=appointment.craftsman_id,
                customer_id=appointment.customer_id,
                items=items,
                tax_rate=data.tax_rate,
                appointment_id=appointment.id,
                notes=data.notes,
                due_date=data.due_date,
            )
        except ZimmrError:
            raise
        except Exception as e:
            logger.error("Unexpected error invoicing appointment %d: %s", appointment_id, str(e), exc_info=True)
            raise DatabaseError(
                message="Could not create the invoice. Please try again.",
                context={"appointment_id": appointment_id},
            )
        return to_invoice_detail(await self.load(db, invoice.id))

    async def convert_quote(self, db: AsyncSession, quote_id: int, user: TokenUser) -> InvoiceDetail:
        """
        Copy a quote into a new pending invoice. The quote row is unchanged;
        the new invoice points back through original_quote_id.

        Raises:
            ValidationError: the document is not a quote
            InvalidStateError: the quote was already converted
        """
        quote = await self.load_owned(db, quote_id, user)
        if quote.type != "quote":
            raise ValidationError("Only quotes can be converted to invoices", field="type")

        existing = await db.scalar(
            select(Invoice.id).where(Invoice.original_quote_id == quote_id).limit(1)
        )
        if existing is not None:
            raise InvalidStateError(
                "Quote has already been converted to an invoice",
                context={"invoice_id": existing},
            )

        items = [
            InvoiceItemInput(
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                material_id=item.material_id,
                service_type=item.service_type,
            )
            for item in quote.items
        ]
        # Keep the quote's tax rate; the new amounts are recomputed from items
        tax_rate = (quote.tax_amount / quote.amount) if quote.amount else Decimal("0")

        try:
            invoice = await self._persist(
                db,
                doc_type="invoice",
                craftsman_id=quote.craftsman_id,
                customer_id=quote.customer_id,
                items=items,
                tax_rate=tax_rate,
                appointment_id=quote.appointment_id,
                original_quote_id=quote.id,
                notes=quote.notes,
                payment_link=quote.payment_link,
            )
        except ZimmrError:
            raise
        except Exception as e:
            logger.error("Unexpected error converting quote %d: %s", quote_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not convert the quote. Please try again.")

        logger.info("Quote %s converted into invoice %s", quote.invoice_number, invoice.invoice_number)
        return to_invoice_detail(await self.load(db, invoice.id))

    # ── Update / delete ───────────────────────────────────────────────────

    async def update_invoice(
        self, db: AsyncSession, invoice_id: int, data: InvoiceUpdate, user: TokenUser
    ) -> InvoiceDetail:
        invoice = await self.load_owned(db, invoice_id, user)
        changes = partial_changes(data, ("status",))

        now = datetime.now(timezone.utc)
        new_status = changes.get("status")
        if new_status and new_status != invoice.status:
            if new_status == "paid":
                invoice.paid_at = now
            elif invoice.status == "paid":
                invoice.paid_at = None
            logger.info("Invoice %s status %s -> %s", invoice.invoice_number, invoice.status, new_status)

        try:
            for field, value in changes.items():
                setattr(invoice, field, value)
            invoice.updated_at = now
            await db.flush()
        except Exception as e:
            logger.error("Database error updating invoice %d: %s", invoice_id, str(e))
            raise DatabaseError(message="Could not update the invoice. Please try again.")
        return to_invoice_detail(await self.load(db, invoice_id))

    async def delete_invoice(self, db: AsyncSession, invoice_id: int, user: TokenUser) -> None:
        invoice = await self.load_owned(db, invoice_id, user)
        try:
            await db.delete(invoice)
            await db.flush()
        except Exception as e:
            logger.error("Database error deleting invoice %d: %s", invoice_id, str(e))
            raise DatabaseError(message="Could not delete the invoice. Please try again.")
        logger.info("Invoice %s deleted", invoice.invoice_number)

    # ── Documents & delivery ──────────────────────────────────────────────

    async def render_document(self, invoice: InvoiceDetail) -> Tuple[bytes, str]:
        """Returns (pdf_bytes, download filename). reportlab runs in a worker thread."""
        pdf_bytes = await asyncio.to_thread(pdf_service.render, invoice)
        return pdf_bytes, document_filename(invoice)

    async def send_invoice(
        self, db: AsyncSession, invoice_id: int, user: TokenUser
    ) -> SendInvoiceResponse:
        """
        Explicit "send to customer".

        Raises:
            ValidationError: the customer has no email address
            DocumentError: rendering or storing the PDF failed
            NotificationError, CircuitBreakerOpenError: mail transport failed
        """
        invoice = await self.get_invoice(db, invoice_id, user)
        if not invoice.customer_email:
            raise ValidationError("Customer has no email address", field="customer_email")

        pdf_bytes, filename = await self.render_document(invoice)
        _, relative_path = await document_storage.store_document(pdf_bytes, filename)
        delivered = await notification_service.send_invoice(invoice, pdf_bytes, filename)

        label = "Quote" if invoice.type == "quote" else "Invoice"
        message = f"{label} sent" if delivered else f"{label} stored; email delivery is disabled"
        return SendInvoiceResponse(
            message=message,
            recipient=invoice.customer_email,
            document_path=relative_path,
        )

    async def deliver_in_background(self, invoice: InvoiceDetail) -> None:
        """
        Render, store and email a freshly issued invoice.
        Runs as a background task after commit; never raises.
        """
        try:
            pdf_bytes, filename = await self.render_document(invoice)
            await document_storage.store_document(pdf_bytes, filename)
            await notification_service.notify_invoice_generated(invoice, pdf_bytes, filename)
        except Exception as e:
            logger.error(
                "Background delivery of %s failed: %s", invoice.invoice_number, str(e), exc_info=True
            )

    # ── Overdue reminders ─────────────────────────────────────────────────

    async def send_overdue_reminders(
        self, session_factory: async_sessionmaker = async_session_factory
    ) -> int:
        """
        Stamp every newly overdue invoice, commit, then email one reminder
        each. Invoice status is never changed here.

        Returns:
            Number of invoices stamped.
        """
        now = datetime.now(timezone.utc)
        async with session_factory() as session:
            result = await session.execute(
                select(Invoice)
                .options(*_DETAIL_OPTIONS)
                .where(
                    Invoice.type == "invoice",
                    Invoice.status == "pending",
                    Invoice.due_date < now,
                    Invoice.overdue_notified_at.is_(None),
                )
            )
            invoices = list(result.scalars().all())
            if not invoices:
                return 0
            for invoice in invoices:
                invoice.overdue_notified_at = now
            details = [to_invoice_detail(invoice) for invoice in invoices]
            await session.commit()

        logger.info("Overdue sweep: %d invoice(s) newly overdue", len(details))
        for detail in details:
            await notification_service.notify_invoice_overdue(detail)
        return len(details)

    async def run_overdue_reminders(self, interval: int) -> None:
        """Lifespan task: sweep every `interval` seconds until cancelled."""
        logger.info("Overdue reminder task started (interval=%ds)", interval)
        while True:
            await asyncio.sleep(interval)
            try:
                await self.send_overdue_reminders()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Overdue reminder sweep failed: %s", str(e), exc_info=True)


invoice_service = InvoiceService()
