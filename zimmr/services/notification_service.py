"""
ZIMMR Backend — Notification Service
=====================================

What:  Composes customer/craftsman emails for workflow events and hands them
       to the mail transport.
Who:   Scheduled as FastAPI background tasks by the appointment and invoice
       routes; called directly for the explicit "send invoice" action and by
       the overdue reminder task.
When:  After the triggering transaction has committed.

Delivery semantics:
    notify_*()       fire-and-forget. Failures (including an open circuit)
                     are logged and swallowed; they never reach the caller
                     and never undo the state change that triggered them.
    send_invoice()   explicit user action; failures propagate as
                     NotificationError / CircuitBreakerOpenError (503).

Message inventory:
    appointment_approved   → customer
    appointment_rejected   → customer (with reason)
    new_appointment        → craftsman
    invoice_generated      → customer (PDF attached)
    invoice_overdue        → customer
"""

import html
import logging
from typing import Optional

from zimmr.config import settings
from zimmr.exceptions import ZimmrError
from zimmr.schemas.appointment import AppointmentResponse
from zimmr.schemas.invoice import InvoiceDetail
from zimmr.services.formatting import format_date_de, format_datetime_de, format_money_de
from zimmr.services.mail_base import EmailAttachment, MailTransport, OutgoingEmail
from zimmr.services.smtp_service import smtp_mailer

logger = logging.getLogger(__name__)


def _html_page(title: str, paragraphs: list) -> str:
    body = "".join(f"<p>{html.escape(p).replace(chr(10), '<br>')}</p>" for p in paragraphs)
    return (
        "<html><body style=\"font-family: Arial, sans-serif; color: #333;\">"
        f"<h2 style=\"color: #2c3e50;\">{html.escape(title)}</h2>{body}"
        f"<p style=\"color: #888; font-size: 12px;\">{html.escape(settings.company_name)}</p>"
        "</body></html>"
    )


def _compose(to: str, subject: str, title: str, paragraphs: list) -> OutgoingEmail:
    return OutgoingEmail(
        to=to,
        subject=subject,
        text="\n\n".join(paragraphs),
        html=_html_page(title, paragraphs),
    )


def _document_label(invoice: InvoiceDetail) -> str:
    return "Angebot" if invoice.type == "quote" else "Rechnung"


class NotificationService:
    """Message composition plus delivery policy on top of a MailTransport."""

    def __init__(self, transport: MailTransport):
        self.transport = transport

    # ── Message builders (pure) ───────────────────────────────────────────

    def appointment_approved_email(self, appointment: AppointmentResponse) -> Optional[OutgoingEmail]:
        if not appointment.customer_email:
            return None
        when = format_datetime_de(appointment.scheduled_at)
        craftsman = appointment.craftsman_name or settings.company_name
        paragraphs = [
            f"Hallo {appointment.customer_name or ''},".strip(),
            f"Ihr Termin am {when} wurde von {craftsman} bestätigt.",
        ]
        if appointment.location:
            paragraphs.append(f"Ort: {appointment.location}")
        if appointment.service_type:
            paragraphs.append(f"Leistung: {appointment.service_type}")
        paragraphs.append("Wir freuen uns auf Sie!")
        return _compose(
            appointment.customer_email,
            f"Termin bestätigt: {when}",
            "Ihr Termin wurde bestätigt",
            paragraphs,
        )

    def appointment_rejected_email(
        self, appointment: AppointmentResponse, reason: Optional[str]
    ) -> Optional[OutgoingEmail]:
        if not appointment.customer_email:
            return None
        when = format_datetime_de(appointment.scheduled_at)
        paragraphs = [
            f"Hallo {appointment.customer_name or ''},".strip(),
            f"Leider kann Ihr Termin am {when} nicht stattfinden.",
        ]
        if reason:
            paragraphs.append(f"Grund: {reason}")
        paragraphs.append("Bitte vereinbaren Sie bei Bedarf einen neuen Termin.")
        return _compose(
            appointment.customer_email,
            f"Termin abgelehnt: {when}",
            "Ihr Termin wurde abgelehnt",
            paragraphs,
        )

    def new_appointment_email(self, appointment: AppointmentResponse) -> Optional[OutgoingEmail]:
        if not appointment.craftsman_email:
            return None
        when = format_datetime_de(appointment.scheduled_at)
        paragraphs = [
            f"Neue Terminanfrage von {appointment.customer_name or 'einem Kunden'} für {when}.",
            f"Dauer: {appointment.duration} Minuten",
        ]
        if appointment.service_type:
            paragraphs.append(f"Leistung: {appointment.service_type}")
        if appointment.notes:
            paragraphs.append(f"Notizen: {appointment.notes}")
        paragraphs.append("Bitte bestätigen oder lehnen Sie den Termin in ZIMMR ab.")
        return _compose(
            appointment.craftsman_email,
            f"Neue Terminanfrage: {when}",
            "Neue Terminanfrage",
            paragraphs,
        )

    def invoice_email(
        self, invoice: InvoiceDetail, pdf_bytes: bytes, filename: str
    ) -> Optional[OutgoingEmail]:
        if not invoice.customer_email:
            return None
        label = _document_label(invoice)
        paragraphs = [
            f"Hallo {invoice.customer_name or ''},".strip(),
            f"anbei erhalten Sie {'unser' if invoice.type == 'quote' else 'unsere'} "
            f"{label} {invoice.invoice_number} über {format_money_de(invoice.total_amount)}.",
        ]
        if invoice.type == "quote":
            paragraphs.append(f"Das Angebot ist gültig bis {format_date_de(invoice.due_date)}.")
        else:
            paragraphs.append(f"Bitte begleichen Sie den Betrag bis {format_date_de(invoice.due_date)}.")
            if invoice.payment_link:
                paragraphs.append(f"Online bezahlen: {invoice.payment_link}")
        paragraphs.append(f"Mit freundlichen Grüßen\n{invoice.craftsman_name or settings.company_name}")

        email = _compose(
            invoice.customer_email,
            f"{label} {invoice.invoice_number}",
            f"{label} {invoice.invoice_number}",
            paragraphs,
        )
        email.attachments.append(EmailAttachment(filename=filename, content=pdf_bytes))
        return email

    def invoice_overdue_email(self, invoice: InvoiceDetail) -> Optional[OutgoingEmail]:
        if not invoice.customer_email:
            return None
        paragraphs = [
            f"Hallo {invoice.customer_name or ''},".strip(),
            f"die Rechnung {invoice.invoice_number} über {format_money_de(invoice.total_amount)} "
            f"war am {format_date_de(invoice.due_date)} fällig.",
            "Bitte überweisen Sie den offenen Betrag zeitnah. "
            "Sollten Sie bereits gezahlt haben, betrachten Sie diese Nachricht als gegenstandslos.",
        ]
        if invoice.payment_link:
            paragraphs.append(f"Online bezahlen: {invoice.payment_link}")
        return _compose(
            invoice.customer_email,
            f"Zahlungserinnerung: Rechnung {invoice.invoice_number}",
            "Zahlungserinnerung",
            paragraphs,
        )

    # ── Delivery ──────────────────────────────────────────────────────────

    async def _deliver_quietly(self, email: Optional[OutgoingEmail], event: str) -> bool:
        """Fire-and-forget delivery: never raises."""
        if email is None:
            logger.info("Skipping %s notification: recipient has no email address", event)
            return False
        try:
            return await self.transport.send(email)
        except ZimmrError as e:
            logger.warning("%s notification to %s not sent: %s", event, email.to, e.message)
        except Exception as e:
            logger.error(
                "Unexpected error sending %s notification to %s: %s",
                event,
                email.to,
                str(e),
                exc_info=True,
            )
        return False

    async def notify_appointment_approved(self, appointment: AppointmentResponse) -> bool:
        return await self._deliver_quietly(
            self.appointment_approved_email(appointment), "appointment_approved"
        )

    async def notify_appointment_rejected(
        self, appointment: AppointmentResponse, reason: Optional[str]
    ) -> bool:
        return await self._deliver_quietly(
            self.appointment_rejected_email(appointment, reason), "appointment_rejected"
        )

    async def notify_new_appointment(self, appointment: AppointmentResponse) -> bool:
        return await self._deliver_quietly(
            self.new_appointment_email(appointment), "new_appointment"
        )

    async def notify_invoice_generated(
        self, invoice: InvoiceDetail, pdf_bytes: bytes, filename: str
    ) -> bool:
        return await self._deliver_quietly(
            self.invoice_email(invoice, pdf_bytes, filename), "invoice_generated"
        )

    async def notify_invoice_overdue(self, invoice: InvoiceDetail) -> bool:
        return await self._deliver_quietly(
            self.invoice_overdue_email(invoice), "invoice_overdue"
        )

    async def send_invoice(self, invoice: InvoiceDetail, pdf_bytes: bytes, filename: str) -> bool:
        """
        Explicit send. The caller has already checked that the customer has
        an email address.

        Raises:
            NotificationError, CircuitBreakerOpenError
        """
        email = self.invoice_email(invoice, pdf_bytes, filename)
        delivered = await self.transport.send(email)
        logger.info(
            "Invoice %s %s to %s",
            invoice.invoice_number,
            "sent" if delivered else "logged (email disabled)",
            email.to,
        )
        return delivered


notification_service = NotificationService(transport=smtp_mailer)
