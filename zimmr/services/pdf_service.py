"""
ZIMMR Backend — Invoice/Quote PDF Rendering
============================================

What:  Renders an InvoiceDetail into a German-language letter-size PDF (reportlab).
Who:   Invoice routes (download and send) and the completion email.

Layout:
    company header
    title ("Rechnung" / "Angebot") + number, dates
    From (craftsman) / To (customer) blocks
    line item table: Pos | Beschreibung | Menge | Einzelpreis | Betrag
    totals: Netto, MwSt, Gesamt
    payment block (bank details, payment link), invoices only
    notes
    footer
"""

import io
import logging
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from zimmr.config import settings
from zimmr.exceptions import DocumentError
from zimmr.schemas.invoice import InvoiceDetail
from zimmr.services.formatting import format_date_de, format_datetime_de, format_money_de

logger = logging.getLogger(__name__)

BRAND_COLOR = colors.HexColor("#2c3e50")
LIGHT_GRAY = colors.HexColor("#f1f5f9")
DARK_GRAY = colors.HexColor("#1e293b")


def _p(value) -> str:
    """Escape text for a reportlab Paragraph (which parses mini-XML)."""
    return escape(str(value)).replace("\n", "<br/>")


def _quantity(value) -> str:
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return text.replace(".", ",")


class PDFService:
    """Stateless renderer; one instance is shared."""

    def __init__(self):
        styles = getSampleStyleSheet()
        self.title_style = ParagraphStyle(
            "DocTitle", parent=styles["Heading1"], fontSize=20,
            textColor=BRAND_COLOR, spaceAfter=6,
        )
        self.company_style = ParagraphStyle(
            "Company", parent=styles["Normal"], fontSize=14,
            textColor=BRAND_COLOR, spaceAfter=12,
        )
        self.body_style = ParagraphStyle(
            "Body", parent=styles["Normal"], fontSize=10, textColor=DARK_GRAY, leading=13,
        )
        self.small_style = ParagraphStyle(
            "Small", parent=self.body_style, fontSize=8, textColor=colors.grey,
        )

    def render(self, invoice: InvoiceDetail) -> bytes:
        """
        Returns:
            PDF file content.

        Raises:
            DocumentError when reportlab fails to build the document.
        """
        is_quote = invoice.type == "quote"
        title = "Angebot" if is_quote else "Rechnung"
        buffer = io.BytesIO()

        try:
            doc = SimpleDocTemplate(
                buffer,
                pagesize=letter,
                leftMargin=20 * mm,
                rightMargin=20 * mm,
                topMargin=18 * mm,
                bottomMargin=18 * mm,
                title=f"{title} {invoice.invoice_number}",
                author=settings.company_name,
            )
            story = []
            story.append(Paragraph(_p(settings.company_name), self.company_style))
            story.append(Paragraph(f"{title} {_p(invoice.invoice_number)}", self.title_style))
            story.extend(self._meta_block(invoice, is_quote))
            story.append(Spacer(1, 8 * mm))
            story.append(self._parties_table(invoice))
            story.append(Spacer(1, 8 * mm))
            story.append(self._items_table(invoice))
            story.append(Spacer(1, 4 * mm))
            story.append(self._totals_table(invoice))

            if not is_quote:
                story.extend(self._payment_block(invoice))
            if invoice.notes:
                story.append(Spacer(1, 6 * mm))
                story.append(Paragraph("<b>Hinweise</b>", self.body_style))
                story.append(Paragraph(_p(invoice.notes), self.body_style))

            story.append(Spacer(1, 12 * mm))
            story.append(Paragraph(
                _p(f"{settings.company_name} · Vielen Dank für Ihren Auftrag!"),
                self.small_style,
            ))
            doc.build(story)
        except Exception as e:
            logger.error(
                "PDF rendering failed for %s: %s", invoice.invoice_number, str(e), exc_info=True
            )
            raise DocumentError(
                message="The document could not be generated.",
                context={"invoice_id": invoice.id, "error": str(e)},
            )

        content = buffer.getvalue()
        logger.info("Rendered %s %s (%d bytes)", invoice.type, invoice.invoice_number, len(content))
        return content

    # ── Blocks ────────────────────────────────────────────────────────────

    def _meta_block(self, invoice: InvoiceDetail, is_quote: bool) -> list:
        lines = [f"Datum: {format_date_de(invoice.created_at)}"]
        due_label = "Gültig bis" if is_quote else "Fällig am"
        lines.append(f"{due_label}: {format_date_de(invoice.due_date)}")
        if invoice.appointment_title or invoice.appointment_scheduled_at:
            label = invoice.appointment_title or "Termin"
            lines.append(f"Leistung: {label} ({format_datetime_de(invoice.appointment_scheduled_at)})")
        return [Paragraph(_p(line), self.body_style) for line in lines]

    def _parties_table(self, invoice: InvoiceDetail) -> Table:
        sender = [invoice.craftsman_name or settings.company_name]
        sender += [v for v in (invoice.craftsman_phone, invoice.craftsman_email) if v]
        recipient = [invoice.customer_name or "-"]
        recipient += [
            v for v in (invoice.customer_address, invoice.customer_phone, invoice.customer_email) if v
        ]
        data = [
            [Paragraph("<b>Von</b>", self.body_style), Paragraph("<b>An</b>", self.body_style)],
            [
                Paragraph(_p("\n".join(sender)), self.body_style),
                Paragraph(_p("\n".join(recipient)), self.body_style),
            ],
        ]
        table = Table(data, colWidths=[85 * mm, 85 * mm])
        table.setStyle(TableStyle([
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
        ]))
        return table

    def _items_table(self, invoice: InvoiceDetail) -> Table:
        data = [["Pos", "Beschreibung", "Menge", "Einzelpreis", "Betrag"]]
        for position, item in enumerate(invoice.items, start=1):
            data.append([
                str(position),
                Paragraph(_p(item.description), self.body_style),
                _quantity(item.quantity),
                format_money_de(item.unit_price),
                format_money_de(item.amount),
            ])

        table = Table(
            data,
            colWidths=[12 * mm, 78 * mm, 20 * mm, 30 * mm, 30 * mm],
            repeatRows=1,
        )
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), BRAND_COLOR),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONT", (0, 0), (-1, 0), "Helvetica-Bold", 10),
            ("FONT", (0, 1), (-1, -1), "Helvetica", 10),
            ("ALIGN", (2, 0), (-1, -1), "RIGHT"),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, LIGHT_GRAY]),
            ("LINEBELOW", (0, -1), (-1, -1), 0.5, colors.grey),
            ("TOPPADDING", (0, 0), (-1, -1), 4),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
        ]))
        return table

    def _totals_table(self, invoice: InvoiceDetail) -> Table:
        data = [
            ["Nettobetrag", format_money_de(invoice.amount)],
            ["MwSt", format_money_de(invoice.tax_amount)],
            ["Gesamtbetrag", format_money_de(invoice.total_amount)],
        ]
        table = Table(data, colWidths=[140 * mm, 30 * mm])
        table.setStyle(TableStyle([
            ("ALIGN", (0, 0), (-1, -1), "RIGHT"),
            ("FONT", (0, 0), (-1, -2), "Helvetica", 10),
            ("FONT", (0, -1), (-1, -1), "Helvetica-Bold", 11),
            ("LINEABOVE", (0, -1), (-1, -1), 1, BRAND_COLOR),
        ]))
        return table

    def _payment_block(self, invoice: InvoiceDetail) -> list:
        block = []
        if settings.bank_details or invoice.payment_link:
            block.append(Spacer(1, 8 * mm))
            block.append(Paragraph("<b>Zahlungsinformationen</b>", self.body_style))
            block.append(Paragraph(
                _p(f"Bitte überweisen Sie den Gesamtbetrag bis {format_date_de(invoice.due_date)} "
                   f"unter Angabe der Rechnungsnummer {invoice.invoice_number}."),
                self.body_style,
            ))
        if settings.bank_details:
            block.append(Paragraph(_p(settings.bank_details), self.body_style))
        if invoice.payment_link:
            link = _p(invoice.payment_link)
            block.append(Paragraph(
                f'Online bezahlen: <link href="{link}" color="blue">{link}</link>',
                self.body_style,
            ))
        return block


pdf_service = PDFService()
