"""
ZIMMR Backend — Invoice & Quote Models
=======================================

What:  One `invoices` table for both invoices and quotes (`type` column),
       plus the `invoice_items` line items.
Why:   Quotes and invoices share numbering, totals, PDF layout and emails;
       a quote is "converted" by copying it into a new invoice row that
       points back through `original_quote_id`.

Amounts:
    amount        Σ line item amounts (net)
    tax_amount    amount × tax_rate, rounded to cents (0 for completion invoices)
    total_amount  amount + tax_amount

Status:
    status ∈ {draft, pending, paid, cancelled}. "Overdue" is not a status:
    it is derived (pending + due_date in the past). `overdue_notified_at`
    records that the single overdue reminder has been sent.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    TIMESTAMP,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from zimmr.database import Base

INVOICE_TYPES = ("quote", "invoice")
INVOICE_STATUSES = ("draft", "pending", "paid", "cancelled")


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="invoice", server_default=text("'invoice'")
    )
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    craftsman_id: Mapped[int] = mapped_column(
        ForeignKey("craftsmen.id", ondelete="CASCADE"), nullable=False
    )
    customer_id: Mapped[int] = mapped_column(
        ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False
    )
    appointment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True
    )
    original_quote_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", server_default=text("'pending'")
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0"), server_default=text("0")
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    due_date: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    payment_link: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    overdue_notified_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    items: Mapped[List["InvoiceItem"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )
    customer: Mapped["Customer"] = relationship()  # noqa: F821
    craftsman: Mapped["Craftsman"] = relationship()  # noqa: F821
    appointment: Mapped[Optional["Appointment"]] = relationship()  # noqa: F821

    __table_args__ = (
        CheckConstraint("type IN ('quote', 'invoice')", name="ck_invoices_type"),
        CheckConstraint(
            "status IN ('draft', 'pending', 'paid', 'cancelled')",
            name="ck_invoices_status",
        ),
        Index("idx_invoices_craftsman_created", "craftsman_id", created_at.desc()),
        Index("idx_invoices_status_due", "status", "due_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Invoice(id={self.id}, type='{self.type}', "
            f"number='{self.invoice_number}', status='{self.status}')>"
        )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    material_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("materials.id", ondelete="SET NULL"), nullable=True
    )
    service_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    invoice: Mapped[Invoice] = relationship(back_populates="items")
