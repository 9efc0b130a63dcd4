"""
ZIMMR Backend — Invoice & Quote Schemas
========================================

What:  Contracts for invoices and quotes (one resource, `type` field), their
       line items, and the invoice draft produced by appointment completion.

Money:
    All amounts are Decimal with two places. Pydantic serializes Decimal as a
    JSON string ("120.00") so no precision is lost in transit.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

InvoiceType = Literal["quote", "invoice"]
InvoiceStatus = Literal["draft", "pending", "paid", "cancelled"]


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class InvoiceItemInput(BaseModel):
    description: str = Field(min_length=1)
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    unit_price: Decimal = Field(ge=0)
    material_id: Optional[int] = None
    service_type: Optional[str] = None


class InvoiceCreate(BaseModel):
    """
    Create an invoice or quote.

    tax_rate is a fraction (0.19 for 19 %). It defaults to 0, which is also
    what the appointment completion flow uses.
    """
    type: InvoiceType = "invoice"
    customer_id: int
    appointment_id: Optional[int] = None
    items: List[InvoiceItemInput] = Field(min_length=1)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=1)
    notes: Optional[str] = None
    due_date: Optional[datetime] = None
    status: Literal["draft", "pending"] = "pending"
    payment_link: Optional[str] = Field(default=None, max_length=500)


class InvoiceUpdate(BaseModel):
    status: Optional[InvoiceStatus] = None
    notes: Optional[str] = None
    due_date: Optional[datetime] = None
    payment_link: Optional[str] = Field(default=None, max_length=500)


class MaterialSelection(BaseModel):
    material_id: int
    quantity: Decimal = Field(default=Decimal("1"), gt=0)


class CompleteAndInvoiceRequest(BaseModel):
    """
    Body of POST /invoices/appointments/{id}/complete.

    With `items` the invoice is built from them as given; otherwise the line
    items are derived from price and materials like the completion draft.
    """
    items: Optional[List[InvoiceItemInput]] = Field(default=None, min_length=1)
    price: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None
    materials: Optional[List[MaterialSelection]] = None
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=1)
    due_date: Optional[datetime] = None


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class InvoiceItemResponse(BaseModel):
    id: Optional[int] = None
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    material_id: Optional[int] = None
    service_type: Optional[str] = None

    model_config = {"from_attributes": True}


class InvoiceDraft(BaseModel):
    """
    Line items computed when an appointment is completed.

    The client posts this (as InvoiceCreate) to /invoices to materialize the
    invoice. tax_amount is always 0 here.
    """
    type: InvoiceType = "invoice"
    customer_id: int
    appointment_id: int
    items: List[InvoiceItemInput]
    amount: Decimal
    tax_amount: Decimal = Decimal("0.00")
    total_amount: Decimal


class InvoiceResponse(BaseModel):
    """List representation of an invoice or quote."""
    id: int
    type: str
    invoice_number: str
    craftsman_id: int
    customer_id: int
    appointment_id: Optional[int] = None
    original_quote_id: Optional[int] = None
    status: str
    amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    notes: Optional[str] = None
    due_date: Optional[datetime] = None
    payment_link: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    customer_name: Optional[str] = None
    is_overdue: bool = False


class InvoiceDetail(InvoiceResponse):
    """
    Full document: everything needed to render the PDF or the email,
    so neither needs a database session.
    """
    items: List[InvoiceItemResponse] = Field(default_factory=list)
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    craftsman_name: Optional[str] = None
    craftsman_email: Optional[str] = None
    craftsman_phone: Optional[str] = None
    appointment_title: Optional[str] = None
    appointment_scheduled_at: Optional[datetime] = None


class SendInvoiceResponse(BaseModel):
    message: str
    recipient: str
    document_path: str
