"""
ZIMMR Backend — Appointment Schemas
====================================

What:  Request/response contracts for appointments, their selected
       materials, the approval workflow and completion.

Why `craftsman_id` is required on create:
    Appointments are requested by customers for a specific craftsman, so the
    id cannot be derived from the caller's token. A missing value is a 400.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from zimmr.schemas.invoice import InvoiceDraft, MaterialSelection

AppointmentStatus = Literal["scheduled", "completed", "cancelled"]
ApprovalStatus = Literal["pending", "approved", "rejected"]


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class AppointmentCreate(BaseModel):
    customer_id: int
    craftsman_id: int
    scheduled_at: datetime
    title: Optional[str] = Field(default=None, max_length=255)
    duration: int = Field(default=60, ge=1, le=24 * 60, description="Minutes")
    location: Optional[str] = Field(default=None, max_length=500)
    service_type: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None
    materials: Optional[List[MaterialSelection]] = None


class AppointmentUpdate(BaseModel):
    scheduled_at: Optional[datetime] = None
    title: Optional[str] = Field(default=None, max_length=255)
    duration: Optional[int] = Field(default=None, ge=1, le=24 * 60)
    location: Optional[str] = Field(default=None, max_length=500)
    service_type: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None


class AppointmentReject(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)


class AppointmentComplete(BaseModel):
    """
    price:     service price (one line item, quantity 1)
    materials: replaces the appointment's material selection before pricing
    """
    price: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None
    materials: Optional[List[MaterialSelection]] = None


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class AppointmentMaterialResponse(BaseModel):
    material_id: int
    name: str
    unit_type: str
    price_per_unit: Decimal
    quantity: Decimal
    amount: Decimal


class AppointmentResponse(BaseModel):
    id: int
    customer_id: int
    craftsman_id: int
    title: Optional[str] = None
    scheduled_at: datetime
    duration: int
    location: Optional[str] = None
    service_type: Optional[str] = None
    notes: Optional[str] = None
    status: str
    approval_status: str
    price: Optional[Decimal] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    craftsman_name: Optional[str] = None
    craftsman_email: Optional[str] = None


class AppointmentDeleteResponse(BaseModel):
    message: str
    appointment: AppointmentResponse


class AppointmentCompletionResponse(BaseModel):
    """Completed appointment plus the invoice draft to post to /invoices."""
    appointment: AppointmentResponse
    invoice_draft: InvoiceDraft
