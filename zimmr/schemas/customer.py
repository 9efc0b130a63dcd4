"""
ZIMMR Backend — Customer & Space Schemas
=========================================
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Customers
# ══════════════════════════════════════════════════════════════════════════


class CustomerCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=255)
    address: Optional[str] = None
    service_type: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=255)
    address: Optional[str] = None
    service_type: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None


class CustomerResponse(BaseModel):
    id: int
    craftsman_id: Optional[int] = None
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    service_type: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ══════════════════════════════════════════════════════════════════════════
# Customer Spaces
# ══════════════════════════════════════════════════════════════════════════


class SpaceCreate(BaseModel):
    """customer_id, name and type are required (e.g. type='bathroom')."""
    customer_id: int
    name: str = Field(min_length=1, max_length=255)
    type: str = Field(min_length=1, max_length=100)
    area_sqm: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None


class SpaceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    type: Optional[str] = Field(default=None, min_length=1, max_length=100)
    area_sqm: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None


class SpaceResponse(BaseModel):
    id: int
    customer_id: int
    name: str
    type: str
    area_sqm: Optional[Decimal] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
