"""
ZIMMR Backend — Material Schemas
=================================
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class MaterialCreate(BaseModel):
    """
    New catalogue entry.

    Defaults mirror the tiling trade: category 'Tiling', priced per 'sqm',
    in stock. `craftsman_id` defaults to the caller; send null explicitly
    (admins only) for a shared catalogue entry.
    """
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    price_per_unit: Decimal = Field(default=Decimal("0"), ge=0)
    unit_type: str = Field(default="sqm", min_length=1, max_length=20)
    category: str = Field(default="Tiling", min_length=1, max_length=100)
    in_stock: bool = True
    craftsman_id: Optional[int] = None


class MaterialUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    price_per_unit: Optional[Decimal] = Field(default=None, ge=0)
    unit_type: Optional[str] = Field(default=None, min_length=1, max_length=20)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    in_stock: Optional[bool] = None


class MaterialResponse(BaseModel):
    id: int
    craftsman_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    price_per_unit: Decimal
    unit_type: str
    category: str
    in_stock: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
