"""
ZIMMR Backend — Finance Schemas
================================
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class FinanceGoalRequest(BaseModel):
    # Both optional at the schema level; FinanceService answers a missing
    # value with "Goal amount and period are required"
    goal_amount: Optional[Decimal] = Field(default=None, ge=0)
    goal_period: Optional[str] = None


class FinanceGoalResponse(BaseModel):
    craftsman_id: int
    goal_amount: Decimal
    goal_period: str
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class FinanceStatsResponse(BaseModel):
    period: str
    period_start: Optional[datetime] = Field(
        default=None, description="Inclusive lower bound of the period (null for 'all')"
    )
    goal_amount: Optional[Decimal] = None
    revenue: Decimal = Field(description="Sum of net amounts of paid invoices in the period")
    paid_invoices: int
    progress_percent: Optional[float] = Field(
        default=None, description="revenue / goal × 100, rounded to one decimal"
    )
