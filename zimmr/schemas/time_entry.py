"""
ZIMMR Backend — Time Tracking Schemas
======================================

What:  Contracts for time entries, breaks and the statistics endpoint.

Validation split:
    Pydantic checks shapes and types. Business rules (end after start,
    non-negative duration/rate, overlaps, breaks inside their entry) are
    checked by the time tracking helpers so they produce one consistent
    400 message regardless of whether the entry is created or updated.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class TimeEntryCreate(BaseModel):
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(
        default=None, description="Computed from start/end when omitted"
    )
    description: Optional[str] = None
    appointment_id: Optional[int] = None
    customer_id: Optional[int] = None
    is_billable: bool = True
    hourly_rate: Optional[Decimal] = None
    notes: Optional[str] = None


class TimeEntryUpdate(BaseModel):
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    description: Optional[str] = None
    appointment_id: Optional[int] = None
    customer_id: Optional[int] = None
    is_billable: Optional[bool] = None
    hourly_rate: Optional[Decimal] = None
    notes: Optional[str] = None


class BreakCreate(BaseModel):
    start_time: datetime
    end_time: Optional[datetime] = None
    reason: Optional[str] = Field(default=None, max_length=255)


class BreakUpdate(BaseModel):
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    reason: Optional[str] = Field(default=None, max_length=255)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class BreakResponse(BaseModel):
    id: int
    time_entry_id: int
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TimeEntryResponse(BaseModel):
    id: int
    craftsman_id: int
    appointment_id: Optional[int] = None
    customer_id: Optional[int] = None
    description: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    formatted_duration: str = "-"
    is_billable: bool
    hourly_rate: Optional[Decimal] = None
    billable_amount: Decimal = Decimal("0.00")
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    customer_name: Optional[str] = None
    appointment_title: Optional[str] = None


class TimeEntryDetail(TimeEntryResponse):
    breaks: List[BreakResponse] = Field(default_factory=list)


class TimeStatsSummary(BaseModel):
    total_entries: int
    total_minutes: int
    billable_minutes: int
    earned_amount: Decimal
    total_duration_formatted: str


class CustomerTimeBreakdown(BaseModel):
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    total_minutes: int
    earned_amount: Decimal


class DailyTimeBreakdown(BaseModel):
    date: date
    total_minutes: int
    billable_minutes: int


class TimeStatsResponse(BaseModel):
    start_date: date
    end_date: date
    summary: TimeStatsSummary
    customer_breakdown: List[CustomerTimeBreakdown]
    daily_breakdown: List[DailyTimeBreakdown]
