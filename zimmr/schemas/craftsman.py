"""
ZIMMR Backend — Craftsman Schemas
==================================

What:  Profile, profile update and availability contracts.

availability_hours format:
    {"monday": ["08:00-12:00", "13:00-17:00"], "saturday": []}
    Keys are lowercase English weekdays; each range is "HH:MM-HH:MM" with
    start < end. Validated here so malformed schedules never reach the DB.
"""

import re
from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

_RANGE_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)-([01]\d|2[0-3]):([0-5]\d)$")


def parse_time_range(value: str) -> tuple:
    """
    Parse "HH:MM-HH:MM" into ((h, m), (h, m)).

    Raises ValueError for malformed ranges or ranges that do not move forward.
    """
    match = _RANGE_RE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time range '{value}'. Expected HH:MM-HH:MM")
    sh, sm, eh, em = (int(g) for g in match.groups())
    if (sh, sm) >= (eh, em):
        raise ValueError(f"Time range '{value}' must end after it starts")
    return (sh, sm), (eh, em)


class CraftsmanResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    specialty: Optional[str] = None
    availability_hours: Optional[Dict[str, List[str]]] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CraftsmanUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=255)
    specialty: Optional[str] = Field(default=None, max_length=255)
    availability_hours: Optional[Dict[str, List[str]]] = None

    @field_validator("availability_hours")
    @classmethod
    def validate_availability(cls, v):
        if v is None:
            return v
        normalized = {}
        for day, ranges in v.items():
            key = day.lower()
            if key not in WEEKDAYS:
                raise ValueError(f"Unknown weekday '{day}'. Must be one of: {', '.join(WEEKDAYS)}")
            for time_range in ranges:
                parse_time_range(time_range)
            normalized[key] = [r.strip() for r in ranges]
        return normalized


class BookedSlot(BaseModel):
    id: int
    scheduled_at: datetime
    duration: int
    title: Optional[str] = None
    status: str
    approval_status: str


class AvailabilityResponse(BaseModel):
    """
    Availability of a craftsman on one day.

    When `time` was requested, `available` answers "can this slot be booked":
    it must fall inside working hours and no non-cancelled appointment may
    start within two hours of it. Without `time`, `available` means the
    craftsman works that day and has nothing (non-cancelled) booked on it.
    """
    craftsman_id: int
    date: date
    weekday: str
    time: Optional[str] = None
    available: bool
    working_hours: List[str] = Field(default_factory=list)
    appointments: List[BookedSlot] = Field(default_factory=list)
    reason: Optional[str] = Field(default=None, description="Why the slot is unavailable")
