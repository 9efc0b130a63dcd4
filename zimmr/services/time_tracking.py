"""
ZIMMR Backend — Time Calculation & Validation Helpers
======================================================

What:  Pure functions for durations, earnings, formatting and validation of
       time entries and breaks.
Why:   Used by TimeEntryService, the statistics endpoint and response
       building; kept free of I/O so they can be tested directly.

Rounding:
    Minutes are rounded half-up (90.5s → 2 min); money is rounded half-up
    to cents.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Tuple

CENTS = Decimal("0.01")

# Thresholds that produce warnings, not errors
MAX_ENTRY_HOURS = 24
MAX_BREAK_HOURS = 8


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_duration_minutes(start: Optional[datetime], end: Optional[datetime]) -> int:
    """Whole minutes between start and end, rounded half-up; 0 if either is missing."""
    if start is None or end is None:
        return 0
    seconds = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    return int(math.floor(seconds / 60 + 0.5))


def calculate_net_duration(
    start: Optional[datetime],
    end: Optional[datetime],
    breaks: Iterable[Tuple[Optional[datetime], Optional[datetime]]] = (),
) -> int:
    """
    Gross minutes minus the minutes of every finished break, never below 0.

    Breaks without an end are still running and are not deducted.
    """
    gross = calculate_duration_minutes(start, end)
    deducted = sum(
        calculate_duration_minutes(b_start, b_end)
        for b_start, b_end in breaks
        if b_start is not None and b_end is not None
    )
    return max(gross - deducted, 0)


def calculate_billable_amount(minutes: Optional[int], hourly_rate: Optional[Decimal]) -> Decimal:
    """hours × rate rounded to cents; 0.00 when either value is missing."""
    if not minutes or hourly_rate is None:
        return Decimal("0.00")
    return quantize_money(Decimal(minutes) / Decimal(60) * Decimal(hourly_rate))


def format_duration(minutes: Optional[int]) -> str:
    """
    Human-readable duration.

    >>> format_duration(150)
    '2h 30m'
    >>> format_duration(45)
    '45m'
    >>> format_duration(120)
    '2h'
    >>> format_duration(None)
    '-'
    """
    if not minutes or minutes < 0:
        return "-"
    hours, mins = divmod(int(minutes), 60)
    if hours and mins:
        return f"{hours}h {mins}m"
    if hours:
        return f"{hours}h"
    return f"{mins}m"


def effective_end(
    start: datetime, end: Optional[datetime], duration_minutes: Optional[int]
) -> datetime:
    """End of an entry for overlap checks: explicit end, else start + duration."""
    if end is not None:
        return ensure_utc(end)
    return ensure_utc(start) + timedelta(minutes=duration_minutes or 0)


def periods_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """
    Half-open interval overlap; back-to-back entries do not overlap.

    A zero-length entry overlaps only when it lies strictly inside the other.
    """
    a_start, a_end, b_start, b_end = (ensure_utc(v) for v in (a_start, a_end, b_start, b_end))
    return a_start < b_end and b_start < a_end


def validate_time_entry(
    start: Optional[datetime],
    end: Optional[datetime],
    duration_minutes: Optional[int] = None,
    hourly_rate: Optional[Decimal] = None,
    now: Optional[datetime] = None,
) -> ValidationResult:
    result = ValidationResult()
    now = ensure_utc(now) or datetime.now(timezone.utc)

    if start is None:
        result.errors.append("Start time is required")
        return result

    if end is not None:
        if ensure_utc(end) <= ensure_utc(start):
            result.errors.append("End time must be after start time")
        else:
            if ensure_utc(end) > now:
                result.warnings.append("End time is in the future")
            if calculate_duration_minutes(start, end) > MAX_ENTRY_HOURS * 60:
                result.warnings.append(f"Time entry is longer than {MAX_ENTRY_HOURS} hours")

    if duration_minutes is not None and duration_minutes < 0:
        result.errors.append("Duration cannot be negative")

    if hourly_rate is not None and Decimal(hourly_rate) < 0:
        result.errors.append("Hourly rate cannot be negative")

    return result


def validate_break(
    break_start: Optional[datetime],
    break_end: Optional[datetime],
    entry_start: datetime,
    entry_end: Optional[datetime],
) -> ValidationResult:
    """A break must move forward in time and lie within its time entry."""
    result = ValidationResult()

    if break_start is None:
        result.errors.append("Break start time is required")
        return result

    b_start = ensure_utc(break_start)
    b_end = ensure_utc(break_end)
    e_start = ensure_utc(entry_start)
    e_end = ensure_utc(entry_end)

    if b_end is not None and b_end <= b_start:
        result.errors.append("Break end time must be after break start time")

    if b_start < e_start or (e_end is not None and b_start > e_end):
        result.errors.append("Break must start within the time entry")

    if b_end is not None and e_end is not None and b_end > e_end:
        result.errors.append("Break must end within the time entry")

    if b_end is not None and calculate_duration_minutes(b_start, b_end) > MAX_BREAK_HOURS * 60:
        result.warnings.append(f"Break is longer than {MAX_BREAK_HOURS} hours")

    return result
