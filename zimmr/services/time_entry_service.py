"""
ZIMMR Backend — Time Entry Service
===================================

What:  Time entries and their breaks, plus the statistics endpoint.
Who:   /time-entries routes.

Rules:
    - Validation errors (end before start, negative duration/rate, breaks
      outside their entry) are 400s; warnings (end in the future, entries
      over 24h, breaks over 8h) are only logged.
    - An entry with an end time must not overlap another finished entry of
      the same craftsman. Open entries (no end time) are not checked.
    - duration_minutes is derived when not given: gross minutes between
      start and end, minus finished breaks once breaks exist.
    - Statistics group days by the configured display timezone.
"""

import logging
from collections import OrderedDict
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from zimmr.config import settings
from zimmr.exceptions import DatabaseError, NotFoundError, ValidationError, ZimmrError
from zimmr.models.time_entry import Break, TimeEntry
from zimmr.schemas.time_entry import (
    BreakCreate,
    BreakResponse,
    BreakUpdate,
    CustomerTimeBreakdown,
    DailyTimeBreakdown,
    TimeEntryCreate,
    TimeEntryDetail,
    TimeEntryResponse,
    TimeEntryUpdate,
    TimeStatsResponse,
    TimeStatsSummary,
)
from zimmr.security import TokenUser
from zimmr.services.access import ensure_owner, partial_changes
from zimmr.services.appointment_service import appointment_service
from zimmr.services.customer_service import customer_service
from zimmr.services.time_tracking import (
    ValidationResult,
    calculate_billable_amount,
    calculate_duration_minutes,
    calculate_net_duration,
    ensure_utc,
    format_duration,
    periods_overlap,
    quantize_money,
    validate_break,
    validate_time_entry,
)

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Pure helpers
# ══════════════════════════════════════════════════════════════════════════

def raise_for_validation(result: ValidationResult, subject: str) -> None:
    for warning in result.warnings:
        logger.warning("%s: %s", subject, warning)
    if not result.is_valid:
        raise ValidationError(
            result.errors[0],
            context={"errors": result.errors, "warnings": result.warnings},
        )


def find_overlap(
    start: datetime,
    end: Optional[datetime],
    entries: Iterable[TimeEntry],
    exclude_id: Optional[int] = None,
) -> Optional[TimeEntry]:
    """First finished entry overlapping [start, end), or None."""
    if end is None:
        return None
    for entry in entries:
        if entry.id == exclude_id or entry.end_time is None:
            continue
        if periods_overlap(start, end, entry.start_time, entry.end_time):
            return entry
    return None


def derive_duration(entry: TimeEntry) -> Optional[int]:
    """Net minutes for a finished entry; the stored value for open ones."""
    if entry.end_time is None:
        return entry.duration_minutes
    return calculate_net_duration(
        entry.start_time,
        entry.end_time,
        [(b.start_time, b.end_time) for b in entry.breaks],
    )


def to_time_entry_response(entry: TimeEntry) -> TimeEntryResponse:
    return TimeEntryResponse(
        id=entry.id,
        craftsman_id=entry.craftsman_id,
        appointment_id=entry.appointment_id,
        customer_id=entry.customer_id,
        description=entry.description,
        start_time=entry.start_time,
        end_time=entry.end_time,
        duration_minutes=entry.duration_minutes,
        formatted_duration=format_duration(entry.duration_minutes),
        is_billable=entry.is_billable,
        hourly_rate=entry.hourly_rate,
        billable_amount=(
            calculate_billable_amount(entry.duration_minutes, entry.hourly_rate)
            if entry.is_billable else Decimal("0.00")
        ),
        notes=entry.notes,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
        customer_name=entry.customer.name if entry.customer else None,
        appointment_title=entry.appointment.title if entry.appointment else None,
    )


def to_time_entry_detail(entry: TimeEntry) -> TimeEntryDetail:
    return TimeEntryDetail(
        **to_time_entry_response(entry).model_dump(),
        breaks=[BreakResponse.model_validate(b) for b in entry.breaks],
    )


def default_stats_range(today: date) -> Tuple[date, date]:
    """First and last day of today's month."""
    first = today.replace(day=1)
    next_month = (first + timedelta(days=32)).replace(day=1)
    return first, next_month - timedelta(days=1)


def local_day_bounds(
    start_date: Optional[date], end_date: Optional[date]
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    UTC instants for [start_date 00:00, end_date + 1 day 00:00) in the display
    timezone, the same calendar the daily breakdown buckets by.
    """
    zone = ZoneInfo(settings.display_timezone)
    lower = upper = None
    if start_date:
        lower = datetime.combine(start_date, time.min, tzinfo=zone).astimezone(timezone.utc)
    if end_date:
        upper = datetime.combine(
            end_date + timedelta(days=1), time.min, tzinfo=zone
        ).astimezone(timezone.utc)
    return lower, upper


def summarize_time_entries(
    entries: Iterable[TimeEntry], start_date: date, end_date: date
) -> TimeStatsResponse:
    zone = ZoneInfo(settings.display_timezone)
    total_entries = 0
    total_minutes = 0
    billable_minutes = 0
    earned = Decimal("0")
    customers: Dict[int, CustomerTimeBreakdown] = OrderedDict()
    days: Dict[date, DailyTimeBreakdown] = {}

    for entry in entries:
        minutes = entry.duration_minutes or 0
        amount = (
            calculate_billable_amount(minutes, entry.hourly_rate)
            if entry.is_billable else Decimal("0.00")
        )
        total_entries += 1
        total_minutes += minutes
        if entry.is_billable:
            billable_minutes += minutes
        earned += amount

        if entry.customer_id is not None:
            bucket = customers.get(entry.customer_id)
            if bucket is None:
                bucket = CustomerTimeBreakdown(
                    customer_id=entry.customer_id,
                    customer_name=entry.customer.name if entry.customer else None,
                    total_minutes=0,
                    earned_amount=Decimal("0.00"),
                )
                customers[entry.customer_id] = bucket
            bucket.total_minutes += minutes
            bucket.earned_amount = quantize_money(bucket.earned_amount + amount)

        day = ensure_utc(entry.start_time).astimezone(zone).date()
        daily = days.setdefault(day, DailyTimeBreakdown(date=day, total_minutes=0, billable_minutes=0))
        daily.total_minutes += minutes
        if entry.is_billable:
            daily.billable_minutes += minutes

    return TimeStatsResponse(
        start_date=start_date,
        end_date=end_date,
        summary=TimeStatsSummary(
            total_entries=total_entries,
            total_minutes=total_minutes,
            billable_minutes=billable_minutes,
            earned_amount=quantize_money(earned),
            total_duration_formatted=format_duration(total_minutes),
        ),
        customer_breakdown=sorted(
            customers.values(), key=lambda c: c.total_minutes, reverse=True
        ),
        daily_breakdown=[days[d] for d in sorted(days)],
    )


# ══════════════════════════════════════════════════════════════════════════
# Service
# ══════════════════════════════════════════════════════════════════════════

_LOAD_OPTIONS = (
    selectinload(TimeEntry.breaks),
    selectinload(TimeEntry.customer),
    selectinload(TimeEntry.appointment),
)


class TimeEntryService:

    async def load(self, db: AsyncSession, entry_id: int, user: TokenUser) -> TimeEntry:
        try:
            entry = await db.get(
                TimeEntry, entry_id, options=list(_LOAD_OPTIONS), populate_existing=True
            )
        except Exception as e:
            logger.error("Database error fetching time entry %d: %s", entry_id, str(e))
            raise DatabaseError(message="Could not retrieve the time entry. Please try again.")
        if entry is None:
            raise NotFoundError(resource="time entry", resource_id=str(entry_id))
        ensure_owner(entry.craftsman_id, user, "time entry", entry_id)
        return entry

    async def _check_links(
        self,
        db: AsyncSession,
        user: TokenUser,
        customer_id: Optional[int],
        appointment_id: Optional[int],
    ) -> None:
        if customer_id is not None:
            await customer_service.get_owned_customer(db, customer_id, user)
        if appointment_id is not None:
            await appointment_service.load_owned(db, appointment_id, user)

    async def _check_overlap(
        self,
        db: AsyncSession,
        craftsman_id: int,
        start: datetime,
        end: Optional[datetime],
        exclude_id: Optional[int] = None,
    ) -> None:
        if end is None:
            return
        result = await db.execute(
            select(TimeEntry).where(
                TimeEntry.craftsman_id == craftsman_id,
                TimeEntry.end_time.is_not(None),
                TimeEntry.start_time < end,
                TimeEntry.end_time > start,
            )
        )
        conflict = find_overlap(start, end, result.scalars().all(), exclude_id=exclude_id)
        if conflict is not None:
            raise ValidationError(
                "Time entry overlaps with an existing entry",
                context={
                    "conflict_id": conflict.id,
                    "conflict_start": conflict.start_time.isoformat(),
                    "conflict_end": conflict.end_time.isoformat(),
                },
            )

    # ── Queries ───────────────────────────────────────────────────────────

    async def list_entries(
        self,
        db: AsyncSession,
        user: TokenUser,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        customer_id: Optional[int] = None,
        appointment_id: Optional[int] = None,
        is_billable: Optional[bool] = None,
    ) -> List[TimeEntryResponse]:
        query = select(TimeEntry).options(
            selectinload(TimeEntry.customer), selectinload(TimeEntry.appointment)
        ).where(TimeEntry.craftsman_id == user.craftsman_id)
        lower, upper = local_day_bounds(start_date, end_date)
        if lower:
            query = query.where(TimeEntry.start_time >= lower)
        if upper:
            query = query.where(TimeEntry.start_time < upper)
        if customer_id is not None:
            query = query.where(TimeEntry.customer_id == customer_id)
        if appointment_id is not None:
            query = query.where(TimeEntry.appointment_id == appointment_id)
        if is_billable is not None:
            query = query.where(TimeEntry.is_billable == is_billable)
        query = query.order_by(TimeEntry.start_time.desc())

        try:
            result = await db.execute(query)
            return [to_time_entry_response(e) for e in result.scalars().all()]
        except Exception as e:
            logger.error("Database error listing time entries: %s", str(e))
            raise DatabaseError(message="Could not load time entries. Please try again.")

    async def get_entry(self, db: AsyncSession, entry_id: int, user: TokenUser) -> TimeEntryDetail:
        return to_time_entry_detail(await self.load(db, entry_id, user))

    async def get_stats(
        self,
        db: AsyncSession,
        user: TokenUser,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        customer_id: Optional[int] = None,
    ) -> TimeStatsResponse:
        today = datetime.now(ZoneInfo(settings.display_timezone)).date()
        default_start, default_end = default_stats_range(today)
        start_date = start_date or default_start
        end_date = end_date or default_end
        if end_date < start_date:
            raise ValidationError("end_date must not be before start_date", field="end_date")

        lower, upper = local_day_bounds(start_date, end_date)
        query = (
            select(TimeEntry)
            .options(selectinload(TimeEntry.customer))
            .where(
                TimeEntry.craftsman_id == user.craftsman_id,
                TimeEntry.start_time >= lower,
                TimeEntry.start_time < upper,
            )
            .order_by(TimeEntry.start_time)
        )
        if customer_id is not None:
            query = query.where(TimeEntry.customer_id == customer_id)

        try:
            result = await db.execute(query)
            entries = result.scalars().all()
        except Exception as e:
            logger.error("Database error computing time statistics: %s", str(e))
            raise DatabaseError(message="Could not compute time statistics. Please try again.")
        return summarize_time_entries(entries, start_date, end_date)

    # ── Entry mutations ───────────────────────────────────────────────────

    async def create_entry(
        self, db: AsyncSession, data: TimeEntryCreate, user: TokenUser
    ) -> TimeEntryDetail:
        """
        Raises:
            ValidationError: invalid times/values or an overlap
            NotFoundError, PermissionDeniedError: linked customer/appointment
        """
        raise_for_validation(
            validate_time_entry(data.start_time, data.end_time, data.duration_minutes, data.hourly_rate),
            "New time entry",
        )
        await self._check_links(db, user, data.customer_id, data.appointment_id)
        await self._check_overlap(db, user.craftsman_id, data.start_time, data.end_time)

        duration = data.duration_minutes
        if duration is None and data.end_time is not None:
            duration = calculate_duration_minutes(data.start_time, data.end_time)

        entry = TimeEntry(
            craftsman_id=user.craftsman_id,
            appointment_id=data.appointment_id,
            customer_id=data.customer_id,
            description=data.description,
            start_time=data.start_time,
            end_time=data.end_time,
            duration_minutes=duration,
            is_billable=data.is_billable,
            hourly_rate=data.hourly_rate,
            notes=data.notes,
        )
        try:
            db.add(entry)
            await db.flush()
        except Exception as e:
            logger.error("Database error creating time entry: %s", str(e))
            raise DatabaseError(message="Could not create the time entry. Please try again.")
        logger.info("Time entry %d created (%s)", entry.id, format_duration(duration))
        return to_time_entry_detail(await self.load(db, entry.id, user))

    async def update_entry(
        self, db: AsyncSession, entry_id: int, data: TimeEntryUpdate, user: TokenUser
    ) -> TimeEntryDetail:
        entry = await self.load(db, entry_id, user)
        changes = partial_changes(data, ("start_time", "is_billable"))

        start = changes.get("start_time", entry.start_time)
        end = changes.get("end_time", entry.end_time)
        duration = changes.get("duration_minutes", entry.duration_minutes)
        rate = changes.get("hourly_rate", entry.hourly_rate)
        raise_for_validation(
            validate_time_entry(start, end, duration, rate), f"Time entry {entry_id}"
        )
        await self._check_links(db, user, changes.get("customer_id"), changes.get("appointment_id"))
        await self._check_overlap(db, entry.craftsman_id, start, end, exclude_id=entry_id)

        try:
            for field, value in changes.items():
                setattr(entry, field, value)
            times_changed = "start_time" in changes or "end_time" in changes
            if times_changed and "duration_minutes" not in changes:
                entry.duration_minutes = derive_duration(entry)
            await db.flush()
        except Exception as e:
            logger.error("Database error updating time entry %d: %s", entry_id, str(e))
            raise DatabaseError(message="Could not update the time entry. Please try again.")
        return to_time_entry_detail(await self.load(db, entry_id, user))

    async def delete_entry(self, db: AsyncSession, entry_id: int, user: TokenUser) -> None:
        entry = await self.load(db, entry_id, user)
        try:
            await db.delete(entry)
            await db.flush()
        except Exception as e:
            logger.error("Database error deleting time entry %d: %s", entry_id, str(e))
            raise DatabaseError(message="Could not delete the time entry. Please try again.")
        logger.info("Time entry %d deleted", entry_id)

    # ── Breaks ────────────────────────────────────────────────────────────

    @staticmethod
    def _find_break(entry: TimeEntry, break_id: int) -> Break:
        for item in entry.breaks:
            if item.id == break_id:
                return item
        raise NotFoundError(resource="break", resource_id=str(break_id))

    async def _save_breaks(self, db: AsyncSession, entry: TimeEntry) -> None:
        """Flush break changes and recompute the entry's net duration."""
        try:
            await db.flush()
            entry = await self._load_for_recompute(db, entry.id)
            if entry.end_time is not None:
                entry.duration_minutes = derive_duration(entry)
                await db.flush()
        except ZimmrError:
            raise
        except Exception as e:
            logger.error("Database error saving breaks of entry %d: %s", entry.id, str(e))
            raise DatabaseError(message="Could not save the break. Please try again.")

    async def _load_for_recompute(self, db: AsyncSession, entry_id: int) -> TimeEntry:
        return await db.get(
            TimeEntry, entry_id, options=[selectinload(TimeEntry.breaks)], populate_existing=True
        )

    async def list_breaks(
        self, db: AsyncSession, entry_id: int, user: TokenUser
    ) -> List[BreakResponse]:
        entry = await self.load(db, entry_id, user)
        return [BreakResponse.model_validate(b) for b in entry.breaks]

    async def add_break(
        self, db: AsyncSession, entry_id: int, data: BreakCreate, user: TokenUser
    ) -> BreakResponse:
        entry = await self.load(db, entry_id, user)
        raise_for_validation(
            validate_break(data.start_time, data.end_time, entry.start_time, entry.end_time),
            f"Break on time entry {entry_id}",
        )
        item = Break(
            time_entry_id=entry.id,
            start_time=data.start_time,
            end_time=data.end_time,
            duration_minutes=(
                calculate_duration_minutes(data.start_time, data.end_time)
                if data.end_time else None
            ),
            reason=data.reason,
        )
        db.add(item)
        await self._save_breaks(db, entry)
        logger.info("Break %d added to time entry %d", item.id, entry_id)
        return BreakResponse.model_validate(item)

    async def update_break(
        self,
        db: AsyncSession,
        entry_id: int,
        break_id: int,
        data: BreakUpdate,
        user: TokenUser,
    ) -> BreakResponse:
        entry = await self.load(db, entry_id, user)
        item = self._find_break(entry, break_id)
        changes = partial_changes(data, ("start_time",))

        start = changes.get("start_time", item.start_time)
        end = changes.get("end_time", item.end_time)
        raise_for_validation(
            validate_break(start, end, entry.start_time, entry.end_time),
            f"Break {break_id} on time entry {entry_id}",
        )
        for field, value in changes.items():
            setattr(item, field, value)
        item.duration_minutes = calculate_duration_minutes(start, end) if end else None
        await self._save_breaks(db, entry)
        return BreakResponse.model_validate(item)

    async def delete_break(
        self, db: AsyncSession, entry_id: int, break_id: int, user: TokenUser
    ) -> None:
        entry = await self.load(db, entry_id, user)
        item = self._find_break(entry, break_id)
        await db.delete(item)
        await self._save_breaks(db, entry)
        logger.info("Break %d removed from time entry %d", break_id, entry_id)


time_entry_service = TimeEntryService()
