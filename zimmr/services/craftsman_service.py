"""
ZIMMR Backend — Craftsman Service
==================================

What:  Craftsman profiles, their appointment calendar and slot availability.
Who:   /craftsmen routes.

Availability rules:
    - `availability_hours` maps lowercase weekdays to "HH:MM-HH:MM" ranges.
      A craftsman without any availability_hours has no working-hour
      restriction.
    - A weekday with no ranges means the craftsman does not work that day.
    - Without a time, a day is available only while nothing non-cancelled
      is booked on it.
    - With a time given, the slot must lie inside one range (inclusive of
      both ends) and no non-cancelled appointment may start within two
      hours of it (inclusive).
    - Dates and times are local wall-clock values in the configured
      display timezone; appointments are stored in UTC.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from zimmr.config import settings
from zimmr.exceptions import (
    DatabaseError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    ZimmrError,
)
from zimmr.models.appointment import Appointment
from zimmr.models.user import Craftsman
from zimmr.schemas.appointment import AppointmentResponse
from zimmr.schemas.craftsman import (
    WEEKDAYS,
    AvailabilityResponse,
    BookedSlot,
    CraftsmanResponse,
    CraftsmanUpdate,
    parse_time_range,
)
from zimmr.security import TokenUser
from zimmr.services.access import partial_changes
from zimmr.services.appointment_service import appointment_query, to_appointment_response

logger = logging.getLogger(__name__)

SLOT_BUFFER = timedelta(hours=2)


def parse_slot_time(value: str) -> time:
    try:
        hours, minutes = value.strip().split(":")
        return time(int(hours), int(minutes))
    except ValueError:
        raise ValidationError(f"Invalid time '{value}'. Expected HH:MM", field="time")


def slot_within_hours(slot: time, ranges: List[str]) -> bool:
    minutes = slot.hour * 60 + slot.minute
    for time_range in ranges:
        (sh, sm), (eh, em) = parse_time_range(time_range)
        if sh * 60 + sm <= minutes <= eh * 60 + em:
            return True
    return False


def evaluate_availability(
    craftsman: Craftsman,
    day: date,
    slot: Optional[time],
    appointments: List[Appointment],
) -> AvailabilityResponse:
    """
    Pure decision over a craftsman's schedule and the day's appointments.

    `appointments` are the appointments starting on `day` (local time).
    """
    zone = ZoneInfo(settings.display_timezone)
    weekday = WEEKDAYS[day.weekday()]
    hours = craftsman.availability_hours
    working_hours = list(hours.get(weekday, [])) if hours else []
    booked = [
        BookedSlot(
            id=a.id,
            scheduled_at=a.scheduled_at,
            duration=a.duration,
            title=a.title,
            status=a.status,
            approval_status=a.approval_status,
        )
        for a in appointments
    ]
    response = AvailabilityResponse(
        craftsman_id=craftsman.id,
        date=day,
        weekday=weekday,
        time=slot.strftime("%H:%M") if slot else None,
        available=True,
        working_hours=working_hours,
        appointments=booked,
    )

    if hours and not working_hours:
        response.available = False
        response.reason = f"{craftsman.name} does not work on {weekday}s"
        return response

    active = [a for a in appointments if a.status != "cancelled"]

    if slot is None:
        if active:
            response.available = False
            response.reason = f"{craftsman.name} already has appointments on this day"
        return response

    if hours and not slot_within_hours(slot, working_hours):
        response.available = False
        response.reason = f"{craftsman.name} does not work at {response.time} on {weekday}s"
        return response

    requested = datetime.combine(day, slot, tzinfo=zone).astimezone(timezone.utc)
    for appointment in active:
        start = appointment.scheduled_at
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        if abs(start - requested) <= SLOT_BUFFER:
            response.available = False
            response.reason = "Another appointment is scheduled within two hours of this time"
            break
    return response


class CraftsmanService:

    async def _get(self, db: AsyncSession, craftsman_id: int) -> Craftsman:
        try:
            craftsman = await db.get(Craftsman, craftsman_id)
        except Exception as e:
            logger.error("Database error fetching craftsman %d: %s", craftsman_id, str(e))
            raise DatabaseError(message="Could not load the craftsman. Please try again.")
        if craftsman is None:
            raise NotFoundError(resource="craftsman", resource_id=str(craftsman_id))
        return craftsman

    async def list_craftsmen(
        self,
        db: AsyncSession,
        name: Optional[str] = None,
        specialty: Optional[str] = None,
    ) -> List[CraftsmanResponse]:
        query = select(Craftsman)
        if name:
            query = query.where(Craftsman.name.ilike(f"%{name}%"))
        if specialty:
            query = query.where(Craftsman.specialty.ilike(f"%{specialty}%"))
        query = query.order_by(Craftsman.name)
        try:
            result = await db.execute(query)
            return [CraftsmanResponse.model_validate(c) for c in result.scalars().all()]
        except Exception as e:
            logger.error("Database error listing craftsmen: %s", str(e))
            raise DatabaseError(message="Could not load craftsmen. Please try again.")

    async def get_craftsman(self, db: AsyncSession, craftsman_id: int) -> CraftsmanResponse:
        return CraftsmanResponse.model_validate(await self._get(db, craftsman_id))

    async def update_craftsman(
        self,
        db: AsyncSession,
        craftsman_id: int,
        data: CraftsmanUpdate,
        user: TokenUser,
    ) -> CraftsmanResponse:
        """
        Partial profile update. Only the owner or an admin may edit.

        Raises:
            PermissionDeniedError, NotFoundError, ValidationError
        """
        if not user.is_admin and user.craftsman_id != craftsman_id:
            raise PermissionDeniedError("You can only update your own craftsman profile")

        craftsman = await self._get(db, craftsman_id)
        changes = partial_changes(data, ("name",))

        try:
            for field, value in changes.items():
                setattr(craftsman, field, value)
            await db.flush()
            await db.refresh(craftsman)
        except ZimmrError:
            raise
        except Exception as e:
            logger.error("Database error updating craftsman %d: %s", craftsman_id, str(e))
            raise DatabaseError(message="Could not update the craftsman. Please try again.")

        logger.info("Craftsman %d updated fields: %s", craftsman_id, ", ".join(sorted(changes)))
        return CraftsmanResponse.model_validate(craftsman)

    async def list_appointments(
        self,
        db: AsyncSession,
        craftsman_id: int,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        approval_status: Optional[str] = None,
    ) -> List[AppointmentResponse]:
        await self._get(db, craftsman_id)
        query = appointment_query().where(Appointment.craftsman_id == craftsman_id)
        if from_date:
            query = query.where(Appointment.scheduled_at >= from_date)
        if to_date:
            query = query.where(Appointment.scheduled_at <= to_date)
        if approval_status:
            query = query.where(Appointment.approval_status == approval_status)
        query = query.order_by(Appointment.scheduled_at)
        try:
            result = await db.execute(query)
            return [to_appointment_response(a) for a in result.scalars().all()]
        except Exception as e:
            logger.error("Database error listing appointments of craftsman %d: %s", craftsman_id, str(e))
            raise DatabaseError(message="Could not load appointments. Please try again.")

    async def check_availability(
        self,
        db: AsyncSession,
        craftsman_id: int,
        day: date,
        slot_time: Optional[str] = None,
    ) -> AvailabilityResponse:
        craftsman = await self._get(db, craftsman_id)
        slot = parse_slot_time(slot_time) if slot_time else None

        zone = ZoneInfo(settings.display_timezone)
        day_start = datetime.combine(day, time.min, tzinfo=zone).astimezone(timezone.utc)
        day_end = datetime.combine(
            day + timedelta(days=1), time.min, tzinfo=zone
        ).astimezone(timezone.utc)
        try:
            result = await db.execute(
                select(Appointment)
                .where(
                    Appointment.craftsman_id == craftsman_id,
                    Appointment.scheduled_at >= day_start,
                    Appointment.scheduled_at < day_end,
                )
                .order_by(Appointment.scheduled_at)
            )
            appointments = list(result.scalars().all())
        except Exception as e:
            logger.error("Database error checking availability of craftsman %d: %s", craftsman_id, str(e))
            raise DatabaseError(message="Could not check availability. Please try again.")

        return evaluate_availability(craftsman, day, slot, appointments)


craftsman_service = CraftsmanService()
