"""
ZIMMR Backend — Craftsmen Route Handlers
=========================================

What:  Craftsman directory, profile updates, calendar and availability.
Who:   Booking UIs (availability), craftsmen editing their own profile.

Availability:
    GET /craftsmen/{id}/availability?date=2024-05-06&time=10:00
    With `time` the answer is "can this slot be booked"; without it the
    response lists the day's working hours and booked appointments.
"""

import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from zimmr.database import get_db_session
from zimmr.dependencies import get_current_user
from zimmr.schemas.appointment import AppointmentResponse
from zimmr.schemas.common import ErrorResponse
from zimmr.schemas.craftsman import AvailabilityResponse, CraftsmanResponse, CraftsmanUpdate
from zimmr.security import TokenUser
from zimmr.services.craftsman_service import craftsman_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/craftsmen", tags=["Craftsmen"])


@router.get("", response_model=List[CraftsmanResponse], summary="List craftsmen")
async def list_craftsmen(
    name: Optional[str] = Query(default=None, description="Case-insensitive substring match"),
    specialty: Optional[str] = Query(default=None, description="Case-insensitive substring match"),
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[CraftsmanResponse]:
    return await craftsman_service.list_craftsmen(db, name=name, specialty=specialty)


@router.get(
    "/{craftsman_id}",
    response_model=CraftsmanResponse,
    responses={404: {"description": "Craftsman not found", "model": ErrorResponse}},
    summary="Get a craftsman profile",
)
async def get_craftsman(
    craftsman_id: int,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> CraftsmanResponse:
    return await craftsman_service.get_craftsman(db, craftsman_id)


@router.put(
    "/{craftsman_id}",
    response_model=CraftsmanResponse,
    responses={
        400: {"description": "Invalid availability hours or empty body", "model": ErrorResponse},
        403: {"description": "Not the profile owner", "model": ErrorResponse},
        404: {"description": "Craftsman not found", "model": ErrorResponse},
    },
    summary="Update a craftsman profile",
)
async def update_craftsman(
    craftsman_id: int,
    body: CraftsmanUpdate,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> CraftsmanResponse:
    return await craftsman_service.update_craftsman(db, craftsman_id, body, user)


@router.get(
    "/{craftsman_id}/appointments",
    response_model=List[AppointmentResponse],
    summary="A craftsman's calendar",
)
async def list_craftsman_appointments(
    craftsman_id: int,
    from_date: Optional[datetime] = Query(default=None, alias="from"),
    to_date: Optional[datetime] = Query(default=None, alias="to"),
    approval_status: Optional[str] = Query(default=None),
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[AppointmentResponse]:
    return await craftsman_service.list_appointments(
        db,
        craftsman_id,
        from_date=from_date,
        to_date=to_date,
        approval_status=approval_status,
    )


@router.get(
    "/{craftsman_id}/availability",
    response_model=AvailabilityResponse,
    responses={
        400: {"description": "Malformed time", "model": ErrorResponse},
        404: {"description": "Craftsman not found", "model": ErrorResponse},
    },
    summary="Check a craftsman's availability on a day",
)
async def check_availability(
    craftsman_id: int,
    day: date = Query(alias="date", description="YYYY-MM-DD"),
    slot_time: Optional[str] = Query(default=None, alias="time", description="HH:MM"),
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> AvailabilityResponse:
    return await craftsman_service.check_availability(db, craftsman_id, day, slot_time)
