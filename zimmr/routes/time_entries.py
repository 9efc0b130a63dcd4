"""
ZIMMR Backend — Time Tracking Route Handlers
=============================================

What:  Time entries, their breaks, and aggregated statistics.
Who:   Craftsmen only.

Route order:
    /time-entries/stats is declared before /time-entries/{entry_id};
    otherwise "stats" would be parsed as an entry id and rejected.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from zimmr.database import get_db_session
from zimmr.dependencies import require_craftsman
from zimmr.schemas.common import ErrorResponse, MessageResponse
from zimmr.schemas.time_entry import (
    BreakCreate,
    BreakResponse,
    BreakUpdate,
    TimeEntryCreate,
    TimeEntryDetail,
    TimeEntryResponse,
    TimeEntryUpdate,
    TimeStatsResponse,
)
from zimmr.security import TokenUser
from zimmr.services.time_entry_service import time_entry_service

router = APIRouter(prefix="/time-entries", tags=["Time Tracking"])

_ERRORS = {
    403: {"description": "Entry belongs to another craftsman", "model": ErrorResponse},
    404: {"description": "Entry or break not found", "model": ErrorResponse},
}
_WRITE_ERRORS = {
    400: {"description": "Invalid times, negative values or overlap", "model": ErrorResponse},
    **_ERRORS,
}


@router.get("", response_model=List[TimeEntryResponse], summary="List time entries")
async def list_time_entries(
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None, description="Inclusive"),
    customer_id: Optional[int] = Query(default=None),
    appointment_id: Optional[int] = Query(default=None),
    is_billable: Optional[bool] = Query(default=None),
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> List[TimeEntryResponse]:
    return await time_entry_service.list_entries(
        db,
        user,
        start_date=start_date,
        end_date=end_date,
        customer_id=customer_id,
        appointment_id=appointment_id,
        is_billable=is_billable,
    )


@router.get(
    "/stats",
    response_model=TimeStatsResponse,
    responses={400: {"description": "end_date before start_date", "model": ErrorResponse}},
    summary="Time statistics (defaults to the current month)",
)
async def time_stats(
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    customer_id: Optional[int] = Query(default=None),
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> TimeStatsResponse:
    return await time_entry_service.get_stats(
        db, user, start_date=start_date, end_date=end_date, customer_id=customer_id
    )


@router.get("/{entry_id}", response_model=TimeEntryDetail, responses=_ERRORS, summary="Get a time entry")
async def get_time_entry(
    entry_id: int,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> TimeEntryDetail:
    return await time_entry_service.get_entry(db, entry_id, user)


@router.post(
    "",
    response_model=TimeEntryDetail,
    status_code=status.HTTP_201_CREATED,
    responses=_WRITE_ERRORS,
    summary="Record a time entry",
)
async def create_time_entry(
    body: TimeEntryCreate,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> TimeEntryDetail:
    return await time_entry_service.create_entry(db, body, user)


@router.put(
    "/{entry_id}",
    response_model=TimeEntryDetail,
    responses=_WRITE_ERRORS,
    summary="Update a time entry",
)
async def update_time_entry(
    entry_id: int,
    body: TimeEntryUpdate,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> TimeEntryDetail:
    return await time_entry_service.update_entry(db, entry_id, body, user)


@router.delete("/{entry_id}", response_model=MessageResponse, responses=_ERRORS, summary="Delete a time entry")
async def delete_time_entry(
    entry_id: int,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await time_entry_service.delete_entry(db, entry_id, user)
    return MessageResponse(message="Time entry deleted successfully")


# ── Breaks ────────────────────────────────────────────────────────────────


@router.get(
    "/{entry_id}/breaks",
    response_model=List[BreakResponse],
    responses=_ERRORS,
    summary="Breaks of a time entry",
)
async def list_breaks(
    entry_id: int,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> List[BreakResponse]:
    return await time_entry_service.list_breaks(db, entry_id, user)


@router.post(
    "/{entry_id}/breaks",
    response_model=BreakResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_WRITE_ERRORS,
    summary="Add a break",
)
async def add_break(
    entry_id: int,
    body: BreakCreate,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> BreakResponse:
    return await time_entry_service.add_break(db, entry_id, body, user)


@router.put(
    "/{entry_id}/breaks/{break_id}",
    response_model=BreakResponse,
    responses=_WRITE_ERRORS,
    summary="Update a break",
)
async def update_break(
    entry_id: int,
    break_id: int,
    body: BreakUpdate,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> BreakResponse:
    return await time_entry_service.update_break(db, entry_id, break_id, body, user)


@router.delete(
    "/{entry_id}/breaks/{break_id}",
    response_model=MessageResponse,
    responses=_ERRORS,
    summary="Delete a break",
)
async def delete_break(
    entry_id: int,
    break_id: int,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await time_entry_service.delete_break(db, entry_id, break_id, user)
    return MessageResponse(message="Break deleted successfully")
