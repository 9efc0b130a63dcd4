"""
ZIMMR Backend — Appointment Route Handlers
===========================================

What:  Appointment CRUD, the approval workflow, material selection and
       completion.
Who:   Craftsmen (own calendar); emails go out after the request commits.

Workflow:
    POST   /appointments                 → pending/scheduled, craftsman notified
    PUT    /appointments/{id}/approve    → approved, customer notified
    PUT    /appointments/{id}/reject     → rejected + cancelled, customer notified
    PUT    /appointments/{id}/complete   → completed, returns an invoice draft

Notifications:
    Sent as BackgroundTasks, i.e. after the session has committed and the
    response is on its way. A failed email never undoes the state change.
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from zimmr.database import get_db_session
from zimmr.dependencies import get_current_user
from zimmr.schemas.appointment import (
    AppointmentComplete,
    AppointmentCompletionResponse,
    AppointmentCreate,
    AppointmentDeleteResponse,
    AppointmentMaterialResponse,
    AppointmentReject,
    AppointmentResponse,
    AppointmentUpdate,
)
from zimmr.schemas.common import ErrorResponse
from zimmr.schemas.invoice import MaterialSelection
from zimmr.security import TokenUser
from zimmr.services.appointment_service import appointment_service
from zimmr.services.notification_service import notification_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])

_ERRORS = {
    403: {"description": "Appointment belongs to another craftsman", "model": ErrorResponse},
    404: {"description": "Appointment not found", "model": ErrorResponse},
}
_STATE_ERRORS = {
    400: {"description": "Transition not allowed from the current state", "model": ErrorResponse},
    **_ERRORS,
}


@router.get("", response_model=List[AppointmentResponse], summary="List appointments")
async def list_appointments(
    day: Optional[date] = Query(default=None, alias="date", description="UTC calendar day"),
    appointment_status: Optional[str] = Query(default=None, alias="status"),
    approval_status: Optional[str] = Query(default=None),
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[AppointmentResponse]:
    return await appointment_service.list_appointments(
        db, user, day=day, status=appointment_status, approval_status=approval_status
    )


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    responses=_ERRORS,
    summary="Get an appointment",
)
async def get_appointment(
    appointment_id: int,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> AppointmentResponse:
    return await appointment_service.get_appointment(db, appointment_id, user)


@router.post(
    "",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Missing craftsman_id or invalid body", "model": ErrorResponse},
        **_ERRORS,
    },
    summary="Book an appointment",
)
async def create_appointment(
    body: AppointmentCreate,
    background_tasks: BackgroundTasks,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> AppointmentResponse:
    """
    Book an appointment in a craftsman's calendar.

    The appointment starts pending; the craftsman is emailed so they can
    approve or reject it.
    """
    appointment = await appointment_service.create_appointment(db, body, user)
    background_tasks.add_task(notification_service.notify_new_appointment, appointment)
    return appointment


@router.put(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    responses=_ERRORS,
    summary="Update an appointment",
)
async def update_appointment(
    appointment_id: int,
    body: AppointmentUpdate,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> AppointmentResponse:
    return await appointment_service.update_appointment(db, appointment_id, body, user)


@router.delete(
    "/{appointment_id}",
    response_model=AppointmentDeleteResponse,
    responses=_ERRORS,
    summary="Delete an appointment",
)
async def delete_appointment(
    appointment_id: int,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> AppointmentDeleteResponse:
    deleted = await appointment_service.delete_appointment(db, appointment_id, user)
    return AppointmentDeleteResponse(
        message="Appointment deleted successfully", appointment=deleted
    )


# ══════════════════════════════════════════════════════════════════════════
# Approval workflow
# ══════════════════════════════════════════════════════════════════════════


@router.put(
    "/{appointment_id}/approve",
    response_model=AppointmentResponse,
    responses=_STATE_ERRORS,
    summary="Approve a pending appointment",
)
async def approve_appointment(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> AppointmentResponse:
    appointment = await appointment_service.approve(db, appointment_id, user)
    background_tasks.add_task(notification_service.notify_appointment_approved, appointment)
    return appointment


@router.put(
    "/{appointment_id}/reject",
    response_model=AppointmentResponse,
    responses=_STATE_ERRORS,
    summary="Reject a pending appointment",
)
async def reject_appointment(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    body: Optional[AppointmentReject] = Body(default=None),
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> AppointmentResponse:
    """
    Reject and cancel the appointment.

    The reason (optional) is appended to the appointment notes and included
    in the customer's email.
    """
    reason = body.reason if body else None
    appointment = await appointment_service.reject(db, appointment_id, user, reason=reason)
    background_tasks.add_task(
        notification_service.notify_appointment_rejected, appointment, reason
    )
    return appointment


# ══════════════════════════════════════════════════════════════════════════
# Materials & completion
# ══════════════════════════════════════════════════════════════════════════


@router.get(
    "/{appointment_id}/materials",
    response_model=List[AppointmentMaterialResponse],
    responses=_ERRORS,
    summary="Materials selected for an appointment",
)
async def get_appointment_materials(
    appointment_id: int,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[AppointmentMaterialResponse]:
    return await appointment_service.get_materials(db, appointment_id, user)


@router.put(
    "/{appointment_id}/materials",
    response_model=List[AppointmentMaterialResponse],
    responses=_ERRORS,
    summary="Replace an appointment's material selection",
)
async def set_appointment_materials(
    appointment_id: int,
    body: List[MaterialSelection],
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[AppointmentMaterialResponse]:
    return await appointment_service.set_materials(db, appointment_id, body, user)


@router.put(
    "/{appointment_id}/complete",
    response_model=AppointmentCompletionResponse,
    responses=_STATE_ERRORS,
    summary="Complete an appointment and get an invoice draft",
)
async def complete_appointment(
    appointment_id: int,
    body: AppointmentComplete = Body(default_factory=AppointmentComplete),
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> AppointmentCompletionResponse:
    """
    Mark the appointment completed and compute its line items.

    Nothing is invoiced yet: post the returned draft to POST /invoices, or
    use POST /invoices/appointments/{id}/complete to do both at once.
    """
    appointment, draft = await appointment_service.complete(db, appointment_id, body, user)
    return AppointmentCompletionResponse(appointment=appointment, invoice_draft=draft)
