"""
ZIMMR Backend — Appointment Service (Workflow Orchestrator)
============================================================

What:  Appointment CRUD, the craftsman approval workflow, material selection
       and completion (which computes the invoice draft).
Who:   /appointments routes; InvoiceService reuses the completion helpers for
       the one-step "complete and invoice" flow.

Workflow:
    ┌──────────┐ approve ┌──────────┐
    │ pending  │────────▶│ approved │        status stays 'scheduled'
    │scheduled │         └──────────┘
    │          │ reject  ┌──────────┐
    │          │────────▶│ rejected │        status becomes 'cancelled'
    └──────────┘         └──────────┘
    scheduled ──complete──▶ completed          (not from cancelled/completed)

    Every transition checks the current state first and raises
    InvalidStateError (400) when it does not apply. Emails are the caller's
    job (background tasks after commit), so a mail failure never rolls back
    a transition.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from zimmr.exceptions import (
    DatabaseError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    ZimmrError,
)
from zimmr.models.appointment import Appointment, AppointmentMaterial
from zimmr.models.customer import Customer
from zimmr.models.material import Material
from zimmr.models.user import Craftsman
from zimmr.schemas.appointment import (
    AppointmentComplete,
    AppointmentCreate,
    AppointmentMaterialResponse,
    AppointmentResponse,
    AppointmentUpdate,
)
from zimmr.schemas.invoice import InvoiceDraft, InvoiceItemInput, MaterialSelection
from zimmr.security import TokenUser
from zimmr.services.access import ensure_owner, partial_changes
from zimmr.services.time_tracking import quantize_money

logger = logging.getLogger(__name__)

_LOAD_OPTIONS = (
    selectinload(Appointment.customer),
    selectinload(Appointment.craftsman),
    selectinload(Appointment.materials).selectinload(AppointmentMaterial.material),
)


def appointment_query():
    """SELECT appointments with customer and craftsman eagerly loaded."""
    return select(Appointment).options(
        selectinload(Appointment.customer),
        selectinload(Appointment.craftsman),
    )


def to_appointment_response(appointment: Appointment) -> AppointmentResponse:
    customer = appointment.customer
    craftsman = appointment.craftsman
    return AppointmentResponse(
        id=appointment.id,
        customer_id=appointment.customer_id,
        craftsman_id=appointment.craftsman_id,
        title=appointment.title,
        scheduled_at=appointment.scheduled_at,
        duration=appointment.duration,
        location=appointment.location,
        service_type=appointment.service_type,
        notes=appointment.notes,
        status=appointment.status,
        approval_status=appointment.approval_status,
        price=appointment.price,
        completed_at=appointment.completed_at,
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
        customer_name=customer.name if customer else None,
        customer_phone=customer.phone if customer else None,
        customer_email=customer.email if customer else None,
        craftsman_name=craftsman.name if craftsman else None,
        craftsman_email=craftsman.email if craftsman else None,
    )


def material_lines(appointment: Appointment) -> List[AppointmentMaterialResponse]:
    lines = []
    for selection in appointment.materials:
        material = selection.material
        lines.append(AppointmentMaterialResponse(
            material_id=selection.material_id,
            name=material.name,
            unit_type=material.unit_type,
            price_per_unit=material.price_per_unit,
            quantity=selection.quantity,
            amount=quantize_money(selection.quantity * material.price_per_unit),
        ))
    return lines


def merge_selections(selections: List[MaterialSelection]) -> Dict[int, Decimal]:
    """Collapse repeated material ids by summing their quantities."""
    merged: Dict[int, Decimal] = {}
    for selection in selections:
        merged[selection.material_id] = merged.get(selection.material_id, Decimal("0")) + selection.quantity
    return merged


def build_invoice_items(appointment: Appointment) -> List[InvoiceItemInput]:
    """
    Line items for a completed appointment: the service price (quantity 1)
    followed by every selected material at its catalogue price.
    """
    items = []
    if appointment.price is not None:
        items.append(InvoiceItemInput(
            description=appointment.title or appointment.service_type or "Dienstleistung",
            quantity=Decimal("1"),
            unit_price=appointment.price,
            service_type=appointment.service_type,
        ))
    for selection in appointment.materials:
        material = selection.material
        items.append(InvoiceItemInput(
            description=f"{material.name} ({material.unit_type})",
            quantity=selection.quantity,
            unit_price=material.price_per_unit,
            material_id=material.id,
        ))
    return items


def build_invoice_draft(appointment: Appointment) -> InvoiceDraft:
    items = build_invoice_items(appointment)
    amount = quantize_money(
        sum((quantize_money(i.quantity * i.unit_price) for i in items), Decimal("0"))
    )
    return InvoiceDraft(
        customer_id=appointment.customer_id,
        appointment_id=appointment.id,
        items=items,
        amount=amount,
        tax_amount=Decimal("0.00"),
        total_amount=amount,
    )


def append_rejection_reason(notes: Optional[str], reason: Optional[str]) -> Optional[str]:
    if not reason:
        return notes
    line = f"Rejection reason: {reason}"
    return f"{notes}\n\n{line}" if notes else line


class AppointmentService:
    """
    Business logic for appointments.

    Reads are scoped to the calling craftsman (admins see everything).
    Methods return response models so routes never touch ORM objects.
    """

    # ── Loading ───────────────────────────────────────────────────────────

    async def load(self, db: AsyncSession, appointment_id: int) -> Appointment:
        try:
            appointment = await db.get(
                Appointment,
                appointment_id,
                options=list(_LOAD_OPTIONS),
                populate_existing=True,
            )
        except Exception as e:
            logger.error("Database error fetching appointment %d: %s", appointment_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the appointment. Please try again.",
                context={"appointment_id": appointment_id},
            )
        if appointment is None:
            raise NotFoundError(resource="appointment", resource_id=str(appointment_id))
        return appointment

    async def load_owned(self, db: AsyncSession, appointment_id: int, user: TokenUser) -> Appointment:
        appointment = await self.load(db, appointment_id)
        ensure_owner(appointment.craftsman_id, user, "appointment", appointment_id)
        return appointment

    # ── Queries ───────────────────────────────────────────────────────────

    async def list_appointments(
        self,
        db: AsyncSession,
        user: TokenUser,
        day: Optional[date] = None,
        status: Optional[str] = None,
        approval_status: Optional[str] = None,
    ) -> List[AppointmentResponse]:
        """
        Filters:
            day:  UTC calendar day of scheduled_at
        Ordered by scheduled_at, newest first.
        """
        query = appointment_query()
        if not user.is_admin:
            query = query.where(Appointment.craftsman_id == user.craftsman_id)
        if day:
            start = datetime.combine(day, time.min, tzinfo=timezone.utc)
            query = query.where(
                Appointment.scheduled_at >= start,
                Appointment.scheduled_at < start + timedelta(days=1),
            )
        if status:
            query = query.where(Appointment.status == status)
        if approval_status:
            query = query.where(Appointment.approval_status == approval_status)
        query = query.order_by(Appointment.scheduled_at.desc())

        try:
            result = await db.execute(query)
            return [to_appointment_response(a) for a in result.scalars().all()]
        except Exception as e:
            logger.error("Database error listing appointments: %s", str(e))
            raise DatabaseError(message="Could not load appointments. Please try again.")

    async def get_appointment(
        self, db: AsyncSession, appointment_id: int, user: TokenUser
    ) -> AppointmentResponse:
        return to_appointment_response(await self.load_owned(db, appointment_id, user))

    # ── Mutations ─────────────────────────────────────────────────────────

    async def _replace_materials(
        self, db: AsyncSession, appointment_id: int, selections: List[MaterialSelection]
    ) -> None:
        merged = merge_selections(selections)
        for material_id in merged:
            if await db.get(Material, material_id) is None:
                raise NotFoundError(resource="material", resource_id=str(material_id))

        await db.execute(
            delete(AppointmentMaterial).where(AppointmentMaterial.appointment_id == appointment_id)
        )
        for material_id, quantity in merged.items():
            db.add(AppointmentMaterial(
                appointment_id=appointment_id,
                material_id=material_id,
                quantity=quantity,
            ))
        await db.flush()

    async def create_appointment(
        self, db: AsyncSession, data: AppointmentCreate, user: TokenUser
    ) -> AppointmentResponse:
        """
        Create a pending, scheduled appointment.

        Raises:
            PermissionDeniedError: a craftsman booking into another craftsman's calendar
            NotFoundError: unknown customer, craftsman or material
            ValidationError: customer belongs to a different craftsman
        """
        if (
            not user.is_admin
            and user.craftsman_id is not None
            and user.craftsman_id != data.craftsman_id
        ):
            raise PermissionDeniedError("Craftsmen can only create appointments in their own calendar")

        try:
            customer = await db.get(Customer, data.customer_id)
            if customer is None:
                raise NotFoundError(resource="customer", resource_id=str(data.customer_id))
            if await db.get(Craftsman, data.craftsman_id) is None:
                raise NotFoundError(resource="craftsman", resource_id=str(data.craftsman_id))
            if customer.craftsman_id is not None and customer.craftsman_id != data.craftsman_id:
                raise ValidationError(
                    "Customer does not belong to this craftsman", field="customer_id"
                )

            appointment = Appointment(
                customer_id=data.customer_id,
                craftsman_id=data.craftsman_id,
                title=data.title,
                scheduled_at=data.scheduled_at,
                duration=data.duration,
                location=data.location,
                service_type=data.service_type,
                notes=data.notes,
                status="scheduled",
                approval_status="pending",
            )
            db.add(appointment)
            await db.flush()

            if data.materials:
                await self._replace_materials(db, appointment.id, data.materials)

        except ZimmrError:
            raise
        except Exception as e:
            logger.error("Unexpected error creating appointment: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not create the appointment. Please try again.",
                context={"original_error": type(e).__name__},
            )

        logger.info(
            "Appointment %d created for craftsman %d (customer %d)",
            appointment.id,
            data.craftsman_id,
            data.customer_id,
        )
        return to_appointment_response(await self.load(db, appointment.id))

    async def update_appointment(
        self, db: AsyncSession, appointment_id: int, data: AppointmentUpdate, user: TokenUser
    ) -> AppointmentResponse:
        appointment = await self.load_owned(db, appointment_id, user)
        changes = partial_changes(data, ("scheduled_at", "duration"))
        try:
            for field, value in changes.items():
                setattr(appointment, field, value)
            await db.flush()
        except Exception as e:
            logger.error("Database error updating appointment %d: %s", appointment_id, str(e))
            raise DatabaseError(message="Could not update the appointment. Please try again.")
        return to_appointment_response(await self.load(db, appointment_id))

    async def delete_appointment(
        self, db: AsyncSession, appointment_id: int, user: TokenUser
    ) -> AppointmentResponse:
        """Returns the deleted appointment as it was."""
        appointment = await self.load_owned(db, appointment_id, user)
        snapshot = to_appointment_response(appointment)
        try:
            await db.delete(appointment)
            await db.flush()
        except Exception as e:
            logger.error("Database error deleting appointment %d: %s", appointment_id, str(e))
            raise DatabaseError(message="Could not delete the appointment. Please try again.")
        logger.info("Appointment %d deleted", appointment_id)
        return snapshot

    # ── Approval workflow ─────────────────────────────────────────────────

    @staticmethod
    def _ensure_pending(appointment: Appointment) -> None:
        if appointment.approval_status != "pending":
            raise InvalidStateError(
                f"Appointment is already {appointment.approval_status}",
                context={"approval_status": appointment.approval_status},
            )

    async def approve(
        self, db: AsyncSession, appointment_id: int, user: TokenUser
    ) -> AppointmentResponse:
        """
        pending → approved.

        Raises:
            InvalidStateError: appointment is not pending
        """
        appointment = await self.load_owned(db, appointment_id, user)
        self._ensure_pending(appointment)
        appointment.approval_status = "approved"
        await db.flush()
        logger.info("Appointment %d approved by craftsman %s", appointment_id, user.craftsman_id)
        return to_appointment_response(await self.load(db, appointment_id))

    async def reject(
        self,
        db: AsyncSession,
        appointment_id: int,
        user: TokenUser,
        reason: Optional[str] = None,
    ) -> AppointmentResponse:
        """
        pending → rejected; status becomes cancelled and the reason is
        appended to the notes.
        """
        appointment = await self.load_owned(db, appointment_id, user)
        self._ensure_pending(appointment)
        appointment.approval_status = "rejected"
        appointment.status = "cancelled"
        appointment.notes = append_rejection_reason(appointment.notes, reason)
        await db.flush()
        logger.info("Appointment %d rejected by craftsman %s", appointment_id, user.craftsman_id)
        return to_appointment_response(await self.load(db, appointment_id))

    # ── Materials ─────────────────────────────────────────────────────────

    async def get_materials(
        self, db: AsyncSession, appointment_id: int, user: TokenUser
    ) -> List[AppointmentMaterialResponse]:
        return material_lines(await self.load_owned(db, appointment_id, user))

    async def set_materials(
        self,
        db: AsyncSession,
        appointment_id: int,
        selections: List[MaterialSelection],
        user: TokenUser,
    ) -> List[AppointmentMaterialResponse]:
        """Replace the appointment's material selection."""
        await self.load_owned(db, appointment_id, user)
        try:
            await self._replace_materials(db, appointment_id, selections)
        except ZimmrError:
            raise
        except Exception as e:
            logger.error("Database error replacing materials of %d: %s", appointment_id, str(e))
            raise DatabaseError(message="Could not update the materials. Please try again.")
        return material_lines(await self.load(db, appointment_id))

    # ── Completion ────────────────────────────────────────────────────────

    async def mark_completed(
        self,
        db: AsyncSession,
        appointment: Appointment,
        price: Optional[Decimal] = None,
        notes: Optional[str] = None,
        materials: Optional[List[MaterialSelection]] = None,
    ) -> Appointment:
        """
        scheduled → completed. Returns the reloaded appointment with its
        final material selection.

        Raises:
            InvalidStateError: already completed, or cancelled
        """
        if appointment.status == "completed":
            raise InvalidStateError("Appointment is already completed")
        if appointment.status == "cancelled":
            raise InvalidStateError("Cancelled appointments cannot be completed")

        if materials is not None:
            await self._replace_materials(db, appointment.id, materials)
        appointment.status = "completed"
        appointment.completed_at = datetime.now(timezone.utc)
        if price is not None:
            appointment.price = price
        if notes is not None:
            appointment.notes = notes
        await db.flush()
        logger.info("Appointment %d completed", appointment.id)
        return await self.load(db, appointment.id)

    async def complete(
        self,
        db: AsyncSession,
        appointment_id: int,
        data: AppointmentComplete,
        user: TokenUser,
    ) -> Tuple[AppointmentResponse, InvoiceDraft]:
        appointment = await self.load_owned(db, appointment_id, user)
        appointment = await self.mark_completed(
            db, appointment, price=data.price, notes=data.notes, materials=data.materials
        )
        return to_appointment_response(appointment), build_invoice_draft(appointment)


appointment_service = AppointmentService()
