"""
ZIMMR Backend — Appointment Models
===================================

What:  ORM models for `appointments` and the `appointment_materials` join table.
Why:   Appointments carry the two state flags that drive the business workflow.

State model:
    approval_status ∈ {pending, approved, rejected}
        pending  → approved   (craftsman approves; customer is emailed)
        pending  → rejected   (craftsman rejects; status becomes cancelled)

    status ∈ {scheduled, completed, cancelled}
        scheduled → completed (appointment completion; invoice draft computed)
        scheduled → cancelled (via rejection)

    Transitions are enforced by AppointmentService before each update and
    the value sets by CHECK constraints.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    TIMESTAMP,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from zimmr.database import Base

APPOINTMENT_STATUSES = ("scheduled", "completed", "cancelled")
APPROVAL_STATUSES = ("pending", "approved", "rejected")


class Appointment(Base):
    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(
        ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    craftsman_id: Mapped[int] = mapped_column(
        ForeignKey("craftsmen.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    scheduled_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    # Minutes
    duration: Mapped[int] = mapped_column(
        Integer, nullable=False, default=60, server_default=text("60")
    )
    location: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    service_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="scheduled",
        server_default=text("'scheduled'"),
    )
    approval_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        server_default=text("'pending'"),
    )
    # Service price agreed at completion (materials are priced separately)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    customer: Mapped["Customer"] = relationship()  # noqa: F821
    craftsman: Mapped["Craftsman"] = relationship(back_populates="appointments")  # noqa: F821
    materials: Mapped[List["AppointmentMaterial"]] = relationship(
        back_populates="appointment", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('scheduled', 'completed', 'cancelled')",
            name="ck_appointments_status",
        ),
        CheckConstraint(
            "approval_status IN ('pending', 'approved', 'rejected')",
            name="ck_appointments_approval_status",
        ),
        Index("idx_appointments_craftsman_scheduled", "craftsman_id", scheduled_at.desc()),
        Index("idx_appointments_customer", "customer_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, status='{self.status}', "
            f"approval_status='{self.approval_status}')>"
        )


class AppointmentMaterial(Base):
    """Material selected for an appointment, with the quantity to be billed."""

    __tablename__ = "appointment_materials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    appointment_id: Mapped[int] = mapped_column(
        ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False
    )
    material_id: Mapped[int] = mapped_column(
        ForeignKey("materials.id", ondelete="RESTRICT"), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("1"), server_default=text("1")
    )

    appointment: Mapped[Appointment] = relationship(back_populates="materials")
    material: Mapped["Material"] = relationship()  # noqa: F821

    __table_args__ = (
        UniqueConstraint("appointment_id", "material_id", name="uq_appointment_material"),
    )
