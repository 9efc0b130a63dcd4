"""
ZIMMR Backend — User & Craftsman Models
========================================

What:  ORM models for login accounts (`users`) and craftsman profiles (`craftsmen`).
Why:   A user authenticates; a craftsman is the business profile that owns
       customers, appointments, materials, invoices and time entries.
How:   One-to-one link through `craftsmen.user_id`. Customers and admins have
       no craftsman row.

Roles:
    - customer:  default for self-registration; may request appointments
    - craftsman: owns a craftsmen row; approves/rejects appointments, invoices
    - admin:     may edit any craftsman profile
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    JSON,
    TIMESTAMP,
    CheckConstraint,
    ForeignKey,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from zimmr.database import Base

USER_ROLES = ("customer", "craftsman", "admin")


class User(Base):
    """A login account. Passwords are stored as bcrypt hashes only."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="customer",
        server_default=text("'customer'"),
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    craftsman: Mapped[Optional["Craftsman"]] = relationship(
        back_populates="user", uselist=False
    )

    __table_args__ = (
        CheckConstraint(
            "role IN ('customer', 'craftsman', 'admin')", name="ck_users_role"
        ),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"


class Craftsman(Base):
    """
    Business profile of a service provider.

    availability_hours:
        JSON mapping of lowercase English weekday → list of "HH:MM-HH:MM"
        ranges, e.g. {"monday": ["08:00-12:00", "13:00-17:00"]}.
        Days that are missing or empty are non-working days.
    """

    __tablename__ = "craftsmen"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    specialty: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    availability_hours: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    user: Mapped[Optional[User]] = relationship(back_populates="craftsman")
    appointments: Mapped[List["Appointment"]] = relationship(  # noqa: F821
        back_populates="craftsman"
    )

    def __repr__(self) -> str:
        return f"<Craftsman(id={self.id}, name='{self.name}')>"
