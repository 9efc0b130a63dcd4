"""
ZIMMR Backend — Finance Goal Model
===================================

What:  Revenue goal per craftsman and period (month, year, all).
How:   Unique on (craftsman_id, goal_period); FinanceService upserts.
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    TIMESTAMP,
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from zimmr.database import Base

GOAL_PERIODS = ("month", "year", "all")


class FinanceGoal(Base):
    __tablename__ = "finances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    craftsman_id: Mapped[int] = mapped_column(
        ForeignKey("craftsmen.id", ondelete="CASCADE"), nullable=False
    )
    goal_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    goal_period: Mapped[str] = mapped_column(String(10), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        UniqueConstraint("craftsman_id", "goal_period", name="uq_finances_craftsman_period"),
        CheckConstraint("goal_period IN ('month', 'year', 'all')", name="ck_finances_period"),
    )
