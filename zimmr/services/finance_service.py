"""
ZIMMR Backend — Finance Service
================================

Revenue goals per craftsman and the progress towards them. Revenue is the
sum of net amounts of paid invoices created in the period; quotes never
count.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from zimmr.exceptions import DatabaseError, ValidationError
from zimmr.models.finance import GOAL_PERIODS, FinanceGoal
from zimmr.models.invoice import Invoice
from zimmr.schemas.finance import FinanceGoalRequest, FinanceGoalResponse, FinanceStatsResponse
from zimmr.security import TokenUser
from zimmr.services.time_tracking import quantize_money

logger = logging.getLogger(__name__)


def period_start(period: str, now: datetime) -> Optional[datetime]:
    """Inclusive lower bound of the period in UTC; None for 'all'."""
    if period == "month":
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if period == "year":
        return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return None


def progress_percent(revenue: Decimal, goal: Optional[Decimal]) -> Optional[float]:
    if goal is None or goal <= 0:
        return None
    return round(float(revenue / goal * 100), 1)


def _check_period(period: str) -> None:
    if period not in GOAL_PERIODS:
        raise ValidationError(
            f"Invalid period '{period}'. Allowed: {', '.join(GOAL_PERIODS)}",
            field="period",
        )


class FinanceService:

    async def get_stats(
        self, db: AsyncSession, user: TokenUser, period: str = "month"
    ) -> FinanceStatsResponse:
        _check_period(period)
        start = period_start(period, datetime.now(timezone.utc))

        revenue_query = select(
            func.coalesce(func.sum(Invoice.amount), 0), func.count(Invoice.id)
        ).where(
            Invoice.craftsman_id == user.craftsman_id,
            Invoice.type == "invoice",
            Invoice.status == "paid",
        )
        if start is not None:
            revenue_query = revenue_query.where(Invoice.created_at >= start)

        try:
            revenue, paid_count = (await db.execute(revenue_query)).one()
            goal = await db.scalar(
                select(FinanceGoal).where(
                    FinanceGoal.craftsman_id == user.craftsman_id,
                    FinanceGoal.goal_period == period,
                )
            )
        except Exception as e:
            logger.error("Database error computing finance stats: %s", str(e))
            raise DatabaseError(message="Could not compute finance statistics. Please try again.")

        revenue = quantize_money(Decimal(str(revenue)))
        goal_amount = goal.goal_amount if goal else None
        return FinanceStatsResponse(
            period=period,
            period_start=start,
            goal_amount=goal_amount,
            revenue=revenue,
            paid_invoices=int(paid_count),
            progress_percent=progress_percent(revenue, goal_amount),
        )

    async def set_goal(
        self, db: AsyncSession, data: FinanceGoalRequest, user: TokenUser
    ) -> FinanceGoalResponse:
        """Create or replace the goal for (craftsman, period)."""
        if data.goal_amount is None or not data.goal_period:
            raise ValidationError("Goal amount and period are required")
        _check_period(data.goal_period)

        try:
            goal = await db.scalar(
                select(FinanceGoal).where(
                    FinanceGoal.craftsman_id == user.craftsman_id,
                    FinanceGoal.goal_period == data.goal_period,
                )
            )
            if goal is None:
                goal = FinanceGoal(
                    craftsman_id=user.craftsman_id,
                    goal_amount=data.goal_amount,
                    goal_period=data.goal_period,
                )
                db.add(goal)
            else:
                goal.goal_amount = data.goal_amount
                goal.updated_at = datetime.now(timezone.utc)
            await db.flush()
            await db.refresh(goal)
        except Exception as e:
            logger.error("Database error saving finance goal: %s", str(e))
            raise DatabaseError(message="Could not save the finance goal. Please try again.")

        logger.info(
            "Finance goal for craftsman %s set: %s per %s",
            user.craftsman_id, data.goal_amount, data.goal_period,
        )
        return FinanceGoalResponse.model_validate(goal)


finance_service = FinanceService()
