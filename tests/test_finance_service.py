"""
ZIMMR Backend — Finance Service Unit Tests
===========================================
"""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from zimmr.exceptions import ValidationError
from zimmr.models import FinanceGoal
from zimmr.schemas.finance import FinanceGoalRequest
from zimmr.services.finance_service import FinanceService, period_start, progress_percent

NOW = datetime(2024, 6, 17, 15, 42, tzinfo=timezone.utc)


class TestPeriods:

    def test_month(self):
        assert period_start("month", NOW) == datetime(2024, 6, 1, tzinfo=timezone.utc)

    def test_year(self):
        assert period_start("year", NOW) == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_all(self):
        assert period_start("all", NOW) is None


class TestProgress:

    def test_rounded_to_one_decimal(self):
        assert progress_percent(Decimal("1234.56"), Decimal("5000")) == 24.7

    def test_exceeding_the_goal(self):
        assert progress_percent(Decimal("6000"), Decimal("5000")) == 120.0

    def test_no_goal(self):
        assert progress_percent(Decimal("100"), None) is None
        assert progress_percent(Decimal("100"), Decimal("0")) is None


class TestFinanceService:

    def setup_method(self):
        self.service = FinanceService()

    @pytest.mark.asyncio
    async def test_stats_with_goal(self, mock_db_session, craftsman_user):
        row = MagicMock()
        row.one.return_value = (Decimal("2500.00"), 4)
        mock_db_session.execute.return_value = row
        mock_db_session.scalar.return_value = FinanceGoal(
            craftsman_id=1, goal_amount=Decimal("10000.00"), goal_period="month"
        )

        stats = await self.service.get_stats(mock_db_session, craftsman_user, "month")

        assert stats.revenue == Decimal("2500.00")
        assert stats.paid_invoices == 4
        assert stats.goal_amount == Decimal("10000.00")
        assert stats.progress_percent == 25.0

    @pytest.mark.asyncio
    async def test_stats_without_goal(self, mock_db_session, craftsman_user):
        row = MagicMock()
        row.one.return_value = (0, 0)
        mock_db_session.execute.return_value = row
        mock_db_session.scalar.return_value = None

        stats = await self.service.get_stats(mock_db_session, craftsman_user, "all")

        assert stats.revenue == Decimal("0.00")
        assert stats.period_start is None
        assert stats.progress_percent is None

    @pytest.mark.asyncio
    async def test_invalid_period(self, mock_db_session, craftsman_user):
        with pytest.raises(ValidationError):
            await self.service.get_stats(mock_db_session, craftsman_user, "week")

    @pytest.mark.asyncio
    async def test_goal_requires_amount_and_period(self, mock_db_session, craftsman_user):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.set_goal(
                mock_db_session, FinanceGoalRequest(goal_amount=Decimal("5000")), craftsman_user
            )
        assert exc_info.value.message == "Goal amount and period are required"

    @pytest.mark.asyncio
    async def test_goal_is_replaced(self, mock_db_session, craftsman_user):
        existing = FinanceGoal(craftsman_id=1, goal_amount=Decimal("5000"), goal_period="year")
        mock_db_session.scalar.return_value = existing

        result = await self.service.set_goal(
            mock_db_session,
            FinanceGoalRequest(goal_amount=Decimal("60000"), goal_period="year"),
            craftsman_user,
        )

        assert result.goal_amount == Decimal("60000")
        assert existing.updated_at is not None
        mock_db_session.add.assert_not_called()
