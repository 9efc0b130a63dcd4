"""
ZIMMR Backend — Time Entry Service Unit Tests
==============================================

What we test:
    ✅ Statistics: totals, per-customer and per-day breakdowns
    ✅ Overlap detection ignores running entries and the entry being edited
    ✅ Invalid entries and overlaps are rejected before anything is written
    ✅ Breaks must lie within their entry
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from zimmr.exceptions import NotFoundError, ValidationError
from zimmr.models import Break, Customer, TimeEntry
from zimmr.schemas.time_entry import BreakCreate, TimeEntryCreate
from zimmr.services.time_entry_service import (
    TimeEntryService,
    default_stats_range,
    derive_duration,
    find_overlap,
    local_day_bounds,
    summarize_time_entries,
    to_time_entry_response,
)

T0 = datetime(2024, 6, 3, 7, 0, tzinfo=timezone.utc)


def make_entry(entry_id, start, minutes, customer=None, billable=True, rate="60.00", open_=False):
    entry = TimeEntry(
        id=entry_id,
        craftsman_id=1,
        customer_id=customer.id if customer else None,
        start_time=start,
        end_time=None if open_ else start + timedelta(minutes=minutes),
        duration_minutes=None if open_ else minutes,
        is_billable=billable,
        hourly_rate=Decimal(rate) if rate else None,
    )
    entry.customer = customer
    entry.appointment = None
    entry.breaks = []
    return entry


class TestHelpers:

    def test_default_stats_range(self):
        assert default_stats_range(date(2024, 2, 14)) == (date(2024, 2, 1), date(2024, 2, 29))
        assert default_stats_range(date(2024, 12, 31)) == (date(2024, 12, 1), date(2024, 12, 31))

    def test_local_day_bounds(self):
        # Berlin is UTC+2 in summer
        lower, upper = local_day_bounds(date(2024, 6, 1), date(2024, 6, 30))
        assert lower == datetime(2024, 5, 31, 22, 0, tzinfo=timezone.utc)
        assert upper == datetime(2024, 6, 30, 22, 0, tzinfo=timezone.utc)
        assert local_day_bounds(None, None) == (None, None)

    def test_find_overlap(self):
        existing = [
            make_entry(1, T0, 120),
            make_entry(2, T0 + timedelta(hours=5), 0, open_=True),
        ]
        assert find_overlap(T0 + timedelta(hours=1), T0 + timedelta(hours=3), existing).id == 1
        # back-to-back
        assert find_overlap(T0 + timedelta(hours=2), T0 + timedelta(hours=3), existing) is None
        # running entries never conflict
        assert find_overlap(T0 + timedelta(hours=5), T0 + timedelta(hours=6), existing) is None
        # the entry being edited
        assert find_overlap(T0, T0 + timedelta(hours=1), existing, exclude_id=1) is None
        # an open interval is never checked
        assert find_overlap(T0, None, existing) is None

    def test_derive_duration_subtracts_breaks(self):
        entry = make_entry(1, T0, 480)
        entry.breaks = [Break(id=1, time_entry_id=1, start_time=T0 + timedelta(hours=4),
                              end_time=T0 + timedelta(hours=4, minutes=45))]
        assert derive_duration(entry) == 435

    def test_response_billable_amount(self):
        response = to_time_entry_response(make_entry(1, T0, 90, rate="40.00"))
        assert response.billable_amount == Decimal("60.00")
        assert response.formatted_duration == "1h 30m"

    def test_non_billable_amount_is_zero(self):
        response = to_time_entry_response(make_entry(1, T0, 90, billable=False))
        assert response.billable_amount == Decimal("0.00")


class TestSummary:

    def test_breakdowns(self):
        mueller = Customer(id=5, name="Müller")
        schmidt = Customer(id=6, name="Schmidt")
        entries = [
            make_entry(1, T0, 120, customer=mueller),
            make_entry(2, T0 + timedelta(hours=3), 30, customer=schmidt, billable=False),
            make_entry(3, T0 + timedelta(days=1), 240, customer=schmidt, rate="50.00"),
            make_entry(4, T0 + timedelta(days=1, hours=5), 15),
        ]
        stats = summarize_time_entries(entries, date(2024, 6, 1), date(2024, 6, 30))

        assert stats.summary.total_entries == 4
        assert stats.summary.total_minutes == 405
        assert stats.summary.billable_minutes == 375
        # 2h × 60 + 4h × 50 + 0.25h × 60
        assert stats.summary.earned_amount == Decimal("335.00")
        assert stats.summary.total_duration_formatted == "6h 45m"

        assert [c.customer_name for c in stats.customer_breakdown] == ["Schmidt", "Müller"]
        assert stats.customer_breakdown[0].total_minutes == 270
        assert stats.customer_breakdown[0].earned_amount == Decimal("200.00")

        assert [d.date for d in stats.daily_breakdown] == [date(2024, 6, 3), date(2024, 6, 4)]
        assert stats.daily_breakdown[0].total_minutes == 150
        assert stats.daily_breakdown[0].billable_minutes == 120

    def test_days_follow_display_timezone(self):
        # 22:30 UTC on the 3rd is 00:30 on the 4th in Berlin
        late = make_entry(1, datetime(2024, 6, 3, 22, 30, tzinfo=timezone.utc), 60)
        stats = summarize_time_entries([late], date(2024, 6, 1), date(2024, 6, 30))
        assert stats.daily_breakdown[0].date == date(2024, 6, 4)

    def test_empty(self):
        stats = summarize_time_entries([], date(2024, 6, 1), date(2024, 6, 30))
        assert stats.summary.total_entries == 0
        assert stats.summary.earned_amount == Decimal("0.00")
        assert stats.customer_breakdown == []
        assert stats.daily_breakdown == []


class TestTimeEntryService:

    def setup_method(self):
        self.service = TimeEntryService()

    @pytest.mark.asyncio
    async def test_end_before_start_rejected(self, mock_db_session, craftsman_user):
        data = TimeEntryCreate(start_time=T0, end_time=T0 - timedelta(minutes=5))
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_entry(mock_db_session, data, craftsman_user)
        assert exc_info.value.message == "End time must be after start time"
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_overlap_rejected(self, mock_db_session, craftsman_user):
        result = MagicMock()
        result.scalars.return_value.all.return_value = [make_entry(9, T0, 120)]
        mock_db_session.execute.return_value = result

        data = TimeEntryCreate(start_time=T0 + timedelta(hours=1), end_time=T0 + timedelta(hours=3))
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_entry(mock_db_session, data, craftsman_user)
        assert exc_info.value.context["conflict_id"] == 9
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_computes_duration(self, mock_db_session, craftsman_user):
        result = MagicMock()
        result.scalars.return_value.all.return_value = []
        mock_db_session.execute.return_value = result
        stored = make_entry(10, T0, 95)
        mock_db_session.get.return_value = stored

        data = TimeEntryCreate(start_time=T0, end_time=T0 + timedelta(minutes=95),
                               hourly_rate=Decimal("60.00"))
        detail = await self.service.create_entry(mock_db_session, data, craftsman_user)

        added = mock_db_session.add.call_args.args[0]
        assert added.duration_minutes == 95
        assert added.craftsman_id == 1
        assert detail.id == 10
        assert detail.breaks == []

    @pytest.mark.asyncio
    async def test_stats_range_validation(self, mock_db_session, craftsman_user):
        with pytest.raises(ValidationError):
            await self.service.get_stats(
                mock_db_session, craftsman_user, date(2024, 6, 30), date(2024, 6, 1)
            )

    @pytest.mark.asyncio
    async def test_stats_query_uses_local_days(self, mock_db_session, craftsman_user):
        result = MagicMock()
        result.scalars.return_value.all.return_value = []
        mock_db_session.execute.return_value = result

        await self.service.get_stats(
            mock_db_session, craftsman_user, date(2024, 12, 1), date(2024, 12, 31)
        )

        params = mock_db_session.execute.await_args.args[0].compile().params
        # Berlin is UTC+1 in winter
        assert params["start_time_1"] == datetime(2024, 11, 30, 23, 0, tzinfo=timezone.utc)
        assert params["start_time_2"] == datetime(2024, 12, 31, 23, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_break_outside_entry_rejected(self, mock_db_session, craftsman_user):
        mock_db_session.get.return_value = make_entry(1, T0, 120)
        data = BreakCreate(start_time=T0 + timedelta(hours=3), end_time=T0 + timedelta(hours=4))
        with pytest.raises(ValidationError):
            await self.service.add_break(mock_db_session, 1, data, craftsman_user)
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_break(self, mock_db_session, craftsman_user):
        mock_db_session.get.return_value = make_entry(1, T0, 120)
        with pytest.raises(NotFoundError):
            await self.service.delete_break(mock_db_session, 1, 99, craftsman_user)
