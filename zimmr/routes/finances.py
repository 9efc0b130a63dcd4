"""
ZIMMR Backend — Finance Route Handlers
=======================================
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from zimmr.database import get_db_session
from zimmr.dependencies import require_craftsman
from zimmr.schemas.common import ErrorResponse
from zimmr.schemas.finance import FinanceGoalRequest, FinanceGoalResponse, FinanceStatsResponse
from zimmr.security import TokenUser
from zimmr.services.finance_service import finance_service

router = APIRouter(prefix="/finances", tags=["Finances"])


@router.get(
    "",
    response_model=FinanceStatsResponse,
    responses={400: {"description": "Unknown period", "model": ErrorResponse}},
    summary="Revenue and goal progress for a period",
)
async def get_finances(
    period: str = Query(default="month", description="month, year or all"),
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> FinanceStatsResponse:
    return await finance_service.get_stats(db, user, period=period)


@router.post(
    "",
    response_model=FinanceGoalResponse,
    responses={400: {"description": "Missing amount or period", "model": ErrorResponse}},
    summary="Set the revenue goal for a period",
)
async def set_finance_goal(
    body: FinanceGoalRequest,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> FinanceGoalResponse:
    return await finance_service.set_goal(db, body, user)
