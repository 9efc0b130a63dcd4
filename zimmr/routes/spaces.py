"""
ZIMMR Backend — Customer Space Route Handlers
==============================================
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from zimmr.database import get_db_session
from zimmr.dependencies import require_craftsman
from zimmr.schemas.common import ErrorResponse
from zimmr.schemas.customer import SpaceCreate, SpaceResponse, SpaceUpdate
from zimmr.security import TokenUser
from zimmr.services.space_service import space_service

router = APIRouter(prefix="/spaces", tags=["Customer Spaces"])

_ERRORS = {
    403: {"description": "Space belongs to another craftsman's customer", "model": ErrorResponse},
    404: {"description": "Space or customer not found", "model": ErrorResponse},
}


@router.get("", response_model=List[SpaceResponse], summary="List customer spaces")
async def list_spaces(
    customer_id: Optional[int] = Query(default=None),
    space_type: Optional[str] = Query(default=None, alias="type"),
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> List[SpaceResponse]:
    return await space_service.list_spaces(db, user, customer_id=customer_id, space_type=space_type)


@router.get(
    "/customer/{customer_id}",
    response_model=List[SpaceResponse],
    responses=_ERRORS,
    summary="Spaces of one customer",
)
async def list_customer_spaces(
    customer_id: int,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> List[SpaceResponse]:
    return await space_service.list_for_customer(db, customer_id, user)


@router.get("/{space_id}", response_model=SpaceResponse, responses=_ERRORS, summary="Get a space")
async def get_space(
    space_id: int,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> SpaceResponse:
    return await space_service.get_space(db, space_id, user)


@router.post(
    "",
    response_model=SpaceResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Create a space",
)
async def create_space(
    body: SpaceCreate,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> SpaceResponse:
    return await space_service.create_space(db, body, user)


@router.put("/{space_id}", response_model=SpaceResponse, responses=_ERRORS, summary="Update a space")
async def update_space(
    space_id: int,
    body: SpaceUpdate,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> SpaceResponse:
    return await space_service.update_space(db, space_id, body, user)


@router.delete("/{space_id}", response_model=SpaceResponse, responses=_ERRORS, summary="Delete a space")
async def delete_space(
    space_id: int,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> SpaceResponse:
    return await space_service.delete_space(db, space_id, user)
