"""
ZIMMR Backend — Material Route Handlers
========================================

What:  Material catalogue. Rows without a craftsman are shared by everyone.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from zimmr.database import get_db_session
from zimmr.dependencies import get_current_user
from zimmr.schemas.common import ErrorResponse
from zimmr.schemas.material import MaterialCreate, MaterialResponse, MaterialUpdate
from zimmr.security import TokenUser
from zimmr.services.material_service import material_service

router = APIRouter(prefix="/materials", tags=["Materials"])

_ERRORS = {
    403: {"description": "Material belongs to another craftsman", "model": ErrorResponse},
    404: {"description": "Material not found", "model": ErrorResponse},
}


@router.get("", response_model=List[MaterialResponse], summary="List materials")
async def list_materials(
    category: Optional[str] = Query(default=None),
    craftsman_id: Optional[int] = Query(
        default=None, description="That craftsman's materials plus the shared catalogue"
    ),
    in_stock: Optional[bool] = Query(default=None),
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[MaterialResponse]:
    return await material_service.list_materials(
        db, category=category, craftsman_id=craftsman_id, in_stock=in_stock
    )


@router.get(
    "/craftsman/{craftsman_id}",
    response_model=List[MaterialResponse],
    summary="A craftsman's materials plus the shared catalogue",
)
async def list_craftsman_materials(
    craftsman_id: int,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[MaterialResponse]:
    return await material_service.list_materials(db, craftsman_id=craftsman_id)


@router.get("/{material_id}", response_model=MaterialResponse, responses=_ERRORS, summary="Get a material")
async def get_material(
    material_id: int,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MaterialResponse:
    return await material_service.get_material(db, material_id)


@router.post(
    "",
    response_model=MaterialResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: _ERRORS[403]},
    summary="Create a material",
)
async def create_material(
    body: MaterialCreate,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MaterialResponse:
    return await material_service.create_material(db, body, user)


@router.put(
    "/{material_id}",
    response_model=MaterialResponse,
    responses={400: {"description": "No fields to update", "model": ErrorResponse}, **_ERRORS},
    summary="Update a material",
)
async def update_material(
    material_id: int,
    body: MaterialUpdate,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MaterialResponse:
    return await material_service.update_material(db, material_id, body, user)


@router.delete(
    "/{material_id}",
    response_model=MaterialResponse,
    responses={400: {"description": "Material is used in appointments", "model": ErrorResponse}, **_ERRORS},
    summary="Delete a material",
)
async def delete_material(
    material_id: int,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MaterialResponse:
    return await material_service.delete_material(db, material_id, user)
