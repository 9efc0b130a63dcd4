"""
ZIMMR Backend — Customer Route Handlers
========================================

What:  Customer CRUD and a customer's appointment history.
Who:   Craftsmen only; every query is scoped to the caller's craftsmanId.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from zimmr.database import get_db_session
from zimmr.dependencies import require_craftsman
from zimmr.schemas.appointment import AppointmentResponse
from zimmr.schemas.common import ErrorResponse
from zimmr.schemas.customer import CustomerCreate, CustomerResponse, CustomerUpdate
from zimmr.security import TokenUser
from zimmr.services.customer_service import customer_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customers", tags=["Customers"])

_NOT_FOUND = {404: {"description": "Customer not found", "model": ErrorResponse}}
_FORBIDDEN = {403: {"description": "Customer belongs to another craftsman", "model": ErrorResponse}}


@router.get("", response_model=List[CustomerResponse], summary="List the caller's customers")
async def list_customers(
    response: Response,
    name: Optional[str] = Query(default=None),
    phone: Optional[str] = Query(default=None),
    service_type: Optional[str] = Query(default=None),
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> List[CustomerResponse]:
    customers = await customer_service.list_customers(
        db, user, name=name, phone=phone, service_type=service_type
    )
    response.headers["X-Total-Count"] = str(len(customers))
    return customers


@router.get(
    "/{customer_id}",
    response_model=CustomerResponse,
    responses={**_NOT_FOUND, **_FORBIDDEN},
    summary="Get a customer",
)
async def get_customer(
    customer_id: int,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> CustomerResponse:
    return await customer_service.get_customer(db, customer_id, user)


@router.post(
    "",
    response_model=CustomerResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a customer",
)
async def create_customer(
    body: CustomerCreate,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> CustomerResponse:
    return await customer_service.create_customer(db, body, user)


@router.put(
    "/{customer_id}",
    response_model=CustomerResponse,
    responses={**_NOT_FOUND, **_FORBIDDEN},
    summary="Update a customer",
)
async def update_customer(
    customer_id: int,
    body: CustomerUpdate,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> CustomerResponse:
    return await customer_service.update_customer(db, customer_id, body, user)


@router.delete(
    "/{customer_id}",
    response_model=CustomerResponse,
    responses={
        400: {"description": "Customer has invoices", "model": ErrorResponse},
        **_NOT_FOUND,
        **_FORBIDDEN,
    },
    summary="Delete a customer and their appointments",
)
async def delete_customer(
    customer_id: int,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> CustomerResponse:
    """Returns the deleted customer."""
    return await customer_service.delete_customer(db, customer_id, user)


@router.get(
    "/{customer_id}/appointments",
    response_model=List[AppointmentResponse],
    responses={**_NOT_FOUND, **_FORBIDDEN},
    summary="A customer's appointments, newest first",
)
async def list_customer_appointments(
    customer_id: int,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> List[AppointmentResponse]:
    return await customer_service.list_customer_appointments(db, customer_id, user)
