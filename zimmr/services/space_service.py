"""
ZIMMR Backend — Customer Space Service
=======================================

Rooms and areas of a customer's property (e.g. "Bad OG", type=bathroom).
Access follows the owning customer: a craftsman may only see and change
spaces of their own customers.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from zimmr.exceptions import DatabaseError, NotFoundError
from zimmr.models.customer import Customer, CustomerSpace
from zimmr.schemas.customer import SpaceCreate, SpaceResponse, SpaceUpdate
from zimmr.security import TokenUser
from zimmr.services.access import partial_changes
from zimmr.services.customer_service import customer_service

logger = logging.getLogger(__name__)


class SpaceService:

    async def _get_owned(self, db: AsyncSession, space_id: int, user: TokenUser) -> CustomerSpace:
        try:
            space = await db.get(CustomerSpace, space_id)
        except Exception as e:
            logger.error("Database error fetching space %d: %s", space_id, str(e))
            raise DatabaseError(message="Could not retrieve the customer space. Please try again.")
        if space is None:
            raise NotFoundError(resource="customer space", resource_id=str(space_id))
        await customer_service.get_owned_customer(db, space.customer_id, user)
        return space

    async def list_spaces(
        self,
        db: AsyncSession,
        user: TokenUser,
        customer_id: Optional[int] = None,
        space_type: Optional[str] = None,
    ) -> List[SpaceResponse]:
        query = select(CustomerSpace).join(Customer, CustomerSpace.customer_id == Customer.id)
        if not user.is_admin:
            query = query.where(Customer.craftsman_id == user.craftsman_id)
        if customer_id is not None:
            query = query.where(CustomerSpace.customer_id == customer_id)
        if space_type:
            query = query.where(CustomerSpace.type == space_type)
        query = query.order_by(CustomerSpace.name)
        try:
            result = await db.execute(query)
            return [SpaceResponse.model_validate(s) for s in result.scalars().all()]
        except Exception as e:
            logger.error("Database error listing spaces: %s", str(e))
            raise DatabaseError(message="Could not load customer spaces. Please try again.")

    async def list_for_customer(
        self, db: AsyncSession, customer_id: int, user: TokenUser
    ) -> List[SpaceResponse]:
        await customer_service.get_owned_customer(db, customer_id, user)
        return await self.list_spaces(db, user, customer_id=customer_id)

    async def get_space(self, db: AsyncSession, space_id: int, user: TokenUser) -> SpaceResponse:
        return SpaceResponse.model_validate(await self._get_owned(db, space_id, user))

    async def create_space(
        self, db: AsyncSession, data: SpaceCreate, user: TokenUser
    ) -> SpaceResponse:
        await customer_service.get_owned_customer(db, data.customer_id, user)
        space = CustomerSpace(**data.model_dump())
        try:
            db.add(space)
            await db.flush()
            await db.refresh(space)
        except Exception as e:
            logger.error("Database error creating space: %s", str(e))
            raise DatabaseError(message="Could not create the customer space. Please try again.")
        logger.info("Space %d created for customer %d", space.id, data.customer_id)
        return SpaceResponse.model_validate(space)

    async def update_space(
        self, db: AsyncSession, space_id: int, data: SpaceUpdate, user: TokenUser
    ) -> SpaceResponse:
        space = await self._get_owned(db, space_id, user)
        changes = partial_changes(data, ("name", "type"))
        try:
            for field, value in changes.items():
                setattr(space, field, value)
            await db.flush()
        except Exception as e:
            logger.error("Database error updating space %d: %s", space_id, str(e))
            raise DatabaseError(message="Could not update the customer space. Please try again.")
        return SpaceResponse.model_validate(space)

    async def delete_space(self, db: AsyncSession, space_id: int, user: TokenUser) -> SpaceResponse:
        space = await self._get_owned(db, space_id, user)
        snapshot = SpaceResponse.model_validate(space)
        try:
            await db.delete(space)
            await db.flush()
        except Exception as e:
            logger.error("Database error deleting space %d: %s", space_id, str(e))
            raise DatabaseError(message="Could not delete the customer space. Please try again.")
        return snapshot


space_service = SpaceService()
