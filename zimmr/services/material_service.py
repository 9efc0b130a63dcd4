"""
ZIMMR Backend — Material Service
=================================

What:  Material catalogue CRUD.

Catalogue scope:
    Rows with craftsman_id = NULL are a shared catalogue visible to every
    craftsman; filtering by craftsman returns that craftsman's own rows plus
    the shared ones. Only the owner (or an admin) may change or delete a row.
"""

import logging
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from zimmr.exceptions import (
    DatabaseError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    ZimmrError,
)
from zimmr.models.appointment import AppointmentMaterial
from zimmr.models.material import Material
from zimmr.schemas.material import MaterialCreate, MaterialResponse, MaterialUpdate
from zimmr.security import TokenUser
from zimmr.services.access import ensure_owner, partial_changes

logger = logging.getLogger(__name__)


class MaterialService:

    async def _get(self, db: AsyncSession, material_id: int) -> Material:
        try:
            material = await db.get(Material, material_id)
        except Exception as e:
            logger.error("Database error fetching material %d: %s", material_id, str(e))
            raise DatabaseError(message="Could not retrieve the material. Please try again.")
        if material is None:
            raise NotFoundError(resource="material", resource_id=str(material_id))
        return material

    async def list_materials(
        self,
        db: AsyncSession,
        category: Optional[str] = None,
        craftsman_id: Optional[int] = None,
        in_stock: Optional[bool] = None,
    ) -> List[MaterialResponse]:
        query = select(Material)
        if category:
            query = query.where(Material.category == category)
        if craftsman_id is not None:
            query = query.where(
                or_(Material.craftsman_id == craftsman_id, Material.craftsman_id.is_(None))
            )
        if in_stock is not None:
            query = query.where(Material.in_stock == in_stock)
        query = query.order_by(Material.category, Material.name)
        try:
            result = await db.execute(query)
            return [MaterialResponse.model_validate(m) for m in result.scalars().all()]
        except Exception as e:
            logger.error("Database error listing materials: %s", str(e))
            raise DatabaseError(message="Could not load materials. Please try again.")

    async def get_material(self, db: AsyncSession, material_id: int) -> MaterialResponse:
        return MaterialResponse.model_validate(await self._get(db, material_id))

    async def create_material(
        self, db: AsyncSession, data: MaterialCreate, user: TokenUser
    ) -> MaterialResponse:
        values = data.model_dump(exclude={"craftsman_id"})
        owner = user.craftsman_id
        if "craftsman_id" in data.model_fields_set and data.craftsman_id != user.craftsman_id:
            if not user.is_admin:
                raise PermissionDeniedError("Only admins can create materials for other catalogues")
            owner = data.craftsman_id

        material = Material(craftsman_id=owner, **values)
        try:
            db.add(material)
            await db.flush()
            await db.refresh(material)
        except Exception as e:
            logger.error("Database error creating material: %s", str(e))
            raise DatabaseError(message="Could not create the material. Please try again.")
        logger.info("Material %d '%s' created", material.id, material.name)
        return MaterialResponse.model_validate(material)

    async def update_material(
        self, db: AsyncSession, material_id: int, data: MaterialUpdate, user: TokenUser
    ) -> MaterialResponse:
        changes = partial_changes(
            data, ("name", "price_per_unit", "unit_type", "category", "in_stock")
        )
        material = await self._get(db, material_id)
        ensure_owner(material.craftsman_id, user, "material", material_id)
        try:
            for field, value in changes.items():
                setattr(material, field, value)
            await db.flush()
        except Exception as e:
            logger.error("Database error updating material %d: %s", material_id, str(e))
            raise DatabaseError(message="Could not update the material. Please try again.")
        return MaterialResponse.model_validate(material)

    async def delete_material(
        self, db: AsyncSession, material_id: int, user: TokenUser
    ) -> MaterialResponse:
        """
        Raises:
            ValidationError: the material is selected on an appointment
        """
        material = await self._get(db, material_id)
        ensure_owner(material.craftsman_id, user, "material", material_id)
        snapshot = MaterialResponse.model_validate(material)
        try:
            usage = await db.scalar(
                select(func.count(AppointmentMaterial.id)).where(
                    AppointmentMaterial.material_id == material_id
                )
            )
            if usage:
                raise ValidationError(
                    "Cannot delete material that is used in appointments",
                    context={"appointments": int(usage)},
                )
            await db.delete(material)
            await db.flush()
        except ZimmrError:
            raise
        except Exception as e:
            logger.error("Database error deleting material %d: %s", material_id, str(e))
            raise DatabaseError(message="Could not delete the material. Please try again.")
        logger.info("Material %d deleted", material_id)
        return snapshot


material_service = MaterialService()
