"""
ZIMMR Backend — Material Service Unit Tests
============================================

What we test:
    ✅ Catalogue defaults and ownership of new entries
    ✅ Shared (craftsman-less) entries can only be changed by admins
    ✅ Materials selected on appointments cannot be deleted
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from zimmr.exceptions import PermissionDeniedError, ValidationError
from zimmr.schemas.material import MaterialCreate, MaterialUpdate
from zimmr.services.material_service import MaterialService


class TestCreateMaterial:

    def setup_method(self):
        self.service = MaterialService()

    @pytest.mark.asyncio
    async def test_defaults(self, mock_db_session, craftsman_user):
        mock_db_session.add = MagicMock(side_effect=lambda row: setattr(row, "id", 11))

        result = await self.service.create_material(
            mock_db_session, MaterialCreate(name="Fugenmörtel"), craftsman_user
        )

        assert result.id == 11
        assert result.category == "Tiling"
        assert result.unit_type == "sqm"
        assert result.in_stock is True
        assert result.craftsman_id == 1

    def test_name_is_required(self):
        from pydantic import ValidationError as SchemaValidationError

        with pytest.raises(SchemaValidationError):
            MaterialCreate(price_per_unit=Decimal("3.20"))

    @pytest.mark.asyncio
    async def test_only_admins_fill_other_catalogues(self, mock_db_session, craftsman_user):
        with pytest.raises(PermissionDeniedError):
            await self.service.create_material(
                mock_db_session, MaterialCreate(name="Silikon", craftsman_id=None), craftsman_user
            )
        mock_db_session.add.assert_not_called()


class TestUpdateMaterial:

    def setup_method(self):
        self.service = MaterialService()

    @pytest.mark.asyncio
    async def test_empty_update(self, mock_db_session, craftsman_user):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.update_material(mock_db_session, 7, MaterialUpdate(), craftsman_user)
        assert exc_info.value.message == "No fields to update"

    @pytest.mark.asyncio
    async def test_price_change(self, mock_db_session, material, craftsman_user):
        mock_db_session.get.return_value = material
        result = await self.service.update_material(
            mock_db_session, 7, MaterialUpdate(price_per_unit=Decimal("49.90")), craftsman_user
        )
        assert result.price_per_unit == Decimal("49.90")

    @pytest.mark.asyncio
    async def test_null_name_is_a_validation_error(self, mock_db_session, material, craftsman_user):
        mock_db_session.get.return_value = material
        data = MaterialUpdate.model_validate({"name": None})

        with pytest.raises(ValidationError) as exc_info:
            await self.service.update_material(mock_db_session, 7, data, craftsman_user)

        assert exc_info.value.field == "name"
        assert material.name == "Eichenparkett"

    @pytest.mark.asyncio
    async def test_shared_entry_is_admin_only(
        self, mock_db_session, material, craftsman_user, admin_user
    ):
        material.craftsman_id = None
        mock_db_session.get.return_value = material

        with pytest.raises(PermissionDeniedError):
            await self.service.update_material(
                mock_db_session, 7, MaterialUpdate(in_stock=False), craftsman_user
            )
        assert material.in_stock is True

        result = await self.service.update_material(
            mock_db_session, 7, MaterialUpdate(in_stock=False), admin_user
        )
        assert result.in_stock is False


class TestDeleteMaterial:

    def setup_method(self):
        self.service = MaterialService()

    @pytest.mark.asyncio
    async def test_refused_while_in_use(self, mock_db_session, material, craftsman_user):
        mock_db_session.get.return_value = material
        mock_db_session.scalar.return_value = 2

        with pytest.raises(ValidationError) as exc_info:
            await self.service.delete_material(mock_db_session, 7, craftsman_user)

        assert exc_info.value.message == "Cannot delete material that is used in appointments"
        mock_db_session.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unused_material_is_deleted(self, mock_db_session, material, craftsman_user):
        mock_db_session.get.return_value = material
        mock_db_session.scalar.return_value = 0

        result = await self.service.delete_material(mock_db_session, 7, craftsman_user)

        assert result.name == "Eichenparkett"
        mock_db_session.delete.assert_awaited_once_with(material)

    @pytest.mark.asyncio
    async def test_shared_entry_cannot_be_deleted_by_craftsman(
        self, mock_db_session, material, craftsman_user
    ):
        material.craftsman_id = None
        mock_db_session.get.return_value = material
        with pytest.raises(PermissionDeniedError):
            await self.service.delete_material(mock_db_session, 7, craftsman_user)
