"""
ZIMMR Backend — Auth Service Unit Tests
========================================

What we test:
    ✅ Registration creates a craftsman profile for craftsmen and returns a usable token
    ✅ Duplicate email, missing craftsman phone and admin self-registration are rejected
    ✅ Login failures do not reveal whether the email exists
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError as SchemaValidationError

from zimmr.exceptions import AuthenticationError, ValidationError
from zimmr.models import Craftsman, User
from zimmr.schemas.auth import LoginRequest, RegisterRequest
from zimmr.security import decode_access_token, hash_password
from zimmr.services.auth_service import AuthService


def _query_result(row):
    result = MagicMock()
    result.scalars.return_value.first.return_value = row
    result.scalar_one_or_none.return_value = row
    return result


@pytest.fixture
def assigning_session(mock_db_session):
    """Session whose flush assigns primary keys like the database would."""
    added = []
    mock_db_session.add = MagicMock(side_effect=added.append)

    async def flush():
        for position, obj in enumerate(added, start=1):
            if obj.id is None:
                obj.id = position

    mock_db_session.flush = AsyncMock(side_effect=flush)
    mock_db_session.execute.return_value = _query_result(None)
    return mock_db_session


class TestRegister:

    def setup_method(self):
        self.service = AuthService()

    @pytest.mark.asyncio
    async def test_craftsman_registration(self, assigning_session):
        data = RegisterRequest(
            username="meister",
            email="meister@example.com",
            password="geheim123",
            role="craftsman",
            phone="+49 30 123456",
            specialty="Tischler",
        )
        result = await self.service.register(assigning_session, data)

        assert result.message == "Registration successful"
        assert result.user.craftsman.name == "meister"
        principal = decode_access_token(result.token)
        assert principal.craftsman_id == result.user.craftsman_id
        assert principal.role == "craftsman"

        user, craftsman = [call.args[0] for call in assigning_session.add.call_args_list]
        assert isinstance(user, User) and isinstance(craftsman, Craftsman)
        assert user.password_hash != "geheim123"

    @pytest.mark.asyncio
    async def test_customer_registration_has_no_profile(self, assigning_session):
        data = RegisterRequest(username="erika", email="erika@example.com", password="geheim123")
        result = await self.service.register(assigning_session, data)
        assert result.user.craftsman_id is None
        assert decode_access_token(result.token).craftsman_id is None

    @pytest.mark.asyncio
    async def test_craftsman_needs_phone(self, assigning_session):
        data = RegisterRequest(
            username="meister", email="meister@example.com", password="geheim123", role="craftsman"
        )
        with pytest.raises(ValidationError) as exc_info:
            await self.service.register(assigning_session, data)
        assert exc_info.value.field == "phone"

    @pytest.mark.asyncio
    async def test_duplicate_email(self, assigning_session):
        existing = User(id=1, username="other", email="erika@example.com", password_hash="x", role="customer")
        assigning_session.execute.return_value = _query_result(existing)
        data = RegisterRequest(username="erika", email="erika@example.com", password="geheim123")

        with pytest.raises(ValidationError) as exc_info:
            await self.service.register(assigning_session, data)
        assert exc_info.value.message == "A user with this email already exists"

    def test_admin_cannot_self_register(self):
        with pytest.raises(SchemaValidationError):
            RegisterRequest(username="root", email="root@example.com", password="geheim123", role="admin")


class TestLogin:

    def setup_method(self):
        self.service = AuthService()

    @pytest.mark.asyncio
    async def test_valid_credentials(self, mock_db_session, craftsman):
        user = User(id=10, username="meister", email="meister@example.com",
                    password_hash=hash_password("geheim123"), role="craftsman")
        user.craftsman = craftsman
        mock_db_session.execute.return_value = _query_result(user)

        result = await self.service.login(
            mock_db_session, LoginRequest(email="meister@example.com", password="geheim123")
        )
        assert decode_access_token(result.token).craftsman_id == 1

    @pytest.mark.asyncio
    async def test_wrong_password_and_unknown_email_look_the_same(self, mock_db_session):
        user = User(id=10, username="meister", email="meister@example.com",
                    password_hash=hash_password("geheim123"), role="craftsman")
        user.craftsman = None

        mock_db_session.execute.return_value = _query_result(user)
        with pytest.raises(AuthenticationError) as wrong_password:
            await self.service.login(
                mock_db_session, LoginRequest(email="meister@example.com", password="falsch")
            )

        mock_db_session.execute.return_value = _query_result(None)
        with pytest.raises(AuthenticationError) as unknown_email:
            await self.service.login(
                mock_db_session, LoginRequest(email="nobody@example.com", password="falsch")
            )

        assert wrong_password.value.message == unknown_email.value.message == "Invalid credentials"
