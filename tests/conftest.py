"""
ZIMMR Backend — Test Configuration (conftest.py)
=================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment overrides are applied before anything from `zimmr` is
       imported, because `zimmr.config.settings` is built at import time.

Fixtures:
    ├── mock_db_session: AsyncMock standing in for AsyncSession
    ├── temp_storage:    temporary directory for generated documents
    ├── craftsman_user / admin_user: decoded token principals
    ├── craftsman, customer, material: transient ORM rows
    ├── completed_appointment: appointment with a price and two materials
    ├── invoice_detail:  fully populated InvoiceDetail (PDF/email input)
    ├── auth_headers:    bearer header for craftsman_user
    └── test_client:     HTTPX AsyncClient with the DB dependency mocked
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

_TEST_DIR = tempfile.mkdtemp(prefix="zimmr_test_")

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.db"
os.environ["JWT_SECRET"] = "test-secret-not-for-production"
os.environ["STORAGE_ROOT"] = os.path.join(_TEST_DIR, "storage")
os.environ["SMTP_HOST"] = ""
os.environ["OVERDUE_CHECK_INTERVAL"] = "0"
os.environ["LOG_LEVEL"] = "WARNING"

from zimmr.models import (  # noqa: E402
    Appointment,
    AppointmentMaterial,
    Craftsman,
    Customer,
    Material,
)
from zimmr.schemas.invoice import InvoiceDetail, InvoiceItemResponse  # noqa: E402
from zimmr.security import TokenUser, create_access_token  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Infrastructure
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    A mock async database session.

    Usage:
        mock_db_session.get.return_value = appointment
        result = await appointment_service.approve(mock_db_session, 1, user)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.scalar = AsyncMock()
    session.get = AsyncMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.delete = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


# ══════════════════════════════════════════════════════════════════════════
# Principals
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def craftsman_user():
    return TokenUser(user_id=10, email="meister@example.com", role="craftsman", craftsman_id=1)


@pytest.fixture
def admin_user():
    return TokenUser(user_id=1, email="admin@example.com", role="admin", craftsman_id=None)


@pytest.fixture
def auth_headers(craftsman_user):
    token = create_access_token(
        user_id=craftsman_user.user_id,
        email=craftsman_user.email,
        role=craftsman_user.role,
        craftsman_id=craftsman_user.craftsman_id,
    )
    return {"Authorization": f"Bearer {token}"}


# ══════════════════════════════════════════════════════════════════════════
# Domain rows (transient, never attached to a session)
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def craftsman():
    return Craftsman(
        id=1,
        user_id=10,
        name="Max Meister",
        email="meister@example.com",
        phone="+49 30 123456",
        specialty="Tischler",
        availability_hours={
            "monday": ["08:00-12:00", "13:00-17:00"],
            "tuesday": ["08:00-17:00"],
            "wednesday": ["08:00-17:00"],
            "thursday": ["08:00-17:00"],
            "friday": ["08:00-14:00"],
        },
    )


@pytest.fixture
def customer():
    return Customer(
        id=5,
        craftsman_id=1,
        name="Erika Mustermann",
        email="erika@example.com",
        phone="+49 170 1111111",
        address="Hauptstraße 1, 10115 Berlin",
    )


@pytest.fixture
def material():
    return Material(
        id=7,
        craftsman_id=1,
        name="Eichenparkett",
        price_per_unit=Decimal("45.50"),
        unit_type="m2",
        category="flooring",
        in_stock=True,
    )


@pytest.fixture
def completed_appointment(craftsman, customer, material):
    """Appointment with a 150.00 service price and two material lines."""
    screws = Material(
        id=8,
        craftsman_id=None,
        name="Schrauben",
        price_per_unit=Decimal("0.10"),
        unit_type="piece",
        category="hardware",
        in_stock=True,
    )
    appointment = Appointment(
        id=42,
        customer_id=customer.id,
        craftsman_id=craftsman.id,
        title="Parkett verlegen",
        scheduled_at=datetime(2024, 6, 3, 8, 0, tzinfo=timezone.utc),
        duration=240,
        service_type="flooring",
        status="completed",
        approval_status="approved",
        price=Decimal("150.00"),
    )
    appointment.customer = customer
    appointment.craftsman = craftsman
    appointment.materials = [
        AppointmentMaterial(id=1, appointment_id=42, material_id=material.id,
                            quantity=Decimal("12.5"), material=material),
        AppointmentMaterial(id=2, appointment_id=42, material_id=screws.id,
                            quantity=Decimal("200"), material=screws),
    ]
    return appointment


@pytest.fixture
def pending_appointment(craftsman, customer):
    appointment = Appointment(
        id=43,
        customer_id=customer.id,
        craftsman_id=craftsman.id,
        title="Beratung",
        scheduled_at=datetime(2024, 6, 4, 9, 0, tzinfo=timezone.utc),
        duration=60,
        status="scheduled",
        approval_status="pending",
        notes="Zweiter Stock",
    )
    appointment.customer = customer
    appointment.craftsman = craftsman
    appointment.materials = []
    return appointment


@pytest.fixture
def invoice_detail():
    now = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)
    return InvoiceDetail(
        id=100,
        type="invoice",
        invoice_number="INV-202406-1-0001",
        craftsman_id=1,
        customer_id=5,
        appointment_id=42,
        status="pending",
        amount=Decimal("738.75"),
        tax_amount=Decimal("0.00"),
        total_amount=Decimal("738.75"),
        due_date=now + timedelta(days=14),
        created_at=now,
        customer_name="Erika Mustermann",
        customer_email="erika@example.com",
        customer_address="Hauptstraße 1, 10115 Berlin",
        craftsman_name="Max Meister",
        craftsman_email="meister@example.com",
        appointment_title="Parkett verlegen",
        appointment_scheduled_at=datetime(2024, 6, 3, 8, 0, tzinfo=timezone.utc),
        items=[
            InvoiceItemResponse(
                id=1, description="Parkett verlegen", quantity=Decimal("1"),
                unit_price=Decimal("150.00"), amount=Decimal("150.00"),
            ),
            InvoiceItemResponse(
                id=2, description="Eichenparkett (m2)", quantity=Decimal("12.5"),
                unit_price=Decimal("45.50"), amount=Decimal("568.75"), material_id=7,
            ),
            InvoiceItemResponse(
                id=3, description="Schrauben (piece)", quantity=Decimal("200"),
                unit_price=Decimal("0.10"), amount=Decimal("20.00"), material_id=8,
            ),
        ],
    )


# ══════════════════════════════════════════════════════════════════════════
# API client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(mock_db_session):
    """
    HTTPX AsyncClient talking to the app in-process; every route receives
    `mock_db_session` instead of a real session.
    """
    from zimmr.database import get_db_session
    from zimmr.main import app

    async def override_db_session():
        yield mock_db_session

    app.dependency_overrides[get_db_session] = override_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
