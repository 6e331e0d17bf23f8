"""
Test configuration and fixtures for the blood bank service.
Provides per-test databases, a recording notification port and data factories.
"""

import os
from datetime import date, timedelta
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple
from uuid import uuid4

# Override environment variables before the app reads its settings
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["LOG_TO_FILE"] = "false"
os.environ["NOTIFICATION_SERVICE_URL"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.models import BloodBank, BloodInventory, Donor
from app.services.notification_service import NotificationDispatcher, NotificationPort
from app.utils.phone import normalize_phone

TEST_DATABASE_URL = "sqlite+aiosqlite://"


class RecordingNotificationPort(NotificationPort):
    """Keeps every message instead of sending it."""

    def __init__(self):
        self.sent: List[Tuple[str, Dict[str, Any]]] = []

    async def send(self, template_id: str, payload: Dict[str, Any]) -> bool:
        self.sent.append((template_id, payload))
        return True

    def templates(self) -> List[str]:
        return [template_id for template_id, _ in self.sent]


@pytest.fixture
async def engine():
    """A fresh in-memory database for every test."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )
    async with session_maker() as session:
        yield session


@pytest.fixture
def notification_port() -> RecordingNotificationPort:
    return RecordingNotificationPort()


@pytest.fixture
def notifier(notification_port) -> NotificationDispatcher:
    return NotificationDispatcher(notification_port, timeout=1.0)


@pytest.fixture
def client():
    """Test client running the real lifespan against the in-memory database."""
    from app.main import app

    app.state.notifier = NotificationDispatcher(RecordingNotificationPort(), timeout=1.0)
    with TestClient(app) as test_client:
        yield test_client


# --- Data Factories ---


class DataFactory:
    """Creates persisted rows with realistic defaults."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def unique_phone() -> str:
        return f"98{uuid4().int % 10**8:08d}"

    async def bank(self, name: Optional[str] = None, city: str = "Pune", **overrides) -> BloodBank:
        bank = BloodBank(
            name=name or f"Test Blood Bank {uuid4().hex[:4]}",
            city=city,
            phone="02025550100",
            email=f"bank_{uuid4().hex[:8]}@example.org",
            address="12 Hospital Road",
            **overrides,
        )
        self.session.add(bank)
        await self.session.commit()
        await self.session.refresh(bank)
        return bank

    async def donor(
        self,
        name: Optional[str] = None,
        blood_type: str = "O+",
        city: str = "Pune",
        last_donation_date: Optional[date] = None,
        phone: Optional[str] = None,
        **overrides,
    ) -> Donor:
        donor = Donor(
            name=name or f"Donor {uuid4().hex[:4]}",
            phone=normalize_phone(phone or self.unique_phone()),
            blood_type=blood_type,
            date_of_birth=date(1990, 1, 1),
            city=city,
            weight=65,
            last_donation_date=last_donation_date,
            **overrides,
        )
        self.session.add(donor)
        await self.session.commit()
        await self.session.refresh(donor)
        return donor

    async def inventory(
        self,
        bank: BloodBank,
        blood_type: str,
        units: int,
        collection_date: Optional[date] = None,
    ) -> BloodInventory:
        collection = collection_date or date.today()
        record = BloodInventory(
            blood_bank_id=bank.id,
            blood_type=blood_type,
            units_available=units,
            collection_date=collection,
            expiry_date=collection + timedelta(days=42),
        )
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        return record


@pytest.fixture
def factory(db_session) -> DataFactory:
    return DataFactory(db_session)


# --- Assertion helpers ---


def assert_response_success(response, expected_status: int = 200):
    assert response.status_code == expected_status, response.text
    body = response.json()
    assert body["success"] is True
    return body["data"]


def assert_response_error(response, expected_status: int, kind: str) -> Dict[str, Any]:
    assert response.status_code == expected_status, response.text
    body = response.json()
    assert body["success"] is False
    assert body["error"] == kind
    assert body["message"]
    return body
