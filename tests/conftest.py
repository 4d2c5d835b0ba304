"""
Pytest configuration and fixtures for testing
"""
import os

# Settings are read at import time; configure them before the app is imported
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("ADMIN_GRANT_TOKEN", "test-admin-token")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

import database_models  # noqa: F401
from database import Base, get_db
from database_models import UserPayment, UserProfile

# Fixed evaluation time used across entitlement tests
NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def fixed_clock():
    return NOW


@pytest.fixture
async def test_db():
    """
    Fixture that provides an isolated, in-memory SQLite database session for each test.

    Tables are created before the test runs and the engine is disposed afterwards.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def client(tmp_path):
    """FastAPI TestClient backed by a throwaway SQLite file."""
    from main import app

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
    )

    async def setup_db():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(setup_db())

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_payment(record_id, user_id="user-1", **fields):
    """Unsaved UserPayment row for in-memory repositories."""
    return UserPayment(id=record_id, user_id=user_id, **fields)


def make_profile(user_id="user-1", **fields):
    return UserProfile(user_id=user_id, **fields)


def days_from_now(days):
    return NOW + timedelta(days=days)


def _desc_nulls_last(value):
    # Sort key: present values first, newest first
    return (value is None, -value.timestamp() if value is not None else 0)


class FakePaymentRepository:
    """In-memory stand-in for the PaymentRepository read and claim paths."""

    def __init__(self, rows=None):
        self.rows = list(rows or [])
        self.calls = []

    async def list_recent_for_user(self, user_id, limit=5):
        self.calls.append((user_id, limit))
        owned = [row for row in self.rows if row.user_id == user_id]
        owned.sort(key=lambda row: (_desc_nulls_last(row.updated_at), _desc_nulls_last(row.created_at)))
        return owned[:limit]

    async def find_unclaimed_by_email(self, email):
        for row in self.rows:
            if row.user_id is None and row.email == email.lower() and row.access_granted is True:
                return row
        return None

    async def claim(self, payment, user_id):
        payment.user_id = user_id
        return payment


class FakeProfileRepository:
    def __init__(self, profiles=None):
        self.profiles = {profile.user_id: profile for profile in (profiles or [])}

    async def get_by_user_id(self, user_id):
        return self.profiles.get(user_id)


class BrokenRepository:
    """Every query fails the way an unreachable database does."""

    async def list_recent_for_user(self, user_id, limit=5):
        raise SQLAlchemyError("connection refused")

    async def find_unclaimed_by_email(self, email):
        raise SQLAlchemyError("connection refused")

    async def get_by_user_id(self, user_id):
        raise SQLAlchemyError("connection refused")
