"""Shared fixtures for unit tests: in-memory SQLite and seeded rows."""

from __future__ import annotations

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

import key_manager.models  # noqa: F401
from key_manager.config import KeyConfig, Settings
from key_manager.managers.keys import KeyManager
from key_manager.models.api_key import ApiKey
from key_manager.models.service_account import ServiceAccount
from key_manager.services.key_generation import generate_token
from key_manager.utils.datetime import utcnow
from tests.fakes import RecordingAuditSink


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with minimal config."""
    return Settings(
        environment="development",
        database={"url": "sqlite+aiosqlite:///:memory:"},
    )


@pytest.fixture
def key_config(test_settings: Settings) -> KeyConfig:
    return test_settings.keys


@pytest.fixture
async def db_session():
    """Create in-memory SQLite database and session."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    async_session_factory = sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def key_manager(
    db_session: AsyncSession,
    test_settings: Settings,
    audit_sink: RecordingAuditSink,
) -> KeyManager:
    """Create KeyManager against the in-memory database."""
    with patch("key_manager.managers.keys.keys.get_settings", return_value=test_settings):
        yield KeyManager(db_session, audit=audit_sink)


@pytest.fixture
def make_account(db_session: AsyncSession):
    """Factory that inserts a service account row."""

    async def _make(
        owner_id: str = "owner-1",
        *,
        deleted_at: datetime | None = None,
    ) -> ServiceAccount:
        account = ServiceAccount(
            owner_id=owner_id,
            client_secret=generate_token(),
            deleted_at=deleted_at,
            deleted_by="tests" if deleted_at else None,
        )
        db_session.add(account)
        await db_session.commit()
        await db_session.refresh(account)
        return account

    return _make


@pytest.fixture
def make_key(db_session: AsyncSession):
    """Factory that inserts an API key row with explicit flags."""

    async def _make(
        account: ServiceAccount,
        *,
        name: str = "key",
        description: str | None = None,
        is_active: bool = True,
        expiry_date: datetime | None = None,
        deleted_at: datetime | None = None,
        created_at: datetime | None = None,
        api_key: str | None = None,
        no_expiry: bool = False,
    ) -> ApiKey:
        if expiry_date is None and not no_expiry:
            expiry_date = utcnow() + timedelta(days=30)
        key = ApiKey(
            client_id=account.id,
            api_key=api_key or generate_token(),
            name=name,
            description=description,
            is_active=is_active,
            expiry_date=expiry_date,
            deleted_at=deleted_at,
            created_at=created_at or utcnow(),
        )
        db_session.add(key)
        await db_session.commit()
        await db_session.refresh(key)
        return key

    return _make
