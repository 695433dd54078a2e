"""
Shared fixtures: a file-backed SQLite subscriber store, fakes for the
processor API, and an HTTP client bound to a fresh application.
"""

from __future__ import annotations

import uuid
from typing import Any, Mapping, Optional

import pytest
from httpx import ASGITransport, AsyncClient

from billing_sync.core.config import Settings
from billing_sync.core.database import Database
from billing_sync.core.errors import StorageError
from billing_sync.main import create_app
from billing_sync.models.user import User
from billing_sync.services.subscribers import SqlSubscriberRepository, UpdateOutcome

from factories import SERVICE_TOKEN, WEBHOOK_SECRET


class FakeFetcher:
    """In-memory stand-in for the processor's subscription API."""

    def __init__(self, subscriptions: Optional[dict[str, dict[str, Any]]] = None):
        self.subscriptions = subscriptions or {}
        self.calls: list[str] = []
        self.error: Optional[Exception] = None

    async def retrieve(self, subscription_id: str) -> dict[str, Any]:
        self.calls.append(subscription_id)
        if self.error is not None:
            raise self.error
        if subscription_id not in self.subscriptions:
            raise StorageError(f"No such subscription: {subscription_id}")
        return self.subscriptions[subscription_id]


class RecordingRepository:
    """Delegates to a real repository and records every write attempt."""

    def __init__(self, inner: SqlSubscriberRepository):
        self.inner = inner
        self.updates: list[tuple[uuid.UUID, dict[str, Any]]] = []

    async def get(self, user_id: uuid.UUID):
        return await self.inner.get(user_id)

    async def update(
        self,
        user_id: uuid.UUID,
        fields: Mapping[str, Any],
        *,
        not_before=None,
    ) -> UpdateOutcome:
        self.updates.append((user_id, dict(fields)))
        return await self.inner.update(user_id, fields, not_before=not_before)


class FailingRepository:
    """Repository whose store is down."""

    async def get(self, user_id: uuid.UUID):
        raise StorageError("subscriber store unavailable")

    async def update(self, user_id, fields, *, not_before=None):
        raise StorageError("subscriber store unavailable")


async def insert_subscriber(database: Database, **fields: Any) -> uuid.UUID:
    user_id = fields.pop("id", None) or uuid.uuid4()
    fields.setdefault("email", f"{user_id.hex[:8]}@example.com")
    async with database.session() as session:
        session.add(User(id=user_id, **fields))
    return user_id


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path}/billing.db"


@pytest.fixture
async def database(database_url):
    db = Database(database_url)
    await db.init_models()
    yield db
    await db.dispose()


@pytest.fixture
def repository(database) -> SqlSubscriberRepository:
    return SqlSubscriberRepository(database)


@pytest.fixture
async def subscriber(database) -> uuid.UUID:
    return await insert_subscriber(database)


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def settings(database_url) -> Settings:
    return Settings(
        database_url=database_url,
        redis_url=None,
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_api_key="",
        internal_api_token=SERVICE_TOKEN,
        log_format="text",
        log_level="warning",
    )


@pytest.fixture
async def app(settings, fetcher):
    application = create_app(settings, fetcher=fetcher)
    await application.state.container.database.init_models()
    yield application
    await application.state.container.close()


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def app_subscriber(app) -> uuid.UUID:
    return await insert_subscriber(app.state.container.database)
