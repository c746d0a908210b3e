"""Pytest configuration and fixtures."""

from datetime import date, datetime, timezone
from types import SimpleNamespace
from typing import AsyncGenerator, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from automatenance.main import app
from automatenance.models import Base, MaintenanceRecord, Subscription, Vehicle
from automatenance.routes.dependencies import (
    get_cache_store,
    get_clock,
    get_identity_provider,
    get_refinement_client,
)
from automatenance.services.ai_cache import AiCacheStore
from automatenance.services.database import get_db
from automatenance.services.refinement_client import PredictionRefinementClient
from httpx import ASGITransport, AsyncClient
from openai import APITimeoutError, InternalServerError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite://"

PRO_TOKEN = "token-pro"
FREE_TOKEN = "token-free"
FREE_AI_TOKEN = "token-free-ai"
USER_PRO = "user-pro"
USER_FREE = "user-free"
USER_FREE_AI = "user-free-ai"


class FakeRedis:
    """In-memory stand-in for the redis.asyncio client (get/set only)."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.expiry: Dict[str, Optional[int]] = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex
        return True


class FrozenClock:
    """Controllable UTC clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeIdentityProvider:
    """Maps known bearer tokens to user ids."""

    def __init__(self, tokens: Dict[str, str]):
        self.tokens = tokens

    async def resolve(self, token):
        return self.tokens.get(token)


def chat_response(text: Optional[str]):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


def provider_http_error(status_code: int = 500):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(status_code, request=request)
    return InternalServerError("provider error", response=response, body=None)


def provider_timeout():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return APITimeoutError(request=request)


class ScriptedCompletions:
    """
    Fake ``chat.completions`` endpoint.

    ``handler`` receives the user prompt and returns reply text or an
    exception instance to raise.
    """

    def __init__(self, handler: Callable[[str], object]):
        self.handler = handler
        self.calls: List[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        prompt = kwargs["messages"][-1]["content"]
        outcome = self.handler(prompt)
        if isinstance(outcome, Exception):
            raise outcome
        return chat_response(outcome)


def scripted_client(handler: Callable[[str], object]) -> PredictionRefinementClient:
    completions = ScriptedCompletions(handler)
    fake_openai = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    client = PredictionRefinementClient(api_key="sk-test", client=fake_openai)
    client.completions = completions
    return client


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 8, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache_store(fake_redis, clock) -> AiCacheStore:
    return AiCacheStore(fake_redis, clock=clock, timeout=1.0, retention_grace_seconds=3600)


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session_maker = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session_maker() as session:
        yield session


@pytest.fixture
def refinement():
    """Holder for the refinement client the app should use (None disables AI)."""
    return SimpleNamespace(client=None)


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession, cache_store: AiCacheStore, refinement, clock
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""

    async def override_get_db():
        yield db_session

    identity = FakeIdentityProvider(
        {PRO_TOKEN: USER_PRO, FREE_TOKEN: USER_FREE, FREE_AI_TOKEN: USER_FREE_AI}
    )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_provider] = lambda: identity
    app.dependency_overrides[get_cache_store] = lambda: cache_store
    app.dependency_overrides[get_refinement_client] = lambda: refinement.client
    app.dependency_overrides[get_clock] = lambda: clock

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def subscriptions(db_session: AsyncSession) -> None:
    """Pro (entitled), free (not entitled) and free-with-AI subscriptions."""
    db_session.add_all(
        [
            Subscription(user_id=USER_PRO, plan="pro", status="active", ai_predictions=True),
            Subscription(user_id=USER_FREE, plan="free", status="active", ai_predictions=False),
            Subscription(user_id=USER_FREE_AI, plan="free", status="active", ai_predictions=True),
        ]
    )
    await db_session.commit()


async def add_vehicle(
    db: AsyncSession,
    user_id: str,
    vehicle_id: str,
    make: str = "Honda",
    model: str = "Civic",
    year: int = 2020,
    mileage: int = 16000,
    records: List[tuple] = (),
) -> Vehicle:
    """Insert a vehicle plus (type, date, mileage) maintenance records."""
    vehicle = Vehicle(id=vehicle_id, user_id=user_id, make=make, model=model, year=year, mileage=mileage)
    db.add(vehicle)
    for i, (kind, day, miles) in enumerate(records):
        db.add(
            MaintenanceRecord(
                id=f"{vehicle_id}-r{i}",
                user_id=user_id,
                vehicle_id=vehicle_id,
                type=kind,
                date=day,
                mileage=miles,
            )
        )
    await db.commit()
    return vehicle


OIL_HISTORY = [
    ("oil change", date(2024, 1, 1), 10000),
    ("Oil Change", date(2024, 7, 1), 15000),
]
