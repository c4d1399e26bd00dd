import os
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("AI_MODE", "mock")

from recipefinder import db as db_module
from recipefinder import deps
from recipefinder import models  # noqa: F401  registers the tables
from recipefinder.db import Base
from recipefinder.infra import redis_client
from recipefinder.infra.device_store import RedisDeviceStore
from recipefinder.schemas import Recipe
from recipefinder.services.match_scorer import MatchScorer

# --- Test Database Setup ---

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

# check_same_thread is needed because stores run in worker threads (asyncio.to_thread)
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after. Module-level engine replaces the app's."""
    db_module._engine = engine
    db_module._SessionLocal = TestingSessionLocal
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def db_session():
    """Direct database session for setup and assertions."""
    session = TestingSessionLocal()
    yield session
    session.close()


# --- Redis ---

import fakeredis


@pytest.fixture(autouse=True)
def fake_redis():
    server = fakeredis.FakeServer()
    client = fakeredis.FakeAsyncRedis(server=server)

    # Force the client into the infra module
    redis_client._redis_async = client

    yield client

    redis_client._redis_async = None


@pytest.fixture
def device_store(fake_redis):
    return RedisDeviceStore(fake_redis)


@pytest.fixture(autouse=True)
def reset_singletons():
    """deps caches collaborators per process; every test gets fresh ones."""
    cached = [
        deps.get_reachability,
        deps.get_background,
        deps.get_revalidator,
        deps.get_scorer,
        deps.get_device_store,
        deps.get_entitlements,
        deps.get_pool_store,
        deps.get_generation_cache_store,
        deps.get_generation,
    ]
    for fn in cached:
        fn.cache_clear()
    yield
    for fn in cached:
        fn.cache_clear()


# --- Time ---

class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


# --- Domain helpers ---

@pytest.fixture
def scorer():
    return MatchScorer()


def make_recipe(recipe_id: str, ingredients: list[str], **kwargs) -> Recipe:
    return Recipe(
        id=recipe_id,
        name=kwargs.pop("name", f"Recipe {recipe_id}"),
        ingredients=ingredients,
        instructions=kwargs.pop("instructions", ["Cook."]),
        **kwargs,
    )


@pytest.fixture
def recipe_factory():
    return make_recipe
