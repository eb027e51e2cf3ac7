import fnmatch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base, get_db
from main import app
from models.category import Category
from models.language import Language
from models.user_profile import UserProfile
from routers import rate_limit
from services.cache import CacheStore, get_cache_store
from services.search import wait_for_pending_search_logs
from services.session_token import create_session_token


ADMIN_ID = "admin-user"
EDITOR_ID = "editor-user"
OTHER_EDITOR_ID = "other-editor"
VIEWER_ID = "viewer-user"


class FakeRedis:
    """In-memory stand-in for the redis.asyncio commands the app uses."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def scan_iter(self, match=None, count=None):
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def incr(self, key):
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    async def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    async def ping(self):
        return True

    async def aclose(self):
        return None


def auth_header(user_id, role):
    return {"Authorization": f"Bearer {create_session_token(user_id, role)['token']}"}


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache_store(fake_redis):
    return CacheStore(fake_redis, namespace="test:")


@pytest_asyncio.fixture
async def catalog_db(tmp_path):
    """Seeded SQLite catalog: two categories, two languages, four profiles."""
    db_path = tmp_path / "catalog.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with session_maker() as session:
        session.add_all(
            [
                Category(id=1, name="Finance", description="Money matters", sort_order=1),
                Category(id=2, name="Science", description="How things work", sort_order=2),
                Language(id=1, name="English", code="en", sort_order=1),
                Language(id=2, name="Arabic", code="ar", sort_order=2),
                UserProfile(id=ADMIN_ID, username="admin", role="admin"),
                UserProfile(id=EDITOR_ID, username="editor", role="editor"),
                UserProfile(id=OTHER_EDITOR_ID, username="other", role="editor"),
                UserProfile(id=VIEWER_ID, username="viewer", role="viewer"),
            ]
        )
        await session.commit()

    yield engine, session_maker

    await wait_for_pending_search_logs()
    await engine.dispose()


@pytest_asyncio.fixture
async def catalog_client(catalog_db, cache_store):
    _, session_maker = catalog_db

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_store] = lambda: cache_store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    await wait_for_pending_search_logs()
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_cache_store, None)
