import sys
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from credifin.domain.leads import service as lead_service
from credifin.domain.leads.repo import LeadRecord
from credifin.main import app
from credifin.settings import settings

TEST_SECRET = "test-signing-secret"
_LEAD_COLUMNS = tuple(LeadRecord.__dataclass_fields__)


class LeadStore:
    """In-memory stand-in for the leads table."""

    def __init__(self) -> None:
        self.rows: list[dict[str, object]] = []
        self.fail_inserts = False

    def newest(self, predicate) -> dict[str, object] | None:
        matches = [row for row in self.rows if predicate(row)]
        if not matches:
            return None
        return max(matches, key=lambda row: row["created_at"])


class DummyConnection:
    def __init__(self, store: LeadStore) -> None:
        self.store = store

    async def fetchrow(self, query: str, *params):
        if "COALESCE(product_slug, loan_type) = $2" in query:
            phone, product, since = params
            row = self.store.newest(
                lambda r: r["phone"] == phone
                and (r["product_slug"] or r["loan_type"]) == product
                and r["created_at"] >= since
            )
        elif "WHERE phone = $1 AND created_at >= $2" in query:
            phone, since = params
            row = self.store.newest(lambda r: r["phone"] == phone and r["created_at"] >= since)
        else:
            raise AssertionError(f"unexpected fetchrow: {query}")
        return {"id": row["id"]} if row else None

    async def execute(self, query: str, *params):
        if not query.strip().upper().startswith("INSERT INTO LEADS"):
            raise AssertionError(f"unexpected execute: {query}")
        if self.store.fail_inserts:
            raise ConnectionRefusedError("database is down")
        self.store.rows.append(dict(zip(_LEAD_COLUMNS, params)))
        return "INSERT 0 1"


class DummyPool:
    def __init__(self, store: LeadStore) -> None:
        self._conn = DummyConnection(store)

    def acquire(self):
        conn = self._conn

        class _Ctx:
            async def __aenter__(self_inner):
                return conn

            async def __aexit__(self_inner, exc_type, exc, tb):
                return False

        return _Ctx()


class DownPipeline:
    """Pipeline whose execute fails as if Redis were unreachable."""

    def __getattr__(self, item):
        return lambda *args, **kwargs: self

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def execute(self):
        raise RedisConnectionError("redis is down")


class DownRedis:
    def pipeline(self, transaction: bool = True):
        return DownPipeline()

    async def set(self, *args, **kwargs):
        raise RedisConnectionError("redis is down")

    async def delete(self, *args, **kwargs):
        raise RedisConnectionError("redis is down")


@pytest.fixture(autouse=True)
def fake_redis():
    from credifin.infra.redis import redis_client, set_redis_client

    original = redis_client._client
    client = FakeRedis(server=FakeServer(), decode_responses=True)
    set_redis_client(client)
    try:
        yield client
    finally:
        set_redis_client(original)


@pytest.fixture
def redis_down():
    from credifin.infra.redis import set_redis_client

    set_redis_client(DownRedis())  # type: ignore[arg-type]


@pytest.fixture(autouse=True)
def lead_store(monkeypatch):
    store = LeadStore()
    pool = DummyPool(store)

    async def fake_get_pool():
        return pool

    monkeypatch.setattr(lead_service, "get_pool", fake_get_pool)
    return store


@pytest.fixture(autouse=True)
def force_test_settings(monkeypatch):
    """Dev mode with a fixed signing secret unless a test overrides it."""
    monkeypatch.setattr(settings, "environment", "dev")
    monkeypatch.setattr(settings, "otp_secret", TEST_SECRET)


@pytest_asyncio.fixture
async def api_client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
