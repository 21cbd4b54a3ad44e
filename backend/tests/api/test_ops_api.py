import pytest

from credifin.settings import settings


@pytest.mark.asyncio
async def test_liveness(api_client):
    response = await api_client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_metrics_private_without_token(api_client, monkeypatch):
    monkeypatch.setattr(settings, "obs_metrics_public", False)
    monkeypatch.setattr(settings, "obs_admin_token", None)
    response = await api_client.get("/metrics")
    assert response.status_code == 403
    assert response.json()["error"] == "admin_token_not_configured"


@pytest.mark.asyncio
async def test_metrics_with_admin_token(api_client, monkeypatch):
    monkeypatch.setattr(settings, "obs_metrics_public", False)
    monkeypatch.setattr(settings, "obs_admin_token", "ops-token")

    denied = await api_client.get("/metrics", headers={"X-Admin-Token": "wrong"})
    assert denied.status_code == 403

    await api_client.post("/otp/send", json={"phone": "9876543210"})
    allowed = await api_client.get("/metrics", headers={"Authorization": "Bearer ops-token"})
    assert allowed.status_code == 200
    assert "credifin_otp_events_total" in allowed.text


class _SchemaConnection:
    def __init__(self, version):
        self.version = version

    async def fetchval(self, query: str):
        assert "schema_migrations" in query
        return self.version


class _SchemaPool:
    def __init__(self, version):
        self._conn = _SchemaConnection(version)

    def acquire(self):
        conn = self._conn

        class _Ctx:
            async def __aenter__(self_inner):
                return conn

            async def __aexit__(self_inner, exc_type, exc, tb):
                return False

        return _Ctx()


def _patch_pool(monkeypatch, pool=None, error=None):
    from credifin.infra import postgres

    async def fake_get_pool():
        if error is not None:
            raise error
        return pool

    monkeypatch.setattr(postgres, "get_pool", fake_get_pool)


@pytest.mark.asyncio
async def test_ready_with_migrated_database(api_client, monkeypatch):
    _patch_pool(monkeypatch, pool=_SchemaPool("0001"))
    response = await api_client.get("/health/ready")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["checks"]["postgres"]["schema"] == "0001"


@pytest.mark.asyncio
async def test_not_ready_without_database(api_client, monkeypatch):
    _patch_pool(monkeypatch, error=ConnectionRefusedError("database is down"))
    response = await api_client.get("/health/ready")
    assert response.status_code == 503
    assert response.json()["checks"]["postgres"]["ok"] is False


@pytest.mark.asyncio
async def test_not_ready_before_migrations(api_client, monkeypatch):
    _patch_pool(monkeypatch, pool=_SchemaPool(None))
    response = await api_client.get("/health/ready")
    assert response.status_code == 503


@pytest.mark.asyncio
async def test_redis_outage_only_degrades(api_client, monkeypatch, fake_redis):
    from credifin.infra.redis import set_redis_client

    class _DeadPing:
        async def ping(self):
            raise ConnectionRefusedError("redis is down")

        def __getattr__(self, item):
            return getattr(fake_redis, item)

    _patch_pool(monkeypatch, pool=_SchemaPool("0001"))
    set_redis_client(_DeadPing())
    response = await api_client.get("/health/ready")
    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
