import pytest
from fastapi.testclient import TestClient

from fleet_mileage.main import app
from fleet_mileage.services.mileage import jobs
from fleet_mileage.services.mileage.corrector import BatchCorrector
from fleet_mileage.services.mileage.jobs import get_corrector
from fleet_mileage.services.trips.repository import SqlTripRepository
from tests.conftest import InMemoryTripRepository


class FakeRedis:
    def __init__(self):
        self.data = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    async def delete(self, key):
        self.data.pop(key, None)


@pytest.fixture
def fake_redis(monkeypatch):
    redis = FakeRedis()
    monkeypatch.setattr(jobs, "get_redis_client", lambda: redis)
    return redis


@pytest.fixture
def repo(scenario_trips):
    return InMemoryTripRepository(scenario_trips)


@pytest.fixture
def client(repo, audit):
    app.dependency_overrides[get_corrector] = lambda: BatchCorrector(repo, audit=audit, batch_delay=0)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_repair_job_runs_once_at_a_time(fake_redis, repo, audit):
    corrector = BatchCorrector(repo, audit=audit, batch_delay=0)
    fake_redis.data[jobs.REDIS_REPAIR_LOCK_KEY] = "other-run"

    assert await jobs.repair_all_mileage(corrector) is None
    assert repo.updates == []

    del fake_redis.data[jobs.REDIS_REPAIR_LOCK_KEY]
    result = await jobs.repair_all_mileage(corrector)

    assert result.updated_count == 3
    assert jobs.REDIS_REPAIR_LOCK_KEY not in fake_redis.data


@pytest.mark.asyncio
async def test_stale_stop_flag_is_cleared_before_run(fake_redis, repo, audit):
    await jobs.request_repair_stop()
    result = await jobs.repair_all_mileage(BatchCorrector(repo, audit=audit, batch_delay=0))

    assert not result.stopped
    assert not await jobs.repair_stop_requested()


def test_health_check(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json()["status"] == "online"


def test_recalculate_vehicle_endpoint(client, repo):
    r = client.post("/api/mileage/vehicles/V1/recalculate")

    assert r.status_code == 200
    body = r.json()
    assert body["updated_count"] == 3
    assert body["failed_ids"] == []
    assert repo.trips["C"].calculated_kmpl == 17.5


def test_read_failure_maps_to_503(client, repo):
    repo.fail_reads = True
    r = client.post("/api/mileage/vehicles/V1/recalculate")
    assert r.status_code == 503


def test_repair_endpoint(client, fake_redis):
    r = client.post("/api/mileage/repair")
    assert r.status_code == 200
    assert r.json()["updated_count"] == 3


def test_repair_endpoint_conflict(client, fake_redis):
    fake_redis.data[jobs.REDIS_REPAIR_LOCK_KEY] = "other-run"
    r = client.post("/api/mileage/repair")
    assert r.status_code == 409


def test_stop_endpoint_sets_flag(client, fake_redis):
    r = client.post("/api/mileage/repair/stop")
    assert r.status_code == 200
    assert fake_redis.data[jobs.REDIS_REPAIR_STOP_KEY] == "1"


def test_diagnostics_endpoint(client):
    r = client.get("/api/mileage/diagnostics")
    assert r.status_code == 200
    body = r.json()
    assert body["total_anomalies"] == 1
    assert body["by_issue_type"] == {"negative_distance": 1}


def test_unreachable_database_maps_to_503(client):
    repo_sql = SqlTripRepository(lambda: _RefusedSession())
    app.dependency_overrides[get_corrector] = lambda: BatchCorrector(repo_sql, batch_delay=0)

    r = client.get("/api/mileage/diagnostics")
    assert r.status_code == 503


class _RefusedSession:
    async def __aenter__(self):
        raise ConnectionRefusedError("5432 rechazado")

    async def __aexit__(self, *exc):
        return False
