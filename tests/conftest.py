import pytest
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from fleet_mileage.config import settings
from fleet_mileage.services.audit_trail.service import AuditTrailLogger
from fleet_mileage.services.mileage.exceptions import TripStoreReadError, TripStoreWriteError
from fleet_mileage.services.trips.schemas import RefuelingSlip, TripRecord

BASE_DATE = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)


def make_trip(
    trip_id: str,
    day: int,
    start_km: Optional[float],
    end_km: Optional[float],
    refueling_done: bool = False,
    fuel: Optional[float] = None,
    slips: Optional[List[Optional[float]]] = None,
    vehicle_id: str = "V1",
    calculated_kmpl: Optional[float] = None,
) -> TripRecord:
    return TripRecord(
        id=trip_id,
        vehicle_id=vehicle_id,
        trip_end_date=BASE_DATE + timedelta(days=day),
        start_km=start_km,
        end_km=end_km,
        refueling_done=refueling_done,
        fuel_quantity=fuel,
        refuelings=[RefuelingSlip(fuel_quantity=q) for q in slips] if slips is not None else None,
        calculated_kmpl=calculated_kmpl,
    )


class InMemoryTripRepository:
    def __init__(self, trips: List[TripRecord]):
        self.trips: Dict[str, TripRecord] = {t.id: t for t in trips}
        self.updates: List[tuple] = []
        self.failing_ids: set = set()
        self.transient_failures: Dict[str, int] = {}
        self.write_attempts: Dict[str, int] = {}
        self.fail_reads = False

    async def list_trips(self) -> List[TripRecord]:
        if self.fail_reads:
            raise TripStoreReadError("base de datos no disponible")
        return sorted(self.trips.values(), key=lambda t: t.trip_end_date)

    async def list_trips_for_vehicle(self, vehicle_id: str) -> List[TripRecord]:
        return [t for t in await self.list_trips() if t.vehicle_id == vehicle_id]

    async def update_calculated_kmpl(self, trip_id: str, value: Optional[float]) -> None:
        self.write_attempts[trip_id] = self.write_attempts.get(trip_id, 0) + 1
        if trip_id in self.failing_ids:
            raise TripStoreWriteError(trip_id)
        if self.transient_failures.get(trip_id, 0) > 0:
            self.transient_failures[trip_id] -= 1
            raise TripStoreWriteError(trip_id, "conexión perdida")
        self.updates.append((trip_id, value))
        self.trips[trip_id] = self.trips[trip_id].model_copy(update={"calculated_kmpl": value})


class FakeAuditClient:
    def __init__(self, fail_times: int = 0):
        self.fail_times = fail_times
        self.calls = 0
        self.sent = []

    async def send(self, entry):
        self.calls += 1
        if self.calls <= self.fail_times:
            raise ConnectionError("audit sink caído")
        self.sent.append(entry)
        return {"id": str(self.calls)}


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    monkeypatch.setattr(settings, "AUDIT_RETRY_MAX_WAIT_SECONDS", 0)
    monkeypatch.setattr(settings, "AUDIT_RETRY_ATTEMPTS", 3)
    monkeypatch.setattr(settings, "MILEAGE_WRITE_RETRY_MAX_WAIT_SECONDS", 0)
    monkeypatch.setattr(settings, "MILEAGE_WRITE_RETRY_ATTEMPTS", 3)


@pytest.fixture
def scenario_trips() -> List[TripRecord]:
    return [
        make_trip("A", 1, 1000, 1100, refueling_done=True, fuel=10),
        make_trip("B", 2, 1100, 1250),
        make_trip("C", 3, 1250, 1450, refueling_done=True, fuel=20),
        make_trip("D", 4, 1450, 1450, refueling_done=True, fuel=5),
        make_trip("E", 5, 1450, 1600),
    ]


@pytest.fixture
def audit_client() -> FakeAuditClient:
    return FakeAuditClient()


@pytest.fixture
def audit(audit_client) -> AuditTrailLogger:
    return AuditTrailLogger(client=audit_client, buffer_size=5)
