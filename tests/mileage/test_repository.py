import pytest
from datetime import datetime, timezone
from types import SimpleNamespace

from sqlalchemy.exc import OperationalError

from fleet_mileage.services.mileage.exceptions import TripStoreReadError, TripStoreWriteError
from fleet_mileage.services.trips.repository import SqlTripRepository, _row_to_trip


def fake_row(**fields):
    return SimpleNamespace(_mapping=fields)


class FakeResult:
    def __init__(self, rows=None, rowcount=1):
        self._rows = rows or []
        self.rowcount = rowcount

    def fetchall(self):
        return self._rows


class FakeSession:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.executed = []
        self.committed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, query, params=None):
        if self.error:
            raise self.error
        self.executed.append((str(query), params))
        return self.result

    async def commit(self):
        self.committed = True


def test_row_with_json_refuelings_is_parsed():
    trip = _row_to_trip(fake_row(
        id=7, vehicle_id=3, trip_end_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        start_km=10, end_km=110, refueling_done=True, fuel_quantity=None,
        calculated_kmpl=None, refuelings='[{"id": "r1", "fuel_quantity": 10}]',
    ))

    assert trip.id == "7"
    assert trip.vehicle_id == "3"
    assert trip.refuelings[0].fuel_quantity == 10


def test_empty_refuelings_become_none():
    trip = _row_to_trip(fake_row(id="t", vehicle_id="v", refuelings=[]))
    assert trip.refuelings is None


def test_invalid_row_is_skipped():
    assert _row_to_trip(fake_row(id="t", vehicle_id=None)) is None


@pytest.mark.asyncio
async def test_read_errors_are_wrapped():
    session = FakeSession(error=OperationalError("SELECT", {}, Exception("down")))
    repo = SqlTripRepository(lambda: session)

    with pytest.raises(TripStoreReadError):
        await repo.list_trips()


@pytest.mark.asyncio
async def test_vehicle_filter_is_parameterized():
    session = FakeSession(result=FakeResult([fake_row(id="t", vehicle_id="V1")]))
    repo = SqlTripRepository(lambda: session)

    trips = await repo.list_trips_for_vehicle("V1")

    assert [t.id for t in trips] == ["t"]
    query, params = session.executed[0]
    assert "t.vehicle_id = :vehicle_id" in query
    assert params == {"vehicle_id": "V1"}


@pytest.mark.asyncio
async def test_update_commits_point_write():
    session = FakeSession(result=FakeResult(rowcount=1))
    repo = SqlTripRepository(lambda: session)

    await repo.update_calculated_kmpl("t1", 12.5)

    assert session.committed
    statement = session.executed[0][0]
    assert statement.startswith("UPDATE trips SET calculated_kmpl=")
    assert "WHERE trips.id =" in statement


@pytest.mark.asyncio
async def test_update_of_missing_trip_fails():
    repo = SqlTripRepository(lambda: FakeSession(result=FakeResult(rowcount=0)))

    with pytest.raises(TripStoreWriteError) as exc:
        await repo.update_calculated_kmpl("ghost", None)
    assert exc.value.trip_id == "ghost"


@pytest.mark.asyncio
async def test_connection_errors_are_wrapped_as_read_errors():
    repo = SqlTripRepository(lambda: FakeSession(error=ConnectionRefusedError("5432 rechazado")))

    with pytest.raises(TripStoreReadError):
        await repo.list_trips()
