import json
import logging
from typing import List, Optional, Protocol

from pydantic import ValidationError
from sqlalchemy import func, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleet_mileage.db.model_list import Trip
from fleet_mileage.services.mileage.exceptions import TripStoreReadError, TripStoreWriteError
from fleet_mileage.services.trips.schemas import TripRecord

logger = logging.getLogger(__name__)

_TRIPS_QUERY = """
    SELECT t.id, t.vehicle_id, t.driver_id, t.trip_serial_number,
           t.trip_end_date, t.start_km, t.end_km, t.refueling_done,
           t.fuel_quantity, t.calculated_kmpl, t.created_at,
           COALESCE(
               json_agg(
                   json_build_object('id', r.id, 'fuel_quantity', r.fuel_quantity)
                   ORDER BY r.created_at
               ) FILTER (WHERE r.id IS NOT NULL),
               '[]'
           ) AS refuelings
    FROM trips t
    LEFT JOIN refuelings r ON r.trip_id = t.id
    {where}
    GROUP BY t.id
    ORDER BY t.trip_end_date ASC, t.created_at ASC, t.id ASC
"""


class TripRepository(Protocol):
    async def list_trips(self) -> List[TripRecord]: ...

    async def list_trips_for_vehicle(self, vehicle_id: str) -> List[TripRecord]: ...

    async def update_calculated_kmpl(self, trip_id: str, value: Optional[float]) -> None: ...


def _row_to_trip(row) -> Optional[TripRecord]:
    data = dict(row._mapping)
    refuelings = data.get("refuelings")
    if isinstance(refuelings, str):
        refuelings = json.loads(refuelings)
    data["refuelings"] = refuelings or None
    for key in ("id", "vehicle_id", "driver_id"):
        if data.get(key) is not None:
            data[key] = str(data[key])
    try:
        return TripRecord.model_validate(data)
    except ValidationError:
        logger.exception("Viaje %s descartado: fila con datos inválidos", data.get("id"))
        return None


class SqlTripRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _fetch(self, where: str = "", params: Optional[dict] = None) -> List[TripRecord]:
        query = text(_TRIPS_QUERY.format(where=where))
        try:
            async with self.session_factory() as session:
                result = await session.execute(query, params or {})
                rows = result.fetchall()
        except (SQLAlchemyError, OSError) as exc:
            raise TripStoreReadError(f"Fallo leyendo viajes: {exc}") from exc

        trips = [_row_to_trip(r) for r in rows]
        return [t for t in trips if t is not None]

    async def list_trips(self) -> List[TripRecord]:
        return await self._fetch()

    async def list_trips_for_vehicle(self, vehicle_id: str) -> List[TripRecord]:
        return await self._fetch("WHERE t.vehicle_id = :vehicle_id", {"vehicle_id": vehicle_id})

    async def update_calculated_kmpl(self, trip_id: str, value: Optional[float]) -> None:
        stmt = (
            update(Trip)
            .where(Trip.id == trip_id)
            .values(calculated_kmpl=value, updated_at=func.now())
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise TripStoreWriteError(trip_id, str(exc)) from exc

        if result.rowcount == 0:
            raise TripStoreWriteError(trip_id, f"El viaje {trip_id} no existe")
