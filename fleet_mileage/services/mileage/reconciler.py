"""
reconciler.py
────────────────────────────────────────────────────────────────────────────
• Rendimiento (km/L) por el método tanque a tanque.
• Cada viaje con carga de combustible es un "ancla": su rendimiento es la
  distancia recorrida desde el ancla anterior entre los litros cargados.
• Los viajes sin carga heredan el rendimiento del ancla más reciente.
• Cálculo puro: no hace I/O ni modifica los viajes recibidos.
"""

import math
import logging
import datetime
from collections import defaultdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional

from fleet_mileage.services.mileage.fuel import total_fuel
from fleet_mileage.services.mileage.schemas import MileageComputation, ReconciledTrip
from fleet_mileage.services.trips.schemas import TripRecord
from fleet_mileage.utils import parse_fecha

logger = logging.getLogger(__name__)

_EPOCH = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)


def round_kmpl(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def trip_sort_key(trip: TripRecord):
    # Empates en trip_end_date: created_at y luego id
    end_date = parse_fecha(trip.trip_end_date)
    created = parse_fecha(trip.created_at)
    return (
        end_date is None,
        end_date or _EPOCH,
        created or _EPOCH,
        str(trip.id),
    )


def group_trips_by_vehicle(trips: Iterable[TripRecord]) -> Dict[str, List[TripRecord]]:
    """vehicle_id -> viajes de ese vehículo en orden cronológico."""
    grouped: Dict[str, List[TripRecord]] = defaultdict(list)
    for trip in trips:
        grouped[trip.vehicle_id].append(trip)
    return {vehicle_id: sorted(items, key=trip_sort_key) for vehicle_id, items in grouped.items()}


def _is_number(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def _malformed_reason(trip: TripRecord, is_first_fill: bool) -> Optional[str]:
    if trip.trip_end_date is None:
        return "sin trip_end_date"
    if not _is_number(trip.end_km):
        return "end_km inválido"
    if is_first_fill and not _is_number(trip.start_km):
        return "start_km inválido"
    return None


def reconcile_sorted(trips: List[TripRecord]) -> List[ReconciledTrip]:
    """Recorre viajes ya ordenados de UN vehículo y calcula `calculated_kmpl`."""
    results: List[ReconciledTrip] = []
    last_refuel: Optional[TripRecord] = None

    for trip in trips:
        fuel = total_fuel(trip)
        trip_distance = (
            trip.end_km - trip.start_km
            if _is_number(trip.start_km) and _is_number(trip.end_km)
            else None
        )
        computation = MileageComputation(
            trip_id=trip.id,
            vehicle_id=trip.vehicle_id,
            outcome="no_anchor",
            fuel=fuel,
            trip_distance=trip_distance,
        )

        reason = None
        if trip.refueling_done and fuel > 0:
            reason = _malformed_reason(trip, is_first_fill=last_refuel is None)
            if reason:
                logger.warning(
                    "Viaje %s (vehículo %s) malformado: %s; se trata como viaje sin carga",
                    trip.label, trip.vehicle_id, reason,
                )

        if trip.refueling_done and fuel > 0 and reason is None:
            if last_refuel is None:
                distance = trip_distance
                computation.outcome = "first_fill"
            else:
                distance = trip.end_km - last_refuel.end_km
                computation.outcome = "tank_to_tank"
                computation.anchor_id = last_refuel.id
                computation.anchor_end_km = last_refuel.end_km

            kmpl = None
            if distance > 0:
                kmpl = round_kmpl(distance / fuel) or None  # 0.00 tampoco es un rendimiento
            else:
                computation.outcome = "non_positive_distance"

            updated = trip.model_copy(update={"calculated_kmpl": kmpl})
            computation.distance = distance
            computation.is_anchor = True
            computation.calculated_kmpl = kmpl
            last_refuel = updated
        else:
            inherited = last_refuel.calculated_kmpl if last_refuel is not None else None
            updated = trip.model_copy(update={"calculated_kmpl": inherited})
            if reason:
                computation.outcome = "malformed"
            elif last_refuel is not None:
                computation.outcome = "inherited"
            computation.anchor_id = last_refuel.id if last_refuel is not None else None
            computation.calculated_kmpl = inherited

        results.append(ReconciledTrip(trip=updated, computation=computation))

    return results


def reconcile_vehicle(vehicle_id: str, all_trips: Iterable[TripRecord]) -> List[ReconciledTrip]:
    vehicle_trips = sorted(
        (t for t in all_trips if t.vehicle_id == vehicle_id),
        key=trip_sort_key,
    )
    return reconcile_sorted(vehicle_trips)


def reconcile(vehicle_id: str, all_trips: Iterable[TripRecord]) -> List[TripRecord]:
    """Viajes del vehículo (orden cronológico) con `calculated_kmpl` corregido.

    Devuelve todos los viajes, hayan cambiado o no; el diff lo hace el
    corrector.
    """
    return [r.trip for r in reconcile_vehicle(vehicle_id, all_trips)]


def reconcile_all(all_trips: Iterable[TripRecord]) -> Dict[str, List[ReconciledTrip]]:
    return {
        vehicle_id: reconcile_sorted(trips)
        for vehicle_id, trips in group_trips_by_vehicle(all_trips).items()
    }
