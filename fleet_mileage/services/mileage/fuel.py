from fleet_mileage.services.trips.schemas import TripRecord


def total_fuel(trip: TripRecord) -> float:
    """Litros cargados en el viaje.

    Suma los tickets de carga (`refuelings`) cuando existen y dan un total
    positivo; si no, usa el campo heredado `fuel_quantity`. Nunca falla: en
    el peor caso devuelve 0.
    """
    if trip.refuelings:
        slips_total = sum((slip.fuel_quantity or 0.0) for slip in trip.refuelings)
        if slips_total > 0:
            return float(slips_total)

    legacy = trip.fuel_quantity or 0.0
    return float(legacy) if legacy > 0 else 0.0
