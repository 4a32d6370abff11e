class MileageError(Exception):
    """Base de los errores del motor de rendimiento."""


class TripStoreReadError(MileageError):
    """No se pudieron leer los viajes; sin datos no hay conciliación."""


class TripStoreWriteError(MileageError):
    def __init__(self, trip_id: str, message: str = ""):
        self.trip_id = trip_id
        super().__init__(message or f"No se pudo actualizar el viaje {trip_id}")
