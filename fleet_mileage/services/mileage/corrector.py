"""
corrector.py
────────────────────────────────────────────────────────────────────────────
• Compara el resultado del conciliador contra lo guardado y actualiza SOLO
  los viajes cuyo `calculated_kmpl` cambió.
• Una escritura fallida se reintenta; si persiste, el viaje se reporta y no
  detiene a los demás.
• Vehículos en paralelo (Semaphore), escrituras de un mismo vehículo en serie.
"""

import asyncio
import logging
from asyncio import Semaphore, gather
from typing import Awaitable, Callable, Iterable, List, Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from fleet_mileage.config import settings
from fleet_mileage.services.audit_trail.service import AuditTrailLogger, audit_trail_logger
from fleet_mileage.services.mileage.exceptions import TripStoreWriteError
from fleet_mileage.services.mileage.reconciler import group_trips_by_vehicle, reconcile
from fleet_mileage.services.mileage.schemas import (
    BulkCorrectionResult,
    CorrectionResult,
    TripCorrection,
)
from fleet_mileage.services.trips.repository import TripRepository
from fleet_mileage.services.trips.schemas import TripRecord

logger = logging.getLogger(__name__)

StopSignal = Callable[[], Awaitable[bool]]


def kmpl_changed(before: Optional[float], after: Optional[float]) -> bool:
    if before is None and after is None:
        return False
    return before != after


class BatchCorrector:
    def __init__(
        self,
        repository: TripRepository,
        audit: Optional[AuditTrailLogger] = None,
        max_concurrency: Optional[int] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
    ):
        self.repository = repository
        self.audit = audit if audit is not None else audit_trail_logger
        self.max_concurrency = max_concurrency or settings.MILEAGE_MAX_CONCURRENCY
        self.batch_size = batch_size or settings.MILEAGE_BATCH_SIZE
        self.batch_delay = settings.MILEAGE_BATCH_DELAY_SECONDS if batch_delay is None else batch_delay

    def pending_corrections(self, vehicle_id: str, all_trips: Iterable[TripRecord]) -> List[TripCorrection]:
        all_trips = list(all_trips)
        stored = {t.id: t.calculated_kmpl for t in all_trips if t.vehicle_id == vehicle_id}
        return [
            TripCorrection(
                trip_id=trip.id,
                vehicle_id=vehicle_id,
                before=stored.get(trip.id),
                after=trip.calculated_kmpl,
            )
            for trip in reconcile(vehicle_id, all_trips)
            if kmpl_changed(stored.get(trip.id), trip.calculated_kmpl)
        ]

    async def _write(self, trip_id: str, value: Optional[float]):
        # solo errores del almacén se reintentan; el último se propaga
        retrying = AsyncRetrying(
            stop=stop_after_attempt(settings.MILEAGE_WRITE_RETRY_ATTEMPTS),
            wait=wait_exponential(multiplier=1, max=settings.MILEAGE_WRITE_RETRY_MAX_WAIT_SECONDS),
            retry=retry_if_exception_type(TripStoreWriteError),
            before_sleep=lambda state: logger.warning(
                "Reintentando escritura del viaje %s (intento %s): %s",
                trip_id, state.attempt_number, state.outcome.exception(),
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self.repository.update_calculated_kmpl(trip_id, value)

    async def apply_corrections(self, vehicle_id: str, all_trips: Iterable[TripRecord]) -> CorrectionResult:
        result = CorrectionResult(vehicle_id=vehicle_id)

        for correction in self.pending_corrections(vehicle_id, all_trips):
            try:
                await self._write(correction.trip_id, correction.after)
            except Exception:
                logger.exception(
                    "Fallo actualizando viaje %s (vehículo %s)", correction.trip_id, vehicle_id
                )
                result.failed_ids.append(correction.trip_id)
                continue

            result.updated_count += 1
            result.corrections.append(correction)
            logger.debug(
                "Viaje %s: %s -> %s km/L", correction.trip_id, correction.before, correction.after
            )
            try:
                self.audit.log_correction(correction.trip_id, correction.before, correction.after)
            except Exception:
                logger.exception("No se registró la auditoría del viaje %s", correction.trip_id)

        if result.updated_count or result.failed_ids:
            logger.info(
                "Vehículo %s: %s viajes corregidos, %s con error",
                vehicle_id, result.updated_count, len(result.failed_ids),
            )
        return result

    async def recalculate_vehicle(self, vehicle_id: str) -> CorrectionResult:
        trips = await self.repository.list_trips_for_vehicle(vehicle_id)
        return await self.apply_corrections(vehicle_id, trips)

    async def _stop_requested(self, should_stop: Optional[StopSignal]) -> bool:
        if should_stop is None:
            return False
        try:
            return await should_stop()
        except Exception:
            logger.exception("No se pudo consultar la señal de stop; se continúa")
            return False

    async def run_bulk_correction(self, should_stop: Optional[StopSignal] = None) -> BulkCorrectionResult:
        # ── 1. Lectura completa; si falla no se concilia nada ─────────────
        trips = await self.repository.list_trips()
        by_vehicle = group_trips_by_vehicle(trips)
        vehicle_ids = list(by_vehicle)

        bulk = BulkCorrectionResult(vehicles_total=len(vehicle_ids))
        logger.info("Recalculo de rendimiento: %s viajes, %s vehículos", len(trips), len(vehicle_ids))

        sem = Semaphore(self.max_concurrency)

        async def process(vehicle_id: str) -> CorrectionResult:
            async with sem:
                return await self.apply_corrections(vehicle_id, by_vehicle[vehicle_id])

        # ── 2. Lotes de vehículos con pausa entre lotes ──────────────────
        batches = [
            vehicle_ids[i:i + self.batch_size]
            for i in range(0, len(vehicle_ids), self.batch_size)
        ]
        try:
            for n, batch in enumerate(batches):
                if await self._stop_requested(should_stop):
                    logger.warning(
                        "Recalculo detenido: %s de %s vehículos procesados",
                        bulk.vehicles_processed, bulk.vehicles_total,
                    )
                    bulk.stopped = True
                    break

                outcomes = await gather(*(process(v) for v in batch), return_exceptions=True)
                for vehicle_id, outcome in zip(batch, outcomes):
                    if isinstance(outcome, Exception):
                        logger.error("Fallo conciliando vehículo %s: %r", vehicle_id, outcome)
                        bulk.failed_ids.extend(t.id for t in by_vehicle[vehicle_id])
                        continue
                    bulk.updated_count += outcome.updated_count
                    bulk.failed_ids.extend(outcome.failed_ids)
                    if outcome.updated_count or outcome.failed_ids:
                        bulk.results.append(outcome)
                bulk.vehicles_processed += len(batch)

                if self.batch_delay and n < len(batches) - 1:
                    await asyncio.sleep(self.batch_delay)
        finally:
            await self.audit.flush()

        logger.info(
            "Recalculo terminado: %s viajes actualizados, %s con error",
            bulk.updated_count, len(bulk.failed_ids),
        )
        return bulk
