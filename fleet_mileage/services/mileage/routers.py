from fastapi import APIRouter, Depends, HTTPException

from fleet_mileage.services.diagnostics.analyzer import summarize_anomalies
from fleet_mileage.services.diagnostics.schemas import DiagnosticSummary
from fleet_mileage.services.mileage.corrector import BatchCorrector
from fleet_mileage.services.mileage.exceptions import TripStoreReadError
from fleet_mileage.services.mileage.jobs import get_corrector, repair_all_mileage, request_repair_stop
from fleet_mileage.services.mileage.reconciler import reconcile_all
from fleet_mileage.services.mileage.schemas import BulkCorrectionResult, CorrectionResult

router = APIRouter()


@router.post("/vehicles/{vehicle_id}/recalculate", response_model=CorrectionResult)
async def recalculate_vehicle(vehicle_id: str, corrector: BatchCorrector = Depends(get_corrector)):
    try:
        return await corrector.recalculate_vehicle(vehicle_id)
    except TripStoreReadError as exc:
        raise HTTPException(status_code=503, detail=str(exc))


@router.post("/repair", response_model=BulkCorrectionResult)
async def repair_all(corrector: BatchCorrector = Depends(get_corrector)):
    try:
        result = await repair_all_mileage(corrector)
    except TripStoreReadError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    if result is None:
        raise HTTPException(status_code=409, detail="Ya hay un recalculo de rendimiento en curso")
    return result


@router.post("/repair/stop")
async def stop_repair():
    await request_repair_stop()
    return {"status": "stop_requested"}


@router.get("/diagnostics", response_model=DiagnosticSummary)
async def diagnostics(corrector: BatchCorrector = Depends(get_corrector)):
    try:
        trips = await corrector.repository.list_trips()
    except TripStoreReadError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return summarize_anomalies(reconcile_all(trips))
