"""
analyzer.py
────────────────────────────────────────────────────────────────────────────
• Revisa los viajes con carga ya conciliados y marca resultados sospechosos
  (rendimientos irreales, distancias negativas, cargas parciales).
• Sólo clasifica; no corrige ni emite alertas.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from fleet_mileage.services.diagnostics.schemas import (
    DiagnosticSummary,
    MileageAnomaly,
    VehicleMileageReport,
)
from fleet_mileage.services.mileage.schemas import ReconciledTrip

logger = logging.getLogger(__name__)

EXTREMELY_HIGH_KMPL = 100.0
VERY_HIGH_KMPL = 50.0
ELEVATED_KMPL = 25.0
VERY_LOW_KMPL = 2.0

COLUMNS = [
    "trip_id", "vehicle_id", "is_anchor", "fuel", "trip_distance",
    "distance", "calculated_kmpl",
]


def _classify(row: pd.Series) -> Optional[Tuple[str, str, str]]:
    kmpl = row["calculated_kmpl"]
    dist = row["distance"]
    trip_dist = row["trip_distance"]

    def partial(factor: float) -> bool:
        return pd.notna(dist) and pd.notna(trip_dist) and dist > trip_dist * factor

    if kmpl > EXTREMELY_HIGH_KMPL:
        if partial(2):
            return "partial_fill", "critical", (
                f"Carga parcial: {kmpl:.2f} km/L ({dist:.0f} km con {row['fuel']:.2f} L)"
            )
        return "extremely_high", "critical", f"Rendimiento irreal: {kmpl:.2f} km/L"
    if kmpl > VERY_HIGH_KMPL:
        if partial(1.5):
            return "partial_fill", "warning", f"Posible carga parcial: {kmpl:.2f} km/L"
        return "very_high", "warning", f"Rendimiento alto: {kmpl:.2f} km/L"
    if kmpl > ELEVATED_KMPL:
        return "elevated", "warning", f"Rendimiento elevado: {kmpl:.2f} km/L"
    if 0 < kmpl < VERY_LOW_KMPL:
        return "very_low", "critical", f"Rendimiento muy bajo: {kmpl:.2f} km/L"
    if pd.notna(dist) and dist <= 0:
        return "negative_distance", "critical", f"Distancia inválida: {dist:.0f} km"
    return None


def computations_frame(reconciled: Iterable[ReconciledTrip]) -> pd.DataFrame:
    rows = [r.computation.model_dump(include=set(COLUMNS)) for r in reconciled]
    df = pd.DataFrame(rows, columns=COLUMNS)
    for col in ("fuel", "trip_distance", "distance", "calculated_kmpl"):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    return df


def analyze_vehicle_mileage(vehicle_id: str, reconciled: List[ReconciledTrip]) -> VehicleMileageReport:
    df = computations_frame(reconciled)
    anchors = df[df["is_anchor"].astype(bool)]

    # promedio sin valores atípicos
    valid = anchors["calculated_kmpl"]
    valid = valid[(valid > 0) & (valid < VERY_HIGH_KMPL)]

    report = VehicleMileageReport(
        vehicle_id=vehicle_id,
        total_trips=len(df),
        refueling_trips=len(anchors),
        average_kmpl=round(float(valid.mean()), 2) if not valid.empty else None,
        min_kmpl=float(valid.min()) if not valid.empty else None,
        max_kmpl=float(valid.max()) if not valid.empty else None,
    )

    if anchors.empty:
        return report

    classified = anchors.apply(_classify, axis=1)
    for idx, found in classified.items():
        if found is None:
            continue
        issue_type, severity, message = found
        row = anchors.loc[idx]
        report.anomalies.append(
            MileageAnomaly(
                trip_id=row["trip_id"],
                vehicle_id=vehicle_id,
                issue_type=issue_type,
                severity=severity,
                calculated_kmpl=None if pd.isna(row["calculated_kmpl"]) else float(row["calculated_kmpl"]),
                trip_distance=None if pd.isna(row["trip_distance"]) else float(row["trip_distance"]),
                tank_to_tank_distance=None if pd.isna(row["distance"]) else float(row["distance"]),
                fuel_quantity=float(row["fuel"]),
                message=message,
            )
        )

    for anomaly in report.anomalies:
        logger.debug("Anomalía %s en viaje %s: %s", anomaly.issue_type, anomaly.trip_id, anomaly.message)
    return report


def summarize_anomalies(reconciled_by_vehicle: Dict[str, List[ReconciledTrip]]) -> DiagnosticSummary:
    summary = DiagnosticSummary()
    for vehicle_id, reconciled in reconciled_by_vehicle.items():
        report = analyze_vehicle_mileage(vehicle_id, reconciled)
        summary.total_trips += report.total_trips
        summary.total_refueling_trips += report.refueling_trips
        for anomaly in report.anomalies:
            summary.total_anomalies += 1
            if anomaly.severity == "critical":
                summary.critical_anomalies += 1
            else:
                summary.warning_anomalies += 1
            summary.by_issue_type[anomaly.issue_type] = summary.by_issue_type.get(anomaly.issue_type, 0) + 1
        if report.anomalies:
            summary.vehicles.append(report)
    return summary
