from typing import List, Optional, Literal
from pydantic import BaseModel, Field

IssueType = Literal["extremely_high", "very_high", "elevated", "very_low", "partial_fill", "negative_distance"]
Severity = Literal["critical", "warning"]


class MileageAnomaly(BaseModel):
    trip_id: str
    vehicle_id: str
    issue_type: IssueType
    severity: Severity
    calculated_kmpl: Optional[float] = None
    trip_distance: Optional[float] = None
    tank_to_tank_distance: Optional[float] = None
    fuel_quantity: float
    message: str


class VehicleMileageReport(BaseModel):
    vehicle_id: str
    total_trips: int
    refueling_trips: int
    average_kmpl: Optional[float] = None
    min_kmpl: Optional[float] = None
    max_kmpl: Optional[float] = None
    anomalies: List[MileageAnomaly] = Field(default_factory=list)


class DiagnosticSummary(BaseModel):
    total_trips: int = 0
    total_refueling_trips: int = 0
    total_anomalies: int = 0
    critical_anomalies: int = 0
    warning_anomalies: int = 0
    by_issue_type: dict[str, int] = Field(default_factory=dict)
    vehicles: List[VehicleMileageReport] = Field(default_factory=list)
