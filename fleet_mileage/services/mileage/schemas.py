from typing import List, Optional, Literal
from pydantic import BaseModel, Field

from fleet_mileage.services.trips.schemas import TripRecord

Outcome = Literal[
    "first_fill",
    "tank_to_tank",
    "non_positive_distance",
    "inherited",
    "no_anchor",
    "malformed",
]


class MileageComputation(BaseModel):
    trip_id: str
    vehicle_id: str
    outcome: Outcome
    is_anchor: bool = False
    fuel: float = 0.0
    trip_distance: Optional[float] = None
    distance: Optional[float] = None
    anchor_id: Optional[str] = None
    anchor_end_km: Optional[float] = None
    calculated_kmpl: Optional[float] = None


class ReconciledTrip(BaseModel):
    trip: TripRecord
    computation: MileageComputation


class TripCorrection(BaseModel):
    trip_id: str
    vehicle_id: str
    before: Optional[float] = None
    after: Optional[float] = None


class CorrectionResult(BaseModel):
    vehicle_id: str
    updated_count: int = 0
    failed_ids: List[str] = Field(default_factory=list)
    corrections: List[TripCorrection] = Field(default_factory=list)


class BulkCorrectionResult(BaseModel):
    vehicles_processed: int = 0
    vehicles_total: int = 0
    updated_count: int = 0
    failed_ids: List[str] = Field(default_factory=list)
    stopped: bool = False
    results: List[CorrectionResult] = Field(default_factory=list)
