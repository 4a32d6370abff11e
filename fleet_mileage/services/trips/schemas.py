from typing import List, Optional
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class RefuelingSlip(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    fuel_quantity: Optional[float] = None
    fuel_rate_per_liter: Optional[float] = None
    total_fuel_cost: Optional[float] = None


class TripRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    vehicle_id: str
    trip_end_date: Optional[datetime] = None
    start_km: Optional[float] = None
    end_km: Optional[float] = None
    refueling_done: bool = False
    fuel_quantity: Optional[float] = None
    refuelings: Optional[List[RefuelingSlip]] = None
    calculated_kmpl: Optional[float] = None

    trip_serial_number: Optional[str] = None
    driver_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def label(self) -> str:
        return self.trip_serial_number or self.id
