from typing import Optional, List
from datetime import datetime, timezone
from pydantic import BaseModel, Field


class AuditEntry(BaseModel):
    operation_type: str = "data_correction"
    operation_category: str = "trip_data"
    action_performed: str = "corrected"
    entity_type: str = "trip"
    entity_id: str
    before_value: Optional[float] = None
    after_value: Optional[float] = None
    reason: str
    tags: List[str] = Field(default_factory=lambda: ["data_correction", "mileage"])
    performed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class FallbackAuditEntry(AuditEntry):
    original_error: str
    fallback_reason: str = "Fallo el registro principal de auditoría"
