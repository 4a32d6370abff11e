import httpx
from fleet_mileage.config import settings
from fleet_mileage.services.audit_trail.schemas import AuditEntry


class AuditTrailClient:
    def __init__(self, base_url: str | None = None, api_key: str | None = None, timeout: float = 10.0):
        self.base_url = base_url or settings.AUDIT_TRAIL_URL
        self.api_key = api_key if api_key is not None else settings.AUDIT_TRAIL_API_KEY
        self.timeout = timeout

    async def send(self, entry: AuditEntry) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            r = await client.post(
                self.base_url,
                content=entry.model_dump_json(),
                headers=headers,
            )
            r.raise_for_status()
            return r.json() if r.content else {}
