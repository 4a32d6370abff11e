import asyncio
import logging
from collections import deque
from typing import Deque, List, Optional, Set

from fleet_mileage.config import settings
from fleet_mileage.core.retry import retry_with_fallback
from fleet_mileage.services.audit_trail.client import AuditTrailClient
from fleet_mileage.services.audit_trail.schemas import AuditEntry, FallbackAuditEntry

logger = logging.getLogger(__name__)

MILEAGE_CORRECTION_REASON = "Recalculo de rendimiento tanque a tanque"


async def _store_locally(error: Exception, audit_logger: "AuditTrailLogger", entry: AuditEntry):
    try:
        fallback = FallbackAuditEntry(
            **entry.model_dump(),
            original_error=str(error) or type(error).__name__,
        )
        logger.warning("AUDIT TRAIL FALLBACK: %s", fallback.model_dump_json())
        audit_logger.fallback_buffer.append(fallback)
    except Exception:
        logger.exception("Fallo también el respaldo local de auditoría (%s)", entry.entity_id)
    return None


class AuditTrailLogger:
    """Registro de correcciones, best-effort.

    `log_correction` agenda el envío y regresa de inmediato; los errores del
    destino nunca llegan a quien corrige. Tras agotar reintentos la entrada se
    escribe en el log y queda en `fallback_buffer` (acotado).
    """

    def __init__(self, client: Optional[AuditTrailClient] = None, buffer_size: Optional[int] = None):
        if client is None and settings.AUDIT_TRAIL_URL:
            client = AuditTrailClient()
        self.client = client
        self.fallback_buffer: Deque[FallbackAuditEntry] = deque(
            maxlen=buffer_size or settings.AUDIT_FALLBACK_BUFFER_SIZE
        )
        self._pending: Set[asyncio.Task] = set()

    @retry_with_fallback(_store_locally)
    async def _send(self, entry: AuditEntry):
        if self.client is None:
            logger.info(
                "Auditoría %s %s: %s -> %s",
                entry.entity_type, entry.entity_id, entry.before_value, entry.after_value,
            )
            return None
        return await self.client.send(entry)

    def log_correction(
        self,
        entity_id: str,
        before_value: Optional[float],
        after_value: Optional[float],
        reason: str = MILEAGE_CORRECTION_REASON,
    ) -> Optional[asyncio.Task]:
        try:
            entry = AuditEntry(
                entity_id=entity_id,
                before_value=before_value,
                after_value=after_value,
                reason=reason,
            )
            task = asyncio.get_running_loop().create_task(self._send(entry))
        except Exception:
            logger.exception("No se pudo agendar la auditoría del viaje %s", entity_id)
            return None

        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def flush(self):
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def fallback_entries(self) -> List[FallbackAuditEntry]:
        return list(self.fallback_buffer)


audit_trail_logger = AuditTrailLogger()
