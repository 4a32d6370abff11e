import logging
import uuid

from fleet_mileage.config import settings
from fleet_mileage.core.redis_client import get_redis_client
from fleet_mileage.db.session import AsyncSessionLocal
from fleet_mileage.services.mileage.corrector import BatchCorrector
from fleet_mileage.services.mileage.schemas import BulkCorrectionResult
from fleet_mileage.services.trips.repository import SqlTripRepository

logger = logging.getLogger(__name__)

REDIS_REPAIR_LOCK_KEY = "mileage_repair_lock"
REDIS_REPAIR_STOP_KEY = "mileage_repair_stop"


def get_corrector() -> BatchCorrector:
    return BatchCorrector(SqlTripRepository(AsyncSessionLocal))


async def request_repair_stop():
    redis = get_redis_client()
    await redis.set(REDIS_REPAIR_STOP_KEY, "1", ex=settings.MILEAGE_REPAIR_LOCK_SECONDS)


async def repair_stop_requested() -> bool:
    redis = get_redis_client()
    return bool(await redis.get(REDIS_REPAIR_STOP_KEY))


async def repair_all_mileage(corrector: BatchCorrector | None = None) -> BulkCorrectionResult | None:
    redis = get_redis_client()
    token = uuid.uuid4().hex
    acquired = await redis.set(
        REDIS_REPAIR_LOCK_KEY, token, nx=True, ex=settings.MILEAGE_REPAIR_LOCK_SECONDS
    )
    if not acquired:
        logger.info("Ya hay un recalculo de rendimiento en curso; se omite esta ejecución")
        return None

    # una señal de stop vieja no debe frenar la corrida nueva
    await redis.delete(REDIS_REPAIR_STOP_KEY)
    try:
        corrector = corrector or get_corrector()
        return await corrector.run_bulk_correction(should_stop=repair_stop_requested)
    finally:
        if await redis.get(REDIS_REPAIR_LOCK_KEY) == token:
            await redis.delete(REDIS_REPAIR_LOCK_KEY)
        await redis.delete(REDIS_REPAIR_STOP_KEY)
