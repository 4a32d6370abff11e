import redis.asyncio as redis
from fleet_mileage.config import settings

redis_client: redis.Redis | None = None

def get_redis_client() -> redis.Redis:
    global redis_client
    if redis_client is None:
        redis_client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
    return redis_client


async def close_redis_client():
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
