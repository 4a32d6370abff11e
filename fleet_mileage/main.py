from contextlib import asynccontextmanager
from fastapi import FastAPI
from fleet_mileage.services.mileage.routers import router as mileage_router

from fleet_mileage.core.redis_client import close_redis_client
from fleet_mileage.core.scheduler import start_scheduler, shutdown_scheduler
import uvicorn
from fleet_mileage.utils import setup_logging

setup_logging()


@asynccontextmanager
async def lifespan(_: FastAPI):
    # Startup
    start_scheduler()
    yield
    # Shutdown
    shutdown_scheduler()
    await close_redis_client()

app = FastAPI(
    title="Fleet Mileage API",
    description="Conciliación de rendimiento de combustible (tanque a tanque) por viaje",
    version="1.0.0",
    lifespan=lifespan
)

@app.get("/", tags=["Status"])
def health_check():
    return {
        "status": "online",
        "service": "Fleet Mileage API",
        "version": "1.0.0"
    }

app.include_router(mileage_router, prefix="/api/mileage", tags=["Mileage"])

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
