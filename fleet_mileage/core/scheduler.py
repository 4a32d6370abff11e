from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fleet_mileage.config import settings
from fleet_mileage.services.mileage.jobs import repair_all_mileage

scheduler = AsyncIOScheduler()


def start_scheduler():
    if not scheduler.get_job("repair_mileage_job"):
        scheduler.add_job(
            repair_all_mileage,
            trigger="interval",
            minutes=settings.MILEAGE_REPAIR_INTERVAL_MINUTES,
            id="repair_mileage_job",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    if not scheduler.running:
        scheduler.start()


def shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=True)
