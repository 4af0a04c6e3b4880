from apscheduler.jobstores.base import ConflictingIdError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from app.core.settings import settings
from app.db.sesson import AsyncSessionLocal
from app.services.user.learning import LearningService

scheduler = AsyncIOScheduler()


# ================================
# JOB: Đồng bộ lại % tiến độ khi cấu trúc khóa học thay đổi
# ================================
async def progress_resync_job():
    logger.info("🔎 Running progress resync job...")

    async with AsyncSessionLocal() as session:
        service = LearningService(session)
        try:
            updated = await service.resync_stale_progress_async()
            logger.success(f"✔ Progress resync: {updated} enrollment(s) updated")
        except Exception as e:
            logger.error(f"❌ Progress resync job error: {e}")


# ================================
# START ALL JOBS
# ================================
def start_scheduler():
    try:
        scheduler.add_job(
            progress_resync_job,
            trigger=IntervalTrigger(minutes=settings.PROGRESS_RESYNC_MINUTES),
            id="progress_resync_job",
            replace_existing=True,
            max_instances=1,
        )
    except ConflictingIdError:
        logger.warning("⚠ progress_resync_job existed")

    scheduler.start()
    logger.info(
        f"🔔 Scheduler started (progress resync mỗi {settings.PROGRESS_RESYNC_MINUTES} phút)"
    )
