"""
Scheduler for background cache warm-up

Uses APScheduler to keep the default (unfiltered) analytics summary fresh in
the cache, so the first dashboard load after a quiet period is instant.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
import time

from app.models.base import SessionLocal
from app.services.analytics_service import AnalyticsService
from app.services.analytics_store import AnalyticsStore
from app.config import get_settings
from app.utils.logger import log

settings = get_settings()
scheduler = AsyncIOScheduler()


async def warm_summary_cache():
    """Recompute the default summary and replace its cache entry"""
    from app.api.analytics import coordinator

    start = time.time()
    db = SessionLocal()
    try:
        service = AnalyticsService(AnalyticsStore(db), coordinator)
        await service.refresh_summary_cache()
        log.info(f"Summary cache warmed in {time.time() - start:.2f}s")
    except Exception as e:
        log.error(f"Summary cache warm-up failed: {str(e)}")
    finally:
        db.close()


def setup_scheduler():
    """
    Configure the scheduler.

    Jobs:
    - Summary warm-up: every ``cache_warmup_interval_minutes`` (default 10)
    """
    if not settings.enable_cache_warmup:
        log.info("Cache warm-up disabled")
        return

    scheduler.add_job(
        warm_summary_cache,
        trigger=IntervalTrigger(minutes=settings.cache_warmup_interval_minutes),
        id='summary_cache_warmup',
        name='Analytics Summary Cache Warm-up',
        replace_existing=True,
        max_instances=1
    )


def start_scheduler():
    """Start the scheduler"""
    setup_scheduler()
    scheduler.start()
    log.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
    log.info("Scheduler stopped")
