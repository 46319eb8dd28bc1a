"""
Refresh scheduler.

Periodically finds people whose sources have gone stale per
REFRESH_INTERVALS and rebuilds them through the orchestrator. The
orchestrator itself skips sources that are still fresh, so a rebuild
only refetches what is due.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from profilebuilder.core.config import get_settings
from profilebuilder.core.database import get_session_factory
from profilebuilder.core.models import BuildJobStatus, Person, PersonStatus, ProfileBuildJob
from profilebuilder.services.build_orchestrator import REFRESH_INTERVALS, BuildRequest, ProfileBuildOrchestrator
from profilebuilder.services.source_router import COST_SENSITIVE_SOURCES

logger = logging.getLogger(__name__)

REFRESHABLE_STATUSES = [PersonStatus.READY, PersonStatus.PARTIAL, PersonStatus.ERROR]
JOB_ID = "profile_refresh_checker"


class RefreshScheduler:
    """Selects people due for a scheduled rebuild."""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def stale_sources(person: Person, now: Optional[datetime] = None) -> List[str]:
        """Sources never fetched or fetched longer ago than their interval."""
        now = now or datetime.utcnow()
        last_fetched = person.source_last_fetched or {}
        stale = []
        for source, interval in REFRESH_INTERVALS.items():
            if source in COST_SENSITIVE_SOURCES:
                continue
            value = last_fetched.get(source.value)
            try:
                fetched_at = datetime.fromisoformat(value) if value else None
            except ValueError:
                fetched_at = None
            if fetched_at is None or now - fetched_at >= interval:
                stale.append(source.value)
        return stale

    def has_active_job(self, person_id: int) -> bool:
        return self.db.query(ProfileBuildJob).filter(
            ProfileBuildJob.person_id == person_id,
            ProfileBuildJob.status.in_([BuildJobStatus.PENDING, BuildJobStatus.RUNNING]),
        ).first() is not None

    def get_people_for_refresh(self, limit: int = 50, now: Optional[datetime] = None) -> List[Person]:
        """
        People with at least one stale source and no build in flight.

        Returns people ordered by id, at most limit of them.
        """
        now = now or datetime.utcnow()
        candidates = (
            self.db.query(Person)
            .filter(Person.status.in_(REFRESHABLE_STATUSES))
            .order_by(Person.id)
            .all()
        )
        due = []
        for person in candidates:
            if not self.stale_sources(person, now):
                continue
            if self.has_active_job(person.id):
                logger.debug(f"Refresh: person {person.id} already has an active build, skipping")
                continue
            due.append(person)
            if len(due) >= limit:
                break
        return due


async def check_and_refresh_stale_people(
    limit: int = 50,
    orchestrator: Optional[ProfileBuildOrchestrator] = None,
) -> int:
    """
    Background job: rebuild people with stale sources.

    Returns:
        Number of builds started
    """
    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        people = RefreshScheduler(db).get_people_for_refresh(limit=limit)
        requests = [BuildRequest(person_id=p.id) for p in people]
    finally:
        db.close()

    if not requests:
        logger.debug("Refresh: no stale people")
        return 0

    logger.info(f"Refresh: rebuilding {len(requests)} people")
    orchestrator = orchestrator or ProfileBuildOrchestrator()
    results = await orchestrator.build_many(requests)
    failed = sum(1 for r in results if r.status == PersonStatus.ERROR.value)
    if failed:
        logger.warning(f"Refresh: {failed} of {len(results)} rebuilds ended in error")
    return len(results)


# Global scheduler instance
_scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the global scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler()
    return _scheduler


def register_refresh_checker(interval_minutes: Optional[int] = None) -> bool:
    """
    Register the stale-profile checker as an interval job.

    Args:
        interval_minutes: How often to check (defaults to settings.refresh_check_minutes)

    Returns:
        True if registered successfully
    """
    interval_minutes = interval_minutes or get_settings().refresh_check_minutes
    scheduler = get_scheduler()
    try:
        scheduler.add_job(
            check_and_refresh_stale_people,
            trigger=IntervalTrigger(minutes=interval_minutes),
            id=JOB_ID,
            name="Stale Profile Refresh",
            replace_existing=True,
        )
    except Exception as e:
        logger.error(f"Failed to register refresh checker: {e}")
        return False

    logger.info(f"Registered refresh checker to run every {interval_minutes} minutes")
    return True


def start_scheduler() -> None:
    scheduler = get_scheduler()
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")


def stop_scheduler() -> None:
    scheduler = get_scheduler()
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def get_scheduler_status() -> Dict[str, Any]:
    scheduler = get_scheduler()
    jobs = [
        {
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if getattr(job, "next_run_time", None) else None,
            "trigger": str(job.trigger),
        }
        for job in scheduler.get_jobs()
    ]
    return {"running": scheduler.running, "job_count": len(jobs), "jobs": jobs}
