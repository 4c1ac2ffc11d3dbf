"""
Periodic maintenance.

Runs from the application lifespan every `maintenance_interval_seconds`:
- drops expired operator sessions from the session store;
- fails jobs left in WAITING_FOR_CONFIRM longer than
  `confirm_hold_timeout_minutes`, one transaction per job.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from autoprint.app.core.clock import utcnow
from autoprint.app.core.config import settings
from autoprint.app.core.exceptions import AppException
from autoprint.app.domain.print_jobs.state_machine import PrintJobStateMachine
from autoprint.app.models.print_job import PrintJob
from autoprint.app.models.print_job_enums import PrintJobStatus

logger = logging.getLogger("autoprint.maintenance")


@dataclass
class MaintenanceReport:
    sessions_removed: int = 0
    holds_expired: int = 0


async def expire_stale_holds(session_factory, timeout: timedelta) -> int:
    """
    Fail held jobs whose hold is older than timeout.

    Jobs another request moved in the meantime are skipped.
    """
    cutoff = utcnow() - timeout
    async with session_factory() as db:
        result = await db.execute(
            select(PrintJob.id)
            .where(PrintJob.status == PrintJobStatus.WAITING_FOR_CONFIRM, PrintJob.held_at < cutoff)
            .order_by(PrintJob.held_at.asc())
        )
        job_ids = result.scalars().all()

    expired = 0
    for job_id in job_ids:
        async with session_factory() as db:
            try:
                job = await PrintJobStateMachine.expire_hold(db, job_id)
            except AppException as exc:
                logger.warning("Skipped expiring hold on job %s: %s", job_id, exc.message)
                continue
        if job is not None:
            expired += 1
            logger.info("Hold on print job %s expired", job_id)
    return expired


async def run_maintenance(session_factory, session_store) -> MaintenanceReport:
    report = MaintenanceReport()
    report.sessions_removed = await session_store.sweep()
    report.holds_expired = await expire_stale_holds(
        session_factory, timedelta(minutes=settings.confirm_hold_timeout_minutes)
    )
    if report.sessions_removed or report.holds_expired:
        logger.info(
            "Maintenance: removed %s operator sessions, expired %s holds",
            report.sessions_removed, report.holds_expired
        )
    return report


async def maintenance_loop(session_factory, session_store, interval_seconds: float) -> None:
    """Run maintenance forever; cancelled on application shutdown."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await run_maintenance(session_factory, session_store)
        except SQLAlchemyError as exc:
            logger.error("Maintenance run failed: %s", exc, exc_info=True)
