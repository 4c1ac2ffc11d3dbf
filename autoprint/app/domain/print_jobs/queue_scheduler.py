"""
Queue Scheduler (Domain Logic).

Orders QUEUED jobs by explicit queue position and exposes next-to-print
selection. Positions are assigned only on enqueue and cleared only on
dequeue; there is no background renumbering, so a displayed queue stays
stable between mutations.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.orm import aliased

from autoprint.app.core.clock import utcnow
from autoprint.app.core.config import settings
from autoprint.app.db.session import dialect_name
from autoprint.app.domain.print_jobs.transitions import guard_transition, apply_transition, conflict
from autoprint.app.models.print_job import PrintJob
from autoprint.app.models.print_job_enums import PrintJobStatus

logger = logging.getLogger("autoprint.queue")

# Advisory lock key serializing position assignment on PostgreSQL
QUEUE_LOCK_KEY = 7_301_001

ACTIVE_QUEUE_STATUSES = (
    PrintJobStatus.QUEUED,
    PrintJobStatus.PRINTING,
    PrintJobStatus.WAITING_FOR_CONFIRM,
)


@dataclass
class QueueSnapshot:
    queued: list = field(default_factory=list)
    printing: list = field(default_factory=list)
    waiting_confirm: list = field(default_factory=list)

    @property
    def estimated_wait_minutes(self) -> int:
        return len(self.queued) * settings.minutes_per_job_estimate


class QueueScheduler:

    @staticmethod
    async def _lock_queue(db: AsyncSession) -> None:
        # SQLite serializes writers on its own
        if dialect_name(db) == "postgresql":
            await db.execute(select(func.pg_advisory_xact_lock(QUEUE_LOCK_KEY)))

    @staticmethod
    async def enqueue(db: AsyncSession, job: PrintJob, **values) -> PrintJob:
        """
        Append a job at the tail of the queue.

        The position (max queued position + 1) is computed inside the same
        UPDATE that flips the status, under the queue lock, so concurrent
        admissions never read the same maximum. Must run inside a unit of
        work.

        Raises:
            AlreadyFinalizedError / InvalidTransitionError: From the guard.
            ConflictError: If the job changed status concurrently.
        """
        guard_transition(job, PrintJobStatus.QUEUED)
        observed = job.status

        await QueueScheduler._lock_queue(db)

        queued = aliased(PrintJob)
        next_position = (
            select(func.coalesce(func.max(queued.queue_position), 0) + 1)
            .where(queued.status == PrintJobStatus.QUEUED)
            .scalar_subquery()
        )

        result = await db.execute(
            update(PrintJob)
            .where(PrintJob.id == job.id, PrintJob.status == observed)
            .values(
                status=PrintJobStatus.QUEUED,
                queue_position=next_position,
                updated_at=utcnow(),
                **values
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise conflict(job.id, observed)

        await db.refresh(job)
        logger.info("Print job %s enqueued at position %s (from %s)", job.id, job.queue_position, observed.value)
        return job

    @staticmethod
    async def dequeue(db: AsyncSession, job: PrintJob, target: PrintJobStatus, **values) -> PrintJob:
        """
        Take a queued job off the queue, moving it to target.

        Clears the job's position; other queued jobs keep theirs.
        Must run inside a unit of work.
        """
        released = job.queue_position
        await apply_transition(db, job, target, **values)
        logger.info("Print job %s released queue position %s", job.id, released)
        return job

    @staticmethod
    async def next_to_print(db: AsyncSession) -> Optional[PrintJob]:
        """
        The queued job with the lowest position; ties break by creation time.
        """
        result = await db.execute(
            select(PrintJob)
            .where(PrintJob.status == PrintJobStatus.QUEUED)
            .order_by(PrintJob.queue_position.asc(), PrintJob.created_at.asc(), PrintJob.id.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def queued_jobs(db: AsyncSession) -> list[PrintJob]:
        result = await db.execute(
            select(PrintJob)
            .where(PrintJob.status == PrintJobStatus.QUEUED)
            .order_by(PrintJob.queue_position.asc(), PrintJob.created_at.asc(), PrintJob.id.asc())
        )
        return result.scalars().all()

    @staticmethod
    async def queue_snapshot(db: AsyncSession) -> QueueSnapshot:
        """
        Jobs on the operator's board, grouped by status.
        """
        result = await db.execute(
            select(PrintJob)
            .where(PrintJob.status.in_(ACTIVE_QUEUE_STATUSES))
            .order_by(
                PrintJob.queue_position.asc().nulls_last(),
                PrintJob.created_at.asc(),
                PrintJob.id.asc()
            )
        )

        snapshot = QueueSnapshot()
        for job in result.scalars().all():
            if job.status == PrintJobStatus.QUEUED:
                snapshot.queued.append(job)
            elif job.status == PrintJobStatus.PRINTING:
                snapshot.printing.append(job)
            else:
                snapshot.waiting_confirm.append(job)
        return snapshot
