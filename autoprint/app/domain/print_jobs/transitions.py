"""
Print job transition table and compare-and-set primitive.

    awaiting_payment -> queued -> printing -> completed | failed
    queued <-> waiting_for_confirm (operator hold)
    any non-terminal -> failed (administrative override)

Every transition is an UPDATE keyed on the status the caller observed; if
another request moved the job first, nothing is written and ConflictError
is raised. Leaving QUEUED always clears queue_position.
"""

import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from autoprint.app.core.clock import utcnow
from autoprint.app.core.exceptions import (
    ResourceNotFoundError, AlreadyFinalizedError, InvalidTransitionError, ConflictError
)
from autoprint.app.models.print_job import PrintJob
from autoprint.app.models.print_job_enums import PrintJobStatus, TERMINAL_JOB_STATUSES

logger = logging.getLogger("autoprint.print_jobs")


ALLOWED_TRANSITIONS = {
    PrintJobStatus.AWAITING_PAYMENT: frozenset({PrintJobStatus.QUEUED, PrintJobStatus.FAILED}),
    PrintJobStatus.QUEUED: frozenset({
        PrintJobStatus.PRINTING, PrintJobStatus.WAITING_FOR_CONFIRM, PrintJobStatus.FAILED
    }),
    PrintJobStatus.PRINTING: frozenset({PrintJobStatus.COMPLETED, PrintJobStatus.FAILED}),
    PrintJobStatus.WAITING_FOR_CONFIRM: frozenset({PrintJobStatus.QUEUED, PrintJobStatus.FAILED}),
    PrintJobStatus.COMPLETED: frozenset(),
    PrintJobStatus.FAILED: frozenset(),
}


def guard_transition(job: PrintJob, target: PrintJobStatus) -> None:
    """
    Raise unless the job may move from its current status to target.

    Raises:
        AlreadyFinalizedError: If the job is COMPLETED or FAILED.
        InvalidTransitionError: If the transition is not in the table.
    """
    if job.status in TERMINAL_JOB_STATUSES:
        raise AlreadyFinalizedError("Print job", job.id, job.status.value)
    if target not in ALLOWED_TRANSITIONS[job.status]:
        raise InvalidTransitionError("Print job", job.id, job.status.value, target.value)


async def load_job(db: AsyncSession, job_id: int, lock: bool = False) -> PrintJob:
    """
    Fetch a print job, optionally taking a row lock for the transaction.

    Raises:
        ResourceNotFoundError: If the job does not exist.
    """
    query = select(PrintJob).where(PrintJob.id == job_id).execution_options(populate_existing=True)
    if lock:
        query = query.with_for_update()

    result = await db.execute(query)
    job = result.scalar_one_or_none()
    if not job:
        raise ResourceNotFoundError("Print job", job_id)
    return job


def conflict(job_id: int, observed: PrintJobStatus) -> ConflictError:
    return ConflictError(
        f"Print job {job_id} was modified concurrently",
        details={"print_job_id": job_id, "expected_status": observed.value}
    )


async def apply_transition(
    db: AsyncSession,
    job: PrintJob,
    target: PrintJobStatus,
    **values
) -> PrintJob:
    """
    Move a job to target with a compare-and-set UPDATE.

    Must run inside a unit of work. Extra column values are written in the
    same statement. Entering QUEUED goes through QueueScheduler.enqueue,
    which also assigns the position.

    Raises:
        AlreadyFinalizedError / InvalidTransitionError: From the guard.
        ConflictError: If the job's status changed since it was read.
    """
    if target == PrintJobStatus.QUEUED:
        raise ValueError("Jobs enter the queue through QueueScheduler.enqueue")
    guard_transition(job, target)

    observed = job.status
    values["queue_position"] = None

    result = await db.execute(
        update(PrintJob)
        .where(PrintJob.id == job.id, PrintJob.status == observed)
        .values(status=target, updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning("Print job %s changed concurrently while moving %s -> %s", job.id, observed.value, target.value)
        raise conflict(job.id, observed)

    await db.refresh(job)
    logger.info("Print job %s moved %s -> %s", job.id, observed.value, target.value)
    return job
