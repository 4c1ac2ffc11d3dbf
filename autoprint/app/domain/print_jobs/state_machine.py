"""
Print Job State Machine (Domain Logic).

Operator-driven transitions of a single print job. Each public call is its
own unit of work: the row is read under lock, the transition is applied
with a compare-and-set UPDATE, and the audit entry is written in the same
transaction. Admission into the queue belongs to the Reconciliation
Coordinator.
"""

from datetime import timedelta
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func

from autoprint.app.core.clock import utcnow
from autoprint.app.core.config import settings
from autoprint.app.db.session import unit_of_work
from autoprint.app.domain.print_jobs.queue_scheduler import QueueScheduler
from autoprint.app.domain.print_jobs.transitions import load_job, apply_transition
from autoprint.app.models.print_job import PrintJob
from autoprint.app.models.print_job_enums import PrintJobStatus
from autoprint.app.services.audit import log_event, AuditAction, ResourceType


class PrintJobStateMachine:

    @staticmethod
    async def start(db: AsyncSession, job_id: int, operator: dict) -> PrintJob:
        """
        queued -> printing.

        Stamps started_at (never rewritten) and an estimated completion time.
        """
        async with unit_of_work(db):
            job = await load_job(db, job_id, lock=True)
            released_position = job.queue_position
            now = utcnow()
            await QueueScheduler.dequeue(
                db, job, PrintJobStatus.PRINTING,
                started_at=func.coalesce(PrintJob.started_at, now),
                estimated_completion_at=now + timedelta(minutes=settings.print_duration_minutes)
            )
            await log_event(
                db=db,
                action=AuditAction.PRINT_JOB_STARTED,
                actor_username=operator.get("username"),
                resource_type=ResourceType.PRINT_JOB,
                resource_id=job.id,
                metadata={"released_position": released_position}
            )
        return job

    @staticmethod
    async def complete(db: AsyncSession, job_id: int, operator: dict, notes: Optional[str] = None) -> PrintJob:
        """
        printing -> completed. Stamps completed_at (never rewritten).
        """
        async with unit_of_work(db):
            job = await load_job(db, job_id, lock=True)
            await apply_transition(
                db, job, PrintJobStatus.COMPLETED,
                completed_at=func.coalesce(PrintJob.completed_at, utcnow()),
                operator_notes=notes or "Job completed successfully"
            )
            await log_event(
                db=db,
                action=AuditAction.PRINT_JOB_COMPLETED,
                actor_username=operator.get("username"),
                resource_type=ResourceType.PRINT_JOB,
                resource_id=job.id,
                metadata={"notes": notes} if notes else None
            )
        return job

    @staticmethod
    async def fail(db: AsyncSession, job_id: int, operator: dict, reason: Optional[str] = None) -> PrintJob:
        """
        printing -> failed, or administrative override from any non-terminal status.
        """
        async with unit_of_work(db):
            job = await load_job(db, job_id, lock=True)
            previous = job.status
            await apply_transition(
                db, job, PrintJobStatus.FAILED,
                failed_at=utcnow(),
                failure_reason=reason or "Failed by operator"
            )
            await log_event(
                db=db,
                action=AuditAction.PRINT_JOB_FAILED,
                actor_username=operator.get("username"),
                resource_type=ResourceType.PRINT_JOB,
                resource_id=job.id,
                metadata={"previous_status": previous.value, "reason": job.failure_reason}
            )
        return job

    @staticmethod
    async def hold(db: AsyncSession, job_id: int, operator: dict, notes: Optional[str] = None) -> PrintJob:
        """
        queued -> waiting_for_confirm. The job gives up its queue position.
        """
        async with unit_of_work(db):
            job = await load_job(db, job_id, lock=True)
            released_position = job.queue_position
            values = {"held_at": utcnow()}
            if notes:
                values["operator_notes"] = notes
            await QueueScheduler.dequeue(db, job, PrintJobStatus.WAITING_FOR_CONFIRM, **values)
            await log_event(
                db=db,
                action=AuditAction.PRINT_JOB_HELD,
                actor_username=operator.get("username"),
                resource_type=ResourceType.PRINT_JOB,
                resource_id=job.id,
                metadata={"released_position": released_position}
            )
        return job

    @staticmethod
    async def expire_hold(db: AsyncSession, job_id: int) -> Optional[PrintJob]:
        """
        waiting_for_confirm -> failed for a hold nobody confirmed in time.

        Returns None (and writes nothing) if the job already left the hold.
        """
        async with unit_of_work(db):
            job = await load_job(db, job_id, lock=True)
            if job.status != PrintJobStatus.WAITING_FOR_CONFIRM:
                return None
            await apply_transition(
                db, job, PrintJobStatus.FAILED,
                failed_at=utcnow(),
                failure_reason="Confirmation hold expired"
            )
            await log_event(
                db=db,
                action=AuditAction.PRINT_JOB_HOLD_EXPIRED,
                resource_type=ResourceType.PRINT_JOB,
                resource_id=job.id
            )
        return job
