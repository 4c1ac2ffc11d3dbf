"""
Operator queue endpoints.

The queue board and the operator-driven job transitions. Each action returns
the job as it stands after the transition.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Path, Query, Body
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from autoprint.app.db.session import get_db
from autoprint.app.models.print_job import PrintJob
from autoprint.app.models.print_job_enums import PrintJobStatus
from autoprint.app.schemas.admin import QueueResponse, QueueSummary, NextJobResponse, JobActionRequest
from autoprint.app.schemas.print_job import PrintJobResponse, PrintJobListResponse
from autoprint.app.core.guards import require_operator
from autoprint.app.domain.print_jobs.queue_scheduler import QueueScheduler
from autoprint.app.domain.print_jobs.state_machine import PrintJobStateMachine
from autoprint.app.domain.print_jobs.reconciliation import ReconciliationCoordinator

router = APIRouter(prefix="/admin", tags=["Admin - Queue"])


@router.get("/queue", response_model=QueueResponse)
async def get_queue(
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    Active jobs grouped by status, in queue order, with a summary.
    """
    snapshot = await QueueScheduler.queue_snapshot(db)
    return QueueResponse(
        queued=[PrintJobResponse.model_validate(j) for j in snapshot.queued],
        printing=[PrintJobResponse.model_validate(j) for j in snapshot.printing],
        waiting_confirm=[PrintJobResponse.model_validate(j) for j in snapshot.waiting_confirm],
        summary=QueueSummary(
            queued=len(snapshot.queued),
            printing=len(snapshot.printing),
            waiting_confirm=len(snapshot.waiting_confirm),
            estimated_wait_minutes=snapshot.estimated_wait_minutes
        )
    )


@router.get("/queue/next", response_model=NextJobResponse)
async def get_next_job(
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    job = await QueueScheduler.next_to_print(db)
    return NextJobResponse(job=PrintJobResponse.model_validate(job) if job else None)


@router.put("/queue/{job_id}/start", response_model=PrintJobResponse)
async def start_job(
    job_id: int = Path(..., description="Print job ID"),
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    job = await PrintJobStateMachine.start(db, job_id, operator)
    return PrintJobResponse.model_validate(job)


@router.put("/queue/{job_id}/complete", response_model=PrintJobResponse)
async def complete_job(
    job_id: int = Path(..., description="Print job ID"),
    action: Optional[JobActionRequest] = Body(None),
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    job = await PrintJobStateMachine.complete(db, job_id, operator, notes=action.notes if action else None)
    return PrintJobResponse.model_validate(job)


@router.put("/queue/{job_id}/fail", response_model=PrintJobResponse)
async def fail_job(
    job_id: int = Path(..., description="Print job ID"),
    action: Optional[JobActionRequest] = Body(None),
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    Fail a printing job, or cancel any non-terminal job administratively.
    """
    job = await PrintJobStateMachine.fail(db, job_id, operator, reason=action.reason if action else None)
    return PrintJobResponse.model_validate(job)


@router.put("/queue/{job_id}/hold", response_model=PrintJobResponse)
async def hold_job(
    job_id: int = Path(..., description="Print job ID"),
    action: Optional[JobActionRequest] = Body(None),
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    Take a queued job off the queue until it is re-confirmed.
    """
    job = await PrintJobStateMachine.hold(db, job_id, operator, notes=action.notes if action else None)
    return PrintJobResponse.model_validate(job)


@router.put("/queue/{job_id}/confirm", response_model=PrintJobResponse)
async def confirm_job(
    job_id: int = Path(..., description="Print job ID"),
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    Re-confirm a held job; it rejoins the queue at the tail.
    """
    job = await ReconciliationCoordinator.reconfirm(db, job_id, operator)
    return PrintJobResponse.model_validate(job)


@router.put("/queue/{job_id}/admit", response_model=PrintJobResponse)
async def admit_job(
    job_id: int = Path(..., description="Print job ID"),
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    Re-check funding of a job awaiting payment. Returns 402 if still unfunded.
    """
    job = await ReconciliationCoordinator.admit_or_raise(db, job_id, actor=operator["username"])
    return PrintJobResponse.model_validate(job)


@router.get("/print-jobs", response_model=PrintJobListResponse)
async def list_print_jobs(
    status_filter: Optional[PrintJobStatus] = Query(None, alias="status"),
    account_id: Optional[int] = Query(None, ge=1),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    All print jobs, newest first, with optional filters.
    """
    conditions = []
    if status_filter:
        conditions.append(PrintJob.status == status_filter)
    if account_id:
        conditions.append(PrintJob.account_id == account_id)

    total_result = await db.execute(select(func.count(PrintJob.id)).where(*conditions))
    total = total_result.scalar()

    offset = (page - 1) * page_size
    result = await db.execute(
        select(PrintJob)
        .where(*conditions)
        .order_by(PrintJob.created_at.desc(), PrintJob.id.desc())
        .offset(offset)
        .limit(page_size)
    )

    return PrintJobListResponse(
        jobs=[PrintJobResponse.model_validate(j) for j in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size
    )
