"""
Print Job API endpoints (students).

Submitting a job fixes its cost and immediately tries to admit it: a job
covered by the account balance goes straight to the queue, otherwise it
waits in AWAITING_PAYMENT until a payment is settled.
"""

from typing import Optional
from fastapi import APIRouter, Depends, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from autoprint.app.db.session import get_db
from autoprint.app.models.print_job import PrintJob
from autoprint.app.models.print_job_enums import PrintJobStatus
from autoprint.app.schemas.print_job import (
    PrintJobCreate, PrintJobResponse, PrintJobSubmitResponse, PrintJobListResponse
)
from autoprint.app.core.guards import require_student
from autoprint.app.core.exceptions import ResourceNotFoundError
from autoprint.app.domain.print_jobs.reconciliation import ReconciliationCoordinator

router = APIRouter(prefix="/print-jobs", tags=["Print Jobs"])


@router.post("", response_model=PrintJobSubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_print_job(
    job_data: PrintJobCreate,
    current_account: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    """
    Submit a print job for one of the caller's documents.

    Returns 201 whether or not the job could be admitted; `admitted` tells
    the two apart.
    """
    result = await ReconciliationCoordinator.create_print_job(
        db,
        account_id=current_account["account_id"],
        document_id=job_data.document_id,
        payment_id=job_data.payment_id,
        copies=job_data.copies
    )

    return PrintJobSubmitResponse(
        job=PrintJobResponse.model_validate(result.job),
        admitted=result.admitted,
        balance=result.balance
    )


@router.get("", response_model=PrintJobListResponse)
async def list_my_print_jobs(
    status_filter: Optional[PrintJobStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    current_account: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    """
    List the caller's print jobs, newest first.
    """
    conditions = [PrintJob.account_id == current_account["account_id"]]
    if status_filter:
        conditions.append(PrintJob.status == status_filter)

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


@router.get("/{job_id}", response_model=PrintJobResponse)
async def get_print_job(
    job_id: int = Path(..., description="Print job ID"),
    current_account: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    job = await db.get(PrintJob, job_id)
    if not job or job.account_id != current_account["account_id"]:
        raise ResourceNotFoundError("Print job", job_id)

    return PrintJobResponse.model_validate(job)
