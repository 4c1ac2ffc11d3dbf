"""
Print Job Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from autoprint.app.models.print_job_enums import PrintJobStatus


class PrintJobCreate(BaseModel):
    """Schema for submitting a print job for one of the caller's documents."""
    document_id: int = Field(..., gt=0)
    payment_id: Optional[int] = Field(None, gt=0, description="Pending or settled payment funding this job")
    copies: Optional[int] = Field(None, ge=1, le=100, description="Overrides the document's copies")


class PrintJobResponse(BaseModel):
    """Schema for print job response."""
    id: int
    job_number: str
    account_id: int
    document_id: int
    payment_id: Optional[int]
    status: PrintJobStatus
    queue_position: Optional[int]
    copies: int
    total_pages: int
    cost_per_page: Decimal
    total_cost: Decimal
    funded_at: Optional[datetime]
    held_at: Optional[datetime]
    started_at: Optional[datetime]
    estimated_completion_at: Optional[datetime]
    completed_at: Optional[datetime]
    failed_at: Optional[datetime]
    operator_notes: Optional[str]
    failure_reason: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PrintJobSubmitResponse(BaseModel):
    """Result of submitting a job: the job plus whether it was admitted to the queue."""
    job: PrintJobResponse
    admitted: bool
    balance: Optional[Decimal] = Field(None, description="Balance seen when the job could not be funded")


class PrintJobListResponse(BaseModel):
    """Schema for paginated print job list."""
    jobs: List[PrintJobResponse]
    total: int
    page: int
    page_size: int
