"""
Admin API Schema Definitions.

Pydantic schemas for operator login, the queue board and account management.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from autoprint.app.models.enums import AccountRole
from autoprint.app.schemas.billing import LedgerEntryResponse
from autoprint.app.schemas.print_job import PrintJobResponse


class OperatorLogin(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class OperatorSessionResponse(BaseModel):
    """Opaque operator bearer token."""
    access_token: str
    token_type: str = "bearer"
    username: str
    expires_in: int = Field(..., description="Idle lifetime of the session in seconds")


class QueueSummary(BaseModel):
    queued: int
    printing: int
    waiting_confirm: int
    estimated_wait_minutes: int


class QueueResponse(BaseModel):
    """Operator board: active jobs grouped by status, in queue order."""
    queued: List[PrintJobResponse]
    printing: List[PrintJobResponse]
    waiting_confirm: List[PrintJobResponse]
    summary: QueueSummary


class NextJobResponse(BaseModel):
    job: Optional[PrintJobResponse]


class JobActionRequest(BaseModel):
    """Optional operator note (complete, hold) or failure reason (fail)."""
    notes: Optional[str] = Field(None, max_length=1000)
    reason: Optional[str] = Field(None, max_length=1000)


class AuditLogResponse(BaseModel):
    """Schema for audit log entry."""
    id: int
    actor_id: Optional[int]
    actor_username: Optional[str]
    action: str
    resource_type: Optional[str]
    resource_id: Optional[int]
    meta_data: Optional[dict]
    timestamp: datetime

    class Config:
        from_attributes = True


class AccountListItem(BaseModel):
    """Schema for an account in operator listings."""
    id: int
    username: str
    email: str
    full_name: Optional[str] = None
    student_id: Optional[str] = None
    role: AccountRole
    balance: Decimal
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AccountListResponse(BaseModel):
    """Schema for paginated account list."""
    accounts: List[AccountListItem]
    total: int
    page: int
    page_size: int


class AccountUpdateRequest(BaseModel):
    """Role and activation changes. The balance moves only through adjustments."""
    role: Optional[AccountRole] = None
    is_active: Optional[bool] = None
    reason: Optional[str] = Field(None, max_length=255, description="Reason (for audit log)")


class BalanceAdjustmentRequest(BaseModel):
    """Signed correction of an account balance."""
    amount: Decimal = Field(..., max_digits=12, decimal_places=2)
    reason: str = Field(..., min_length=1, max_length=200)

    @field_validator("amount")
    @classmethod
    def amount_must_be_non_zero(cls, value: Decimal) -> Decimal:
        if value == 0:
            raise ValueError("amount must be non-zero")
        return value


class BalanceAdjustmentResponse(BaseModel):
    account_id: int
    balance: Decimal
    entry: LedgerEntryResponse
    admitted_job_ids: List[int]
