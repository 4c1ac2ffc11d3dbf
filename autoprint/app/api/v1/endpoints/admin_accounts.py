"""
Admin Account Management Endpoints.

Operators list accounts, change role and activation, and correct balances.
Every change is audited; balance corrections go through the ledger.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_

from autoprint.app.db.session import get_db, unit_of_work
from autoprint.app.models.account import Account
from autoprint.app.models.enums import AccountRole
from autoprint.app.schemas.admin import (
    AccountListItem, AccountListResponse, AccountUpdateRequest,
    BalanceAdjustmentRequest, BalanceAdjustmentResponse
)
from autoprint.app.schemas.billing import LedgerEntryResponse
from autoprint.app.core.guards import require_operator
from autoprint.app.core.exceptions import ResourceNotFoundError, ValidationFailedError
from autoprint.app.domain.print_jobs.reconciliation import ReconciliationCoordinator
from autoprint.app.services.audit import log_event, AuditAction, ResourceType

router = APIRouter(prefix="/admin", tags=["Admin - Accounts"])


@router.get("/accounts", response_model=AccountListResponse)
async def list_accounts(
    search: Optional[str] = Query(None, min_length=1, description="Match on username, email, name or student ID"),
    role: Optional[AccountRole] = Query(None),
    is_active: Optional[bool] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    List accounts, newest first.
    """
    conditions = []
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(
            Account.username.ilike(pattern),
            Account.email.ilike(pattern),
            Account.full_name.ilike(pattern),
            Account.student_id.ilike(pattern)
        ))
    if role:
        conditions.append(Account.role == role)
    if is_active is not None:
        conditions.append(Account.is_active == is_active)

    total_result = await db.execute(select(func.count(Account.id)).where(*conditions))
    total = total_result.scalar()

    offset = (page - 1) * page_size
    result = await db.execute(
        select(Account)
        .where(*conditions)
        .order_by(Account.created_at.desc(), Account.id.desc())
        .offset(offset)
        .limit(page_size)
    )

    return AccountListResponse(
        accounts=[AccountListItem.model_validate(a) for a in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/accounts/{account_id}", response_model=AccountListItem)
async def get_account(
    account_id: int = Path(..., description="Account ID"),
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    account = await db.get(Account, account_id)
    if not account:
        raise ResourceNotFoundError("Account", account_id)
    return AccountListItem.model_validate(account)


@router.put("/accounts/{account_id}", response_model=AccountListItem)
async def update_account(
    request: AccountUpdateRequest,
    account_id: int = Path(..., description="Account ID"),
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    Change an account's role or activation.

    Deactivation takes effect on the account's next request; student tokens
    are checked against the stored account every time.
    """
    async with unit_of_work(db):
        result = await db.execute(
            select(Account).where(Account.id == account_id).with_for_update()
        )
        account = result.scalar_one_or_none()
        if not account:
            raise ResourceNotFoundError("Account", account_id)

        changes = {}
        if request.role is not None and request.role != account.role:
            changes["role"] = {"from": account.role.value, "to": request.role.value}
            account.role = request.role
        if request.is_active is not None and request.is_active != account.is_active:
            changes["is_active"] = {"from": account.is_active, "to": request.is_active}
            account.is_active = request.is_active

        if not changes:
            raise ValidationFailedError("No changes requested", details={"account_id": account_id})

        await db.flush()
        await log_event(
            db=db,
            action=AuditAction.ACCOUNT_UPDATED,
            actor_username=operator["username"],
            resource_type=ResourceType.ACCOUNT,
            resource_id=account.id,
            metadata={"changes": changes, "reason": request.reason}
        )

    await db.refresh(account)
    return AccountListItem.model_validate(account)


@router.post(
    "/accounts/{account_id}/adjustments",
    response_model=BalanceAdjustmentResponse,
    status_code=status.HTTP_201_CREATED
)
async def adjust_balance(
    request: BalanceAdjustmentRequest,
    account_id: int = Path(..., description="Account ID"),
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    Correct an account balance by a signed amount.

    A credit admits the account's jobs still waiting for funds; a debit
    cannot take the balance below zero (402).
    """
    entry, admissions = await ReconciliationCoordinator.adjust_balance(
        db, account_id, request.amount, request.reason, operator
    )
    return BalanceAdjustmentResponse(
        account_id=account_id,
        balance=entry.balance_after,
        entry=LedgerEntryResponse.model_validate(entry),
        admitted_job_ids=[a.job.id for a in admissions if a.admitted]
    )
