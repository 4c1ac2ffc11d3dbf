"""
Account API endpoints: balance and ledger history for the caller.
"""

from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from autoprint.app.db.session import get_db
from autoprint.app.schemas.billing import BalanceResponse, LedgerEntryResponse
from autoprint.app.core.config import settings
from autoprint.app.core.guards import require_student
from autoprint.app.domain.billing.balance_ledger import BalanceLedger

router = APIRouter(prefix="/account", tags=["Account"])


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    current_account: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    account_id = current_account["account_id"]
    balance = await BalanceLedger.balance_of(db, account_id)
    return BalanceResponse(account_id=account_id, balance=balance, currency=settings.currency)


@router.get("/ledger", response_model=List[LedgerEntryResponse])
async def get_ledger(
    limit: int = Query(50, ge=1, le=200),
    current_account: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    """
    Balance movements on the caller's account, newest first.
    """
    entries = await BalanceLedger.history(db, current_account["account_id"], limit=limit)
    return [LedgerEntryResponse.model_validate(e) for e in entries]
