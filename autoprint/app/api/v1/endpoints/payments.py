"""
Payment API endpoints.

Students submit payments (PENDING until verified or confirmed). The payment
gateway confirms a payment through the callback, authenticated by a shared
secret header.
"""

import secrets
from typing import Optional
from fastapi import APIRouter, Depends, Header, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from autoprint.app.db.session import get_db
from autoprint.app.models.payment import Payment
from autoprint.app.models.billing_enums import PaymentStatus
from autoprint.app.schemas.billing import (
    PaymentCreate, PaymentResponse, PaymentListResponse,
    GatewayCallbackRequest, PaymentSettlementResponse
)
from autoprint.app.core.config import settings
from autoprint.app.core.guards import require_student
from autoprint.app.core.exceptions import AuthenticationError
from autoprint.app.domain.billing.payment_verifier import PaymentVerifier

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def submit_payment(
    payment_data: PaymentCreate,
    current_account: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    """
    Submit a payment. It stays PENDING until an operator verifies it or the
    gateway confirms it.
    """
    payment = await PaymentVerifier.create_payment(
        db,
        account_id=current_account["account_id"],
        amount=payment_data.amount,
        method=payment_data.method,
        currency=payment_data.currency,
        transaction_id=payment_data.transaction_id,
        print_job_id=payment_data.print_job_id
    )
    return PaymentResponse.model_validate(payment)


@router.get("", response_model=PaymentListResponse)
async def list_my_payments(
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    current_account: dict = Depends(require_student),
    db: AsyncSession = Depends(get_db)
):
    conditions = [Payment.account_id == current_account["account_id"]]
    if status_filter:
        conditions.append(Payment.status == status_filter)

    total_result = await db.execute(select(func.count(Payment.id)).where(*conditions))
    total = total_result.scalar()

    offset = (page - 1) * page_size
    result = await db.execute(
        select(Payment)
        .where(*conditions)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .offset(offset)
        .limit(page_size)
    )

    return PaymentListResponse(
        payments=[PaymentResponse.model_validate(p) for p in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size
    )


@router.post("/{payment_id}/gateway-callback", response_model=PaymentSettlementResponse)
async def gateway_callback(
    callback: GatewayCallbackRequest,
    payment_id: int = Path(..., description="Payment ID"),
    x_gateway_secret: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db)
):
    """
    Payment gateway confirmation: pending -> completed.

    A repeated callback for a settled payment is rejected with 409.
    """
    if not x_gateway_secret or not secrets.compare_digest(x_gateway_secret, settings.gateway_callback_secret):
        raise AuthenticationError("Invalid gateway secret")

    settlement = await PaymentVerifier.complete_from_gateway(
        db, payment_id, transaction_id=callback.transaction_id
    )
    return PaymentSettlementResponse(
        payment=PaymentResponse.model_validate(settlement.payment),
        admitted_job_ids=settlement.admitted_job_ids
    )
