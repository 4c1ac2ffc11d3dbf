"""
Admin Billing API Endpoints.

Payment verification, pricing rule management and the audit trail.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Path, Query, Body, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc, func

from autoprint.app.db.session import get_db, unit_of_work
from autoprint.app.models.payment import Payment
from autoprint.app.models.pricing_rule import PricingRule
from autoprint.app.models.billing_enums import PaymentStatus, PaymentMethod
from autoprint.app.schemas.billing import (
    PaymentResponse, PaymentListResponse, PaymentVerifyRequest, PaymentRejectRequest,
    PaymentSettlementResponse, PricingRuleCreate, PricingRuleResponse
)
from autoprint.app.schemas.admin import AuditLogResponse
from autoprint.app.core.guards import require_operator
from autoprint.app.core.exceptions import ValidationFailedError
from autoprint.app.domain.billing.payment_verifier import PaymentVerifier
from autoprint.app.services.audit import log_event, get_audit_trail, AuditAction, ResourceType

router = APIRouter(prefix="/admin", tags=["Admin - Billing"])


@router.get("/payments", response_model=PaymentListResponse)
async def list_payments(
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    account_id: Optional[int] = Query(None, ge=1),
    method: Optional[PaymentMethod] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    All payments, newest first, with optional filters.
    """
    conditions = []
    if status_filter:
        conditions.append(Payment.status == status_filter)
    if account_id:
        conditions.append(Payment.account_id == account_id)
    if method:
        conditions.append(Payment.method == method)

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


@router.put("/payments/{payment_id}/verify", response_model=PaymentSettlementResponse)
async def verify_payment(
    payment_id: int = Path(..., description="Payment ID"),
    verification: Optional[PaymentVerifyRequest] = Body(None),
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    Verify a PENDING payment: credit the account and admit the jobs it funds.

    Verifying a payment twice returns 409.
    """
    settlement = await PaymentVerifier.verify(
        db, payment_id, operator["username"], notes=verification.notes if verification else None
    )
    return PaymentSettlementResponse(
        payment=PaymentResponse.model_validate(settlement.payment),
        admitted_job_ids=settlement.admitted_job_ids
    )


@router.put("/payments/{payment_id}/reject", response_model=PaymentResponse)
async def reject_payment(
    payment_id: int = Path(..., description="Payment ID"),
    rejection: Optional[PaymentRejectRequest] = Body(None),
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    payment = await PaymentVerifier.reject(
        db, payment_id, reason=rejection.reason if rejection else None, rejected_by=operator["username"]
    )
    return PaymentResponse.model_validate(payment)


@router.post("/pricing-rules", response_model=PricingRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_pricing_rule(
    rule: PricingRuleCreate,
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a new pricing rule.

    Rules are not deactivated on insert; the resolver picks the active rule
    with the latest effective_from.
    """
    if rule.effective_until and rule.effective_until <= rule.effective_from:
        raise ValidationFailedError("effective_until must be after effective_from")

    async with unit_of_work(db):
        new_rule = PricingRule(
            rule_name=rule.rule_name,
            cost_per_page_bw=rule.cost_per_page_bw,
            cost_per_page_color=rule.cost_per_page_color,
            effective_from=rule.effective_from,
            effective_until=rule.effective_until,
            is_active=True,
            created_by=operator["username"]
        )
        db.add(new_rule)
        await db.flush()

        await log_event(
            db=db,
            action=AuditAction.PRICING_RULE_CREATED,
            actor_username=operator["username"],
            resource_type=ResourceType.PRICING_RULE,
            resource_id=new_rule.id,
            metadata={
                "name": new_rule.rule_name,
                "cost_per_page_bw": str(new_rule.cost_per_page_bw),
                "cost_per_page_color": str(new_rule.cost_per_page_color)
            }
        )

    await db.refresh(new_rule)
    return new_rule


@router.get("/pricing-rules", response_model=List[PricingRuleResponse])
async def list_pricing_rules(
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    List all pricing rules.
    """
    result = await db.execute(
        select(PricingRule).order_by(desc(PricingRule.effective_from), desc(PricingRule.id))
    )
    return result.scalars().all()


@router.get("/audit-log", response_model=List[AuditLogResponse])
async def list_audit_log(
    resource_type: Optional[str] = Query(None),
    resource_id: Optional[int] = Query(None, ge=1),
    action: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    return await get_audit_trail(
        db, resource_type=resource_type, resource_id=resource_id, action=action, limit=limit
    )
