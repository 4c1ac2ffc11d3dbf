"""
Payment Verifier (Domain Logic).

Moves a payment out of PENDING exactly once:

    pending -> verified   (operator verification)
    pending -> completed  (payment gateway callback)
    pending -> failed     (rejection, no ledger effect)

Settling a payment (verified or completed) credits the Balance Ledger and
admits every job waiting on that payment, all in one transaction. Settling
an already-final payment is rejected, never silently accepted.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from autoprint.app.core.clock import utcnow
from autoprint.app.core.config import settings
from autoprint.app.core.exceptions import (
    ResourceNotFoundError, AlreadyFinalizedError, ConflictError, ValidationFailedError
)
from autoprint.app.db.session import unit_of_work
from autoprint.app.domain.billing.balance_ledger import BalanceLedger
from autoprint.app.domain.print_jobs.reconciliation import ReconciliationCoordinator, AdmissionResult
from autoprint.app.domain.print_jobs.transitions import load_job
from autoprint.app.models.account import Account
from autoprint.app.models.payment import Payment
from autoprint.app.models.billing_enums import PaymentStatus, PaymentMethod
from autoprint.app.services.audit import log_event, AuditAction, ResourceType

logger = logging.getLogger("autoprint.payments")


@dataclass
class SettlementResult:
    payment: Payment
    admissions: list[AdmissionResult] = field(default_factory=list)

    @property
    def admitted_job_ids(self) -> list[int]:
        return [admission.job.id for admission in self.admissions if admission.admitted]


async def load_payment(db: AsyncSession, payment_id: int, lock: bool = False) -> Payment:
    """
    Fetch a payment, optionally taking a row lock for the transaction.

    Raises:
        ResourceNotFoundError: If the payment does not exist.
    """
    query = select(Payment).where(Payment.id == payment_id).execution_options(populate_existing=True)
    if lock:
        query = query.with_for_update()

    result = await db.execute(query)
    payment = result.scalar_one_or_none()
    if not payment:
        raise ResourceNotFoundError("Payment", payment_id)
    return payment


class PaymentVerifier:

    @staticmethod
    async def create_payment(
        db: AsyncSession,
        account_id: int,
        amount: Decimal,
        method: PaymentMethod,
        currency: Optional[str] = None,
        transaction_id: Optional[str] = None,
        print_job_id: Optional[int] = None
    ) -> Payment:
        """
        Record a PENDING payment, optionally linked to one of the account's jobs.

        Raises:
            ValidationFailedError: If amount is not positive or the job
                already has a pending payment.
            ResourceNotFoundError: If the account or job is absent.
        """
        amount = Decimal(amount)
        if amount <= 0:
            raise ValidationFailedError("Payment amount must be positive", details={"amount": str(amount)})

        async with unit_of_work(db):
            account = await db.get(Account, account_id)
            if not account:
                raise ResourceNotFoundError("Account", account_id)

            payment = Payment(
                account_id=account_id,
                print_job_id=print_job_id,
                amount=amount,
                currency=currency or settings.currency,
                method=method,
                transaction_id=transaction_id,
                status=PaymentStatus.PENDING
            )
            db.add(payment)
            await db.flush()
            await db.refresh(payment)

            if print_job_id is not None:
                job = await load_job(db, print_job_id, lock=True)
                await ReconciliationCoordinator.link_payment(db, job, payment)

            await log_event(
                db=db,
                action=AuditAction.PAYMENT_CREATED,
                actor_id=account_id,
                resource_type=ResourceType.PAYMENT,
                resource_id=payment.id,
                metadata={"amount": str(amount), "method": method.value, "print_job_id": print_job_id}
            )

        logger.info("Payment %s of %s recorded for account %s", payment.id, amount, account_id)
        return payment

    @staticmethod
    async def _settle(
        db: AsyncSession,
        payment_id: int,
        target: PaymentStatus,
        action: str,
        actor: Optional[str],
        **values
    ) -> SettlementResult:
        async with unit_of_work(db):
            payment = await load_payment(db, payment_id, lock=True)
            if payment.status != PaymentStatus.PENDING:
                logger.warning(
                    "Refused to mark payment %s %s: already %s",
                    payment_id, target.value, payment.status.value
                )
                raise AlreadyFinalizedError("Payment", payment_id, payment.status.value)

            result = await db.execute(
                update(Payment)
                .where(Payment.id == payment_id, Payment.status == PaymentStatus.PENDING)
                .values(status=target, updated_at=utcnow(), **values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.warning("Payment %s settled concurrently by another request", payment_id)
                raise ConflictError(
                    f"Payment {payment_id} was finalized concurrently",
                    details={"payment_id": payment_id}
                )
            await db.refresh(payment)

            await BalanceLedger.credit(
                db, payment.account_id, payment.amount, payment.id,
                description=f"Payment {payment.id} ({payment.method.value})"
            )
            admissions = await ReconciliationCoordinator.admit_jobs_for_payment(db, payment.id)

            await log_event(
                db=db,
                action=action,
                actor_username=actor,
                resource_type=ResourceType.PAYMENT,
                resource_id=payment.id,
                metadata={
                    "amount": str(payment.amount),
                    "account_id": payment.account_id,
                    "admitted_jobs": [a.job.id for a in admissions if a.admitted]
                }
            )

        settlement = SettlementResult(payment=payment, admissions=admissions)
        logger.info(
            "Payment %s %s; credited %s to account %s; admitted jobs %s",
            payment.id, target.value, payment.amount, payment.account_id, settlement.admitted_job_ids
        )
        return settlement

    @staticmethod
    async def verify(
        db: AsyncSession,
        payment_id: int,
        verifier: str,
        notes: Optional[str] = None
    ) -> SettlementResult:
        """
        Operator verification: pending -> verified, credit, admit linked jobs.

        Raises:
            ResourceNotFoundError: If the payment does not exist.
            AlreadyFinalizedError: If the payment is verified, completed or failed.
            ConflictError: If a concurrent request finalized it first.
        """
        return await PaymentVerifier._settle(
            db, payment_id, PaymentStatus.VERIFIED, AuditAction.PAYMENT_VERIFIED, verifier,
            verified_by=verifier,
            verified_at=utcnow(),
            verification_notes=notes or "Payment verified by admin"
        )

    @staticmethod
    async def complete_from_gateway(
        db: AsyncSession,
        payment_id: int,
        transaction_id: Optional[str] = None
    ) -> SettlementResult:
        """
        Gateway confirmation: pending -> completed, credited like a verification.
        """
        values = {}
        if transaction_id:
            values["transaction_id"] = transaction_id
        return await PaymentVerifier._settle(
            db, payment_id, PaymentStatus.COMPLETED, AuditAction.PAYMENT_COMPLETED, "payment-gateway",
            **values
        )

    @staticmethod
    async def reject(
        db: AsyncSession,
        payment_id: int,
        reason: Optional[str] = None,
        rejected_by: Optional[str] = None
    ) -> Payment:
        """
        pending -> failed. No ledger effect; linked jobs stay AWAITING_PAYMENT.

        Raises:
            ResourceNotFoundError: If the payment does not exist.
            AlreadyFinalizedError: If the payment is no longer pending.
            ConflictError: If a concurrent request finalized it first.
        """
        async with unit_of_work(db):
            payment = await load_payment(db, payment_id, lock=True)
            if payment.status != PaymentStatus.PENDING:
                raise AlreadyFinalizedError("Payment", payment_id, payment.status.value)

            result = await db.execute(
                update(Payment)
                .where(Payment.id == payment_id, Payment.status == PaymentStatus.PENDING)
                .values(
                    status=PaymentStatus.FAILED,
                    failure_reason=reason or "Payment rejected",
                    verified_by=rejected_by,
                    verified_at=utcnow(),
                    updated_at=utcnow()
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError(
                    f"Payment {payment_id} was finalized concurrently",
                    details={"payment_id": payment_id}
                )
            await db.refresh(payment)

            await log_event(
                db=db,
                action=AuditAction.PAYMENT_REJECTED,
                actor_username=rejected_by,
                resource_type=ResourceType.PAYMENT,
                resource_id=payment.id,
                metadata={"reason": payment.failure_reason}
            )

        logger.info("Payment %s rejected: %s", payment.id, payment.failure_reason)
        return payment
