"""
Reconciliation Coordinator (Domain Logic).

Ties payment settlement to job readiness. Settled payments (verified by an
operator or completed by the gateway) are credited to the account balance;
admission debits the job's total cost from that balance exactly once and
appends the job to the queue in the same transaction. This is the only
place where ledger state and job state change together.

Admission is attempted:
(a) right after a job is created,
(b) whenever the balance grows: after a payment settles (jobs linked to the
    payment first, then the account's other waiting jobs) and after a
    positive operator adjustment,
(c) on demand, when an operator re-checks a job.
"""

import enum
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_

from autoprint.app.core.clock import utcnow
from autoprint.app.core.exceptions import (
    ResourceNotFoundError, InsufficientFundsError, InvalidTransitionError,
    UnfundedError, ValidationFailedError
)
from autoprint.app.db.session import unit_of_work
from autoprint.app.domain.billing.balance_ledger import BalanceLedger
from autoprint.app.domain.billing.pricing_resolver import PricingResolver
from autoprint.app.domain.print_jobs.queue_scheduler import QueueScheduler
from autoprint.app.domain.print_jobs.transitions import load_job, guard_transition
from autoprint.app.models.document import Document
from autoprint.app.models.ledger_entry import LedgerEntry
from autoprint.app.models.payment import Payment
from autoprint.app.models.print_job import PrintJob
from autoprint.app.models.billing_enums import PaymentStatus
from autoprint.app.models.print_job_enums import PrintJobStatus
from autoprint.app.services.audit import log_event, AuditAction, ResourceType

logger = logging.getLogger("autoprint.reconciliation")


class AdmissionOutcome(str, enum.Enum):
    ADMITTED = "admitted"
    UNFUNDED = "unfunded"


@dataclass
class AdmissionResult:
    outcome: AdmissionOutcome
    job: PrintJob
    balance: Optional[Decimal] = None

    @property
    def admitted(self) -> bool:
        return self.outcome == AdmissionOutcome.ADMITTED


def generate_job_number() -> str:
    return f"PJ{uuid.uuid4().hex[:10].upper()}"


class ReconciliationCoordinator:

    @staticmethod
    async def create_print_job(
        db: AsyncSession,
        account_id: int,
        document_id: int,
        payment_id: Optional[int] = None,
        copies: Optional[int] = None
    ) -> AdmissionResult:
        """
        Create a job in AWAITING_PAYMENT with its cost fixed, then try to admit it.

        Creation commits on its own; the admission attempt runs in a second
        transaction, so an unfunded job is still recorded.

        Raises:
            ResourceNotFoundError: If the document (or payment) is absent or
                belongs to another account.
            ValidationFailedError: If the payment has failed.
        """
        async with unit_of_work(db):
            document = await db.get(Document, document_id)
            if not document or document.account_id != account_id:
                raise ResourceNotFoundError("Document", document_id)

            if payment_id is not None:
                payment = await db.get(Payment, payment_id)
                if not payment or payment.account_id != account_id:
                    raise ResourceNotFoundError("Payment", payment_id)
                if payment.status == PaymentStatus.FAILED:
                    raise ValidationFailedError(
                        f"Payment {payment_id} has failed and cannot fund a print job",
                        details={"payment_id": payment_id}
                    )

            job_copies = copies or document.copies
            cost_per_page = await PricingResolver.resolve_cost_per_page(db, document.color_mode)
            try:
                cost = PricingResolver.compute_cost(document.page_count, job_copies, cost_per_page)
            except ValueError as exc:
                raise ValidationFailedError(str(exc)) from exc

            job = PrintJob(
                job_number=generate_job_number(),
                account_id=account_id,
                document_id=document.id,
                payment_id=payment_id,
                status=PrintJobStatus.AWAITING_PAYMENT,
                copies=job_copies,
                total_pages=cost.total_pages,
                cost_per_page=cost.cost_per_page,
                total_cost=cost.total_cost
            )
            db.add(job)
            await db.flush()

            if payment_id is not None and payment.print_job_id is None:
                payment.print_job_id = job.id

            await log_event(
                db=db,
                action=AuditAction.PRINT_JOB_CREATED,
                actor_id=account_id,
                resource_type=ResourceType.PRINT_JOB,
                resource_id=job.id,
                metadata={"total_cost": str(cost.total_cost), "total_pages": cost.total_pages}
            )

        logger.info("Print job %s created for account %s (cost %s)", job.id, account_id, job.total_cost)
        return await ReconciliationCoordinator.try_admit(db, job.id)

    @staticmethod
    async def link_payment(db: AsyncSession, job: PrintJob, payment: Payment) -> PrintJob:
        """
        Attach a payment to a job still waiting for funds.

        A job holds at most one pending payment. A settled payment no longer
        blocks a new link, since its credit already sits in the balance and
        a partly paid job may need a second payment. Must run inside a unit
        of work.
        """
        if job.account_id != payment.account_id:
            raise ResourceNotFoundError("Print job", job.id)
        if job.status != PrintJobStatus.AWAITING_PAYMENT:
            raise InvalidTransitionError("Print job", job.id, job.status.value, "payment linked")

        if job.payment_id is not None and job.payment_id != payment.id:
            current = await db.get(Payment, job.payment_id, populate_existing=True)
            if current is not None and current.status == PaymentStatus.PENDING:
                raise ValidationFailedError(
                    f"Print job {job.id} already has a pending payment",
                    details={"print_job_id": job.id, "payment_id": job.payment_id}
                )

        job.payment_id = payment.id
        await db.flush()
        return job

    @staticmethod
    async def try_admit(db: AsyncSession, job_id: int, actor: Optional[str] = None) -> AdmissionResult:
        """
        Evaluate the funding guard and, if it passes, enqueue the job.

        The guard is the balance debit itself: it succeeds only if the
        balance (which already includes every settled payment) covers the
        job's total cost. On failure nothing is written and the job stays
        AWAITING_PAYMENT.

        Raises:
            ResourceNotFoundError: If the job does not exist.
            AlreadyFinalizedError: If the job is terminal.
            InvalidTransitionError: If the job is not AWAITING_PAYMENT.
            ConflictError: If the job was moved concurrently.
        """
        async with unit_of_work(db):
            job = await load_job(db, job_id, lock=True)
            guard_transition(job, PrintJobStatus.QUEUED)
            if job.status != PrintJobStatus.AWAITING_PAYMENT:
                raise InvalidTransitionError("Print job", job.id, job.status.value, PrintJobStatus.QUEUED.value)

            try:
                await BalanceLedger.debit(
                    db, job.account_id, job.total_cost, job.id,
                    description=f"Print job {job.job_number}"
                )
            except InsufficientFundsError as exc:
                logger.info("Print job %s unfunded (cost %s)", job.id, job.total_cost)
                return AdmissionResult(
                    AdmissionOutcome.UNFUNDED, job, balance=Decimal(exc.details["available"])
                )

            await QueueScheduler.enqueue(db, job, funded_at=utcnow())
            await log_event(
                db=db,
                action=AuditAction.PRINT_JOB_ADMITTED,
                actor_username=actor,
                resource_type=ResourceType.PRINT_JOB,
                resource_id=job.id,
                metadata={
                    "queue_position": job.queue_position,
                    "total_cost": str(job.total_cost),
                    "payment_id": job.payment_id
                }
            )

        return AdmissionResult(AdmissionOutcome.ADMITTED, job)

    @staticmethod
    async def admit_or_raise(db: AsyncSession, job_id: int, actor: Optional[str] = None) -> PrintJob:
        """
        Operator re-check of a job's funding.

        Raises:
            UnfundedError: If the funding guard fails.
        """
        result = await ReconciliationCoordinator.try_admit(db, job_id, actor=actor)
        if not result.admitted:
            raise UnfundedError(job_id, result.job.total_cost, result.balance)
        return result.job

    @staticmethod
    async def admit_jobs_for_payment(db: AsyncSession, payment_id: int) -> list[AdmissionResult]:
        """
        Admit the jobs a settled payment can now fund.

        Jobs referencing the payment go first, then the account's other
        AWAITING_PAYMENT jobs; each group oldest first. Runs inside the
        settlement unit of work, so the credit and the admissions commit
        together.
        """
        account_id = (
            await db.execute(select(Payment.account_id).where(Payment.id == payment_id))
        ).scalar_one()

        linked = await ReconciliationCoordinator._waiting_job_ids(db, PrintJob.payment_id == payment_id)
        others = await ReconciliationCoordinator._waiting_job_ids(
            db,
            PrintJob.account_id == account_id,
            or_(PrintJob.payment_id.is_(None), PrintJob.payment_id != payment_id)
        )
        return await ReconciliationCoordinator._admit_each(db, linked + others)

    @staticmethod
    async def admit_waiting_jobs(
        db: AsyncSession, account_id: int, actor: Optional[str] = None
    ) -> list[AdmissionResult]:
        """Try every AWAITING_PAYMENT job of an account, oldest first."""
        job_ids = await ReconciliationCoordinator._waiting_job_ids(db, PrintJob.account_id == account_id)
        return await ReconciliationCoordinator._admit_each(db, job_ids, actor=actor)

    @staticmethod
    async def _waiting_job_ids(db: AsyncSession, *conditions) -> list[int]:
        result = await db.execute(
            select(PrintJob.id)
            .where(PrintJob.status == PrintJobStatus.AWAITING_PAYMENT, *conditions)
            .order_by(PrintJob.created_at.asc(), PrintJob.id.asc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def _admit_each(db: AsyncSession, job_ids: list[int], actor: Optional[str] = None) -> list[AdmissionResult]:
        admissions = []
        for job_id in job_ids:
            admissions.append(await ReconciliationCoordinator.try_admit(db, job_id, actor=actor))
        return admissions

    @staticmethod
    async def adjust_balance(
        db: AsyncSession,
        account_id: int,
        amount: Decimal,
        reason: str,
        operator: dict
    ) -> tuple[LedgerEntry, list[AdmissionResult]]:
        """
        Audited operator correction of an account balance.

        A positive adjustment admits the account's waiting jobs in the same
        transaction.

        Raises:
            ResourceNotFoundError: If the account does not exist.
            ValidationFailedError: If amount is zero.
            InsufficientFundsError: If a negative adjustment exceeds the balance.
        """
        actor = operator.get("username")
        async with unit_of_work(db):
            entry = await BalanceLedger.adjust(db, account_id, amount, reason, actor=actor)
            admissions = []
            if entry.amount > 0:
                admissions = await ReconciliationCoordinator.admit_waiting_jobs(db, account_id, actor=actor)

            await log_event(
                db=db,
                action=AuditAction.BALANCE_ADJUSTED,
                actor_username=actor,
                resource_type=ResourceType.ACCOUNT,
                resource_id=account_id,
                metadata={
                    "amount": str(entry.amount),
                    "balance_after": str(entry.balance_after),
                    "reason": reason,
                    "admitted_jobs": [a.job.id for a in admissions if a.admitted]
                }
            )

        logger.info("Account %s adjusted by %s; admitted %s", account_id, entry.amount,
                    [a.job.id for a in admissions if a.admitted])
        return entry, admissions

    @staticmethod
    async def reconfirm(db: AsyncSession, job_id: int, operator: dict) -> PrintJob:
        """
        waiting_for_confirm -> queued, appended at the tail.

        The job was funded on first admission, so no second debit is taken;
        its previous position is not restored.
        """
        async with unit_of_work(db):
            job = await load_job(db, job_id, lock=True)
            guard_transition(job, PrintJobStatus.QUEUED)
            if job.status != PrintJobStatus.WAITING_FOR_CONFIRM:
                raise InvalidTransitionError("Print job", job.id, job.status.value, PrintJobStatus.QUEUED.value)

            await QueueScheduler.enqueue(db, job, held_at=None)
            await log_event(
                db=db,
                action=AuditAction.PRINT_JOB_RECONFIRMED,
                actor_username=operator.get("username"),
                resource_type=ResourceType.PRINT_JOB,
                resource_id=job.id,
                metadata={"queue_position": job.queue_position}
            )
        return job
