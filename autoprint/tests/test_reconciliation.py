"""
Reconciliation Coordinator Tests.

Payment settlement, balance and queue admission working together.
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from sqlalchemy import select, func

from autoprint.app.core.clock import utcnow
from autoprint.app.core.exceptions import (
    InsufficientFundsError, InvalidTransitionError, ResourceNotFoundError, UnfundedError, ValidationFailedError
)
from autoprint.app.domain.billing.balance_ledger import BalanceLedger
from autoprint.app.domain.billing.payment_verifier import PaymentVerifier
from autoprint.app.domain.print_jobs.queue_scheduler import QueueScheduler
from autoprint.app.domain.print_jobs.reconciliation import (
    AdmissionOutcome, ReconciliationCoordinator, generate_job_number
)
from autoprint.app.domain.print_jobs.state_machine import PrintJobStateMachine
from autoprint.app.domain.print_jobs.transitions import load_job
from autoprint.app.models.billing_enums import PaymentMethod, LedgerEntryType
from autoprint.app.models.ledger_entry import LedgerEntry
from autoprint.app.models.pricing_rule import PricingRule
from autoprint.app.models.print_job import PrintJob
from autoprint.app.models.print_job_enums import PrintJobStatus, ColorMode


async def _debit_count(db, job_id):
    result = await db.execute(
        select(func.count(LedgerEntry.id)).where(
            LedgerEntry.print_job_id == job_id,
            LedgerEntry.entry_type == LedgerEntryType.DEBIT
        )
    )
    return result.scalar()


@pytest.mark.asyncio
async def test_unfunded_job_is_admitted_when_its_payment_is_verified(db_session, student, make_document, operator):
    """Balance 0, job cost 10: unfunded until a payment of 10 is verified."""
    document = await make_document(db_session, student.id, page_count=5)

    result = await ReconciliationCoordinator.create_print_job(db_session, student.id, document.id)

    assert result.outcome == AdmissionOutcome.UNFUNDED
    assert result.job.status == PrintJobStatus.AWAITING_PAYMENT
    assert result.job.total_cost == Decimal("10.00")
    assert result.balance == Decimal("0")
    assert result.job.queue_position is None

    payment = await PaymentVerifier.create_payment(
        db_session, student.id, Decimal("10.00"), PaymentMethod.MOBILE_WALLET, print_job_id=result.job.id
    )
    settlement = await PaymentVerifier.verify(db_session, payment.id, operator["username"])

    assert settlement.admitted_job_ids == [result.job.id]
    job = await load_job(db_session, result.job.id)
    assert job.status == PrintJobStatus.QUEUED
    assert job.queue_position == 1
    assert job.payment_id == payment.id
    assert job.funded_at is not None
    assert await BalanceLedger.balance_of(db_session, student.id) == Decimal("0.00")
    assert await _debit_count(db_session, job.id) == 1


@pytest.mark.asyncio
async def test_existing_balance_funds_jobs_in_submission_order(db_session, student, make_document, top_up, operator):
    """Balance 10, two jobs costing 5: positions 1 and 2, A printed first."""
    db_session.add(PricingRule(
        rule_name="Term rate",
        cost_per_page_bw=Decimal("1.00"),
        cost_per_page_color=Decimal("3.00"),
        effective_from=utcnow() - timedelta(days=1),
        created_by="admin"
    ))
    await db_session.commit()
    await top_up(db_session, student.id, "10.00")

    doc_a = await make_document(db_session, student.id, page_count=5)
    doc_b = await make_document(db_session, student.id, page_count=5)
    job_a = (await ReconciliationCoordinator.create_print_job(db_session, student.id, doc_a.id)).job
    job_b = (await ReconciliationCoordinator.create_print_job(db_session, student.id, doc_b.id)).job

    assert job_a.total_cost == Decimal("5.00")
    assert (job_a.queue_position, job_b.queue_position) == (1, 2)
    assert (await QueueScheduler.next_to_print(db_session)).id == job_a.id

    await PrintJobStateMachine.start(db_session, job_a.id, operator)

    assert (await QueueScheduler.next_to_print(db_session)).id == job_b.id
    assert await BalanceLedger.balance_of(db_session, student.id) == Decimal("0.00")


@pytest.mark.asyncio
async def test_job_costing_more_than_balance_never_reaches_queue(db_session, student, make_document, top_up, operator):
    student_id = student.id
    await top_up(db_session, student_id, "5.00")
    document = await make_document(db_session, student.id, page_count=5)
    job = (await ReconciliationCoordinator.create_print_job(db_session, student.id, document.id)).job
    job_id = job.id

    with pytest.raises(UnfundedError) as exc_info:
        await ReconciliationCoordinator.admit_or_raise(db_session, job_id, actor=operator["username"])

    assert exc_info.value.status_code == 402
    assert exc_info.value.details["total_cost"] == "10.00"
    job = await load_job(db_session, job_id)
    assert job.status == PrintJobStatus.AWAITING_PAYMENT
    assert await _debit_count(db_session, job_id) == 0
    assert await BalanceLedger.balance_of(db_session, student_id) == Decimal("5.00")


async def _waiting_job(db, account_id, document_id, total_cost="10.00"):
    job = PrintJob(
        job_number=generate_job_number(),
        account_id=account_id,
        document_id=document_id,
        status=PrintJobStatus.AWAITING_PAYMENT,
        copies=1,
        total_pages=5,
        cost_per_page=Decimal("2.00"),
        total_cost=Decimal(total_cost)
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)
    return job


@pytest.mark.asyncio
async def test_manual_admission_of_a_covered_job(db_session, student, make_document, top_up, operator):
    """A job left waiting although the balance covers it is admitted on re-check."""
    await top_up(db_session, student.id, "10.00")
    document = await make_document(db_session, student.id, page_count=5)
    job = await _waiting_job(db_session, student.id, document.id)

    admitted = await ReconciliationCoordinator.admit_or_raise(db_session, job.id, actor=operator["username"])

    assert admitted.status == PrintJobStatus.QUEUED
    assert admitted.queue_position == 1


@pytest.mark.asyncio
async def test_admission_only_from_awaiting_payment(db_session, student, make_document, top_up):
    await top_up(db_session, student.id, "10.00")
    document = await make_document(db_session, student.id, page_count=5)
    job = (await ReconciliationCoordinator.create_print_job(db_session, student.id, document.id)).job
    job_id = job.id
    assert job.status == PrintJobStatus.QUEUED

    with pytest.raises(InvalidTransitionError):
        await ReconciliationCoordinator.try_admit(db_session, job_id)
    assert await _debit_count(db_session, job_id) == 1


@pytest.mark.asyncio
async def test_payment_admits_linked_jobs_oldest_first(db_session, student, make_document, operator):
    payment = await PaymentVerifier.create_payment(db_session, student.id, Decimal("15.00"), PaymentMethod.CARD)
    doc_1 = await make_document(db_session, student.id, page_count=5)
    doc_2 = await make_document(db_session, student.id, page_count=5)
    older = (await ReconciliationCoordinator.create_print_job(db_session, student.id, doc_1.id, payment.id)).job
    newer = (await ReconciliationCoordinator.create_print_job(db_session, student.id, doc_2.id, payment.id)).job

    settlement = await PaymentVerifier.verify(db_session, payment.id, operator["username"])

    assert settlement.admitted_job_ids == [older.id]
    assert [a.outcome for a in settlement.admissions] == [AdmissionOutcome.ADMITTED, AdmissionOutcome.UNFUNDED]
    assert (await load_job(db_session, newer.id)).status == PrintJobStatus.AWAITING_PAYMENT
    assert await BalanceLedger.balance_of(db_session, student.id) == Decimal("5.00")


@pytest.mark.asyncio
async def test_job_holds_one_pending_payment(db_session, student, make_document, operator):
    student_id = student.id
    document = await make_document(db_session, student_id, page_count=5)
    job_id = (await ReconciliationCoordinator.create_print_job(db_session, student_id, document.id)).job.id
    first = await PaymentVerifier.create_payment(
        db_session, student_id, Decimal("4.00"), PaymentMethod.CARD, print_job_id=job_id
    )
    first_id = first.id

    with pytest.raises(ValidationFailedError):
        await PaymentVerifier.create_payment(
            db_session, student_id, Decimal("10.00"), PaymentMethod.CARD, print_job_id=job_id
        )

    await PaymentVerifier.reject(db_session, first_id, "Wrong amount", operator["username"])
    replacement = await PaymentVerifier.create_payment(
        db_session, student_id, Decimal("10.00"), PaymentMethod.CARD, print_job_id=job_id
    )
    settlement = await PaymentVerifier.verify(db_session, replacement.id, operator["username"])

    assert settlement.admitted_job_ids == [job_id]


@pytest.mark.asyncio
async def test_failed_payment_cannot_fund_new_job(db_session, student, make_document, operator):
    payment = await PaymentVerifier.create_payment(db_session, student.id, Decimal("10.00"), PaymentMethod.CARD)
    await PaymentVerifier.reject(db_session, payment.id, None, operator["username"])
    document = await make_document(db_session, student.id)

    with pytest.raises(ValidationFailedError):
        await ReconciliationCoordinator.create_print_job(db_session, student.id, document.id, payment.id)


@pytest.mark.asyncio
async def test_cannot_print_another_accounts_document(db_session, student, make_account, make_document):
    other = await make_account(db_session, "student2")
    document = await make_document(db_session, other.id)

    with pytest.raises(ResourceNotFoundError):
        await ReconciliationCoordinator.create_print_job(db_session, student.id, document.id)


@pytest.mark.asyncio
async def test_color_jobs_use_color_rate(db_session, student, make_document):
    document = await make_document(db_session, student.id, page_count=3, copies=2, color_mode=ColorMode.COLOR)

    job = (await ReconciliationCoordinator.create_print_job(db_session, student.id, document.id)).job

    assert job.total_pages == 6
    assert job.cost_per_page == Decimal("5.00")
    assert job.total_cost == Decimal("30.00")
    assert job.job_number.startswith("PJ")


@pytest.mark.asyncio
async def test_partly_paid_job_takes_a_second_payment(db_session, student, make_document, operator):
    """Job costs 10; a verified 5.00 payment does not block linking another 5.00."""
    student_id = student.id
    document = await make_document(db_session, student_id, page_count=5)
    job_id = (await ReconciliationCoordinator.create_print_job(db_session, student_id, document.id)).job.id

    first = await PaymentVerifier.create_payment(
        db_session, student_id, Decimal("5.00"), PaymentMethod.CARD, print_job_id=job_id
    )
    settlement = await PaymentVerifier.verify(db_session, first.id, operator["username"])
    assert settlement.admitted_job_ids == []

    second = await PaymentVerifier.create_payment(
        db_session, student_id, Decimal("5.00"), PaymentMethod.CARD, print_job_id=job_id
    )
    settlement = await PaymentVerifier.verify(db_session, second.id, operator["username"])

    assert settlement.admitted_job_ids == [job_id]
    job = await load_job(db_session, job_id)
    assert job.status == PrintJobStatus.QUEUED
    assert job.payment_id == second.id
    assert await BalanceLedger.balance_of(db_session, student_id) == Decimal("0.00")


@pytest.mark.asyncio
async def test_unlinked_payment_admits_waiting_jobs_oldest_first(db_session, student, make_document, operator):
    student_id = student.id
    linked_doc = await make_document(db_session, student_id, page_count=5)
    older_doc = await make_document(db_session, student_id, page_count=5)
    newer_doc = await make_document(db_session, student_id, page_count=5)
    partly_paid = (await ReconciliationCoordinator.create_print_job(db_session, student_id, linked_doc.id)).job.id
    older = (await ReconciliationCoordinator.create_print_job(db_session, student_id, older_doc.id)).job.id
    newer = (await ReconciliationCoordinator.create_print_job(db_session, student_id, newer_doc.id)).job.id

    deposit = await PaymentVerifier.create_payment(
        db_session, student_id, Decimal("5.00"), PaymentMethod.CARD, print_job_id=partly_paid
    )
    await PaymentVerifier.verify(db_session, deposit.id, operator["username"])

    top_up = await PaymentVerifier.create_payment(db_session, student_id, Decimal("15.00"), PaymentMethod.TRANSFER)
    settlement = await PaymentVerifier.verify(db_session, top_up.id, operator["username"])

    assert settlement.admitted_job_ids == [partly_paid, older]
    assert (await load_job(db_session, partly_paid)).queue_position == 1
    assert (await load_job(db_session, older)).queue_position == 2
    assert (await load_job(db_session, newer)).status == PrintJobStatus.AWAITING_PAYMENT
    assert await BalanceLedger.balance_of(db_session, student_id) == Decimal("0.00")


@pytest.mark.asyncio
async def test_positive_adjustment_admits_waiting_jobs(db_session, student, make_document, operator):
    student_id = student.id
    document = await make_document(db_session, student_id, page_count=5)
    job_id = (await ReconciliationCoordinator.create_print_job(db_session, student_id, document.id)).job.id

    entry, admissions = await ReconciliationCoordinator.adjust_balance(
        db_session, student_id, Decimal("12.00"), "Refund for jammed printer", operator
    )

    assert entry.entry_type == LedgerEntryType.ADJUSTMENT
    assert entry.balance_after == Decimal("12.00")
    assert [a.job.id for a in admissions if a.admitted] == [job_id]
    assert (await load_job(db_session, job_id)).status == PrintJobStatus.QUEUED
    assert await BalanceLedger.balance_of(db_session, student_id) == Decimal("2.00")


@pytest.mark.asyncio
async def test_negative_adjustment_cannot_overdraw(db_session, student, top_up, operator):
    student_id = student.id
    await top_up(db_session, student_id, "3.00")

    with pytest.raises(InsufficientFundsError):
        await ReconciliationCoordinator.adjust_balance(db_session, student_id, Decimal("-5.00"), "Chargeback", operator)
    assert await BalanceLedger.balance_of(db_session, student_id) == Decimal("3.00")

    entry, admissions = await ReconciliationCoordinator.adjust_balance(
        db_session, student_id, Decimal("-3.00"), "Chargeback", operator
    )
    assert entry.amount == Decimal("-3.00")
    assert admissions == []
    assert await BalanceLedger.balance_of(db_session, student_id) == Decimal("0.00")


@pytest.mark.asyncio
async def test_adjustment_for_unknown_account(db_session, operator):
    with pytest.raises(ResourceNotFoundError):
        await ReconciliationCoordinator.adjust_balance(db_session, 404, Decimal("1.00"), "Typo", operator)
