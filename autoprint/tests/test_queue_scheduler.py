"""
Queue Scheduler Tests.

Positions follow enqueue order, are never renumbered, and drive
next-to-print selection.
"""

import pytest

from autoprint.app.domain.print_jobs.queue_scheduler import QueueScheduler
from autoprint.app.domain.print_jobs.reconciliation import ReconciliationCoordinator
from autoprint.app.domain.print_jobs.state_machine import PrintJobStateMachine
from autoprint.app.models.print_job_enums import PrintJobStatus


@pytest.fixture
async def submit_job(db_session, student, make_document):
    async def _submit():
        document = await make_document(db_session, student.id, page_count=5)
        result = await ReconciliationCoordinator.create_print_job(db_session, student.id, document.id)
        return result.job
    return _submit


@pytest.mark.asyncio
async def test_next_to_print_on_empty_queue(db_session):
    assert await QueueScheduler.next_to_print(db_session) is None


@pytest.mark.asyncio
async def test_positions_follow_enqueue_order(db_session, student, top_up, submit_job):
    await top_up(db_session, student.id, "30.00")

    jobs = [await submit_job() for _ in range(3)]

    assert [job.queue_position for job in jobs] == [1, 2, 3]
    queued = await QueueScheduler.queued_jobs(db_session)
    assert [job.id for job in queued] == [job.id for job in jobs]


@pytest.mark.asyncio
async def test_leaving_the_queue_does_not_renumber(db_session, student, top_up, submit_job, operator):
    await top_up(db_session, student.id, "30.00")
    first, second, third = [await submit_job() for _ in range(3)]

    await PrintJobStateMachine.hold(db_session, second.id, operator)

    queued = await QueueScheduler.queued_jobs(db_session)
    assert [(job.id, job.queue_position) for job in queued] == [(first.id, 1), (third.id, 3)]

    await top_up(db_session, student.id, "10.00")
    fourth = await submit_job()
    assert fourth.queue_position == 4


@pytest.mark.asyncio
async def test_next_to_print_advances_after_start(db_session, student, top_up, submit_job, operator):
    await top_up(db_session, student.id, "20.00")
    first, second = await submit_job(), await submit_job()

    assert (await QueueScheduler.next_to_print(db_session)).id == first.id

    await PrintJobStateMachine.start(db_session, first.id, operator)

    assert (await QueueScheduler.next_to_print(db_session)).id == second.id


@pytest.mark.asyncio
async def test_queue_snapshot_groups_active_jobs(db_session, student, top_up, submit_job, operator):
    await top_up(db_session, student.id, "40.00")
    printing, held, queued_a, queued_b = [await submit_job() for _ in range(4)]
    await PrintJobStateMachine.start(db_session, printing.id, operator)
    await PrintJobStateMachine.hold(db_session, held.id, operator)
    unfunded = await submit_job()
    assert unfunded.status == PrintJobStatus.AWAITING_PAYMENT

    snapshot = await QueueScheduler.queue_snapshot(db_session)

    assert [job.id for job in snapshot.queued] == [queued_a.id, queued_b.id]
    assert [job.id for job in snapshot.printing] == [printing.id]
    assert [job.id for job in snapshot.waiting_confirm] == [held.id]
    assert snapshot.estimated_wait_minutes == 10
