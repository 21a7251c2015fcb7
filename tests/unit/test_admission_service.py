from __future__ import annotations

from datetime import timedelta

import pytest

from dm_service.application.exceptions import ValidationError
from dm_service.domain.value_objects.enums import AutoMessageState
from dm_service.services import admission_service
from tests.conftest import NOW, FakeDeliveryQueue, make_auto_message


def _seed(uow, *records):
    for record in records:
        uow.db.auto_messages[record.id] = record
    return records


@pytest.mark.asyncio
async def test_admits_only_due_records(uow):
    due, future, sent, queued = _seed(
        uow,
        make_auto_message(send_date=NOW - timedelta(minutes=5)),
        make_auto_message(send_date=NOW + timedelta(hours=1)),
        make_auto_message(is_sent=True),
        make_auto_message(is_queued=True),
    )
    queue = FakeDeliveryQueue()

    report = await admission_service.admit_due_messages(uow, queue, now=NOW)

    assert (report.found, report.queued) == (1, 1)
    assert [j.auto_message_id for j in queue.published] == [due.id]
    assert uow.db.auto_messages[due.id].state == AutoMessageState.QUEUED
    assert uow.db.auto_messages[future.id].state == AutoMessageState.DRAFTED


@pytest.mark.asyncio
async def test_records_at_retry_ceiling_are_never_admitted(uow):
    (exhausted,) = _seed(uow, make_auto_message(retry_count=3, max_retries=3, error_message="boom"))
    queue = FakeDeliveryQueue()

    report = await admission_service.admit_due_messages(uow, queue, now=NOW)

    assert report.found == 0
    assert queue.published == []
    assert uow.db.auto_messages[exhausted.id].state == AutoMessageState.FAILED


@pytest.mark.asyncio
async def test_rejected_publish_leaves_record_drafted_with_retry(uow):
    (record,) = _seed(uow, make_auto_message())
    queue = FakeDeliveryQueue(accept=False)

    report = await admission_service.admit_due_messages(uow, queue, now=NOW)

    stored = uow.db.auto_messages[record.id]
    assert report.queued == 0
    assert stored.state == AutoMessageState.DRAFTED
    assert stored.retry_count == 1
    assert stored.error_message == admission_service.QUEUE_FAILED_ERROR


@pytest.mark.asyncio
async def test_repeated_rejections_reach_failed_state(uow):
    (record,) = _seed(uow, make_auto_message())
    queue = FakeDeliveryQueue(accept=False)

    for _ in range(5):
        await admission_service.admit_due_messages(uow, queue, now=NOW)

    stored = uow.db.auto_messages[record.id]
    assert stored.retry_count == 3
    assert stored.state == AutoMessageState.FAILED


@pytest.mark.asyncio
async def test_published_job_carries_record_fields(uow):
    (record,) = _seed(uow, make_auto_message(sender_id=2, receiver_id=3, content="Hey! What's new?"))
    queue = FakeDeliveryQueue()

    await admission_service.admit_due_messages(uow, queue, now=NOW)

    [job] = queue.published
    assert job.auto_message_id == record.id
    assert (job.sender_id, job.receiver_id) == (2, 3)
    assert job.content == "Hey! What's new?"
    assert job.attempt == 0


@pytest.mark.asyncio
async def test_retry_sweep_resets_and_resubmits_once(uow):
    failed, healthy = _seed(
        uow,
        make_auto_message(retry_count=3, error_message="store down"),
        make_auto_message(),
    )
    queue = FakeDeliveryQueue()

    report = await admission_service.retry_failed_messages(uow, queue, now=NOW)

    assert (report.found, report.resubmitted) == (1, 1)
    stored = uow.db.auto_messages[failed.id]
    assert stored.retry_count == 0
    assert stored.error_message is None
    assert stored.state == AutoMessageState.QUEUED
    assert [j.auto_message_id for j in queue.published] == [failed.id]
    assert uow.db.auto_messages[healthy.id].state == AutoMessageState.DRAFTED


@pytest.mark.asyncio
async def test_queue_status_counts(uow):
    _seed(
        uow,
        make_auto_message(),
        make_auto_message(),
        make_auto_message(is_queued=True),
        make_auto_message(is_sent=True),
        make_auto_message(retry_count=3, error_message="x"),
    )

    status = await admission_service.queue_status(uow, now=NOW)

    assert (status.pending, status.queued, status.sent, status.failed) == (2, 1, 1, 1)
    assert status.total == 5


@pytest.mark.asyncio
async def test_send_test_message_drafts_and_queues(uow):
    queue = FakeDeliveryQueue()

    draft, queued = await admission_service.send_test_message(1, 2, "test ping", uow, queue, now=NOW)

    assert queued is True
    assert draft.metadata["kind"] == "test"
    assert uow.db.auto_messages[draft.id].is_queued is True
    assert queue.published[0].auto_message_id == draft.id


@pytest.mark.asyncio
async def test_send_test_message_rejects_self_send(uow):
    with pytest.raises(ValidationError):
        await admission_service.send_test_message(1, 1, "me", uow, FakeDeliveryQueue(), now=NOW)
