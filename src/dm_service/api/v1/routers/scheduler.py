from __future__ import annotations

from fastapi import APIRouter

from dm_service.api.deps import CurrentAdmin, SchedulerDep
from dm_service.api.v1.schemas.scheduler import (
    AdmissionResponse,
    PlanningResponse,
    QueueStatusResponse,
    RetrySweepResponse,
    SchedulerStatusResponse,
    SendTestMessageRequest,
    SendTestMessageResponse,
    TaskStatus,
)
from dm_service.application.exceptions import ConflictError

router = APIRouter(prefix="/api/v1/scheduler", tags=["scheduler"])


@router.get("/status", response_model=SchedulerStatusResponse)
async def scheduler_status(
    _admin: CurrentAdmin,
    scheduler: SchedulerDep,
) -> SchedulerStatusResponse:
    flags = scheduler.status()
    return SchedulerStatusResponse(
        is_started=flags["is_started"],
        message_planning=TaskStatus(**flags["message_planning"]),
        queue_management=TaskStatus(**flags["queue_management"]),
        queue=QueueStatusResponse.from_status(await scheduler.queue_status()),
    )


@router.get("/queue", response_model=QueueStatusResponse)
async def queue_status(
    _admin: CurrentAdmin,
    scheduler: SchedulerDep,
) -> QueueStatusResponse:
    return QueueStatusResponse.from_status(await scheduler.queue_status())


@router.post("/trigger/planning", response_model=PlanningResponse)
async def trigger_planning(
    _admin: CurrentAdmin,
    scheduler: SchedulerDep,
) -> PlanningResponse:
    drafted = await scheduler.trigger_planning()
    if drafted is None:
        raise ConflictError("Message planning is already running")
    return PlanningResponse(drafted=len(drafted))


@router.post("/trigger/queue", response_model=AdmissionResponse)
async def trigger_queue(
    _admin: CurrentAdmin,
    scheduler: SchedulerDep,
) -> AdmissionResponse:
    report = await scheduler.trigger_admission()
    if report is None:
        raise ConflictError("Queue management is already running")
    return AdmissionResponse(found=report.found, queued=report.queued)


@router.post("/retry/failed", response_model=RetrySweepResponse)
async def retry_failed(
    _admin: CurrentAdmin,
    scheduler: SchedulerDep,
) -> RetrySweepResponse:
    report = await scheduler.retry_failed()
    return RetrySweepResponse(found=report.found, resubmitted=report.resubmitted)


@router.post("/test-message", response_model=SendTestMessageResponse, status_code=202)
async def send_test_message(
    body: SendTestMessageRequest,
    _admin: CurrentAdmin,
    scheduler: SchedulerDep,
) -> SendTestMessageResponse:
    draft, queued = await scheduler.send_test_message(
        body.sender_id, body.receiver_id, body.content,
    )
    return SendTestMessageResponse(
        auto_message_id=draft.id, send_date=draft.send_date, queued=queued,
    )
