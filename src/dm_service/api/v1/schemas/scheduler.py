from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from dm_service.application.dto.scheduler import QueueStatus


class QueueStatusResponse(BaseModel):
    pending: int
    queued: int
    sent: int
    failed: int
    total: int

    @classmethod
    def from_status(cls, status: QueueStatus) -> QueueStatusResponse:
        return cls(
            pending=status.pending,
            queued=status.queued,
            sent=status.sent,
            failed=status.failed,
            total=status.total,
        )


class TaskStatus(BaseModel):
    is_running: bool


class SchedulerStatusResponse(BaseModel):
    is_started: bool
    message_planning: TaskStatus
    queue_management: TaskStatus
    queue: QueueStatusResponse


class PlanningResponse(BaseModel):
    drafted: int


class AdmissionResponse(BaseModel):
    found: int
    queued: int


class RetrySweepResponse(BaseModel):
    found: int
    resubmitted: int


class SendTestMessageRequest(BaseModel):
    sender_id: int
    receiver_id: int
    content: str = Field(min_length=1)


class SendTestMessageResponse(BaseModel):
    auto_message_id: UUID
    send_date: datetime
    queued: bool
