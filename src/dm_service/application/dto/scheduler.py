from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class QueueStatus:
    pending: int
    queued: int
    sent: int
    failed: int

    @property
    def total(self) -> int:
        return self.pending + self.queued + self.sent + self.failed


@dataclass(frozen=True, slots=True)
class AdmissionReport:
    found: int
    queued: int


@dataclass(frozen=True, slots=True)
class RetrySweepReport:
    found: int
    resubmitted: int
