"""Per-image job lifecycle for batch processing.

Each job moves ``pending -> processing -> completed | error`` exactly once
and is addressed by a stable ``job_id`` rather than its position in the
batch, so removing jobs never shifts another job's identity.
"""

import uuid
from dataclasses import dataclass, field
from enum import StrEnum

from dispatch_ocr.errors import InvalidTransition
from dispatch_ocr.models import MatchResult


class JobState(StrEnum):
    """Lifecycle state of an image job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.PENDING: frozenset({JobState.PROCESSING}),
    JobState.PROCESSING: frozenset({JobState.COMPLETED, JobState.ERROR}),
    JobState.COMPLETED: frozenset(),
    JobState.ERROR: frozenset(),
}


@dataclass
class ImageJob:
    """One uploaded image and what became of it."""

    filename: str
    data: bytes = field(repr=False)
    content_type: str | None = None
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: JobState = JobState.PENDING
    result: MatchResult | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (JobState.COMPLETED, JobState.ERROR)

    def start(self) -> None:
        self._transition(JobState.PROCESSING)

    def complete(self, result: MatchResult) -> None:
        self._transition(JobState.COMPLETED)
        self.result = result

    def fail(self, message: str) -> None:
        self._transition(JobState.ERROR)
        self.error = message

    def _transition(self, target: JobState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidTransition(
                f"Job {self.job_id} cannot move from {self.state} to {target}"
            )
        self.state = target


class JobEventKind(StrEnum):
    """What happened to a job."""

    ADDED = "added"
    TRANSITION = "transition"
    CONFIRMED = "confirmed"
    REMOVED = "removed"


@dataclass(frozen=True)
class JobEvent:
    """Notification emitted to batch subscribers."""

    kind: JobEventKind
    job_id: str
    state: JobState
    job: ImageJob
