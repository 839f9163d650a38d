"""
Data structures describing a single conversion job and point-in-time views of
the download queue.
"""

import time
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum


class JobStatus(str, Enum):
    """Lifecycle state of a job."""

    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.CANCELLED, JobStatus.FAILED)


@dataclass(frozen=True)
class JobProgress:
    """
    Immutable progress record. A new instance replaces the previous one on
    every engine callback, so readers never observe a half-written update.
    """

    percent: int = 0
    elapsed: timedelta = timedelta(0)
    total_length: timedelta = timedelta(0)

    def advanced(
        self, percent: int, elapsed: timedelta, total_length: timedelta
    ) -> "JobProgress":
        """Returns the next record, clamped to [0, 100] and never going backwards."""
        percent = max(0, min(100, int(percent)))
        return JobProgress(
            percent=max(self.percent, percent),
            elapsed=max(self.elapsed, elapsed),
            total_length=total_length or self.total_length,
        )


@dataclass(frozen=True)
class JobOutcome:
    """The terminal result of running one job through the conversion engine."""

    status: JobStatus
    error_message: str | None = None

    @classmethod
    def completed(cls) -> "JobOutcome":
        return cls(JobStatus.COMPLETED)

    @classmethod
    def cancelled(cls) -> "JobOutcome":
        return cls(JobStatus.CANCELLED)

    @classmethod
    def failed(cls, message: str) -> "JobOutcome":
        return cls(JobStatus.FAILED, message or "Unknown error")


@dataclass(eq=False)
class Job:
    """
    One queued-to-completion conversion request.

    `status`, `progress` and `error_message` are only ever written by the task
    that owns the job and are replaced wholesale, which keeps concurrent reads
    from the status snapshot consistent without locking the writer.
    """

    source_uri: str
    destination_name: str
    sequence: int
    status: JobStatus = JobStatus.PENDING
    progress: JobProgress = field(default_factory=JobProgress)
    error_message: str | None = None
    enqueued_at: float = field(default_factory=time.time)
    started_at: float | None = None
    finished_at: float | None = None

    def mark_in_progress(self) -> None:
        self.started_at = time.monotonic()
        self.status = JobStatus.IN_PROGRESS

    def update_progress(
        self, percent: int, elapsed: timedelta, total_length: timedelta
    ) -> None:
        if self.status is not JobStatus.IN_PROGRESS:
            return
        self.progress = self.progress.advanced(percent, elapsed, total_length)

    def apply_outcome(self, outcome: JobOutcome) -> None:
        """Moves the job to its terminal state. Later calls are ignored."""
        if self.status.is_terminal:
            return
        self.finished_at = time.monotonic()
        if outcome.status is JobStatus.FAILED:
            self.error_message = outcome.error_message
        self.status = outcome.status

    def view(self) -> "JobView":
        started, finished = self.started_at, self.finished_at
        if started is None:
            time_taken = None
        else:
            time_taken = timedelta(
                seconds=(finished or time.monotonic()) - started
            )
        return JobView(
            source_uri=self.source_uri,
            destination_name=self.destination_name,
            sequence=self.sequence,
            status=self.status,
            progress=self.progress,
            error_message=self.error_message,
            time_taken=time_taken,
        )


@dataclass(frozen=True)
class JobView:
    """A read-only copy of a job, as handed out by the status snapshot."""

    source_uri: str
    destination_name: str
    sequence: int
    status: JobStatus
    progress: JobProgress
    error_message: str | None
    time_taken: timedelta | None


@dataclass(frozen=True)
class QueueSnapshot:
    """Three disjoint views of the queue taken at the same instant."""

    pending: tuple[JobView, ...] = ()
    in_progress: tuple[JobView, ...] = ()
    history: tuple[JobView, ...] = ()
    running: bool = False

    @property
    def total(self) -> int:
        return len(self.pending) + len(self.in_progress) + len(self.history)

    def count(self, status: JobStatus) -> int:
        """Counts jobs with the given status across all three views."""
        return sum(
            1
            for view in (*self.pending, *self.in_progress, *self.history)
            if view.status is status
        )

    def find(self, destination_name: str) -> JobView | None:
        for view in (*self.pending, *self.in_progress, *self.history):
            if view.destination_name == destination_name:
                return view
        return None
