"""
The download queue manager: owns pending, in-progress and finished jobs, bounds
concurrent conversions and propagates cancellation to the conversion engine.
"""

import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from rich.markup import escape

from m3u8_cli.exceptions import (
    ConversionCancelledError,
    EmptyQueueError,
    InvalidArgumentError,
    InvalidStateError,
    IOFailureError,
)
from m3u8_cli.media.converter import ConversionEngine
from m3u8_cli.models.job import Job, JobOutcome, JobStatus, QueueSnapshot
from m3u8_cli.utils.path import (
    build_destination_name,
    create_dir,
    is_valid_source,
    sanitize_pattern,
)

log = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 4


def _call_in_loop(loop: asyncio.AbstractEventLoop, callback) -> None:
    """Runs `callback` now when already on `loop`, otherwise schedules it there."""
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None
    if running is loop:
        callback()
        return
    try:
        loop.call_soon_threadsafe(callback)
    except RuntimeError:
        # Event loop already closed, nothing left to wake
        pass


@dataclass(eq=False)
class _Run:
    """State belonging to a single start..stop cycle."""

    cancel_event: asyncio.Event
    wakeup: asyncio.Event
    loop: asyncio.AbstractEventLoop
    task: asyncio.Task | None = None

    def notify(self) -> None:
        """Wakes the processing loop; safe to call from any thread."""
        _call_in_loop(self.loop, self.wakeup.set)

    def cancel(self) -> None:
        _call_in_loop(self.loop, self.cancel_event.set)


class QueueManager:
    """
    Coordinates the conversion of queued sources with bounded parallelism.

    Queue mutations and run transitions are guarded by a short-held lock that
    is never held across an `await`, so they may be called from the command
    layer while conversions are running. `start()` must be called from a
    coroutine running on the event loop that should host the conversions.
    """

    def __init__(
        self,
        engine: ConversionEngine,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        container: str = "mp4",
    ):
        if max_concurrency < 1:
            raise InvalidArgumentError("max_concurrency must be at least 1.")
        self.engine = engine
        self.max_concurrency = max_concurrency
        self.container = container

        self._lock = threading.Lock()
        self._pending: deque[Job] = deque()
        self._in_progress: dict[int, Job] = {}
        self._history: list[Job] = []
        self._sequence = 0

        self._output_directory: Path | None = None
        self._naming_pattern: str = ""

        self._run: _Run | None = None
        self._semaphore: asyncio.Semaphore | None = None
        self._semaphore_loop: asyncio.AbstractEventLoop | None = None
        self._job_tasks: set[asyncio.Task] = set()
        self._loop_tasks: set[asyncio.Task] = set()

    # -- Configuration ----------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._run is not None

    @property
    def output_directory(self) -> Path | None:
        return self._output_directory

    @property
    def naming_pattern(self) -> str:
        return self._naming_pattern

    def set_output_directory(self, path: str | Path) -> Path:
        """
        Sets the directory converted files are written to, creating it if needed.

        Raises:
            InvalidStateError: A run is active.
            InvalidArgumentError: The path is empty.
            IOFailureError: The directory could not be created.
        """
        if not str(path).strip():
            raise InvalidArgumentError("Output directory cannot be empty.")

        directory = Path(str(path).strip()).expanduser()
        # Checked and committed under one lock so start() cannot slip in between
        with self._lock:
            if self._run is not None:
                raise InvalidStateError(
                    "Cannot change the output directory while running."
                )
            try:
                create_dir(directory)
            except OSError as e:
                raise IOFailureError(
                    f"Could not create output directory '{directory}': {e}"
                ) from e
            self._output_directory = directory.resolve()
        log.debug(f"Output directory set to {self._output_directory}")
        return self._output_directory

    def set_naming_pattern(self, pattern: str) -> str:
        """
        Sets the stem used for destination names (`<pattern>_<n>`).

        Raises:
            InvalidArgumentError: The pattern is empty.
            InvalidStateError: A run is active.
        """
        if not pattern or not pattern.strip():
            raise InvalidArgumentError("Naming pattern cannot be empty.")
        sanitized = sanitize_pattern(pattern)
        if not sanitized:
            raise InvalidArgumentError(
                f"Naming pattern '{pattern}' has no characters usable in a file name."
            )
        with self._lock:
            if self._run is not None:
                raise InvalidStateError("Cannot change the naming pattern while running.")
            self._naming_pattern = sanitized
        return sanitized

    # -- Queue mutation ---------------------------------------------------

    def enqueue(self, uri_or_path: str) -> str:
        """
        Appends a new pending job and returns its destination name.

        Raises:
            InvalidArgumentError: Empty input, or neither an absolute URI nor an
                existing local path.
            InvalidStateError: No naming pattern has been set.
        """
        source = (uri_or_path or "").strip()
        if not source:
            raise InvalidArgumentError("A URL or path is required.")
        if not is_valid_source(source):
            raise InvalidArgumentError(
                f"'{source}' is neither an absolute URI nor an existing path."
            )

        with self._lock:
            if not self._naming_pattern:
                raise InvalidStateError(
                    "Set a naming pattern before adding sources."
                )
            self._sequence += 1
            job = Job(
                source_uri=source,
                destination_name=build_destination_name(
                    self._naming_pattern, self._sequence
                ),
                sequence=self._sequence,
            )
            self._pending.append(job)
            run = self._run

        if run is not None:
            run.notify()
        log.debug(f"Queued {job.destination_name} <- {escape(source)}")
        return job.destination_name

    def dequeue_last(self) -> str:
        """
        Removes the most recently added job that has not started yet.

        Raises:
            EmptyQueueError: No pending job exists.
        """
        with self._lock:
            if not self._pending:
                raise EmptyQueueError("There are no pending jobs to remove.")
            job = self._pending.pop()
        log.debug(f"Removed {job.destination_name} from the queue")
        return job.destination_name

    def clear_history(self) -> int:
        """
        Forgets finished jobs. Returns how many were dropped.

        Raises:
            InvalidStateError: A run is active.
        """
        with self._lock:
            if self._run is not None:
                raise InvalidStateError("Cannot clear the history while running.")
            count = len(self._history)
            self._history.clear()
        return count

    # -- Run control ------------------------------------------------------

    def start(self) -> None:
        """
        Starts converting pending jobs in the background and returns at once.

        Raises:
            InvalidStateError: Already running, or output directory / naming
                pattern not set.
            EmptyQueueError: Nothing is pending.
            RuntimeError: Called outside a running event loop.
        """
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._run is not None:
                raise InvalidStateError("The queue is already running.")
            if self._output_directory is None:
                raise InvalidStateError("Set an output directory before starting.")
            if not self._naming_pattern:
                raise InvalidStateError("Set a naming pattern before starting.")
            if not self._pending:
                raise EmptyQueueError("There are no pending jobs to start.")

            if self._semaphore is None or self._semaphore_loop is not loop:
                if self._in_progress:
                    raise InvalidStateError(
                        "Jobs from a previous run are still active on another event loop."
                    )
                self._semaphore = asyncio.Semaphore(self.max_concurrency)
                self._semaphore_loop = loop

            run = _Run(
                cancel_event=asyncio.Event(), wakeup=asyncio.Event(), loop=loop
            )
            self._run = run
            pending_count = len(self._pending)

        run.task = loop.create_task(self._process_queue(run, self._semaphore))
        self._loop_tasks.add(run.task)
        run.task.add_done_callback(self._loop_tasks.discard)
        log.info(
            f"[cyan]▶ Started processing {pending_count} job(s) "
            f"with up to {self.max_concurrency} in parallel.[/cyan]"
        )

    def stop(self) -> list[str]:
        """
        Cancels the active run without waiting for in-flight jobs to unwind.

        Pending jobs are discarded (their names are returned); jobs already
        converting become Cancelled once the engine observes the signal.

        Raises:
            InvalidStateError: Not running.
        """
        with self._lock:
            run = self._run
            if run is None:
                raise InvalidStateError("The queue is not running.")
            discarded = [job.destination_name for job in self._pending]
            self._pending.clear()
            self._run = None
            in_flight = len(self._in_progress)

        run.cancel()
        run.notify()
        log.info(
            f"[yellow]■ Stopping: {in_flight} job(s) cancelling, "
            f"{len(discarded)} pending job(s) discarded.[/yellow]"
        )
        return discarded

    async def wait_idle(self) -> None:
        """Waits until no run is active and every dispatched job has finished."""
        while self._loop_tasks or self._job_tasks:
            await asyncio.gather(
                *self._loop_tasks, *self._job_tasks, return_exceptions=True
            )

    # -- Status -----------------------------------------------------------

    def snapshot(self) -> QueueSnapshot:
        """Returns read-only views of the pending, in-progress and finished jobs."""
        with self._lock:
            return QueueSnapshot(
                pending=tuple(job.view() for job in self._pending),
                in_progress=tuple(job.view() for job in self._in_progress.values()),
                history=tuple(job.view() for job in self._history),
                running=self._run is not None,
            )

    # -- Processing -------------------------------------------------------

    async def _process_queue(self, run: _Run, semaphore: asyncio.Semaphore) -> None:
        """Claims pending jobs in FIFO order while permits are available."""
        try:
            while not run.cancel_event.is_set():
                await semaphore.acquire()
                if run.cancel_event.is_set():
                    semaphore.release()
                    break

                run.wakeup.clear()
                job, has_in_flight, drained = self._claim_next_job(run)
                if job is None:
                    semaphore.release()
                    if drained:
                        log.info("[green]✓ Queue drained.[/green]")
                    if not has_in_flight:
                        break
                    await run.wakeup.wait()
                    continue

                task = asyncio.create_task(self._run_job(job, run, semaphore))
                self._job_tasks.add(task)
                task.add_done_callback(self._job_tasks.discard)
        finally:
            self._finish_run(run)

    def _claim_next_job(self, run: _Run) -> tuple[Job | None, bool, bool]:
        """
        Moves the pending head to the in-progress set in one step.

        Returns the claimed job (or None), whether any job is still in flight,
        and whether this call ended the run because the queue drained.
        """
        with self._lock:
            has_in_flight = bool(self._in_progress)
            if self._run is not run:
                return None, has_in_flight, False
            if not self._pending:
                if has_in_flight:
                    return None, True, False
                # Going idle under the same lock as the emptiness check: an
                # enqueue either lands before and is claimed, or sees Idle.
                self._run = None
                return None, False, True
            job = self._pending.popleft()
            job.mark_in_progress()
            self._in_progress[id(job)] = job
            return job, True, False

    def _finish_run(self, run: _Run) -> None:
        with self._lock:
            if self._run is run:
                self._run = None

    async def _run_job(self, job: Job, run: _Run, semaphore: asyncio.Semaphore) -> None:
        try:
            outcome = await self._convert(job, run)
            self._finish_job(job, outcome)
        except asyncio.CancelledError:
            self._finish_job(job, JobOutcome.cancelled())
            raise
        finally:
            semaphore.release()
            current = self._run
            if current is not None:
                current.notify()

    async def _convert(self, job: Job, run: _Run) -> JobOutcome:
        """Runs the engine for one job and turns its result into an outcome."""
        destination = self._output_directory / f"{job.destination_name}.{self.container}"
        log.debug(f"Converting {job.destination_name} -> {destination}")

        def on_progress(percent: int, elapsed: timedelta, total: timedelta) -> None:
            job.update_progress(percent, elapsed, total)

        try:
            await self.engine.convert(
                job.source_uri, destination, run.cancel_event, on_progress
            )
        except ConversionCancelledError:
            return JobOutcome.cancelled()
        except Exception as e:
            log.debug(
                f"Conversion of {job.destination_name} failed",
                exc_info=log.getEffectiveLevel() == logging.DEBUG,
            )
            return JobOutcome.failed(str(e) or type(e).__name__)
        return JobOutcome.completed()

    def _finish_job(self, job: Job, outcome: JobOutcome) -> None:
        """Records the terminal state and moves the job into the history once."""
        with self._lock:
            if self._in_progress.pop(id(job), None) is None:
                return
            job.apply_outcome(outcome)
            self._history.append(job)

        name = escape(job.destination_name)
        if outcome.status is JobStatus.COMPLETED:
            log.info(f"[green]✓ {name} completed.[/green]")
        elif outcome.status is JobStatus.CANCELLED:
            log.info(f"[magenta]○ {name} cancelled.[/magenta]")
        else:
            log.warning(
                f"[red]✗ {name} failed:[/red] {escape(outcome.error_message or '')}"
            )
