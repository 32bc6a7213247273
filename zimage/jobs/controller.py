"""Job lifecycle controller.

Owns the only long-lived state in the system: the current job, the polling
loop, the in-flight provider call and the bounded history.

State machine:
    IDLE -> QUEUED -> IN_PROGRESS -> {COMPLETED | FAILED | CANCELLED}
    reset() returns to IDLE from anywhere (cancelling an active job first).

All methods run on one event loop. Every provider call is wrapped in a task
the controller can cancel, and its result is applied only while the job it
belongs to is still the current, non-terminal job. A response that arrives
for a superseded or cancelled job is dropped.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from zimage.errors import (
    ControllerBusy,
    GenerationError,
    JobFailed,
    NotFound,
    PollTimeout,
    UpstreamMalformed,
)
from zimage.io.image_data import decode_image
from zimage.jobs.history import JobHistory
from zimage.jobs.models import ControllerState, GenerationRequest, Job, JobStatus
from zimage.jobs.scheduler import AsyncioScheduler, ScheduledTask, Scheduler
from zimage.provider.gateway import SubmissionGateway, validate_request
from zimage.provider.normalizer import StatusNormalizer, StatusResult

logger = logging.getLogger(__name__)

# Returned by _call when the job was cancelled or replaced mid-request
_SUPERSEDED = object()


class JobController:
    """Drives one job at a time from submission to a terminal status."""

    def __init__(
        self,
        gateway: SubmissionGateway,
        normalizer: StatusNormalizer,
        scheduler: Optional[Scheduler] = None,
        history: Optional[JobHistory] = None,
        poll_interval: float = 1.2,
        max_poll_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._gateway = gateway
        self._normalizer = normalizer
        self._scheduler = scheduler or AsyncioScheduler()
        self._history = history if history is not None else JobHistory()
        self._poll_interval = poll_interval
        self._max_poll_seconds = max_poll_seconds or None
        self._clock = clock

        self._job: Optional[Job] = None
        self._poll_task: Optional[ScheduledTask] = None
        self._inflight: Optional[asyncio.Future] = None
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def job(self) -> Optional[Job]:
        return self._job

    @property
    def state(self) -> ControllerState:
        if self._job is None:
            return ControllerState.IDLE
        return ControllerState(self._job.status.value)

    @property
    def busy(self) -> bool:
        return self._job is not None and self._job.status.is_active

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.cancelled

    @property
    def history(self) -> JobHistory:
        return self._history

    def elapsed(self) -> float:
        """Seconds since submission, frozen once the job is terminal."""
        if self._started_at is None:
            return 0.0
        end = self._stopped_at if self._stopped_at is not None else self._clock()
        return max(0.0, end - self._started_at)

    def snapshot(self, include_output: bool = True) -> Dict[str, Any]:
        job = self._job
        data: Dict[str, Any] = {
            "state": self.state.value,
            "busy": self.busy,
            "entry_id": job.entry_id if job else None,
            "job_id": job.id if job else None,
            "error": job.error if job else None,
            "error_kind": job.error_kind if job else None,
            "elapsed_seconds": round(self.elapsed(), 3),
            "history_size": len(self._history),
        }
        if include_output:
            data["output"] = {"image_b64": job.output} if job and job.output else None
        return data

    def history_entries(self) -> List[Dict[str, Any]]:
        return [job.summary() for job in self._history]

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def submit(self, request: GenerationRequest) -> Job:
        """Submit a new job and start polling it.

        Raises ``ControllerBusy``, ``ValidationError`` or ``Misconfiguration``
        before any job is created. Provider failures do not raise: they leave
        the returned job ``FAILED`` with the classified error attached.
        """
        if self.busy:
            raise ControllerBusy("A generation is already in progress")
        validate_request(request)
        self._gateway.ensure_configured()

        self._abort()
        job = Job(request=request)
        self._job = job
        self._history.push(job)
        self._started_at = self._clock()
        self._stopped_at = None
        logger.info("Job %s queued: %r", job.entry_id, request.prompt[:80])

        try:
            job_id = await self._call(job, self._gateway.submit(request))
        except GenerationError as e:
            self._fail(job, e)
            return job
        except Exception as e:
            logger.exception("Unexpected error submitting job %s", job.entry_id)
            self._fail(job, GenerationError(f"{type(e).__name__}: {e}"))
            return job

        if job_id is _SUPERSEDED:
            return job

        job.id = job_id
        self._set_status(job, JobStatus.IN_PROGRESS)
        self._poll_task = self._scheduler.every(self._poll_interval, self._tick)
        return job

    async def poll(self) -> Optional[Job]:
        """Run one status query for the current job and apply the result."""
        job = self._job
        if job is None or job.id is None or job.is_terminal:
            self._stop_polling()
            return job

        if self._deadline_passed():
            self._fail(job, PollTimeout(
                f"No result after {self._max_poll_seconds:g}s of polling"
            ))
            return job

        try:
            result = await self._call(job, self._normalizer.query(job.id))
        except GenerationError as e:
            self._fail(job, e)
            return job
        except Exception as e:
            logger.exception("Unexpected error polling job %s", job.id)
            self._fail(job, GenerationError(f"{type(e).__name__}: {e}"))
            return job

        if result is not _SUPERSEDED:
            self._apply(job, result)
        return job

    def cancel(self) -> bool:
        """Disengage from the active job locally.

        Aborts the in-flight request and stops polling. The provider-side job
        is not told to stop. Returns False when nothing was active.
        """
        job = self._job
        if job is None or not job.status.is_active:
            return False
        self._abort()
        self._finish(job, JobStatus.CANCELLED)
        logger.info("Job %s cancelled locally", job.id or job.entry_id)
        return True

    def reset(self) -> None:
        """Return to IDLE. An active job is cancelled first; history is kept."""
        self.cancel()
        self._abort()
        self._job = None
        self._started_at = None
        self._stopped_at = None

    def recall(self, entry_id: str) -> Job:
        """Re-open a history entry as the current view.

        A completed entry becomes the current job (with its output); any other
        entry leaves the controller IDLE. The entry is returned either way so
        callers can reuse its request parameters.
        """
        if self.busy:
            raise ControllerBusy("Cannot recall history while a generation is in progress")
        job = self._history.get(entry_id)
        if job is None:
            raise NotFound(entry_id)
        self.reset()
        if job.status == JobStatus.COMPLETED:
            self._job = job
        return job

    def clear_history(self) -> None:
        self._history.clear()

    def close(self) -> None:
        """Abort any in-flight work; used at application shutdown."""
        self._abort()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _tick(self) -> None:
        await self.poll()

    def _owns(self, job: Job) -> bool:
        return self._job is job and not job.is_terminal

    async def _call(self, job: Job, coro: Awaitable[Any]) -> Any:
        """Await a provider call the controller can abort.

        Returns ``_SUPERSEDED`` instead of the result (or error) when the job
        was cancelled, reset or replaced while the call was in flight.
        """
        task = asyncio.ensure_future(coro)
        self._inflight = task
        try:
            await asyncio.wait({task})
        finally:
            if not task.done():
                task.cancel()
            if self._inflight is task:
                self._inflight = None

        if task.cancelled():
            return _SUPERSEDED
        if not self._owns(job):
            task.exception()  # retrieved; nothing to report for a stale job
            logger.debug("Dropping late response for job %s", job.id or job.entry_id)
            return _SUPERSEDED
        return task.result()

    def _apply(self, job: Job, result: StatusResult) -> None:
        if result.status.is_active:
            self._set_status(job, result.status)
            return

        if result.status == JobStatus.COMPLETED:
            try:
                decode_image(result.image_b64)
            except UpstreamMalformed as e:
                self._fail(job, e)
                return
            job.output = result.image_b64
            self._finish(job, JobStatus.COMPLETED)
            logger.info("Job %s completed in %.1fs", job.id, self.elapsed())
            return

        self._fail(job, JobFailed(result.error or "Generation failed"))

    def _set_status(self, job: Job, status: JobStatus) -> None:
        if job.is_terminal:
            return
        if job.status != status:
            logger.info("Job %s: %s -> %s", job.id or job.entry_id, job.status.value, status.value)
        job.status = status

    def _finish(self, job: Job, status: JobStatus) -> None:
        if job.is_terminal:
            return
        job.status = status
        job.finished_at = datetime.now(timezone.utc)
        if self._job is job:
            self._stopped_at = self._clock()
            self._stop_polling()

    def _fail(self, job: Job, error: GenerationError) -> None:
        if job.is_terminal:
            return
        job.error = error.message
        job.error_kind = error.kind
        logger.warning(
            "Job %s failed (%s): %s", job.id or job.entry_id, error.kind, error.message
        )
        self._finish(job, JobStatus.FAILED)

    def _deadline_passed(self) -> bool:
        if self._max_poll_seconds is None or self._started_at is None:
            return False
        return self._clock() - self._started_at >= self._max_poll_seconds

    def _stop_polling(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    def _abort(self) -> None:
        self._stop_polling()
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None
