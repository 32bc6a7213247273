"""Test configuration and fixtures for zimage.

This module provides:
- A manual scheduler and fake clock so polling never depends on wall time
- Scripted stand-ins for the submission gateway and status normalizer
- Helpers for building provider HTTP responses and real PNG payloads
"""

import asyncio
import base64
import io
from collections import deque
from typing import Any, Deque, List, Optional, Union
from unittest.mock import MagicMock

import pytest
from PIL import Image

from zimage.jobs.controller import JobController
from zimage.jobs.history import JobHistory
from zimage.jobs.models import GenerationRequest
from zimage.jobs.scheduler import ScheduledTask, Scheduler, TickFn
from zimage.provider.normalizer import StatusResult, normalize_status


# ============================================================================
# Deterministic scheduling
# ============================================================================


class ManualTask(ScheduledTask):
    def __init__(self, interval: float, fn: TickFn):
        self.interval = interval
        self.fn = fn
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """Records recurring callbacks; tests fire them with ``tick()``."""

    def __init__(self):
        self.tasks: List[ManualTask] = []

    def every(self, interval: float, fn: TickFn) -> ScheduledTask:
        task = ManualTask(interval, fn)
        self.tasks.append(task)
        return task

    @property
    def active(self) -> List[ManualTask]:
        return [t for t in self.tasks if not t.cancelled]

    async def tick(self) -> bool:
        """Fire every active task once. Returns False when nothing is scheduled."""
        active = self.active
        for task in active:
            await task.fn()
        return bool(active)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================================
# Provider stand-ins
# ============================================================================


class FakeGateway:
    """Scripted ``SubmissionGateway``.

    Set ``error`` to make submissions fail, ``block`` to park the call on
    ``pending`` until the test resolves it.
    """

    def __init__(self, job_id: str = "job-1"):
        self.job_id = job_id
        self.error: Optional[Exception] = None
        self.misconfigured: Optional[Exception] = None
        self.block = False
        self.pending: Optional[asyncio.Future] = None
        self.calls: List[GenerationRequest] = []

    def ensure_configured(self):
        if self.misconfigured is not None:
            raise self.misconfigured
        return None

    async def submit(self, request: GenerationRequest) -> str:
        self.calls.append(request)
        if self.block:
            self.pending = asyncio.get_running_loop().create_future()
            return await self.pending
        if self.error is not None:
            raise self.error
        return self.job_id


Scripted = Union[StatusResult, Exception]


class FakeNormalizer:
    """Scripted ``StatusNormalizer`` returning queued results in order.

    With ``block`` set, the query parks on ``pending``. With ``ignore_cancel``
    also set, the query keeps waiting after being cancelled, standing in for a
    transport that cannot be interrupted.
    """

    def __init__(self):
        self.responses: Deque[Scripted] = deque()
        self.calls: List[str] = []
        self.block = False
        self.ignore_cancel = False
        self.pending: Optional[asyncio.Future] = None

    def ensure_configured(self):
        return None

    def queue(self, *items: Scripted) -> None:
        self.responses.extend(items)

    async def query(self, job_id: str) -> StatusResult:
        self.calls.append(job_id)
        if self.block:
            self.pending = asyncio.get_running_loop().create_future()
            if not self.ignore_cancel:
                return await self.pending
            try:
                return await asyncio.shield(self.pending)
            except asyncio.CancelledError:
                return await self.pending
        item = self.responses.popleft()
        if isinstance(item, Exception):
            raise item
        return item


def status_result(
    raw_status: str,
    job_id: str = "job-1",
    image_b64: Optional[str] = None,
    error: Optional[str] = None,
) -> StatusResult:
    """Build a result the way the normalizer would from a raw provider status."""
    return StatusResult(
        job_id=job_id,
        status=normalize_status(raw_status),
        raw_status=raw_status,
        image_b64=image_b64,
        error=error,
    )


def fake_response(status_code: int = 200, json_data: Any = None, text: Optional[str] = None):
    """Mimic the parts of ``requests.Response`` the provider code reads."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    if json_data is not None:
        response.json.return_value = json_data
        response.text = text if text is not None else repr(json_data)
    else:
        response.json.side_effect = ValueError("No JSON object could be decoded")
        response.text = text or ""
    return response


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def png_b64() -> str:
    """A real 4x4 PNG, base64-encoded."""
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), (200, 30, 30)).save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode("ascii")


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def normalizer() -> FakeNormalizer:
    return FakeNormalizer()


@pytest.fixture
def controller(gateway, normalizer, scheduler, clock) -> JobController:
    return JobController(
        gateway=gateway,
        normalizer=normalizer,
        scheduler=scheduler,
        history=JobHistory(capacity=12),
        poll_interval=1.2,
        max_poll_seconds=600,
        clock=clock,
    )


@pytest.fixture
def cat_request() -> GenerationRequest:
    return GenerationRequest(prompt="a cat")
