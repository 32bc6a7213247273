"""Status normalizer: provider job status -> application ``JobStatus``.

The provider's vocabulary is not contractually stable (RunPod reports
``IN_QUEUE``, ``IN_PROGRESS``, ``COMPLETED``, ``FAILED``, ``CANCELLED``,
``TIMED_OUT`` today; other backends say ``success`` or ``executing``). The
ordered rules below absorb that drift; anything unrecognised stays ``QUEUED``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from zimage.errors import NotFound, ValidationError
from zimage.io.image_data import extract_image_b64
from zimage.jobs.models import JobStatus
from zimage.provider.client import (
    ProviderClient,
    get_provider_client,
    parse_json_object,
    raise_for_rejection,
)

logger = logging.getLogger(__name__)

# First match wins
STATUS_RULES: Tuple[Tuple[Tuple[str, ...], JobStatus], ...] = (
    (("complete", "success"), JobStatus.COMPLETED),
    (("fail", "error", "cancel"), JobStatus.FAILED),
    (("running", "in_progress", "executing"), JobStatus.IN_PROGRESS),
)

NOT_FOUND_MARKER = "not_found"


def normalize_status(raw: Any) -> JobStatus:
    """Map a raw provider status onto ``JobStatus``.

    A ``JobStatus`` passed back in maps to itself.
    """
    if isinstance(raw, JobStatus):
        return raw
    text = str(raw or "").lower()
    for needles, status in STATUS_RULES:
        if any(needle in text for needle in needles):
            return status
    return JobStatus.QUEUED


@dataclass(frozen=True)
class StatusResult:
    """Normalized view of one status response."""
    job_id: str
    status: JobStatus
    raw_status: Optional[str] = None
    image_b64: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "jobId": self.job_id,
            "status": self.status.value,
            "output": {"image_b64": self.image_b64} if self.image_b64 else None,
            "error": self.error,
        }


def _extract_error(data: Dict[str, Any]) -> Optional[str]:
    for key in ("error", "message"):
        value = data.get(key)
        if value:
            return value if isinstance(value, str) else str(value)
    output = data.get("output")
    if isinstance(output, dict) and output.get("error"):
        return str(output["error"])
    return None


def _is_not_found_marker(raw_status: Any) -> bool:
    if not isinstance(raw_status, str):
        return False
    return raw_status.strip().lower().replace(" ", "_") == NOT_FOUND_MARKER


class StatusNormalizer:
    """Queries the provider once per call and classifies the answer."""

    def __init__(
        self,
        client: Optional[ProviderClient] = None,
        client_factory: Callable[[], ProviderClient] = get_provider_client,
    ):
        self._client = client
        self._client_factory = client_factory

    def ensure_configured(self) -> ProviderClient:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    async def query(self, job_id: str) -> StatusResult:
        """Fetch and normalize the status of ``job_id``.

        Raises:
            ValidationError: empty job id.
            Misconfiguration: provider settings absent.
            NotFound: provider does not know the id.
            UpstreamUnreachable / UpstreamRejected / UpstreamMalformed
        """
        job_id = (job_id or "").strip()
        if not job_id:
            raise ValidationError("Missing jobId")
        client = self.ensure_configured()

        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(None, client.status, job_id)

        if response.status_code == 404:
            raise NotFound(job_id)
        raise_for_rejection(response, "status")
        data = parse_json_object(response)

        raw_status = data.get("status")
        if _is_not_found_marker(raw_status):
            raise NotFound(job_id)

        status = normalize_status(raw_status)
        result = StatusResult(
            job_id=job_id,
            status=status,
            raw_status=raw_status if isinstance(raw_status, str) else None,
            image_b64=extract_image_b64(data.get("output")) if status == JobStatus.COMPLETED else None,
            error=_extract_error(data) if status == JobStatus.FAILED else None,
        )
        logger.debug("Job %s: provider status %r -> %s", job_id, raw_status, status.value)
        return result
