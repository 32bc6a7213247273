"""Error taxonomy shared by the provider adapters, the controller and the API.

Every error carries a stable ``kind`` (recorded on failed jobs and returned
in API envelopes) and the HTTP status the API layer answers with.
"""

from typing import Any, Dict, Optional


class GenerationError(Exception):
    """Base class for every classified failure."""

    kind = "error"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.message, "kind": self.kind}


class ValidationError(GenerationError):
    """Caller supplied malformed or missing input. Never reaches the network."""

    kind = "validation"
    http_status = 400


class Misconfiguration(GenerationError):
    """Required provider configuration is absent."""

    kind = "misconfiguration"
    http_status = 500


class UpstreamUnreachable(GenerationError):
    """Network error or timeout talking to the provider."""

    kind = "upstream_unreachable"
    http_status = 502


class UpstreamRejected(GenerationError):
    """Provider answered with a non-success status code."""

    kind = "upstream_rejected"
    http_status = 502

    def __init__(self, message: str, status_code: int, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["upstream_status"] = self.status_code
        data["upstream"] = self.body
        return data


class UpstreamMalformed(GenerationError):
    """Provider answered successfully but the body is unusable."""

    kind = "upstream_malformed"
    http_status = 502

    def __init__(self, message: str, body: Optional[Any] = None):
        super().__init__(message)
        self.body = body

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.body is not None:
            data["upstream"] = self.body
        return data


class NotFound(GenerationError):
    """Job id unknown to the provider (expired, invalid or never existed)."""

    kind = "not_found"
    http_status = 404

    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["status"] = "NOT_FOUND"
        data["output"] = None
        return data


class JobFailed(GenerationError):
    """The provider reports that the job itself failed."""

    kind = "job_failed"
    http_status = 422


class ControllerBusy(GenerationError):
    """A job is already queued or in progress on this controller."""

    kind = "busy"
    http_status = 409


class PollTimeout(GenerationError):
    """The job did not reach a terminal status before the polling deadline."""

    kind = "timeout"
    http_status = 504
