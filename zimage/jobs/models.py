"""Job and generation-request data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
import uuid


SEED_MAX = 2_147_483_647

STEPS_RANGE = (10, 80)
GUIDANCE_RANGE = (1, 20)
DEFAULT_STEPS = 30
DEFAULT_GUIDANCE = 7


class JobStatus(str, Enum):
    QUEUED = "QUEUED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.QUEUED, JobStatus.IN_PROGRESS)


class ControllerState(str, Enum):
    IDLE = "IDLE"
    QUEUED = "QUEUED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class AspectRatio(str, Enum):
    SQUARE = "1:1"
    LANDSCAPE = "4:3"
    PORTRAIT = "3:4"
    WIDE = "16:9"
    TALL = "9:16"

    @property
    def dimensions(self) -> tuple:
        """(width, height) in pixels forwarded to the provider."""
        return _ASPECT_DIMENSIONS[self]


_ASPECT_DIMENSIONS = {
    AspectRatio.SQUARE: (1024, 1024),
    AspectRatio.LANDSCAPE: (1152, 864),
    AspectRatio.PORTRAIT: (864, 1152),
    AspectRatio.WIDE: (1344, 768),
    AspectRatio.TALL: (768, 1344),
}


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class GenerationConfig(BaseModel):
    """Generation options. Out-of-range numbers are clamped, not rejected."""

    model_config = ConfigDict(frozen=True)

    aspect: AspectRatio = AspectRatio.SQUARE
    steps: int = DEFAULT_STEPS
    guidance: int = DEFAULT_GUIDANCE
    seed: Optional[int] = None  # None lets the provider pick a random seed
    num_images: Literal[1] = 1
    format: Literal["png"] = "png"

    @field_validator("steps", mode="before")
    @classmethod
    def _clamp_steps(cls, value: Any) -> int:
        if not value:
            value = DEFAULT_STEPS
        return clamp(int(value), *STEPS_RANGE)

    @field_validator("guidance", mode="before")
    @classmethod
    def _clamp_guidance(cls, value: Any) -> int:
        if not value:
            value = DEFAULT_GUIDANCE
        return clamp(int(value), *GUIDANCE_RANGE)

    @field_validator("seed", mode="before")
    @classmethod
    def _clamp_seed(cls, value: Any) -> Optional[int]:
        if value is None or value == "":
            return None
        return clamp(int(value), 0, SEED_MAX)

    def to_params(self) -> Dict[str, Any]:
        width, height = self.aspect.dimensions
        params: Dict[str, Any] = {
            "aspect": self.aspect.value,
            "width": width,
            "height": height,
            "steps": self.steps,
            "guidance": self.guidance,
            "num_images": self.num_images,
            "format": self.format,
        }
        if self.seed is not None:
            params["seed"] = self.seed
        return params


class GenerationRequest(BaseModel):
    """Immutable input bundle attached to a job."""

    model_config = ConfigDict(frozen=True)

    prompt: str = ""
    negative_prompt: str = ""
    config: GenerationConfig = Field(default_factory=GenerationConfig)

    @field_validator("prompt", "negative_prompt", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    def to_payload(self) -> Dict[str, Any]:
        """Provider request body for the RunPod ``/run`` endpoint."""
        return {
            "input": {
                "prompt": self.prompt,
                "negative_prompt": self.negative_prompt,
                "params": self.config.to_params(),
            }
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Job(BaseModel):
    """Tracks one generation request from submission to a terminal status.

    ``entry_id`` is assigned locally and keys the history entry; ``id`` is the
    provider-issued job id and stays ``None`` until the submission is accepted.
    """
    entry_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    id: Optional[str] = None
    request: GenerationRequest
    status: JobStatus = JobStatus.QUEUED
    created_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    output: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def summary(self, include_output: bool = False) -> Dict[str, Any]:
        data = {
            "entry_id": self.entry_id,
            "job_id": self.id,
            "status": self.status.value,
            "prompt": self.request.prompt,
            "negative_prompt": self.request.negative_prompt,
            "params": self.request.config.model_dump(mode="json"),
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "error": self.error,
            "error_kind": self.error_kind,
            "has_output": self.output is not None,
        }
        if include_output:
            data["output"] = {"image_b64": self.output} if self.output else None
        return data
