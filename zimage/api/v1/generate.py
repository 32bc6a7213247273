"""Stateless generate/status proxy over the provider.

  POST /generate            submit a generation request, returns {ok, jobId}
  GET  /status?jobId=...    one normalized status lookup

No polling happens here; callers poll /status themselves. Errors are raised as
``GenerationError`` and rendered by the application's exception handler.
"""

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from typing import Optional

from zimage.jobs.models import GenerationConfig, GenerationRequest
from zimage.provider.gateway import SubmissionGateway
from zimage.provider.normalizer import StatusNormalizer

router = APIRouter()


def get_gateway(request: Request) -> SubmissionGateway:
    return request.app.state.gateway


def get_normalizer(request: Request) -> StatusNormalizer:
    return request.app.state.normalizer


class GenerateBody(BaseModel):
    prompt: str = ""
    negative_prompt: str = ""
    params: GenerationConfig = Field(default_factory=GenerationConfig)

    def to_request(self) -> GenerationRequest:
        return GenerationRequest(
            prompt=self.prompt,
            negative_prompt=self.negative_prompt,
            config=self.params,
        )


@router.post("/generate")
async def generate(body: GenerateBody, gateway: SubmissionGateway = Depends(get_gateway)):
    """Forward a generation request to the provider."""
    job_id = await gateway.submit(body.to_request())
    return {"ok": True, "jobId": job_id}


@router.get("/status")
async def status(
    jobId: Optional[str] = None,
    normalizer: StatusNormalizer = Depends(get_normalizer),
):
    """Return the normalized provider status for ``jobId``."""
    result = await normalizer.query(jobId or "")
    return result.to_dict()
