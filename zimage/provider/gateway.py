"""Submission gateway: forwards a generation request and returns the job id."""

import asyncio
import logging
from typing import Callable, Optional

from zimage.errors import UpstreamMalformed, ValidationError
from zimage.jobs.models import GenerationRequest
from zimage.provider.client import (
    ProviderClient,
    get_provider_client,
    parse_json_object,
    raise_for_rejection,
)

logger = logging.getLogger(__name__)


def validate_request(request: GenerationRequest) -> None:
    """Reject requests that must never reach the network."""
    if not request.prompt:
        raise ValidationError("Missing prompt")


class SubmissionGateway:
    """Submits one generation request per call. No retries at this layer.

    The job id policy is provider-issued: RunPod assigns the id in its
    ``/run`` response and that id is the only correlation key used afterwards.
    """

    def __init__(
        self,
        client: Optional[ProviderClient] = None,
        client_factory: Callable[[], ProviderClient] = get_provider_client,
    ):
        self._client = client
        self._client_factory = client_factory

    def ensure_configured(self) -> ProviderClient:
        """Return the provider client or raise ``Misconfiguration``."""
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    async def submit(self, request: GenerationRequest) -> str:
        """Forward ``request`` to the provider and return its job id.

        Raises:
            ValidationError: empty prompt, no network call made.
            Misconfiguration: provider settings absent, no network call made.
            UpstreamUnreachable / UpstreamRejected / UpstreamMalformed
        """
        validate_request(request)
        client = self.ensure_configured()

        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(None, client.submit, request.to_payload())

        raise_for_rejection(response, "generate")
        data = parse_json_object(response)

        job_id = data.get("id")
        if not isinstance(job_id, str) or not job_id.strip():
            raise UpstreamMalformed("Upstream did not return an id", body=data)

        logger.info("Provider accepted job %s", job_id)
        return job_id
