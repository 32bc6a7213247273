"""RunPod serverless HTTP client.

Processing flow:
    1. Resolve endpoint URL and API key from settings.
    2. Issue one blocking request per call (no retries).
    3. Translate transport failures into ``UpstreamUnreachable`` and return
       the raw ``requests.Response`` for the caller to classify.

The gateway and the normalizer run these calls in a thread executor so the
event loop is never blocked.
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from zimage.config import Settings, settings
from zimage.errors import (
    Misconfiguration,
    UpstreamMalformed,
    UpstreamRejected,
    UpstreamUnreachable,
)

logger = logging.getLogger(__name__)

# Upper bound on how much of an upstream body is echoed back in errors
_MAX_BODY_CHARS = 2000


class ProviderClient:
    """Thin wrapper over a ``requests.Session`` bound to one RunPod endpoint."""

    def __init__(
        self,
        base_url: str,
        endpoint_id: str,
        api_key: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.endpoint_id = endpoint_id.strip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        })

    @classmethod
    def from_settings(cls, config: Settings) -> "ProviderClient":
        missing = config.missing_provider_settings()
        if missing:
            raise Misconfiguration(
                f"Server not configured (missing {', '.join(missing)})"
            )
        return cls(
            base_url=config.runpod_base_url,
            endpoint_id=config.runpod_endpoint_id,
            api_key=config.runpod_api_key,
            timeout=config.provider_timeout_seconds,
        )

    @property
    def run_url(self) -> str:
        return f"{self.base_url}/{self.endpoint_id}/run"

    def status_url(self, job_id: str) -> str:
        return f"{self.base_url}/{self.endpoint_id}/status/{quote(job_id, safe='')}"

    def submit(self, payload: Dict[str, Any]) -> requests.Response:
        """POST a generation payload to the ``/run`` endpoint."""
        return self._send("POST", self.run_url, json=payload)

    def status(self, job_id: str) -> requests.Response:
        """GET the provider's view of ``job_id``."""
        return self._send("GET", self.status_url(job_id))

    def close(self) -> None:
        self._session.close()

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            logger.warning("Provider %s %s timed out after %ss", method, url, self.timeout)
            raise UpstreamUnreachable(f"Provider request timed out: {e}") from e
        except requests.RequestException as e:
            logger.warning("Provider %s %s failed: %s", method, url, e)
            raise UpstreamUnreachable(f"Provider request failed: {e}") from e


def truncate_body(text: str) -> str:
    if len(text) > _MAX_BODY_CHARS:
        return text[:_MAX_BODY_CHARS] + "…"
    return text


def raise_for_rejection(response: requests.Response, what: str) -> None:
    """Raise ``UpstreamRejected`` for any non-2xx response."""
    if not response.ok:
        raise UpstreamRejected(
            f"Upstream {what} failed with status {response.status_code}",
            status_code=response.status_code,
            body=truncate_body(response.text),
        )


def parse_json_object(response: requests.Response) -> Dict[str, Any]:
    """Decode a JSON object body or raise ``UpstreamMalformed``."""
    try:
        data = response.json()
    except ValueError:
        raise UpstreamMalformed(
            "Upstream returned non-JSON", body=truncate_body(response.text)
        )
    if not isinstance(data, dict):
        raise UpstreamMalformed("Upstream returned a non-object JSON body", body=data)
    return data


_client: Optional[ProviderClient] = None


def get_provider_client() -> ProviderClient:
    """Get or create the shared provider client.

    Raises ``Misconfiguration`` on every call while required settings are absent.
    """
    global _client
    if _client is None:
        _client = ProviderClient.from_settings(settings)
    return _client


def close_provider_client() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
