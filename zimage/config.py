"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # RunPod serverless endpoint
    runpod_base_url: str = ""  # e.g. https://api.runpod.ai/v2
    runpod_endpoint_id: str = ""
    runpod_api_key: str = ""
    provider_timeout_seconds: float = 30.0

    # Polling
    poll_interval_seconds: float = 1.2
    max_poll_seconds: float = 600.0  # 0 disables the deadline

    # Studio
    history_capacity: int = 12

    # Server
    port: int = 8000
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def missing_provider_settings(self) -> List[str]:
        """Names of the required provider variables that are unset."""
        required = {
            "RUNPOD_BASE_URL": self.runpod_base_url,
            "RUNPOD_ENDPOINT_ID": self.runpod_endpoint_id,
            "RUNPOD_API_KEY": self.runpod_api_key,
        }
        return [name for name, value in required.items() if not value]


settings = Settings()
