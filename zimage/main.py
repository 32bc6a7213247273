"""Z-Image Studio - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from zimage.config import Settings, settings
from zimage.api.v1.router import v1_router
from zimage.api.v1.health import router as health_root_router
from zimage.errors import GenerationError
from zimage.jobs.controller import JobController
from zimage.jobs.history import JobHistory
from zimage.provider.client import close_provider_client
from zimage.provider.gateway import SubmissionGateway
from zimage.provider.normalizer import StatusNormalizer

logger = logging.getLogger(__name__)


def build_controller(
    config: Settings,
    gateway: SubmissionGateway,
    normalizer: StatusNormalizer,
) -> JobController:
    return JobController(
        gateway=gateway,
        normalizer=normalizer,
        history=JobHistory(capacity=config.history_capacity),
        poll_interval=config.poll_interval_seconds,
        max_poll_seconds=config.max_poll_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    config: Settings = app.state.settings
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print(f"Starting Z-Image Studio on port {config.port}")
    print(f"Provider: {config.runpod_base_url or '<unset>'} / {config.runpod_endpoint_id or '<unset>'}")
    print(f"Poll interval: {config.poll_interval_seconds}s, history capacity: {config.history_capacity}")

    missing = config.missing_provider_settings()
    if missing:
        # Requests are rejected with a misconfiguration error until fixed
        logger.error("Provider not configured, missing: %s", ", ".join(missing))

    yield

    print("Shutting down Z-Image Studio")
    app.state.controller.close()
    close_provider_client()


async def handle_generation_error(request: Request, exc: GenerationError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


def create_app(
    config: Optional[Settings] = None,
    gateway: Optional[SubmissionGateway] = None,
    normalizer: Optional[StatusNormalizer] = None,
    controller: Optional[JobController] = None,
) -> FastAPI:
    """Build the application. Collaborators can be injected for tests."""
    config = config or settings
    gateway = gateway or SubmissionGateway()
    normalizer = normalizer or StatusNormalizer()

    app = FastAPI(
        title="Z-Image Studio",
        description="Text-to-image generation with asynchronous job tracking",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.gateway = gateway
    app.state.normalizer = normalizer
    app.state.controller = controller or build_controller(config, gateway, normalizer)

    app.add_exception_handler(GenerationError, handle_generation_error)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Mount routers
    app.include_router(health_root_router, tags=["health"])  # GET /health at root
    app.include_router(v1_router)  # All /api/v1/* endpoints
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
