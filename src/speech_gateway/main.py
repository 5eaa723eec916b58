"""
FastAPI Application Entry Point.

Creates and configures the FastAPI application for speech-gateway:
environment loading, logging, CORS, error handlers and the startup sweep
of staging areas left behind by earlier processes.

Usage:
    # Run with uvicorn
    uvicorn speech_gateway.main:app --host 0.0.0.0 --port 3000

    # Or through the CLI
    speech-gateway --serve
"""

from __future__ import annotations

import contextlib

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from speech_gateway import __version__
from speech_gateway.api.dependencies import get_settings
from speech_gateway.api.routes import router
from speech_gateway.core.logging import configure_logging, get_logger, info, warn
from speech_gateway.core.metrics import metrics
from speech_gateway.services.errors import ErrorCode
from speech_gateway.tts.staging import sweep_stale_areas

_LOG = get_logger("speech-gateway.main")

# Response headers browsers may read across origins
EXPOSED_HEADERS = ["X-Request-Id", "X-Segments", "X-Segments-Truncated", "X-Bytes", "Content-Disposition"]


async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed JSON or wrongly typed fields: 400 in the gateway's error format."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field_path = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request body")
    warn(_LOG, "invalid_body", field=field_path, error=message)
    return JSONResponse(
        status_code=400,
        content={
            "error": f"Invalid request body: {field_path}: {message}" if field_path else f"Invalid request body: {message}",
            "code": ErrorCode.INVALID_INPUT,
        },
    )


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """Remove staging areas of crashed processes, then serve."""
    config = get_settings().get_gateway_config()
    staging_dir = config.staging.resolved_dir()
    sweep_stale_areas(staging_dir, config.staging.stale_after_seconds)
    info(
        _LOG, "startup",
        version=__version__,
        mode=config.pipeline.mode,
        merge_backend=config.merge.backend,
        staging_dir=str(staging_dir),
    )
    yield
    info(_LOG, "shutdown")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory function:
        1. Loads .env (existing environment variables win)
        2. Configures structured logging
        3. Applies CORS and metrics settings
        4. Registers routes and the request-body error handler

    Returns:
        FastAPI: Configured application instance ready to serve requests.
    """
    load_dotenv(override=False)
    # .env may set SPEECH_GW_LOG_LEVEL after module loggers configured logging
    configure_logging(force=True)

    config = get_settings().get_gateway_config()
    metrics.enabled = config.metrics.enabled

    app = FastAPI(title="speech-gateway", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=EXPOSED_HEADERS,
    )

    app.add_exception_handler(RequestValidationError, _invalid_body)
    app.include_router(router)

    return app


# Global application instance for ASGI servers (uvicorn, gunicorn, etc.)
app = create_app()
