"""
FastAPI server for session-oriented chat over the Assistants API.

This module handles application setup, lifespan management, and middleware configuration.
Route handlers are organized in the routers/ package.

Startup wires the pieces together:
- Settings (environment, then Key Vault for missing secrets)
- OpenAIAssistantsClient: the remote Assistants API
- SessionThreadStore + session locks: memory or Redis backed
- RunOrchestrator: runs chat turns; SessionReaper: reclaims expired sessions' threads
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from api.monitoring import configure_observability, is_observability_enabled
from api.routers import chat_router
from config.secrets import load_key_vault_secrets
from config.settings import get_settings
from dotenv import load_dotenv
from entities.run_orchestrator import (
    SessionReaper,
    create_run_orchestrator,
    create_session_locks,
)
from entities.session_store import create_session_store
from entities.shared.clients import create_assistants_client
from entities.shared.errors import ChatError
from entities.shared.redis_client import create_redis_client
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

# Configure logging - use force=True to prevent duplicate handlers
logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, force=True)

# Reduce noise from Azure SDK and other libraries
logging.getLogger("azure").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.WARNING)

# Configure observability before creating the app
configure_observability()


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan handler.

    Builds the orchestrator and starts the reaper on startup; stops the
    reaper and closes network clients on shutdown.
    """
    logger.info("Assistant Chat API starting")

    if is_observability_enabled():
        logger.info("OpenTelemetry observability is ENABLED")
    else:
        logger.info(
            "OpenTelemetry observability is disabled (set ENABLE_INSTRUMENTATION=true to enable)"
        )

    settings = await load_key_vault_secrets(get_settings())

    uses_redis = "redis" in {settings.session_store_backend, settings.session_lock_backend}
    redis = None
    remote = None
    reaper = None
    try:
        redis = create_redis_client(settings.redis_url) if uses_redis else None
        remote = create_assistants_client(settings)
        store = create_session_store(settings, redis)
        orchestrator = create_run_orchestrator(
            settings, remote, store, create_session_locks(settings, redis)
        )
        logger.info(
            "Session store: %s, session locks: %s, thread mode: %s",
            settings.session_store_backend,
            settings.session_lock_backend,
            settings.thread_mode,
        )

        try:
            await orchestrator.verify_assistant()
        except ChatError:
            logger.exception(
                "Could not retrieve assistant %s; chat requests will fail until it is reachable",
                settings.openai_assistant_id,
            )

        reaper = SessionReaper(
            store,
            orchestrator.release_expired_thread,
            interval_seconds=settings.reaper_interval_seconds,
        )
        reaper.start()

        application.state.orchestrator = orchestrator
        application.state.reaper = reaper

        yield
    finally:
        application.state.orchestrator = None
        if reaper is not None:
            await reaper.stop()
        if remote is not None:
            await remote.close()
        if redis is not None:
            await redis.aclose()
        logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(title="Assistant Chat API", lifespan=lifespan)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(chat_router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed request bodies as 400 instead of FastAPI's default 422."""
    logger.warning("Invalid request to %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, object]]:
    """Reduce validation errors to JSON-safe location/message pairs."""
    return [
        {"loc": list(error.get("loc", ())), "msg": str(error.get("msg", ""))}
        for error in exc.errors()
    ]


@app.get("/health")
async def health_check() -> dict[str, object]:
    """Health check endpoint."""
    orchestrator_ready = getattr(app.state, "orchestrator", None) is not None
    return {"status": "healthy", "orchestrator_ready": orchestrator_ready}


if __name__ == "__main__":
    uvicorn.run("api.main:app", host="0.0.0.0", port=8000, reload=True)  # noqa: S104
