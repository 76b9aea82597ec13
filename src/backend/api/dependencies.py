"""
FastAPI dependencies for shared resources.
"""

import asyncio
import logging

from config.settings import Settings, get_settings
from entities.run_orchestrator import RunOrchestrator
from fastapi import Depends, HTTPException, Request

logger = logging.getLogger(__name__)


def get_orchestrator(request: Request) -> RunOrchestrator:
    """
    Get the RunOrchestrator from app state.

    Raises HTTPException 503 if not initialized.
    """
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Chat service not initialized")
    return orchestrator


async def get_request_deadline(settings: Settings = Depends(get_settings)) -> float:
    """
    Absolute event-loop time by which the current request must finish.

    Measured from when the dependency resolves, i.e. request arrival.
    """
    return asyncio.get_running_loop().time() + settings.request_timeout_seconds
