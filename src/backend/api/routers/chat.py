"""
Chat API routes.

Thin HTTP layer over ``RunOrchestrator``:
- ``POST /chat/process-message`` runs one turn and returns the reply
- ``POST /chat/end-thread`` ends a session and deletes its remote thread

Only cancellation is reported distinctly (400); every other failure is
logged with a correlation ID and returned as a generic 500 so remote
service details never reach the client.
"""

import logging
import uuid

from api.dependencies import get_orchestrator, get_request_deadline
from entities.run_orchestrator import RunOrchestrator
from entities.shared.errors import ChatCanceledError
from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse
from models import ChatRequest, ChatResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

CANCELED_DETAIL = "Request was canceled."
INTERNAL_ERROR_DETAIL = "Internal server error"
SESSION_ENDED_TEXT = "Chat session ended."


def _internal_error(error: Exception, session_id: str) -> JSONResponse:
    """Log *error* under a correlation ID and return a generic 500."""
    correlation_id = uuid.uuid4().hex[:12]
    logger.error(
        "Chat error [%s] for session_id=%s: %s",
        correlation_id,
        session_id,
        error,
        exc_info=error,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": INTERNAL_ERROR_DETAIL, "correlation_id": correlation_id},
    )


def _canceled(session_id: str) -> JSONResponse:
    logger.warning("Chat request was canceled for session_id=%s", session_id)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": CANCELED_DETAIL},
    )


@router.post("/process-message", response_model=ChatResponse)
async def process_message(
    chat_request: ChatRequest,
    orchestrator: RunOrchestrator = Depends(get_orchestrator),
    deadline: float = Depends(get_request_deadline),
) -> ChatResponse | JSONResponse:
    """Submit a message for the session and return the assistant's reply."""
    session_id = chat_request.session_id
    logger.info("Processing chat message for session %s", session_id)

    try:
        reply = await orchestrator.process_message(session_id, chat_request.message, deadline)
    except ChatCanceledError:
        return _canceled(session_id)
    except Exception as e:
        return _internal_error(e, session_id)

    return ChatResponse(message=reply)


@router.post("/end-thread", response_model=None)
async def end_thread(
    session_id: str = Body(..., min_length=1, description="Session to end"),
    orchestrator: RunOrchestrator = Depends(get_orchestrator),
    deadline: float = Depends(get_request_deadline),
) -> str | JSONResponse:
    """End a chat session and delete its remote thread."""
    logger.info("Ending chat session %s", session_id)

    try:
        await orchestrator.end_session(session_id, deadline)
    except ChatCanceledError:
        return _canceled(session_id)
    except Exception as e:
        return _internal_error(e, session_id)

    return SESSION_ENDED_TEXT
