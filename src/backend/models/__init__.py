"""
Shared models for the chat service.

All models are re-exported here so callers can ``from models import ...``.
"""

from .assistant import (
    AssistantRef,
    ExpiredThread,
    RemoteMessage,
    RunHandle,
    RunStatus,
    ThreadMode,
)
from .chat import ChatRequest, ChatResponse

__all__ = [
    # Remote assistant objects
    "AssistantRef",
    "ExpiredThread",
    "RemoteMessage",
    "RunHandle",
    "RunStatus",
    "ThreadMode",
    # HTTP surface
    "ChatRequest",
    "ChatResponse",
]
