"""
HTTP request/response models for the chat endpoints.

Wire names are camelCase to match existing clients; Python attributes
are snake_case.
"""

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Body of ``POST /chat/process-message``."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(
        alias="sessionId",
        min_length=1,
        description="Client-chosen identifier scoping the conversation",
    )
    message: str = Field(min_length=1, description="User message for this turn")


class ChatResponse(BaseModel):
    """Body returned by ``POST /chat/process-message``."""

    message: str = Field(description="Assistant reply text")
