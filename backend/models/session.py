"""Data models for conversation sessions and prompt dispatch.

Field names are camelCase because they are returned to clients unchanged.
"""

from typing import Any

from pydantic import BaseModel, Field


class SessionMetadata(BaseModel):
    totalPrompts: int = 0
    lastPrompt: str | None = None


class Session(BaseModel):
    """A conversation bound to a fixed working directory."""

    id: str
    createdAt: str  # ISO-8601 datetime
    updatedAt: str  # ISO-8601 datetime
    repoContext: str | None = None  # reference the session was created with
    workingDirectory: str
    messages: list[dict[str, Any]] = Field(default_factory=list)
    metadata: SessionMetadata = Field(default_factory=SessionMetadata)


class DispatchResult(BaseModel):
    """Response for a processed prompt."""

    message: str
    timestamp: str
    promptLength: int
    orderedMessages: list[dict[str, Any]] = Field(default_factory=list)
    workingDirectory: str
    messageCount: int
    sessionId: str | None = None


class CreateSessionRequest(BaseModel):
    """Request model for POST /claude/sessions."""

    repo: str | None = None


class SessionResponse(BaseModel):
    session: Session
    message: str


class SessionListResponse(BaseModel):
    sessions: list[Session]
    count: int


class PromptRequest(BaseModel):
    """Request model for POST /claude/prompt."""

    prompt: str
    repo: str | None = None
    sessionId: str | None = None
    continue_: bool = Field(default=False, alias="continue")
    maxTurns: int | None = Field(default=None, ge=1)

    model_config = {"populate_by_name": True}
