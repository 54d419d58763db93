"""API routes for conversation sessions and prompt dispatch under /claude."""

import logging

from fastapi import APIRouter, Request

from api.deps import dispatcher_of, lock_target, resolver_of, run_blocking, sessions_of, settings_of
from models.session import (
    CreateSessionRequest,
    DispatchResult,
    PromptRequest,
    Session,
    SessionListResponse,
    SessionResponse,
)
from utils.errors import InvalidRequest, NotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/claude", tags=["claude"])


async def _working_directory_for(request: Request, reference: str) -> str:
    """Resolve a repository reference (cloning a URL on first use)."""
    resolver = resolver_of(request)
    resolved = await run_blocking(
        request,
        lambda: resolver.resolve_existing(reference),
        settings_of(request).clone_timeout,
        "Repository resolution",
        lock=lock_target(request, reference, mutating=False),
    )
    if resolved.cloned:
        logger.info("Repository cloned successfully: %s", resolved.repo_name)
    return resolved.path


# ============================================================================
# SESSION ENDPOINTS
# ============================================================================


@router.post("/sessions", status_code=201, response_model=SessionResponse)
async def create_session(payload: CreateSessionRequest, request: Request) -> SessionResponse:
    """
    Create a conversation session, optionally bound to a repository.

    Request body:
        {
            "repo": "https://github.com/user/repo.git"  // optional, name or URL
        }

    Returns:
        SessionResponse: The new session and a status message.

    Raises:
        400 for a malformed reference, 404 for an unknown short name,
        500 if cloning fails.
    """
    working_directory = str(settings_of(request).default_working_directory)
    repo_context = None
    if payload.repo:
        logger.info("Creating session with repository: %s", payload.repo)
        working_directory = await _working_directory_for(request, payload.repo)
        repo_context = payload.repo

    session = sessions_of(request).create(working_directory, repo_context)
    return SessionResponse(session=session, message="Session created successfully")


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(request: Request) -> SessionListResponse:
    sessions = sessions_of(request).list_all()
    return SessionListResponse(sessions=sessions, count=len(sessions))


@router.get("/sessions/{session_id}", response_model=Session)
async def get_session(session_id: str, request: Request) -> Session:
    """Return a session with its full message history."""
    session = sessions_of(request).get(session_id)
    if session is None:
        raise NotFound("Session not found", details=session_id)
    return session


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, request: Request) -> dict:
    """Forget a session. The repository directory it used is left alone."""
    if not sessions_of(request).delete(session_id):
        raise NotFound("Session not found", details=session_id)
    return {"message": "Session deleted successfully"}


# ============================================================================
# PROMPT ENDPOINT
# ============================================================================


@router.post("/prompt", response_model=DispatchResult)
async def process_prompt(payload: PromptRequest, request: Request) -> DispatchResult:
    """
    Forward a prompt to the AI engine.

    Request body:
        {
            "prompt": "Explain the build setup",
            "repo": "repo-name",        // optional, ignored when sessionId is set
            "sessionId": "uuid",        // optional
            "continue": false,          // optional
            "maxTurns": 20              // optional
        }

    Returns:
        DispatchResult: Every message the engine produced, in order.

    Raises:
        400 for an empty prompt, 404 for an unknown session, 500 if the
        engine fails.
    """
    if not payload.prompt or not payload.prompt.strip():
        raise InvalidRequest("Prompt is required")

    if payload.sessionId:
        if sessions_of(request).get(payload.sessionId) is None:
            raise NotFound("Session not found", details=payload.sessionId)
        logger.info("Using session: %s", payload.sessionId)

    working_directory = str(settings_of(request).default_working_directory)
    if payload.repo and not payload.sessionId:
        logger.info("Target repository: %s", payload.repo)
        working_directory = await _working_directory_for(request, payload.repo)

    return await dispatcher_of(request).dispatch(
        payload.prompt,
        working_directory,
        turn_budget=payload.maxTurns,
        continue_conversation=payload.continue_,
        session_id=payload.sessionId,
    )
