"""Prompt dispatch: run a prompt through the conversation engine.

A dispatch issues one engine invocation, drains every produced message in
arrival order and only then returns. When a live session is named, its
working directory wins over the caller's and the drained messages are
recorded against it afterwards.
"""

import asyncio
import logging
from typing import Sequence

from models.session import DispatchResult
from services.engine import AbortController, ConversationEngine, normalize_message
from services.session_store import SessionStore, utc_now_iso
from utils.errors import DispatchFailure
from utils.settings import ALLOWED_TOOLS, DEFAULT_MAX_TURNS

logger = logging.getLogger(__name__)


class PromptDispatcher:
    """Coordinates the engine, the session store and cancellation."""

    def __init__(
        self,
        engine: ConversationEngine,
        store: SessionStore,
        max_turns: int = DEFAULT_MAX_TURNS,
        tools: Sequence[str] = ALLOWED_TOOLS,
        timeout: float | None = None,
    ):
        self.engine = engine
        self.store = store
        self.max_turns = max_turns
        self.tools = tuple(tools)
        self.timeout = timeout
        self._in_flight: set[AbortController] = set()

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def abort_all(self, reason: str = "server shutting down") -> int:
        """Abort every running dispatch; returns how many were signalled."""
        controllers = list(self._in_flight)
        for controller in controllers:
            controller.abort(reason)
        if controllers:
            logger.info("Aborted %d in-flight dispatch(es): %s", len(controllers), reason)
        return len(controllers)

    async def dispatch(
        self,
        prompt: str,
        working_directory: str,
        turn_budget: int | None = None,
        continue_conversation: bool = False,
        session_id: str | None = None,
        abort: AbortController | None = None,
    ) -> DispatchResult:
        """
        Process a prompt and collect the engine's messages.

        Args:
            prompt: User prompt forwarded to the engine.
            working_directory: Directory the engine is confined to, unless a
                live session overrides it.
            turn_budget: Maximum conversational turns (defaults to max_turns).
            continue_conversation: Ask the engine to continue its last conversation.
            session_id: Optional session to read context from and record into.
            abort: Cancellation handle; one is created when omitted.

        Returns:
            DispatchResult: Messages in the order the engine produced them.

        Raises:
            DispatchFailure: If the engine fails, the dispatch is aborted or
                the deadline passes. The session is left unchanged.
        """
        logger.info("Processing prompt (%d chars)", len(prompt))

        session = None
        if session_id:
            session = self.store.get(session_id)
            if session is not None:
                working_directory = session.workingDirectory
                logger.info("Using session %s with working directory: %s", session_id, working_directory)
            else:
                logger.warning("Session %s not found, proceeding without session context", session_id)

        abort = abort or AbortController()
        self._in_flight.add(abort)
        try:
            messages = await self._drain(
                prompt,
                working_directory,
                turn_budget or self.max_turns,
                continue_conversation,
                abort,
            )
        finally:
            self._in_flight.discard(abort)

        if session is not None:
            self.store.append_and_touch(session.id, messages, prompt)

        return DispatchResult(
            message="Prompt processed successfully",
            timestamp=utc_now_iso(),
            promptLength=len(prompt),
            orderedMessages=messages,
            workingDirectory=working_directory,
            messageCount=len(messages),
            sessionId=session_id,
        )

    async def _collect(
        self,
        prompt: str,
        cwd: str,
        turn_budget: int,
        continue_conversation: bool,
        abort: AbortController,
    ) -> list[dict]:
        messages: list[dict] = []
        async for message in self.engine.invoke(
            prompt,
            cwd,
            turn_budget,
            self.tools,
            abort,
            continue_conversation=continue_conversation,
        ):
            messages.append(normalize_message(message))
        return messages

    async def _drain(
        self,
        prompt: str,
        cwd: str,
        turn_budget: int,
        continue_conversation: bool,
        abort: AbortController,
    ) -> list[dict]:
        drain = asyncio.ensure_future(self._collect(prompt, cwd, turn_budget, continue_conversation, abort))
        aborted = asyncio.ensure_future(abort.wait())
        try:
            done, _ = await asyncio.wait(
                {drain, aborted},
                timeout=self.timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            drain.cancel()
            raise
        finally:
            aborted.cancel()

        if drain in done:
            try:
                return drain.result()
            except Exception as exc:
                logger.error("Engine invocation failed: %s", exc)
                raise DispatchFailure("Failed to process prompt", details=str(exc)) from exc

        if not abort.aborted:
            abort.abort("timed out")
        drain.cancel()
        await asyncio.wait({drain})

        if abort.reason == "timed out":
            raise DispatchFailure(
                "Prompt dispatch timed out",
                details=f"No result within {self.timeout} seconds",
            )
        raise DispatchFailure("Prompt dispatch aborted", details=abort.reason)
