"""Conversation engines: the AI coding assistant behind the dispatcher.

The dispatcher only sees :class:`ConversationEngine`. Production uses
:class:`ClaudeAgentEngine`, which drives ``claude_agent_sdk.query()``; tests
plug in a scripted engine behind the same interface.
"""

import asyncio
import dataclasses
import logging
from abc import ABC, abstractmethod
from contextlib import aclosing
from typing import Any, AsyncIterator, Sequence

from claude_agent_sdk import ClaudeAgentOptions, query

from utils.settings import DEFAULT_PERMISSION_MODE

logger = logging.getLogger(__name__)


class AbortController:
    """Cooperative cancellation handle for one engine invocation."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self, reason: str = "aborted") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class ConversationEngine(ABC):
    """Capability that turns a prompt into a sequence of messages."""

    @abstractmethod
    def invoke(
        self,
        prompt: str,
        cwd: str,
        turn_budget: int,
        tools: Sequence[str],
        abort: AbortController,
        continue_conversation: bool = False,
    ) -> AsyncIterator[Any]:
        """Yield the engine's messages in the order they are produced."""


class ClaudeAgentEngine(ConversationEngine):
    """Engine backed by the Claude Agent SDK."""

    def __init__(self, permission_mode: str = DEFAULT_PERMISSION_MODE, model: str | None = None):
        self.permission_mode = permission_mode
        self.model = model

    async def invoke(
        self,
        prompt: str,
        cwd: str,
        turn_budget: int,
        tools: Sequence[str],
        abort: AbortController,
        continue_conversation: bool = False,
    ) -> AsyncIterator[Any]:
        options_kwargs = dict(
            max_turns=turn_budget,
            cwd=cwd,
            allowed_tools=list(tools),
            permission_mode=self.permission_mode,
            continue_conversation=continue_conversation,
        )
        if self.model:
            options_kwargs["model"] = self.model
        options = ClaudeAgentOptions(**options_kwargs)

        async with aclosing(query(prompt=prompt, options=options)) as stream:
            async for message in stream:
                if abort.aborted:
                    logger.info("Engine invocation aborted: %s", abort.reason)
                    return
                yield message


def normalize_message(message: Any) -> dict:
    """Convert an engine message into a JSON-ready dict.

    SDK message objects are tagged with their class name under ``type``.
    """
    if isinstance(message, dict):
        return dict(message)
    if dataclasses.is_dataclass(message) and not isinstance(message, type):
        payload = dataclasses.asdict(message)
    elif hasattr(message, "model_dump"):
        payload = message.model_dump()
    else:
        payload = {"content": str(message)}
    payload.setdefault("type", type(message).__name__)
    return payload
