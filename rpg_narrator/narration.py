"""Narration engine: turns an action into renderable narrator output.

The engine builds one prompt per call, sends it to the narrator backend and
decodes the reply into a NarrationResult. When a fragment callback is
supplied and the backend can stream, fragments are handed to the callback as
they arrive while the full text is accumulated for decoding; the returned
value is the same either way.

The engine never raises for backend problems:
  - no backend configured, or backend unreachable → kind="degraded"
  - unexpected backend failure                    → kind="error"
  - reply that is not JSON                        → whole text is the narration
The engine does not touch session state. A returned `state_delta` is for the
caller to apply.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable

from rpg_narrator.decoding import FALLBACK_NARRATION, Failed, decode_narration
from rpg_narrator.errors import NarrationParseError, NarrationUnavailable
from rpg_narrator.llm import LLM, ChatMessage, LLMError, StreamingLLM
from rpg_narrator.models import (
    NarrationResult,
    NpcProfile,
    Scenario,
    TurnContext,
    ViolationPayload,
)
from rpg_narrator.prompts import dialogue_messages, narrator_messages, opening_messages

logger = logging.getLogger(__name__)

FragmentCallback = Callable[[str], Awaitable[None] | None]

NARRATOR_TEMPERATURE = 0.7
NARRATOR_MAX_TOKENS = 300

UNAVAILABLE_NARRATION = "The narrator seems to be lost in thought... (narration backend not available)"
UNAVAILABLE_ACTIONS = ["Try again later", "Check the narration backend"]
ERROR_NARRATION = "The narrator seems to be at a loss for words..."
IDLE_NARRATION = "The narrator waits patiently for your input..."
IDLE_ACTIONS = ["Look around", "Check inventory", "Ask for help"]


def _degraded() -> NarrationResult:
    return NarrationResult(
        narration=UNAVAILABLE_NARRATION,
        suggested_actions=list(UNAVAILABLE_ACTIONS),
        kind="degraded",
    )


class NarrationEngine:
    """Prompts the narrator backend and decodes its replies.

    Args:
        llm:    Narrator backend, or None to always return degraded narration.
        stream: Use the backend's fragment stream when a callback is given.
    """

    def __init__(self, llm: LLM | None = None, stream: bool = True) -> None:
        self._llm = llm
        self._stream = stream

    @property
    def available(self) -> bool:
        return self._llm is not None

    async def narrate(
        self,
        action: str | ViolationPayload,
        context: TurnContext,
        on_fragment: FragmentCallback | None = None,
    ) -> NarrationResult:
        """Narrate the outcome of a player action or of a refused action."""
        if isinstance(action, str) and not action.strip():
            return NarrationResult(narration=IDLE_NARRATION, suggested_actions=list(IDLE_ACTIONS))
        return await self._run("narrator", narrator_messages(action, context), on_fragment)

    async def speak(
        self,
        text: str,
        npc: NpcProfile,
        context: TurnContext,
        on_fragment: FragmentCallback | None = None,
    ) -> NarrationResult:
        """Have an NPC answer the player while in dialogue."""
        if not text.strip():
            return NarrationResult(narration=f"{npc.name} waits for you to speak.")
        return await self._run("npc_dialogue", dialogue_messages(text, npc, context), on_fragment)

    async def opening(
        self, scenario: Scenario, on_fragment: FragmentCallback | None = None
    ) -> NarrationResult:
        """Scene-setting narration for a freshly loaded scenario."""
        return await self._run("opening", opening_messages(scenario), on_fragment)

    # ------------------------------------------------------------------

    async def _run(
        self,
        stage: str,
        messages: list[ChatMessage],
        on_fragment: FragmentCallback | None,
    ) -> NarrationResult:
        if self._llm is None:
            logger.warning("narrator backend not configured, using degraded narration")
            return _degraded()

        try:
            text = await self._complete(stage, messages, on_fragment)
        except NarrationUnavailable as e:
            logger.warning("narrator unavailable: %s", e)
            return _degraded()
        except Exception as e:
            logger.exception("narrator call failed stage=%s", stage)
            return NarrationResult(narration=ERROR_NARRATION, kind="error", error=str(e) or type(e).__name__)

        try:
            return self._decode(text)
        except NarrationParseError as e:
            logger.warning("narrator reply is not structured, using raw text: %s", e)
            return NarrationResult(narration=text.strip() or FALLBACK_NARRATION)

    async def _complete(
        self,
        stage: str,
        messages: list[ChatMessage],
        on_fragment: FragmentCallback | None,
    ) -> str:
        try:
            if self._stream and on_fragment is not None and isinstance(self._llm, StreamingLLM):
                return await self._drain(stage, messages, on_fragment)
            return await self._llm(
                stage, messages,
                temperature=NARRATOR_TEMPERATURE, max_tokens=NARRATOR_MAX_TOKENS,
            )
        except LLMError as e:
            raise NarrationUnavailable(str(e)) from e

    async def _drain(
        self,
        stage: str,
        messages: list[ChatMessage],
        on_fragment: FragmentCallback,
    ) -> str:
        """Feed each fragment to the callback and return the full text."""
        parts: list[str] = []
        stream = self._llm.stream(
            stage, messages,
            temperature=NARRATOR_TEMPERATURE, max_tokens=NARRATOR_MAX_TOKENS,
        )
        async for fragment in stream:
            parts.append(fragment)
            shown = on_fragment(fragment)
            if inspect.isawaitable(shown):
                await shown
        logger.debug("narrator stream stage=%s fragments=%d", stage, len(parts))
        return "".join(parts)

    def _decode(self, text: str) -> NarrationResult:
        try:
            decoded = decode_narration(text)
        except Exception as e:
            logger.exception("narrator reply could not be decoded")
            raise NarrationParseError(f"{type(e).__name__}: {e}") from e
        if isinstance(decoded, Failed):
            raise NarrationParseError(f"{decoded.kind}: {decoded.detail}")
        return decoded.value
