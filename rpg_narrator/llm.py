"""LLM client: HTTP connection to a chat-completion backend.

The gate and the narrator receive an LLM callable matching the protocol:

    async def __call__(self, stage, messages, *, temperature, max_tokens) -> str

`stage` identifies the caller ("classifier", "narrator", "npc_dialogue",
"opening"). It is used for logging only. `messages` is an ordered list of
{"role": ..., "content": ...} dicts. Structured (JSON) output is always
requested.

Backends that can deliver the reply incrementally also expose

    def stream(self, stage, messages, *, temperature, max_tokens) -> AsyncIterator[str]

which yields text fragments in order. Concatenating them gives the same
text `__call__` would have returned.

Two implementations are provided:

    HttpLLM: real HTTP client, supports Ollama and OpenAI-compatible
        chat backends. Selected by provider_format.
    EchoLLM: returns the last user message unchanged. Useful for
        smoke-testing the turn wiring without a running model.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Literal, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)

ChatMessage = dict[str, str]


# ---------------------------------------------------------------------------
# Protocols: every LLM implementation must match these signatures
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(
        self,
        stage: str,
        messages: list[ChatMessage],
        *,
        temperature: float = 0.7,
        max_tokens: int = 300,
    ) -> str: ...


@runtime_checkable
class StreamingLLM(Protocol):
    def stream(
        self,
        stage: str,
        messages: list[ChatMessage],
        *,
        temperature: float = 0.7,
        max_tokens: int = 300,
    ) -> AsyncIterator[str]: ...


# ---------------------------------------------------------------------------
# HttpLLM: connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["ollama", "openai"]


class HttpLLM:
    """Async HTTP client for chat-completion backends.

    Supported formats:
      "ollama":   POST /api/chat  {"model", "messages", "format": "json",
                                   "stream", "options": {...}}
                  Response: {"message": {"content": "..."}}
                  Stream:   one JSON object per line, same shape
      "openai":   POST /v1/chat/completions  {"model", "messages",
                  "response_format": {"type": "json_object"}, ...}
                  Response: {"choices": [{"message": {"content": "..."}}]}
                  Stream:   server-sent events, choices[0].delta.content

    A reply without a readable content field is treated as an empty JSON
    object ("{}").

    Args:
        provider_url:    Base URL of the backend, e.g. "http://localhost:11434".
        model:           Model identifier sent with every request.
        api_key:         Bearer token, or empty string if not required.
        provider_format: Wire format to use. Defaults to "ollama".
        timeout:         HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        provider_url: str,
        model: str,
        api_key: str = "",
        provider_format: ProviderFormat = "ollama",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._model = model
        self._api_key = api_key
        self._format = provider_format
        self._timeout = timeout

    @property
    def model(self) -> str:
        return self._model

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(
        self,
        messages: list[ChatMessage],
        temperature: float,
        max_tokens: int,
        stream: bool,
    ) -> tuple[str, dict[str, Any]]:
        """Return (url, body) for the configured format."""
        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            return url, {
                "model": self._model,
                "messages": messages,
                "response_format": {"type": "json_object"},
                "temperature": temperature,
                "max_tokens": max_tokens,
                "stream": stream,
            }

        # ollama (default)
        url = f"{self._base_url}/api/chat"
        return url, {
            "model": self._model,
            "messages": messages,
            "format": "json",
            "stream": stream,
            "options": {"temperature": temperature, "num_predict": max_tokens},
        }

    def _parse_response(self, data: Any) -> str:
        """Extract the message content from a complete response body."""
        content: Any = None
        if isinstance(data, dict):
            if self._format == "openai":
                choices = data.get("choices") or [{}]
                content = (choices[0].get("message") or {}).get("content")
            else:
                content = (data.get("message") or {}).get("content")
        if not isinstance(content, str) or not content:
            logger.debug("llm response without content, treating as empty object")
            return "{}"
        return content

    def _parse_stream_line(self, line: str) -> str:
        """Extract the text fragment carried by one stream line, or ""."""
        line = line.strip()
        if not line:
            return ""
        if self._format == "openai":
            if not line.startswith("data:"):
                return ""
            payload = line[len("data:"):].strip()
            if payload == "[DONE]":
                return ""
            try:
                chunk = json.loads(payload)
            except json.JSONDecodeError:
                logger.warning("Skipping malformed stream event: %r", payload)
                return ""
            choices = chunk.get("choices") or [{}]
            return (choices[0].get("delta") or {}).get("content") or ""

        try:
            chunk = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Skipping malformed stream line: %r", line)
            return ""
        return (chunk.get("message") or {}).get("content") or ""

    async def __call__(
        self,
        stage: str,
        messages: list[ChatMessage],
        *,
        temperature: float = 0.7,
        max_tokens: int = 300,
    ) -> str:
        url, body = self._build_request(messages, temperature, max_tokens, stream=False)
        logger.debug("llm call stage=%s url=%s messages=%d", stage, url, len(messages))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"LLM backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e

        try:
            data = resp.json()
        except ValueError:
            data = {}
        text = self._parse_response(data)
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text

    async def stream(
        self,
        stage: str,
        messages: list[ChatMessage],
        *,
        temperature: float = 0.7,
        max_tokens: int = 300,
    ) -> AsyncIterator[str]:
        url, body = self._build_request(messages, temperature, max_tokens, stream=True)
        logger.debug("llm stream stage=%s url=%s messages=%d", stage, url, len(messages))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                async with client.stream(
                    "POST", url, json=body, headers=self._headers()
                ) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        fragment = self._parse_stream_line(line)
                        if fragment:
                            yield fragment
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"LLM backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e


# ---------------------------------------------------------------------------
# EchoLLM: returns the last user message; useful for wiring smoke tests
# ---------------------------------------------------------------------------

class EchoLLM:
    """Returns the content of the last user message as-is. No network calls.

    The output won't be valid JSON, so the narrator falls back to using the
    whole text as narration and the classifier degrades to fail-open. Use
    StubLLM in tests when you need controlled responses.
    """

    async def __call__(
        self,
        stage: str,
        messages: list[ChatMessage],
        *,
        temperature: float = 0.7,
        max_tokens: int = 300,
    ) -> str:
        logger.debug("EchoLLM stage=%s messages=%d", stage, len(messages))
        for message in reversed(messages):
            if message.get("role") == "user":
                return message.get("content", "")
        return ""


# ---------------------------------------------------------------------------
# LLMError: raised by HttpLLM for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""
