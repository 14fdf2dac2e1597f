"""LLM client: HTTP connection to a completion backend.

The social components inject an LLM callable matching the protocol:

    async def __call__(
        self, stage: str, messages: list[ChatMessage], max_tokens: int
    ) -> str: ...

`stage` identifies which component is calling ("directory", "council",
"outreach", "classifier"). The implementation may use it for logging or
routing; the simplest implementation ignores it.

Two implementations are provided:

    HttpLLM: real HTTP client, supports KoboldCpp and OpenAI-compatible
             chat backends. Selected by provider_format.
    EchoLLM: returns the last message back unchanged. Useful for
             smoke-testing the wiring without a running model.

Production code builds an HttpLLM from config (see chorus.config.build_llm).
Tests use StubLLM (defined in the test helpers) instead.
"""

from __future__ import annotations

import logging
from typing import Literal, Protocol

import httpx

from chorus.models import ChatMessage

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol: every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(
        self, stage: str, messages: list[ChatMessage], max_tokens: int
    ) -> str: ...


# ---------------------------------------------------------------------------
# HttpLLM: connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["koboldcpp", "openai"]

_ROLE_LABELS = {"system": "System", "user": "User", "assistant": "Assistant"}


def flatten_messages(messages: list[ChatMessage]) -> str:
    """Render role-tagged messages as one text-completion prompt."""
    parts = [f"{_ROLE_LABELS[m.role]}: {m.content}" for m in messages]
    parts.append("Assistant:")
    return "\n\n".join(parts)


class HttpLLM:
    """Async HTTP client for completion backends.

    Supported formats:
      "koboldcpp" : POST /api/v1/generate      {"prompt": ..., "max_length": ...}
                     Response: {"results": [{"text": "..."}]}
                     Role-tagged messages are flattened into one prompt.
      "openai"    : POST /v1/chat/completions  {"model": ..., "messages": [...]}
                     Response: {"choices": [{"message": {"content": "..."}}]}

    Args:
        provider_url:    Base URL of the backend, e.g. "http://localhost:5001".
        api_key:         Bearer token, or empty string if not required.
        provider_format: Wire format to use. Defaults to "koboldcpp".
        model:           Model identifier, used only by the openai format.
        timeout:         HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "koboldcpp",
        model: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(
        self, messages: list[ChatMessage], max_tokens: int
    ) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            body: dict = {
                "messages": [m.model_dump() for m in messages],
                "max_tokens": max_tokens,
            }
            if self._model:
                body["model"] = self._model
            return url, body

        # koboldcpp (default)
        url = f"{self._base_url}/api/v1/generate"
        return url, {"prompt": flatten_messages(messages), "max_length": max_tokens}

    def _parse_response(self, data: dict) -> str:
        """Extract the completion text from the response body."""
        if self._format == "openai":
            choices = data.get("choices")
            message = choices[0].get("message") if choices else None
            if not isinstance(message, dict) or "content" not in message:
                raise LLMError("Unexpected response format from OpenAI-compatible backend")
            return message["content"] or ""

        # koboldcpp
        results = data.get("results")
        if not results or "text" not in results[0]:
            raise LLMError("Unexpected response format from KoboldCpp backend")
        return results[0]["text"]

    async def __call__(
        self, stage: str, messages: list[ChatMessage], max_tokens: int
    ) -> str:
        url, body = self._build_request(messages, max_tokens)
        logger.debug(
            "llm call stage=%s url=%s messages=%d max_tokens=%d",
            stage, url, len(messages), max_tokens,
        )

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

        text = self._parse_response(resp.json())
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text


# ---------------------------------------------------------------------------
# EchoLLM: returns the last message unchanged; useful for wiring smoke tests
# ---------------------------------------------------------------------------

class EchoLLM:
    """Returns the content of the last message as-is. No network calls.

    Lets you verify that the wiring (context building, history windows,
    storage writes) works end-to-end without a running model. The output
    carries no assessment block or council markers, so every exchange
    degrades to "no structured data extracted".
    """

    async def __call__(
        self, stage: str, messages: list[ChatMessage], max_tokens: int
    ) -> str:
        logger.debug("EchoLLM stage=%s messages=%d", stage, len(messages))
        return messages[-1].content if messages else ""


# ---------------------------------------------------------------------------
# LLMError: raised by HttpLLM for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""
