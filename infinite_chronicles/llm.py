"""LLM client: HTTP connection to a text-generation backend.

The session injects an LLM callable matching the protocol:

    async def __call__(self, stage: str, prompt: str, schema: dict | None = None) -> str: ...

`stage` identifies the request ("opening", "turn", "summary") and is used for
logging. `schema` is the JSON response schema for structured stages; when it
is None the backend is asked for free text.

HttpLLM is the production implementation. Tests use StubLLM (conftest.py).
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Protocol

import httpx

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_URL = "https://generativelanguage.googleapis.com"
DEFAULT_MODEL = "gemini-2.5-flash"
MAX_OUTPUT_TOKENS = 8192


# ---------------------------------------------------------------------------
# Protocol: every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(
        self, stage: str, prompt: str, schema: dict[str, Any] | None = None
    ) -> str: ...


# ---------------------------------------------------------------------------
# HttpLLM: connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["gemini", "openai"]


class HttpLLM:
    """Async HTTP client for generation backends.

    Supported formats:
      "gemini":  POST /v1beta/models/{model}:generateContent
                  {"contents": [...], "generationConfig": {...}}
                  Response: {"candidates": [{"content": {"parts": [{"text": "..."}]}}]}
      "openai":  POST /v1/chat/completions  {"model": ..., "messages": [...]}
                  Response: {"choices": [{"message": {"content": "..."}}]}

    Args:
        provider_url:    Base URL of the backend.
        api_key:         API key, or empty string if not required.
        provider_format: Wire format to use. Defaults to "gemini".
        model:           Model identifier.
        timeout:         HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        provider_url: str = DEFAULT_PROVIDER_URL,
        api_key: str = "",
        provider_format: ProviderFormat = "gemini",
        model: str = DEFAULT_MODEL,
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if not self._api_key:
            return headers
        if self._format == "gemini":
            headers["x-goog-api-key"] = self._api_key
        else:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(
        self, prompt: str, schema: dict[str, Any] | None
    ) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            body: dict = {
                "model": self._model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": MAX_OUTPUT_TOKENS,
            }
            if schema is not None:
                body["response_format"] = {"type": "json_object"}
            return url, body

        # gemini (default)
        url = f"{self._base_url}/v1beta/models/{self._model}:generateContent"
        config: dict[str, Any] = {"maxOutputTokens": MAX_OUTPUT_TOKENS}
        if schema is not None:
            config["responseMimeType"] = "application/json"
            config["responseSchema"] = schema
        else:
            config["responseMimeType"] = "text/plain"
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": config,
        }
        return url, body

    def _parse_response(self, data: dict) -> str:
        """Extract the generated text from the response body."""
        if self._format == "openai":
            choices = data.get("choices")
            if not choices or "content" not in choices[0].get("message", {}):
                raise LLMError("Unexpected response format from OpenAI-compatible backend")
            return choices[0]["message"]["content"] or ""

        # gemini
        candidates = data.get("candidates")
        if not candidates:
            raise LLMError("Unexpected response format from Gemini backend")
        parts = candidates[0].get("content", {}).get("parts")
        if not parts:
            raise LLMError("Gemini backend returned no content")
        return "".join(part.get("text", "") for part in parts)

    async def __call__(
        self, stage: str, prompt: str, schema: dict[str, Any] | None = None
    ) -> str:
        url, body = self._build_request(prompt, schema)
        logger.debug("llm call stage=%s url=%s prompt_len=%d", stage, url, len(prompt))

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
        except httpx.HTTPError as e:
            raise LLMError(f"LLM request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("LLM backend returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise LLMError("Unexpected response format from LLM backend")

        text = self._parse_response(data)
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text


# ---------------------------------------------------------------------------
# LLMError: raised by HttpLLM for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""
