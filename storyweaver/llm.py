"""LLM client — HTTP connection to a chat/text-completion backend.

The story builder takes an LLM callable matching the protocol:

    async def __call__(self, stage: str, prompt: str, *,
                       temperature: float, max_tokens: int) -> str: ...

`stage` names the generation phase calling ("foundation" or "tree"). The
implementation may use it for logging; the prompt is sent as the single
system-role instruction of the request.

HttpLLM is the real client and supports OpenAI-compatible chat completions
and KoboldCpp, selected by provider_format. Tests use StubLLM (see
conftest.py) instead.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Protocol

import httpx

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol — every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(
        self, stage: str, prompt: str, *, temperature: float, max_tokens: int
    ) -> str: ...


# ---------------------------------------------------------------------------
# HttpLLM — connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["openai", "koboldcpp"]


class HttpLLM:
    """Async HTTP client for completion backends.

    Supported formats:
      "openai"     — POST /v1/chat/completions
                     {"model", "messages": [{"role": "system", ...}],
                      "temperature", "max_tokens"}
                     Response: {"choices": [{"message": {"content": "..."}}]}
      "koboldcpp"  — POST /api/v1/generate
                     {"prompt", "temperature", "max_length"}
                     Response: {"results": [{"text": "..."}]}

    Args:
        provider_url:    Base URL of the backend, e.g. "https://api.openai.com".
        api_key:         Bearer token, or empty string if not required.
        provider_format: Wire format to use. Defaults to "openai".
        model:           Model identifier, used only by the openai format.
        timeout:         HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "openai",
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
        self, prompt: str, temperature: float, max_tokens: int
    ) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "koboldcpp":
            url = f"{self._base_url}/api/v1/generate"
            return url, {
                "prompt": prompt,
                "temperature": temperature,
                "max_length": max_tokens,
            }

        # openai (default)
        url = f"{self._base_url}/v1/chat/completions"
        body: dict = {
            "messages": [{"role": "system", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if self._model:
            body["model"] = self._model
        return url, body

    def _parse_response(self, data: dict) -> str:
        """Extract the text of the first reply from the response body.

        A reply whose content is null comes back as "" so the caller can
        report it as an empty response.
        """
        if self._format == "koboldcpp":
            results = data.get("results")
            if not results or not isinstance(results[0], dict) or "text" not in results[0]:
                raise LLMError("Unexpected response format from KoboldCpp backend")
            return _as_text(results[0]["text"], "KoboldCpp")

        choices = data.get("choices")
        if (
            not choices
            or not isinstance(choices[0], dict)
            or not isinstance(choices[0].get("message"), dict)
        ):
            raise LLMError("Unexpected response format from OpenAI-compatible backend")
        return _as_text(choices[0]["message"].get("content"), "OpenAI-compatible")

    async def __call__(
        self, stage: str, prompt: str, *, temperature: float, max_tokens: int
    ) -> str:
        url, body = self._build_request(prompt, temperature, max_tokens)
        logger.debug(
            "llm call stage=%s url=%s prompt_len=%d temperature=%s max_tokens=%d",
            stage, url, len(prompt), temperature, max_tokens,
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
# LLMError — raised by HttpLLM for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""


def _as_text(value: Any, backend: str) -> str:
    """Reply text, with null read as "". Anything else but a string is a protocol error."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise LLMError(f"Unexpected response format from {backend} backend: reply text is not a string")
    return value
