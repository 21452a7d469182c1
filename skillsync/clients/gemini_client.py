"""
Google Gemini client
====================

Async REST client for the Gemini ``generateContent`` endpoint
(generativelanguage.googleapis.com). Supports plain text generation and JSON
mode constrained by a response schema.

Authentication is via the ``x-goog-api-key`` HTTP header.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

import httpx

from ..config import GEMINI_DEFAULT_BASE_URL
from ..errors import AiResponseError, AiServiceError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"


class TextGenerator(Protocol):
    async def generate(
        self,
        prompt: str,
        *,
        response_schema: Mapping[str, Any] | None = None,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
        thinking_budget: int | None = None,
    ) -> str:
        """Return the model's raw text answer (JSON text when a schema is given)."""
        ...


def _generation_config(
    *,
    response_schema: Mapping[str, Any] | None,
    temperature: float | None,
    max_output_tokens: int | None,
    thinking_budget: int | None,
) -> dict[str, Any]:
    config: dict[str, Any] = {}
    if response_schema is not None:
        config["responseMimeType"] = "application/json"
        config["responseSchema"] = dict(response_schema)
    if temperature is not None:
        config["temperature"] = temperature
    if max_output_tokens is not None:
        config["maxOutputTokens"] = max_output_tokens
    if thinking_budget is not None:
        config["thinkingConfig"] = {"thinkingBudget": thinking_budget}
    return config


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, list) and body:
        body = body[0]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str):
                return message
        elif isinstance(error, str):
            return error
    return ""


def _extract_text(data: Mapping[str, Any]) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        raise AiResponseError("Gemini returned no candidates")
    try:
        parts = candidates[0]["content"]["parts"]
        text = "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))
    except (KeyError, IndexError, TypeError) as exc:
        raise AiResponseError(f"Unexpected Gemini response structure: {exc}") from exc
    if not text:
        raise AiResponseError("Gemini returned an empty answer")
    return text


class GeminiClient(TextGenerator):
    """Single-attempt client; every failure surfaces as :class:`AiServiceError`."""

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str = DEFAULT_MODEL,
        base_url: str = GEMINI_DEFAULT_BASE_URL,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.model = model
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Content-Type": "application/json", "x-goog-api-key": self.api_key},
            timeout=timeout,
            transport=transport,
        )

    def is_available(self) -> bool:
        """Return True when an API key has been configured."""
        return bool(self.api_key)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def generate(
        self,
        prompt: str,
        *,
        response_schema: Mapping[str, Any] | None = None,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
        thinking_budget: int | None = None,
    ) -> str:
        if not self.is_available():
            raise AiServiceError("GEMINI_API_KEY environment variable is not set.")

        payload: dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        config = _generation_config(
            response_schema=response_schema,
            temperature=temperature,
            max_output_tokens=max_output_tokens,
            thinking_budget=thinking_budget,
        )
        if config:
            payload["generationConfig"] = config

        path = f"/models/{self.model}:generateContent"
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.error("Gemini timeout | model=%s timeout=%s error=%s", self.model, self._timeout, type(exc).__name__)
            raise AiServiceError("AI request timed out") from exc
        except httpx.HTTPStatusError as exc:
            detail = _error_detail(exc.response)
            logger.error("Gemini HTTP status error | model=%s status=%s", self.model, exc.response.status_code)
            raise AiServiceError(f"Gemini API error ({exc.response.status_code}): {detail or exc}") from exc
        except httpx.HTTPError as exc:
            logger.error("Gemini transport error | model=%s error=%s", self.model, type(exc).__name__)
            raise AiServiceError("AI request failed") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise AiResponseError("Gemini response was not valid JSON") from exc
        if not isinstance(data, dict):
            raise AiResponseError("Gemini response was not an object")
        return _extract_text(data)


__all__ = ["DEFAULT_MODEL", "GeminiClient", "TextGenerator"]
