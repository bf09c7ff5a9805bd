"""Ollama client implementation.

This module provides a structured-completion client for a local Ollama
server. The model is constrained to a JSON schema derived from a pydantic
model and the reply is validated against that same model.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from bill_scanner.config import Settings
from bill_scanner.exceptions import (
    CompletionProviderError,
    CompletionSchemaError,
    CompletionTimeoutError,
)

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)


class OllamaClient:
    """Ollama LLM client for schema-constrained extraction.

    Each call runs under a hard deadline (``ollama_timeout``). Failures are
    reported through the ``CompletionError`` family so callers can decide
    whether to fall back.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize Ollama client.

        Args:
            settings: Application settings. If None, uses default settings.
            http_client: Pre-built HTTP client (tests inject a MockTransport here).
        """
        from bill_scanner.config import get_settings

        self.settings = settings or get_settings()
        self._http_client = http_client
        logger.info(
            "ollama_client_initialized",
            host=self.settings.ollama_host,
            model=self.settings.ollama_model,
        )

    async def complete(
        self,
        prompt: str,
        schema_model: type[ModelT],
        model: Optional[str] = None,
    ) -> ModelT:
        """Run a single-turn chat constrained to ``schema_model``'s JSON schema.

        Args:
            prompt: The user prompt.
            schema_model: Pydantic model describing the expected reply.
            model: Model name to use. If None, uses default from settings.

        Returns:
            The validated reply.

        Raises:
            CompletionTimeoutError: If the deadline elapses.
            CompletionProviderError: If Ollama is unreachable or returns an error.
            CompletionSchemaError: If the reply does not satisfy the schema.
        """
        model = model or self.settings.ollama_model
        payload: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "format": schema_model.model_json_schema(),
            "stream": False,
            "options": {"temperature": 0},
        }
        logger.debug("completion_started", model=model, prompt_length=len(prompt))

        try:
            data = await asyncio.wait_for(self._post_chat(payload), timeout=self.settings.ollama_timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("completion_timeout", model=model, timeout=self.settings.ollama_timeout)
            raise CompletionTimeoutError(
                f"Ollama did not answer within {self.settings.ollama_timeout}s"
            ) from exc

        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict):
            raise CompletionSchemaError(f"Ollama reply has no message object: {str(data)[:300]}")

        content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            raise CompletionSchemaError("Ollama returned an empty message")

        try:
            return schema_model.model_validate(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning("completion_schema_violation", model=model, error=str(exc)[:300])
            raise CompletionSchemaError(f"Reply does not match {schema_model.__name__}: {exc}") from exc

    async def _post_chat(self, payload: dict[str, Any]) -> Any:
        url = f"{self.settings.ollama_host.rstrip('/')}/api/chat"

        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.settings.ollama_timeout) as client:
                    response = await client.post(url, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise CompletionProviderError(
                f"Ollama error {exc.response.status_code}: {exc.response.text[:300]}"
            ) from exc
        except httpx.TimeoutException as exc:
            raise CompletionTimeoutError(f"Ollama request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise CompletionProviderError(f"Could not reach Ollama at {url}: {exc}") from exc
        except ValueError as exc:
            raise CompletionProviderError(f"Ollama returned invalid JSON: {exc}") from exc
