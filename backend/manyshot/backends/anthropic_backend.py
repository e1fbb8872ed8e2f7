# -*- coding: utf-8 -*-
"""Anthropic messages backend."""

from __future__ import annotations

import logging
from typing import Any, List

from anthropic import Anthropic
from anthropic import APIConnectionError as AnthropicConnectionError
from anthropic import APIError as AnthropicAPIError
from anthropic import AuthenticationError as AnthropicAuthenticationError

from manyshot.backends.base import (
    BackendConfigError,
    BackendTransportError,
    BackendUpstreamError,
    RemoteAPIBackend,
)
from manyshot.models import ModelDescriptor

logger = logging.getLogger(__name__)


class AnthropicBackend(RemoteAPIBackend):
    """Send the prompt as a single user message to a Claude model."""

    provider = "anthropic"
    temperature = 0.9
    max_tokens = 1000

    def _create_client(self, api_key: str) -> Any:
        logger.info("Anthropic client created")
        return Anthropic(api_key=api_key, max_retries=0)

    def generate(self, prompt: str, model: ModelDescriptor) -> str:
        client = self._get_client()
        try:
            response = client.messages.create(
                model=model.id,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except AnthropicAuthenticationError as exc:
            raise BackendConfigError(
                f"Anthropic rejected the API key: {exc}. Check ANTHROPIC_API_KEY in your environment or .env file."
            ) from exc
        except (TimeoutError, AnthropicConnectionError) as exc:
            raise BackendTransportError(f"Claude request failed: {exc}") from exc
        except AnthropicAPIError as exc:
            raise BackendUpstreamError(f"Claude request failed: {exc}") from exc

        text_chunks: List[str] = []
        for block in getattr(response, "content", None) or []:
            if getattr(block, "type", "") == "text":
                text_chunks.append(getattr(block, "text", "") or "")

        raw_text = "".join(text_chunks).strip()
        if not raw_text:
            raise BackendUpstreamError("Claude response contained no text.")

        logger.debug("Claude response received (model=%s, length=%s)", model.id, len(raw_text))
        return raw_text


__all__ = ["AnthropicBackend"]
