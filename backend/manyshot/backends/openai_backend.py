# -*- coding: utf-8 -*-
"""OpenAI chat completions backend."""

from __future__ import annotations

import logging
from typing import Any

from openai import APIConnectionError as OpenAIConnectionError
from openai import APIError as OpenAIAPIError
from openai import AuthenticationError as OpenAIAuthenticationError
from openai import OpenAI

from manyshot.backends.base import (
    BackendConfigError,
    BackendTransportError,
    BackendUpstreamError,
    RemoteAPIBackend,
)
from manyshot.extraction import extract_json_prediction
from manyshot.models import ModelDescriptor, Prediction
from manyshot.prompts.prediction_prompt import SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class OpenAIBackend(RemoteAPIBackend):
    """Ask an OpenAI chat model for a JSON object answer."""

    provider = "openai"
    temperature = 0.9

    def _create_client(self, api_key: str) -> Any:
        logger.info("OpenAI client created")
        return OpenAI(api_key=api_key, max_retries=0)

    def generate(self, prompt: str, model: ModelDescriptor) -> str:
        client = self._get_client()
        try:
            response = client.chat.completions.create(
                model=model.id,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                top_p=1,
                frequency_penalty=0,
                presence_penalty=0,
            )
        except OpenAIAuthenticationError as exc:
            raise BackendConfigError(
                f"OpenAI rejected the API key: {exc}. Check OPENAI_API_KEY in your environment or .env file."
            ) from exc
        except (TimeoutError, OpenAIConnectionError) as exc:
            raise BackendTransportError(f"OpenAI request failed: {exc}") from exc
        except OpenAIAPIError as exc:
            raise BackendUpstreamError(f"OpenAI request failed: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise BackendUpstreamError("OpenAI response contained no choices.")

        raw_text = (choices[0].message.content or "").strip()
        if not raw_text:
            raise BackendUpstreamError("OpenAI response was empty.")

        logger.debug("OpenAI response received (model=%s, length=%s)", model.id, len(raw_text))
        return raw_text

    def extract(self, raw_text: str) -> Prediction:
        return extract_json_prediction(raw_text)


__all__ = ["OpenAIBackend"]
