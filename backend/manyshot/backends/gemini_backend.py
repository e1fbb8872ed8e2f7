# -*- coding: utf-8 -*-
"""Google Gemini backend."""

from __future__ import annotations

import logging
from typing import Any, Dict

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from google.generativeai.types import HarmBlockThreshold, HarmCategory

from manyshot.backends.base import (
    BackendConfigError,
    BackendTransportError,
    BackendUpstreamError,
    RemoteAPIBackend,
)
from manyshot.extraction import extract_json_prediction
from manyshot.models import ModelDescriptor, Prediction

logger = logging.getLogger(__name__)

GENERATION_CONFIG: Dict[str, Any] = {
    "temperature": 1,
    "top_p": 0.95,
    "top_k": 64,
    "max_output_tokens": 1000,
    "response_mime_type": "application/json",
}

SAFETY_SETTINGS = {
    HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_NONE,
}


def _is_invalid_key(exc: google_exceptions.GoogleAPICallError) -> bool:
    # bad keys come back as 400 INVALID_ARGUMENT, not 401
    if getattr(exc, "reason", None) == "API_KEY_INVALID":
        return True
    return "api key" in str(exc).lower()


class GeminiBackend(RemoteAPIBackend):
    """Ask a Gemini model for a JSON answer."""

    provider = "gemini"

    def _create_client(self, api_key: str) -> Any:
        # genai keeps its credentials module-wide
        genai.configure(api_key=api_key)
        logger.info("Gemini client configured")
        return genai

    def generate(self, prompt: str, model: ModelDescriptor) -> str:
        client = self._get_client()
        try:
            generative_model = client.GenerativeModel(
                model_name=model.id,
                safety_settings=SAFETY_SETTINGS,
                generation_config=GENERATION_CONFIG,
            )
            response = generative_model.generate_content(prompt)
        except (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied) as exc:
            raise BackendConfigError(
                f"Gemini rejected the API key: {exc}. Check GEMINI_API_KEY in your environment or .env file."
            ) from exc
        except google_exceptions.InvalidArgument as exc:
            if _is_invalid_key(exc):
                raise BackendConfigError(
                    f"Gemini rejected the API key: {exc}. Check GEMINI_API_KEY in your environment or .env file."
                ) from exc
            raise BackendUpstreamError(f"Gemini request failed: {exc}") from exc
        except (TimeoutError, ConnectionError, google_exceptions.ServiceUnavailable, google_exceptions.DeadlineExceeded) as exc:
            raise BackendTransportError(f"Gemini request failed: {exc}") from exc
        except google_exceptions.GoogleAPICallError as exc:
            raise BackendUpstreamError(f"Gemini request failed: {exc}") from exc

        try:
            raw_text = (response.text or "").strip()
        except ValueError as exc:
            # raised by the SDK when the candidate was blocked or has no parts
            raise BackendUpstreamError(f"Gemini returned no usable text: {exc}") from exc

        if not raw_text:
            raise BackendUpstreamError("Gemini response was empty.")

        logger.debug("Gemini response received (model=%s, length=%s)", model.id, len(raw_text))
        return raw_text

    def extract(self, raw_text: str) -> Prediction:
        return extract_json_prediction(raw_text)


__all__ = ["GeminiBackend", "GENERATION_CONFIG", "SAFETY_SETTINGS"]
