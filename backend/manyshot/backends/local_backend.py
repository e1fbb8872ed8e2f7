# -*- coding: utf-8 -*-
"""In-process text generation backend built on a Hugging Face pipeline."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Dict, List

from manyshot.backends.base import BackendConfigError, BackendUpstreamError, PredictionBackend
from manyshot.backends.once import OnceCell
from manyshot.config import Settings
from manyshot.models import ModelDescriptor

try:  # pragma: no cover - optional dependency, installed with the "local" extra
    from transformers import pipeline as hf_pipeline
except ModuleNotFoundError:  # pragma: no cover - fallback when transformers is absent
    hf_pipeline = None

logger = logging.getLogger(__name__)

TASK = "text-generation"


class LocalBackend(PredictionBackend):
    """Run a small chat model in-process.

    The pipeline is created on first use and shared for the lifetime of the
    backend; concurrent first callers wait for the same initialisation.
    """

    provider = "local"
    temperature = 0.9
    max_new_tokens = 256

    def __init__(self, settings: Settings) -> None:
        self.model_name = settings.local_model_name
        self._pipeline = OnceCell(self._load_pipeline)
        self._generate_lock = Lock()

    def _load_pipeline(self) -> Any:
        if hf_pipeline is None:
            raise BackendConfigError(
                "transformers is not installed. Install the 'local' extra to use the local model."
            )

        logger.info("Loading local model %s", self.model_name)
        try:
            text_pipeline = hf_pipeline(TASK, model=self.model_name)
        except Exception as exc:
            raise BackendConfigError(f"Local model {self.model_name} could not be loaded: {exc}") from exc
        logger.info("Local model %s ready", self.model_name)
        return text_pipeline

    @property
    def loaded(self) -> bool:
        return self._pipeline.initialized

    @staticmethod
    def _generated_text(outputs: Any) -> str:
        if isinstance(outputs, list) and outputs:
            first = outputs[0]
            if isinstance(first, list) and first:
                first = first[0]
            generated = first.get("generated_text") if isinstance(first, dict) else first
        else:
            generated = outputs

        # chat style outputs come back as the full message list
        if isinstance(generated, list):
            messages: List[Dict[str, Any]] = [m for m in generated if isinstance(m, dict)]
            generated = messages[-1].get("content", "") if messages else ""

        return str(generated or "")

    def generate(self, prompt: str, model: ModelDescriptor) -> str:
        if model.id != self.model_name:
            raise BackendConfigError(
                f"Local backend serves {self.model_name}; set LOCAL_MODEL_NAME to use {model.id}."
            )

        text_pipeline = self._pipeline.get()
        with self._generate_lock:
            try:
                outputs = text_pipeline(
                    [{"role": "user", "content": prompt}],
                    max_new_tokens=self.max_new_tokens,
                    do_sample=True,
                    temperature=self.temperature,
                    return_full_text=False,
                )
            except Exception as exc:
                raise BackendUpstreamError(f"Local generation failed: {exc}") from exc

        raw_text = self._generated_text(outputs).strip()
        if not raw_text:
            raise BackendUpstreamError("Local model produced no text.")

        logger.debug("Local response generated (length=%s)", len(raw_text))
        return raw_text


__all__ = ["LocalBackend"]
