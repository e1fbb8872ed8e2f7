"""Static catalog of selectable models."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from manyshot.config import Settings, load_catalog_file
from manyshot.models import ModelDescriptor

logger = logging.getLogger(__name__)

BUILTIN_MODELS: List[Dict[str, Any]] = [
    {"id": "claude-3-5-sonnet-20240620", "label": "Claude 3.5 Sonnet", "provider": "anthropic"},
    {"id": "claude-3-haiku-20240307", "label": "Claude 3 Haiku", "provider": "anthropic"},
    {"id": "claude-3-opus-20240229", "label": "Claude 3 Opus", "provider": "anthropic"},
    {"id": "gpt-4o", "label": "GPT-4o", "provider": "openai"},
    {"id": "gpt-4-turbo", "label": "GPT-4 Turbo", "provider": "openai"},
    {"id": "gpt-3.5-turbo", "label": "GPT-3.5 Turbo", "provider": "openai"},
    {"id": "gemini-1.5-flash", "label": "Gemini 1.5 Flash", "provider": "gemini"},
    {"id": "gemini-1.5-pro", "label": "Gemini 1.5 Pro", "provider": "gemini"},
]


class ModelCatalog:
    """Resolve model identifiers to descriptors."""

    def __init__(self, models: List[ModelDescriptor]) -> None:
        self._models: Dict[str, ModelDescriptor] = {}
        for model in models:
            if model.id in self._models:
                raise ValueError(f"Duplicate model id in catalog: {model.id}")
            self._models[model.id] = model

    @classmethod
    def from_entries(cls, entries: List[Dict[str, Any]]) -> "ModelCatalog":
        models: List[ModelDescriptor] = []
        for entry in entries:
            try:
                models.append(ModelDescriptor(**entry))
            except ValidationError as exc:
                raise ValueError(f"Invalid catalog entry {entry!r}: {exc}") from exc
        return cls(models)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ModelCatalog":
        if settings.model_catalog_path is not None:
            logger.info("Loading model catalog from %s", settings.model_catalog_path)
            return cls.from_entries(load_catalog_file(settings.model_catalog_path))

        entries = list(BUILTIN_MODELS)
        entries.append(
            {
                "id": settings.local_model_name,
                "label": f"{settings.local_model_name.split('/')[-1]} (local)",
                "provider": "local",
            }
        )
        return cls.from_entries(entries)

    def get(self, model_id: str) -> ModelDescriptor:
        if model_id not in self._models:
            raise KeyError(f"Unknown model: {model_id}")
        return self._models[model_id]

    def find(self, model_id: str) -> Optional[ModelDescriptor]:
        return self._models.get(model_id)

    def list(self, provider: Optional[str] = None) -> List[ModelDescriptor]:
        models = list(self._models.values())
        if provider is None:
            return models
        return [model for model in models if model.provider == provider]


__all__ = ["BUILTIN_MODELS", "ModelCatalog"]
