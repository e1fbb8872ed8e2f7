"""Select the backend variant for a model descriptor."""

from __future__ import annotations

from threading import Lock
from typing import Dict, Type

from manyshot.backends.anthropic_backend import AnthropicBackend
from manyshot.backends.base import BackendConfigError, PredictionBackend
from manyshot.backends.gemini_backend import GeminiBackend
from manyshot.backends.local_backend import LocalBackend
from manyshot.backends.openai_backend import OpenAIBackend
from manyshot.config import Settings
from manyshot.models import BackendKind, ModelDescriptor

REMOTE_BACKENDS: Dict[str, Type[PredictionBackend]] = {
    "openai": OpenAIBackend,
    "anthropic": AnthropicBackend,
    "gemini": GeminiBackend,
}

_backend_cache: Dict[str, PredictionBackend] = {}
_backend_lock = Lock()


def _create_backend(descriptor: ModelDescriptor, settings: Settings) -> PredictionBackend:
    if descriptor.backend_kind is BackendKind.LOCAL:
        return LocalBackend(settings)

    backend_cls = REMOTE_BACKENDS.get(descriptor.provider)
    if backend_cls is None:
        raise BackendConfigError(f"Unknown LLM provider: {descriptor.provider}")
    return backend_cls(settings)


def build_backend(descriptor: ModelDescriptor, settings: Settings) -> PredictionBackend:
    """Return the shared backend instance serving ``descriptor``.

    Instances are cached per provider so SDK clients and the local model are
    reused across runs.
    """

    with _backend_lock:
        backend = _backend_cache.get(descriptor.provider)
        if backend is None:
            backend = _create_backend(descriptor, settings)
            _backend_cache[descriptor.provider] = backend
        return backend


def clear_backend_cache() -> None:
    with _backend_lock:
        _backend_cache.clear()


__all__ = ["REMOTE_BACKENDS", "build_backend", "clear_backend_cache"]
