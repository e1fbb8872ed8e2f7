"""Prediction backends: one implementation per provider behind a shared interface."""

from .base import (
    BackendConfigError,
    BackendError,
    BackendErrorKind,
    BackendTransportError,
    BackendUpstreamError,
    PredictionBackend,
)
from .factory import build_backend, clear_backend_cache

__all__ = [
    "BackendConfigError",
    "BackendError",
    "BackendErrorKind",
    "BackendTransportError",
    "BackendUpstreamError",
    "PredictionBackend",
    "build_backend",
    "clear_backend_cache",
]
