"""Base classes and interfaces for prediction backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from threading import Lock
from typing import Any, Optional

from manyshot.config import Settings
from manyshot.extraction import extract_prediction
from manyshot.models import ModelDescriptor, Prediction, PredictionRequest


class BackendErrorKind(str, Enum):
    CONFIG = "config"
    TRANSPORT = "transport"
    UPSTREAM = "upstream"


class BackendError(RuntimeError):
    """A single backend call failed."""

    kind: BackendErrorKind = BackendErrorKind.UPSTREAM


class BackendConfigError(BackendError):
    """Missing or invalid credentials / configuration."""

    kind = BackendErrorKind.CONFIG


class BackendTransportError(BackendError):
    """Network level failure talking to the provider."""

    kind = BackendErrorKind.TRANSPORT


class BackendUpstreamError(BackendError):
    """The provider answered with an error or an unusable payload."""

    kind = BackendErrorKind.UPSTREAM


class PredictionBackend(ABC):
    """Obtain one raw prediction string from a language model.

    Every call is a single best-effort attempt: no retries and no timeouts are
    applied here, the sampling runner owns the error policy.
    """

    provider: str = ""

    def predict(self, request: PredictionRequest, model: ModelDescriptor) -> str:
        """Render the shared prompt for ``request`` and send it to ``model``."""
        return self.generate(request.to_prompt(), model)

    @abstractmethod
    def generate(self, prompt: str, model: ModelDescriptor) -> str:
        """Send a ready-made prompt and return the raw response text."""
        raise NotImplementedError

    def extract(self, raw_text: str) -> Prediction:
        """Turn a raw response into a prediction using this variant's strategy."""
        return extract_prediction(raw_text)


class RemoteAPIBackend(PredictionBackend):
    """Shared credential handling for hosted provider APIs."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._client: Any = None
        self._client_key: Optional[str] = None
        self._client_lock = Lock()

    def _api_key(self) -> str:
        api_key, env_name = self._settings.api_key_for(self.provider)
        if not api_key:
            raise BackendConfigError(
                f"{env_name} is not configured. Add it to your environment or .env file."
            )
        return api_key

    def _get_client(self) -> Any:
        api_key = self._api_key()
        with self._client_lock:
            if self._client is None or self._client_key != api_key:
                self._client = self._create_client(api_key)
                self._client_key = api_key
            return self._client

    @abstractmethod
    def _create_client(self, api_key: str) -> Any:
        raise NotImplementedError


__all__ = [
    "BackendConfigError",
    "BackendError",
    "BackendErrorKind",
    "BackendTransportError",
    "BackendUpstreamError",
    "PredictionBackend",
    "RemoteAPIBackend",
]
