"""Pytest configuration and fixtures."""
import os
import sys
from pathlib import Path
from threading import Lock
from typing import List

import pytest

# Add backend to path
backend_path = Path(__file__).parent.parent
sys.path.insert(0, str(backend_path))

# No pacing between iterations while testing
os.environ["RUN_DELAY_SECONDS"] = "0"
os.environ.pop("MODEL_CATALOG_PATH", None)

from manyshot.backends.base import BackendUpstreamError, PredictionBackend  # noqa: E402
from manyshot.models import ModelDescriptor, PredictionRequest  # noqa: E402


class ScriptedBackend(PredictionBackend):
    """Backend returning queued raw responses; an exception in the queue is raised."""

    provider = "openai"

    def __init__(self, responses=None, default='{"prediction": "Red"}'):
        self.responses: List = list(responses or [])
        self.default = default
        self.prompts: List[str] = []
        self._lock = Lock()
        self.before_call = None

    @property
    def calls(self) -> int:
        return len(self.prompts)

    def generate(self, prompt, model):
        with self._lock:
            self.prompts.append(prompt)
            response = self.responses.pop(0) if self.responses else self.default
        if self.before_call is not None:
            self.before_call(len(self.prompts))
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def color_request():
    """Two-option question used across tests."""
    return PredictionRequest(question="Pick a color", answer_options=["Red", "Blue"])


@pytest.fixture
def openai_model():
    return ModelDescriptor(id="gpt-4o", label="GPT-4o", provider="openai")


@pytest.fixture
def scripted_backend():
    return ScriptedBackend()


@pytest.fixture
def upstream_error():
    return BackendUpstreamError("OpenAI request failed: rate limited")
