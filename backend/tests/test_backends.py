"""Tests for the remote provider backends and the backend factory."""
from types import SimpleNamespace

import httpx
import pytest
from anthropic import APIConnectionError as AnthropicConnectionError
from google.api_core import exceptions as google_exceptions
from openai import APIConnectionError as OpenAIConnectionError

from manyshot.backends import (
    BackendConfigError,
    BackendErrorKind,
    BackendTransportError,
    BackendUpstreamError,
    build_backend,
    clear_backend_cache,
)
from manyshot.backends import anthropic_backend, gemini_backend, openai_backend
from manyshot.backends.anthropic_backend import AnthropicBackend
from manyshot.backends.gemini_backend import GENERATION_CONFIG, GeminiBackend
from manyshot.backends.local_backend import LocalBackend
from manyshot.backends.openai_backend import OpenAIBackend
from manyshot.config import Settings
from manyshot.models import ModelDescriptor


class DummyOpenAIClient:
    def __init__(self, content='{"prediction": "Red"}', error=None):
        self.calls = []
        self._content = content
        self._error = error
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        message = SimpleNamespace(content=self._content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class DummyAnthropicClient:
    def __init__(self, blocks=None, error=None):
        self.calls = []
        self._blocks = blocks if blocks is not None else [SimpleNamespace(type="text", text='{"prediction": "Blue"}')]
        self._error = error
        self.messages = SimpleNamespace(create=self._create)

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        return SimpleNamespace(content=self._blocks)


class DummyGeminiModule:
    """Stands in for the ``google.generativeai`` module."""

    def __init__(self, text='{"prediction": "Red"}', error=None):
        self.configured_keys = []
        self.models = []
        self._text = text
        self._error = error

    def configure(self, api_key):
        self.configured_keys.append(api_key)

    def GenerativeModel(self, **kwargs):  # noqa: N802 - mirrors the SDK name
        self.models.append(kwargs)
        module = self

        class _Model:
            def generate_content(self, prompt):
                if module._error is not None:
                    raise module._error
                return SimpleNamespace(text=module._text)

        return _Model()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture(autouse=True)
def _reset_backends():
    clear_backend_cache()
    yield
    clear_backend_cache()


def _descriptor(model_id, provider):
    return ModelDescriptor(id=model_id, label=model_id, provider=provider)


class TestOpenAIBackend:
    """Test suite for the OpenAI variant."""

    def test_generate_sends_json_mode_request(self, monkeypatch, settings, color_request):
        client = DummyOpenAIClient()
        created = []
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setattr(openai_backend, "OpenAI", lambda **kwargs: created.append(kwargs) or client)

        backend = OpenAIBackend(settings)
        raw = backend.predict(color_request, _descriptor("gpt-4o", "openai"))

        assert raw == '{"prediction": "Red"}'
        assert created == [{"api_key": "sk-test", "max_retries": 0}]
        call = client.calls[0]
        assert call["model"] == "gpt-4o"
        assert call["response_format"] == {"type": "json_object"}
        assert call["temperature"] == 0.9
        assert call["messages"][0]["role"] == "system"
        assert "Pick a color" in call["messages"][1]["content"]

    def test_client_is_reused(self, monkeypatch, settings):
        created = []
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setattr(openai_backend, "OpenAI", lambda **kwargs: created.append(kwargs) or DummyOpenAIClient())

        backend = OpenAIBackend(settings)
        backend.generate("hello", _descriptor("gpt-4o", "openai"))
        backend.generate("hello again", _descriptor("gpt-4o", "openai"))

        assert len(created) == 1

    def test_missing_key(self, monkeypatch, settings):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        backend = OpenAIBackend(settings)

        with pytest.raises(BackendConfigError) as exc_info:
            backend.generate("hello", _descriptor("gpt-4o", "openai"))

        assert exc_info.value.kind is BackendErrorKind.CONFIG
        assert str(exc_info.value) == "OPENAI_API_KEY is not configured. Add it to your environment or .env file."

    def test_connection_error_is_transport(self, monkeypatch, settings):
        error = OpenAIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setattr(openai_backend, "OpenAI", lambda **kwargs: DummyOpenAIClient(error=error))

        with pytest.raises(BackendTransportError) as exc_info:
            OpenAIBackend(settings).generate("hello", _descriptor("gpt-4o", "openai"))
        assert str(exc_info.value).startswith("OpenAI request failed")

    def test_empty_content_is_upstream_error(self, monkeypatch, settings):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setattr(openai_backend, "OpenAI", lambda **kwargs: DummyOpenAIClient(content=""))

        with pytest.raises(BackendUpstreamError):
            OpenAIBackend(settings).generate("hello", _descriptor("gpt-4o", "openai"))

    def test_extract_is_lenient(self, settings):
        assert OpenAIBackend(settings).extract("Red").prediction == "Red"


class TestAnthropicBackend:
    """Test suite for the Claude variant."""

    def test_generate_joins_text_blocks(self, monkeypatch, settings):
        blocks = [
            SimpleNamespace(type="text", text='{"prediction": '),
            SimpleNamespace(type="tool_use", text="ignored"),
            SimpleNamespace(type="text", text='"Blue"}'),
        ]
        client = DummyAnthropicClient(blocks=blocks)
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
        monkeypatch.setattr(anthropic_backend, "Anthropic", lambda **kwargs: client)

        backend = AnthropicBackend(settings)
        raw = backend.generate("hello", _descriptor("claude-3-haiku-20240307", "anthropic"))

        assert raw == '{"prediction": "Blue"}'
        assert client.calls[0]["max_tokens"] == 1000
        assert client.calls[0]["messages"] == [{"role": "user", "content": "hello"}]
        assert backend.extract(raw).prediction == "Blue"

    def test_fallback_key_variable(self, monkeypatch, settings):
        created = []
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        monkeypatch.setenv("CLAUDE_API_KEY", "sk-claude")
        monkeypatch.setattr(
            anthropic_backend,
            "Anthropic",
            lambda **kwargs: created.append(kwargs) or DummyAnthropicClient(),
        )

        AnthropicBackend(settings).generate("hello", _descriptor("claude-3-haiku-20240307", "anthropic"))
        assert created[0]["api_key"] == "sk-claude"

    def test_missing_key_names_primary_variable(self, monkeypatch, settings):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        monkeypatch.delenv("CLAUDE_API_KEY", raising=False)

        with pytest.raises(BackendConfigError, match="ANTHROPIC_API_KEY is not configured"):
            AnthropicBackend(settings).generate("hello", _descriptor("claude-3-haiku-20240307", "anthropic"))

    def test_connection_error_is_transport(self, monkeypatch, settings):
        error = AnthropicConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
        monkeypatch.setattr(anthropic_backend, "Anthropic", lambda **kwargs: DummyAnthropicClient(error=error))

        with pytest.raises(BackendTransportError, match="Claude request failed"):
            AnthropicBackend(settings).generate("hello", _descriptor("claude-3-haiku-20240307", "anthropic"))

    def test_no_text_is_upstream_error(self, monkeypatch, settings):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
        monkeypatch.setattr(anthropic_backend, "Anthropic", lambda **kwargs: DummyAnthropicClient(blocks=[]))

        with pytest.raises(BackendUpstreamError):
            AnthropicBackend(settings).generate("hello", _descriptor("claude-3-haiku-20240307", "anthropic"))


class TestGeminiBackend:
    """Test suite for the Gemini variant."""

    def test_generate_configures_module(self, monkeypatch, settings):
        module = DummyGeminiModule()
        monkeypatch.setenv("GEMINI_API_KEY", "g-key")
        monkeypatch.setattr(gemini_backend, "genai", module)

        backend = GeminiBackend(settings)
        raw = backend.generate("hello", _descriptor("gemini-1.5-flash", "gemini"))

        assert raw == '{"prediction": "Red"}'
        assert module.configured_keys == ["g-key"]
        assert module.models[0]["model_name"] == "gemini-1.5-flash"
        assert module.models[0]["generation_config"] == GENERATION_CONFIG

    def test_unauthenticated_is_config_error(self, monkeypatch, settings):
        module = DummyGeminiModule(error=google_exceptions.Unauthenticated("API key not valid"))
        monkeypatch.setenv("GEMINI_API_KEY", "g-key")
        monkeypatch.setattr(gemini_backend, "genai", module)

        with pytest.raises(BackendConfigError, match="GEMINI_API_KEY"):
            GeminiBackend(settings).generate("hello", _descriptor("gemini-1.5-flash", "gemini"))

    def test_invalid_key_argument_is_config_error(self, monkeypatch, settings):
        """Gemini reports a bad key as 400 INVALID_ARGUMENT."""
        error = google_exceptions.InvalidArgument("API key not valid. Please pass a valid API key.")
        module = DummyGeminiModule(error=error)
        monkeypatch.setenv("GEMINI_API_KEY", "g-key")
        monkeypatch.setattr(gemini_backend, "genai", module)

        with pytest.raises(BackendConfigError, match="GEMINI_API_KEY") as exc_info:
            GeminiBackend(settings).generate("hello", _descriptor("gemini-1.5-flash", "gemini"))
        assert exc_info.value.kind is BackendErrorKind.CONFIG

    def test_other_invalid_argument_is_upstream_error(self, monkeypatch, settings):
        module = DummyGeminiModule(error=google_exceptions.InvalidArgument("Request contains an invalid argument."))
        monkeypatch.setenv("GEMINI_API_KEY", "g-key")
        monkeypatch.setattr(gemini_backend, "genai", module)

        with pytest.raises(BackendUpstreamError):
            GeminiBackend(settings).generate("hello", _descriptor("gemini-1.5-flash", "gemini"))

    def test_unavailable_is_transport_error(self, monkeypatch, settings):
        module = DummyGeminiModule(error=google_exceptions.ServiceUnavailable("overloaded"))
        monkeypatch.setenv("GEMINI_API_KEY", "g-key")
        monkeypatch.setattr(gemini_backend, "genai", module)

        with pytest.raises(BackendTransportError):
            GeminiBackend(settings).generate("hello", _descriptor("gemini-1.5-flash", "gemini"))

    def test_missing_key(self, monkeypatch, settings):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with pytest.raises(BackendConfigError, match="GEMINI_API_KEY is not configured"):
            GeminiBackend(settings).generate("hello", _descriptor("gemini-1.5-flash", "gemini"))


class TestBackendFactory:
    """Factory dispatch on the model descriptor."""

    @pytest.mark.parametrize(
        "provider, expected",
        [
            ("openai", OpenAIBackend),
            ("anthropic", AnthropicBackend),
            ("gemini", GeminiBackend),
            ("local", LocalBackend),
        ],
    )
    def test_dispatch(self, settings, provider, expected):
        backend = build_backend(_descriptor("some-model", provider), settings)
        assert isinstance(backend, expected)
        assert backend.provider == provider

    def test_instances_are_cached_per_provider(self, settings):
        first = build_backend(_descriptor("gpt-4o", "openai"), settings)
        second = build_backend(_descriptor("gpt-3.5-turbo", "openai"), settings)
        assert first is second

    def test_local_descriptor_kind(self):
        assert _descriptor("Qwen/Qwen1.5-0.5B-Chat", "local").backend_kind.value == "local"
        assert _descriptor("gpt-4o", "openai").backend_kind.value == "remote-api"
