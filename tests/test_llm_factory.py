"""Tests for LLM factory and auto-detection."""

from unittest.mock import MagicMock, patch

import pytest

from llm import LLMError, create_llm_provider, create_optional_provider
from llm.factory import _auto_detect_provider


@pytest.fixture
def no_llm_env(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)


class TestAutoDetection:
    def test_detects_anthropic_key(self, no_llm_env, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        assert _auto_detect_provider() == "claude"

    def test_detects_openai_key(self, no_llm_env, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        assert _auto_detect_provider() == "openai"

    def test_prefers_anthropic_when_multiple(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        assert _auto_detect_provider() == "claude"

    def test_explicit_key_prefix_wins(self, no_llm_env):
        assert _auto_detect_provider("sk-proj-abc") == "openai"
        assert _auto_detect_provider("sk-ant-abc") == "claude"

    def test_no_keys_raises(self, no_llm_env):
        with pytest.raises(LLMError, match="No LLM API key found"):
            _auto_detect_provider()


class TestCreateProvider:
    def test_explicit_claude_with_client(self):
        mock_client = MagicMock()
        provider = create_llm_provider(provider="claude", client=mock_client)
        assert provider.provider_name == "claude"
        assert provider.client is mock_client

    def test_explicit_openai_with_client(self):
        mock_client = MagicMock()
        provider = create_llm_provider(provider="openai", client=mock_client)
        assert provider.provider_name == "openai"
        assert provider.client is mock_client

    def test_unknown_provider_raises(self):
        with pytest.raises(LLMError, match="Unknown provider"):
            create_llm_provider(provider="llama", client=MagicMock())

    def test_auto_with_anthropic_key(self, no_llm_env, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        # Mock the SDK client to avoid real init
        with patch("llm.providers.claude.AsyncAnthropic") as sdk:
            provider = create_llm_provider()
        assert provider.provider_name == "claude"
        sdk.assert_called_once_with(api_key="sk-ant-test")

    def test_custom_model(self):
        provider = create_llm_provider(provider="claude", client=MagicMock(), model="claude-opus-4-20250514")
        assert provider.model == "claude-opus-4-20250514"


class TestOptionalProvider:
    def test_none_disables(self):
        assert create_optional_provider(provider="none") is None

    def test_missing_keys_gives_none(self, no_llm_env):
        assert create_optional_provider(provider="auto") is None

    def test_configured_key(self, no_llm_env):
        with patch("llm.providers.openai.AsyncOpenAI"):
            provider = create_optional_provider(provider="auto", api_key="sk-live-key")
        assert provider.provider_name == "openai"
