from unittest.mock import MagicMock, patch

import httpx
import pytest

from missing_matters.config import Settings
from missing_matters.services.capabilities import build_capabilities
from missing_matters.services.llm import LLMError, OpenAIProvider


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestBuildCapabilities:
    def test_nothing_configured(self):
        capabilities = build_capabilities(_settings(openai_api_key=None))

        assert capabilities.as_flags() == {"openai": False, "twilio": False, "vision": False}
        assert capabilities.llm.provider is None

    def test_openai_key_builds_provider(self):
        capabilities = build_capabilities(_settings(openai_api_key="sk-test", openai_model="gpt-4o"))

        assert isinstance(capabilities.llm.provider, OpenAIProvider)
        assert capabilities.llm.model == "gpt-4o"
        assert capabilities.llm.intent_timeout_seconds == 4.0
        assert capabilities.llm.response_timeout_seconds == 12.0

    def test_twilio_needs_sid_and_token(self):
        partial = build_capabilities(_settings(twilio_account_sid="AC123"))
        full = build_capabilities(_settings(twilio_account_sid="AC123", twilio_auth_token="token"))

        assert partial.messaging.configured is False
        assert full.messaging.configured is True

    def test_vision_flag(self):
        capabilities = build_capabilities(_settings(google_application_credentials="/secrets/vision.json"))

        assert capabilities.vision.configured is True


class TestOpenAIProvider:
    def _client(self, response):
        client = MagicMock()
        client.__enter__.return_value = client
        client.post.return_value = response
        return client

    def test_posts_chat_completion(self):
        response = MagicMock(status_code=200)
        response.json.return_value = {
            "model": "gpt-4o-mini",
            "choices": [{"message": {"content": "Hello!"}}],
            "usage": {"total_tokens": 12},
        }
        client = self._client(response)

        with patch("missing_matters.services.llm.openai_provider.httpx.Client", return_value=client) as client_cls:
            result = OpenAIProvider(api_key="sk-test").generate(
                [{"role": "user", "content": "hi"}], temperature=0.0, max_tokens=10, timeout_seconds=4.0
            )

        assert result.content == "Hello!"
        client_cls.assert_called_once_with(timeout=4.0)
        payload = client.post.call_args.kwargs["json"]
        assert payload["temperature"] == 0.0
        assert payload["max_tokens"] == 10
        assert payload["model"] == "gpt-4o-mini"

    def test_error_status_raises(self):
        client = self._client(MagicMock(status_code=500, text="upstream error"))

        with patch("missing_matters.services.llm.openai_provider.httpx.Client", return_value=client):
            with pytest.raises(LLMError) as exc_info:
                OpenAIProvider(api_key="sk-test").generate([{"role": "user", "content": "hi"}])

        assert exc_info.value.status_code == 500

    def test_timeout_propagates(self):
        client = self._client(None)
        client.post.side_effect = httpx.ReadTimeout("slow")

        with patch("missing_matters.services.llm.openai_provider.httpx.Client", return_value=client):
            with pytest.raises(httpx.TimeoutException):
                OpenAIProvider(api_key="sk-test").generate([{"role": "user", "content": "hi"}])
