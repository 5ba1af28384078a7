"""Unit tests for LLMClient."""
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

import logging
import pytest
from unittest.mock import Mock, patch
from groq import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AuthenticationError,
    RateLimitError,
)
from models.conversation import Role, Turn
from services.errors import InvalidInputError, ProviderRejectedError, ProviderUnavailableError
from services.llm_client import CompletionParams, LLMClient


def _completion(content, prompt_tokens=20, completion_tokens=5):
    response = Mock()
    response.choices = [Mock(message=Mock(content=content))]
    response.usage = Mock(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)
    return response


@pytest.fixture
def mock_groq():
    with patch('services.llm_client.Groq') as mock_groq_class:
        mock_client = Mock()
        mock_groq_class.return_value = mock_client
        yield mock_client


@pytest.fixture
def turns():
    return [
        Turn(role=Role.SYSTEM, content="You are a helpful assistant."),
        Turn(role=Role.USER, content="Hi"),
    ]


class TestLLMClient:
    """Test suite for LLMClient class."""

    def test_initialization_with_api_key(self):
        """Test LLMClient initializes with provided API key."""
        client = LLMClient(api_key="test_key")
        assert client.api_key == "test_key"

    def test_initialization_without_api_key_raises_error(self):
        """Test LLMClient raises error when no API key provided."""
        with patch('services.llm_client.GROQ_API_KEY', None):
            with pytest.raises(ValueError, match="GROQ_API_KEY must be provided"):
                LLMClient()

    def test_complete_returns_assistant_turn(self, mock_groq, turns):
        """Test a successful completion yields an assistant turn."""
        mock_groq.chat.completions.create.return_value = _completion("Hello!")

        client = LLMClient(api_key="test_key")
        reply = client.complete(turns)

        assert isinstance(reply, Turn)
        assert reply.role == Role.ASSISTANT
        assert reply.content == "Hello!"
        assert reply.timestamp.tzinfo is not None

    def test_complete_sends_full_context_in_order(self, mock_groq, turns):
        """Test every turn is forwarded with the configured parameters."""
        mock_groq.chat.completions.create.return_value = _completion("Hello!")

        client = LLMClient(api_key="test_key")
        client.complete(turns, CompletionParams(model="llama-3.1-8b-instant", temperature=0.2, max_tokens=50))

        mock_groq.chat.completions.create.assert_called_once_with(
            model="llama-3.1-8b-instant",
            messages=[
                {"role": "system", "content": "You are a helpful assistant."},
                {"role": "user", "content": "Hi"},
            ],
            temperature=0.2,
            max_tokens=50
        )

    def test_complete_uses_default_params(self, mock_groq, turns):
        """Test defaults match the configured temperature and token limit."""
        mock_groq.chat.completions.create.return_value = _completion("Hello!")

        client = LLMClient(api_key="test_key")
        client.complete(turns)

        kwargs = mock_groq.chat.completions.create.call_args.kwargs
        assert kwargs["temperature"] == CompletionParams().temperature
        assert kwargs["max_tokens"] == CompletionParams().max_tokens
        assert kwargs["model"] == CompletionParams().model

    def test_complete_rejects_empty_turns(self, mock_groq):
        """Test an empty sequence fails before calling the provider."""
        client = LLMClient(api_key="test_key")

        with pytest.raises(InvalidInputError):
            client.complete([])

        mock_groq.chat.completions.create.assert_not_called()

    def test_complete_rejects_blank_content(self, mock_groq):
        """Test a turn with blank content fails before calling the provider."""
        client = LLMClient(api_key="test_key")

        with pytest.raises(InvalidInputError) as exc_info:
            client.complete([Turn(role=Role.USER, content="Hi"), Turn(role=Role.USER, content="  ")])

        assert exc_info.value.error.details["index"] == 1
        mock_groq.chat.completions.create.assert_not_called()

    def test_complete_rejects_empty_reply(self, mock_groq, turns):
        """Test an empty provider reply is reported as a rejection."""
        mock_groq.chat.completions.create.return_value = _completion(None)

        client = LLMClient(api_key="test_key")

        with pytest.raises(ProviderRejectedError):
            client.complete(turns)

    def test_rate_limit_error(self, mock_groq, turns):
        """Test that rate limit errors are handled with retry suggestion."""
        mock_groq.chat.completions.create.side_effect = RateLimitError(
            message="Rate limit exceeded",
            response=Mock(status_code=429),
            body=None
        )

        client = LLMClient(api_key="test_key")

        with pytest.raises(ProviderRejectedError) as exc_info:
            client.complete(turns, CompletionParams(model="llama-3.1-8b-instant"))

        error = exc_info.value.error
        assert error.code == "PROVIDER_REJECTED"
        assert "Rate limit exceeded" in error.message
        assert error.details["retry_after"] == 60
        assert error.details["status_code"] == 429
        assert error.details["model"] == "llama-3.1-8b-instant"
        assert "Rate limit exceeded" in error.details["original_error"]

    def test_authentication_error(self, mock_groq, turns):
        """Test that authentication errors are handled properly."""
        mock_groq.chat.completions.create.side_effect = AuthenticationError(
            message="Invalid API key",
            response=Mock(status_code=401),
            body=None
        )

        client = LLMClient(api_key="test_key")

        with pytest.raises(ProviderRejectedError) as exc_info:
            client.complete(turns)

        assert "Authentication failed" in exc_info.value.error.message
        assert exc_info.value.error.details["status_code"] == 401

    def test_timeout_error(self, mock_groq, turns):
        """Test that timeouts are reported as provider unavailable."""
        mock_groq.chat.completions.create.side_effect = APITimeoutError(request=Mock())

        client = LLMClient(api_key="test_key")

        with pytest.raises(ProviderUnavailableError) as exc_info:
            client.complete(turns)

        assert exc_info.value.error.code == "PROVIDER_UNAVAILABLE"
        assert "timed out" in exc_info.value.error.message

    def test_connection_error(self, mock_groq, turns):
        """Test that transport failures are reported as provider unavailable."""
        mock_groq.chat.completions.create.side_effect = APIConnectionError(request=Mock())

        client = LLMClient(api_key="test_key")

        with pytest.raises(ProviderUnavailableError) as exc_info:
            client.complete(turns)

        assert isinstance(exc_info.value.__cause__, APIConnectionError)

    def test_status_error(self, mock_groq, turns):
        """Test that provider error statuses are reported as rejections."""
        mock_groq.chat.completions.create.side_effect = APIStatusError(
            message="model not found",
            response=Mock(status_code=400),
            body=None
        )

        client = LLMClient(api_key="test_key")

        with pytest.raises(ProviderRejectedError) as exc_info:
            client.complete(turns)

        assert "Groq API error" in exc_info.value.error.message
        assert exc_info.value.error.details["status_code"] == 400

    def test_generic_api_error(self, mock_groq, turns):
        """Test that other API errors are reported as rejections."""
        mock_groq.chat.completions.create.side_effect = APIError(
            message="Service unavailable",
            request=Mock(),
            body=None
        )

        client = LLMClient(api_key="test_key")

        with pytest.raises(ProviderRejectedError) as exc_info:
            client.complete(turns)

        assert "status_code" not in exc_info.value.error.details

    def test_error_includes_latency(self, mock_groq, turns):
        """Test that errors include latency measurement."""
        mock_groq.chat.completions.create.side_effect = APITimeoutError(request=Mock())

        client = LLMClient(api_key="test_key")

        with pytest.raises(ProviderUnavailableError) as exc_info:
            client.complete(turns)

        latency_ms = exc_info.value.error.details["latency_ms"]
        assert isinstance(latency_ms, int)
        assert latency_ms >= 0

    def test_provider_error_not_logged_as_error(self, mock_groq, turns, caplog):
        """Test provider failures are left for the request boundary to log."""
        mock_groq.chat.completions.create.side_effect = APITimeoutError(request=Mock())

        client = LLMClient(api_key="test_key")

        with caplog.at_level(logging.ERROR, logger="services.llm_client"):
            with pytest.raises(ProviderUnavailableError):
                client.complete(turns)

        assert [r for r in caplog.records if r.name == "services.llm_client"] == []
