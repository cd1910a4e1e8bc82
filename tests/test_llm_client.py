"""Unit tests for the text generation clients."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import json
import pytest
from unittest.mock import Mock, MagicMock, patch
import httpx
from groq import RateLimitError, AuthenticationError, APIError, APITimeoutError, InternalServerError
from services.errors import ConfigurationError, TerminalProviderError, TransientProviderError
from services.llm_client import GroqTextGenerator, HuggingFaceTextGenerator


def groq_response(content="Answer", prompt_tokens=100, completion_tokens=10):
    mock_response = Mock()
    mock_response.choices = [Mock(message=Mock(content=content))]
    mock_response.usage = Mock(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)
    return mock_response


class TestGroqTextGenerator:
    """Test suite for GroqTextGenerator class."""

    def test_initialization_with_api_key(self):
        """Test the generator initializes with provided API key."""
        generator = GroqTextGenerator(api_key="test_key")
        assert generator.api_key == "test_key"

    def test_initialization_without_api_key_raises_error(self):
        """Test the generator raises error when no API key provided."""
        with patch('services.llm_client.GROQ_API_KEY', None):
            with pytest.raises(ConfigurationError, match="GROQ_API_KEY must be provided"):
                GroqTextGenerator()

    @patch('services.llm_client.Groq')
    def test_generate_success(self, mock_groq_class):
        """Test successful response generation."""
        mock_client = Mock()
        mock_client.chat.completions.create.return_value = groq_response('{"score": 80}')
        mock_groq_class.return_value = mock_client

        generator = GroqTextGenerator(api_key="test_key", model="llama-3.1-8b-instant")
        text = generator.generate_text("<|user|>Score it", max_output_tokens=256, temperature=0.3)

        assert text == '{"score": 80}'
        call_kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert call_kwargs["model"] == "llama-3.1-8b-instant"
        assert call_kwargs["max_tokens"] == 256
        assert call_kwargs["temperature"] == 0.3
        assert call_kwargs["messages"] == [{"role": "user", "content": "<|user|>Score it"}]

    @patch('services.llm_client.Groq')
    def test_generate_empty_content(self, mock_groq_class):
        mock_client = Mock()
        mock_client.chat.completions.create.return_value = groq_response(content=None)
        mock_groq_class.return_value = mock_client

        generator = GroqTextGenerator(api_key="test_key")

        assert generator.generate_text("prompt", 10, 0.1) == ""

    @patch('services.llm_client.Groq')
    def test_rate_limit_is_transient(self, mock_groq_class):
        """Test rate limit errors can be retried."""
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = RateLimitError(
            message="Rate limit exceeded",
            response=Mock(status_code=429),
            body=None
        )
        mock_groq_class.return_value = mock_client

        generator = GroqTextGenerator(api_key="test_key")

        with pytest.raises(TransientProviderError) as exc_info:
            generator.generate_text("Test prompt", 10, 0.1)

        assert exc_info.value.code == "RATE_LIMIT_ERROR"

    @patch('services.llm_client.Groq')
    def test_server_error_is_transient(self, mock_groq_class):
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = InternalServerError(
            message="Internal error",
            response=Mock(status_code=500),
            body=None
        )
        mock_groq_class.return_value = mock_client

        generator = GroqTextGenerator(api_key="test_key")

        with pytest.raises(TransientProviderError) as exc_info:
            generator.generate_text("Test prompt", 10, 0.1)

        assert exc_info.value.code == "SERVER_ERROR"

    @patch('services.llm_client.Groq')
    def test_timeout_is_transient(self, mock_groq_class):
        """Test timeout handling."""
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = APITimeoutError(request=Mock())
        mock_groq_class.return_value = mock_client

        generator = GroqTextGenerator(api_key="test_key")

        with pytest.raises(TransientProviderError) as exc_info:
            generator.generate_text("Test prompt", 10, 0.1)

        assert exc_info.value.code == "TIMEOUT_ERROR"

    @patch('services.llm_client.Groq')
    def test_authentication_error_is_terminal(self, mock_groq_class):
        """Test authentication errors are not retried."""
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = AuthenticationError(
            message="Invalid API key",
            response=Mock(status_code=401),
            body=None
        )
        mock_groq_class.return_value = mock_client

        generator = GroqTextGenerator(api_key="test_key")

        with pytest.raises(TerminalProviderError) as exc_info:
            generator.generate_text("Test prompt", 10, 0.1)

        assert exc_info.value.code == "AUTHENTICATION_ERROR"
        assert "API key" in exc_info.value.message

    @patch('services.llm_client.Groq')
    def test_generic_api_error_is_terminal(self, mock_groq_class):
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = APIError(
            message="Service unavailable",
            request=Mock(),
            body=None
        )
        mock_groq_class.return_value = mock_client

        generator = GroqTextGenerator(api_key="test_key")

        with pytest.raises(TerminalProviderError) as exc_info:
            generator.generate_text("Test prompt", 10, 0.1)

        assert exc_info.value.code == "API_ERROR"
        assert "Groq API error" in exc_info.value.message


class TestHuggingFaceTextGenerator:
    """Test suite for HuggingFaceTextGenerator class."""

    def test_initialization_without_api_key(self):
        with patch('services.llm_client.HUGGINGFACE_API_KEY', None):
            with pytest.raises(ConfigurationError, match="HUGGINGFACE_API_KEY"):
                HuggingFaceTextGenerator(api_key=None)

    @pytest.mark.parametrize("payload", [
        [{"generated_text": "Summary text"}],
        {"generated_text": "Summary text"},
    ])
    @patch('httpx.Client')
    def test_generate_success(self, mock_client_class, payload):
        mock_response = Mock()
        mock_response.status_code = 200
        mock_response.json.return_value = payload
        mock_client = MagicMock()
        mock_client.__enter__.return_value.post.return_value = mock_response
        mock_client_class.return_value = mock_client

        generator = HuggingFaceTextGenerator(api_key="test_key", model_name="org/instruct", top_p=0.9)
        text = generator.generate_text("<|user|>hi", max_output_tokens=64, temperature=0.2)

        assert text == "Summary text"
        sent = mock_client.__enter__.return_value.post.call_args.kwargs["json"]
        assert sent["inputs"] == "<|user|>hi"
        assert sent["parameters"] == {
            "max_new_tokens": 64,
            "temperature": 0.2,
            "top_p": 0.9,
            "return_full_text": False
        }

    @patch('httpx.Client')
    def test_model_loading_is_transient(self, mock_client_class):
        mock_response = Mock()
        mock_response.status_code = 503
        mock_response.json.return_value = {"estimated_time": 20.0}
        mock_client = MagicMock()
        mock_client.__enter__.return_value.post.return_value = mock_response
        mock_client_class.return_value = mock_client

        generator = HuggingFaceTextGenerator(api_key="test_key")

        with pytest.raises(TransientProviderError) as exc_info:
            generator.generate_text("prompt", 10, 0.1)

        assert exc_info.value.code == "MODEL_LOADING"
        assert exc_info.value.details["estimated_time"] == 20.0

    @patch('httpx.Client')
    def test_timeout_is_transient(self, mock_client_class):
        mock_client = MagicMock()
        mock_client.__enter__.return_value.post.side_effect = httpx.TimeoutException("Timeout")
        mock_client_class.return_value = mock_client

        generator = HuggingFaceTextGenerator(api_key="test_key")

        with pytest.raises(TransientProviderError) as exc_info:
            generator.generate_text("prompt", 10, 0.1)

        assert exc_info.value.code == "TIMEOUT_ERROR"

    @patch('httpx.Client')
    def test_non_json_body_is_terminal(self, mock_client_class):
        mock_response = Mock()
        mock_response.status_code = 200
        mock_response.text = "<html>Bad gateway</html>"
        mock_response.json.side_effect = json.JSONDecodeError("Expecting value", "<html>", 0)
        mock_client = MagicMock()
        mock_client.__enter__.return_value.post.return_value = mock_response
        mock_client_class.return_value = mock_client

        generator = HuggingFaceTextGenerator(api_key="test_key", model_name="org/instruct")

        with pytest.raises(TerminalProviderError) as exc_info:
            generator.generate_text("prompt", 10, 0.1)

        assert exc_info.value.code == "API_ERROR"
        assert exc_info.value.details["model"] == "org/instruct"

    @pytest.mark.parametrize("payload", [
        [],
        {"error": "Model is overloaded"},
        "plain text",
        [{"generated_text": None}],
    ])
    @patch('httpx.Client')
    def test_unexpected_body_shape_is_terminal(self, mock_client_class, payload):
        mock_response = Mock()
        mock_response.status_code = 200
        mock_response.json.return_value = payload
        mock_client = MagicMock()
        mock_client.__enter__.return_value.post.return_value = mock_response
        mock_client_class.return_value = mock_client

        generator = HuggingFaceTextGenerator(api_key="test_key")

        with pytest.raises(TerminalProviderError) as exc_info:
            generator.generate_text("prompt", 10, 0.1)

        assert exc_info.value.code == "API_ERROR"
