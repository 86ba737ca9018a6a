"""
Tests for LLM formatting providers and prompt construction.
"""

from types import SimpleNamespace
from unittest.mock import Mock, patch

import requests


def chat_response(content: str, status: int = 200):
    response = Mock()
    response.status_code = status
    response.ok = status == 200
    response.json.return_value = {"choices": [{"message": {"content": content}}]}
    return response


SLACK_CONTEXT = {
    "context": {
        "application": {"name": "Slack", "bundleIdentifier": "com.tinyspeck.slackmacgap"},
        "windowInfo": {"title": "#general"},
        "textSelection": {"preSelectionText": "Hi all,", "selectedText": "", "postSelectionText": ""},
    }
}


class TestPrompt:
    """Tests for prompt construction and response parsing."""

    def test_extract_tagged_text(self):
        from streamscribe.prompt import extract_formatted_text

        response = "Sure!\n<formatted_text>Hello, world.</formatted_text>\nDone."
        assert extract_formatted_text(response) == "Hello, world."

    def test_extract_first_match(self):
        from streamscribe.prompt import extract_formatted_text

        response = "<formatted_text>one</formatted_text><formatted_text>two</formatted_text>"
        assert extract_formatted_text(response) == "one"

    def test_extract_multiline(self):
        from streamscribe.prompt import extract_formatted_text

        assert extract_formatted_text("<formatted_text>a\nb</formatted_text>") == "a\nb"

    def test_missing_tags_returns_raw(self):
        from streamscribe.prompt import extract_formatted_text

        assert extract_formatted_text("Just the text.") == "Just the text."

    def test_prompt_without_context(self):
        from streamscribe.prompt import construct_formatter_prompt, BASE_SYSTEM_PROMPT

        assert construct_formatter_prompt(None) == BASE_SYSTEM_PROMPT

    def test_prompt_includes_app_guidance_and_vocabulary(self):
        from streamscribe.prompt import construct_formatter_prompt, APP_TYPE_GUIDANCE
        from streamscribe.types import FormatContext

        context = FormatContext(
            accessibility_context=SLACK_CONTEXT,
            vocabulary=("Kubernetes",),
            custom_instructions="Use British spelling.",
            style="casual",
        )
        prompt = construct_formatter_prompt(context)

        assert "<formatted_text>" in prompt
        assert APP_TYPE_GUIDANCE["chat"] in prompt
        assert "Active application: Slack" in prompt
        assert "Text before the cursor: Hi all," in prompt
        assert "Kubernetes" in prompt
        assert "Use British spelling." in prompt
        assert "Style: casual" in prompt

    def test_prompt_clips_long_context(self):
        from streamscribe.prompt import construct_formatter_prompt, MAX_CONTEXT_CHARS
        from streamscribe.types import FormatContext

        before = "x" * 2000 + "END"
        blob = {"context": {"textSelection": {"preSelectionText": before}}}
        prompt = construct_formatter_prompt(FormatContext(accessibility_context=blob))

        assert "x" * (MAX_CONTEXT_CHARS + 1) not in prompt
        assert "END" in prompt


class TestOpenRouterFormatter:
    """Tests for the OpenRouter/OpenAI chat formatter."""

    def test_format_extracts_tagged_text(self):
        from streamscribe.formatting.openrouter import OpenRouterFormatter

        formatter = OpenRouterFormatter("or-key", "google/gemini-2.5-flash")
        with patch("streamscribe.formatting.openrouter._session") as mock_session:
            mock_session.post.return_value = chat_response("<formatted_text>Hello, world.</formatted_text>")
            result = formatter.format("hello world")

        assert result == "Hello, world."

        call = mock_session.post.call_args
        assert call.args[0] == "https://openrouter.ai/api/v1/chat/completions"
        assert call.kwargs["headers"]["Authorization"] == "Bearer or-key"
        payload = call.kwargs["json"]
        assert payload["model"] == "google/gemini-2.5-flash"
        assert payload["temperature"] == 0.1
        assert payload["max_tokens"] == 2000
        assert payload["messages"][0]["role"] == "system"
        assert payload["messages"][1] == {"role": "user", "content": "hello world"}

    def test_untagged_response_is_used_verbatim(self):
        from streamscribe.formatting.openrouter import OpenRouterFormatter

        formatter = OpenRouterFormatter("or-key", "some/model")
        with patch("streamscribe.formatting.openrouter._session") as mock_session:
            mock_session.post.return_value = chat_response("Hello there.")
            assert formatter.format("hello there") == "Hello there."

    def test_unreachable_returns_original(self):
        """Network failure never raises from format()."""
        from streamscribe.formatting.openrouter import OpenRouterFormatter

        formatter = OpenRouterFormatter("or-key", "some/model")
        with patch("streamscribe.formatting.openrouter._session") as mock_session:
            mock_session.post.side_effect = requests.ConnectionError("unreachable")
            assert formatter.format("raw text") == "raw text"

    def test_http_error_returns_original(self):
        from streamscribe.formatting.openrouter import OpenRouterFormatter

        formatter = OpenRouterFormatter("or-key", "some/model")
        with patch("streamscribe.formatting.openrouter._session") as mock_session:
            mock_session.post.return_value = chat_response("", status=502)
            assert formatter.format("raw text") == "raw text"

    def test_malformed_body_returns_original(self):
        from streamscribe.formatting.openrouter import OpenRouterFormatter

        formatter = OpenRouterFormatter("or-key", "some/model")
        response = Mock(status_code=200)
        response.json.return_value = {"unexpected": True}
        with patch("streamscribe.formatting.openrouter._session") as mock_session:
            mock_session.post.return_value = response
            assert formatter.format("raw text") == "raw text"

    def test_strict_raises_formatting_failure(self):
        import pytest
        from streamscribe.errors import FormattingFailure
        from streamscribe.formatting.openrouter import OpenRouterFormatter

        formatter = OpenRouterFormatter("", "some/model")
        with pytest.raises(FormattingFailure):
            formatter.format_strict("raw text")

    def test_openai_uses_completion_tokens_field(self):
        from streamscribe.formatting.openrouter import OpenAIFormatter

        formatter = OpenAIFormatter("sk-key", "gpt-4o-mini")
        with patch("streamscribe.formatting.openrouter._session") as mock_session:
            mock_session.post.return_value = chat_response("<formatted_text>Ok.</formatted_text>")
            assert formatter.format("ok") == "Ok."

        call = mock_session.post.call_args
        assert call.args[0] == "https://api.openai.com/v1/chat/completions"
        assert call.kwargs["json"]["max_completion_tokens"] == 2000
        assert "max_tokens" not in call.kwargs["json"]


class TestOllamaFormatter:
    """Tests for the local Ollama formatter."""

    def test_chat_payload(self):
        from streamscribe.formatting.ollama import OllamaFormatter

        formatter = OllamaFormatter("llama3.2", url="http://localhost:11434/")
        response = Mock(ok=True, status_code=200)
        response.json.return_value = {"message": {"content": "<formatted_text>Fine.</formatted_text>"}}

        with patch("streamscribe.formatting.ollama._session") as mock_session:
            mock_session.post.return_value = response
            assert formatter.format("fine") == "Fine."

        call = mock_session.post.call_args
        assert call.args[0] == "http://localhost:11434/api/chat"
        payload = call.kwargs["json"]
        assert payload["stream"] is False
        assert payload["options"] == {"temperature": 0.1, "num_predict": 2000}

    def test_unreachable_returns_original(self):
        from streamscribe.formatting.ollama import OllamaFormatter

        formatter = OllamaFormatter("llama3.2")
        with patch("streamscribe.formatting.ollama._session") as mock_session:
            mock_session.post.side_effect = requests.ConnectionError("refused")
            assert formatter.format("keep me") == "keep me"


class TestGroqFormatter:
    """Tests for the Groq SDK formatter."""

    def test_completion_call(self):
        from streamscribe.formatting.groq import GroqFormatter

        formatter = GroqFormatter("gsk-key", "llama-3.3-70b-versatile")
        client = Mock()
        client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="<formatted_text>Yes.</formatted_text>"))]
        )
        formatter._client = client

        assert formatter.format("yes") == "Yes."

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "llama-3.3-70b-versatile"
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_completion_tokens"] == 2000

    def test_none_content_returns_original(self):
        from streamscribe.formatting.groq import GroqFormatter

        formatter = GroqFormatter("gsk-key")
        client = Mock()
        client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=None))]
        )
        formatter._client = client

        assert formatter.format("unchanged") == "unchanged"

    def test_sdk_error_returns_original(self):
        from streamscribe.formatting.groq import GroqFormatter

        formatter = GroqFormatter("gsk-key")
        client = Mock()
        client.chat.completions.create.side_effect = RuntimeError("503")
        formatter._client = client

        assert formatter.format("unchanged") == "unchanged"
