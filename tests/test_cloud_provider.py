"""
Tests for the authenticated cloud transcription provider.

HTTP is mocked at the module-level requests session.
"""

import json
from unittest.mock import Mock, patch

import numpy as np
import pytest
import requests


def make_response(status: int = 200, json_data=None, text: str = "", reason: str = "OK"):
    """Build a mock requests.Response."""
    response = Mock()
    response.status_code = status
    response.ok = 200 <= status < 400
    response.reason = reason
    if json_data is not None:
        response.json.return_value = json_data
        response.text = text or json.dumps(json_data)
    else:
        response.json.side_effect = ValueError("No JSON object could be decoded")
        response.text = text
    return response


def success(text: str):
    return make_response(200, {"success": True, "transcription": text, "language": "en", "duration": 1.2})


def make_provider(token: str = "token-1", refresher=None):
    from streamscribe.auth import StaticTokenCredentials
    from streamscribe.providers.cloud import CloudProvider

    credentials = StaticTokenCredentials(token, refresher=refresher)
    return CloudProvider(credentials, endpoint="https://cloud.example.com/")


def make_context(**kwargs):
    from streamscribe.types import TranscribeContext

    defaults = {"session_id": "session-1", "language": "en", "vocabulary": ("Kubernetes",)}
    defaults.update(kwargs)
    return TranscribeContext(**defaults)


def speak(provider, context, speech_frames: int = 20):
    """Feed speech frames; each frame holds its own index as sample value."""
    for i in range(speech_frames):
        assert provider.transcribe(np.full(512, i / 100, dtype=np.float32), 0.9, context) == ""


class TestCloudEmission:
    """Tests for when the cloud provider calls the backend."""

    def test_single_call_after_long_silence(self):
        """20 speech frames then 94 silent frames: exactly one call, on the last frame."""
        provider = make_provider()
        context = make_context()

        with patch("streamscribe.providers.cloud._session") as mock_session:
            mock_session.post.return_value = success("Hello world")

            speak(provider, context)
            for _ in range(93):
                assert provider.transcribe(np.zeros(512, dtype=np.float32), 0.0, context) == ""
            mock_session.post.assert_not_called()

            result = provider.transcribe(np.zeros(512, dtype=np.float32), 0.0, context)

        assert result == "Hello world"
        assert mock_session.post.call_count == 1
        assert provider.aggregator.frame_count == 0

    def test_reset_then_flush_makes_no_call(self):
        """reset() discards audio; a following flush() is a no-op."""
        provider = make_provider()
        context = make_context()

        with patch("streamscribe.providers.cloud._session") as mock_session:
            speak(provider, context, speech_frames=10)
            provider.reset()
            result = provider.flush(context)

        assert result == ""
        mock_session.post.assert_not_called()

    def test_flush_sends_remaining_audio(self):
        """flush() sends buffered speech with isFinal set."""
        provider = make_provider()
        context = make_context()

        with patch("streamscribe.providers.cloud._session") as mock_session:
            mock_session.post.return_value = success("Partial")
            speak(provider, context, speech_frames=5)
            result = provider.flush(context)

        assert result == "Partial"
        body = mock_session.post.call_args.kwargs["json"]
        assert body["isFinal"] is True

    def test_silent_flush_skipped_without_formatting(self):
        """An all-silent buffer is not sent when there is nothing to format."""
        provider = make_provider()
        context = make_context(aggregated_transcription="Earlier text")

        with patch("streamscribe.providers.cloud._session") as mock_session:
            for _ in range(10):
                provider.transcribe(np.zeros(512, dtype=np.float32), 0.0, context)
            result = provider.flush(context)

        assert result == ""
        mock_session.post.assert_not_called()
        assert provider.last_dispatch.skipped

    def test_silent_flush_sent_for_server_formatting(self):
        """With formatting enabled and text so far, a context-only call is made."""
        provider = make_provider()
        context = make_context(aggregated_transcription="earlier text", formatting_enabled=True)

        with patch("streamscribe.providers.cloud._session") as mock_session:
            mock_session.post.return_value = success("Earlier text.")
            result = provider.flush(context)

        assert result == "Earlier text."
        body = mock_session.post.call_args.kwargs["json"]
        assert body["formatting"] == {"enabled": True}
        assert body["previousTranscription"] == "earlier text"


class TestCloudRequestBody:
    """Tests for the /transcribe request shape."""

    def test_body_fields(self):
        """Audio, VAD probabilities and context are serialized as JSON."""
        from streamscribe.audio import base64_float32_to_audio

        provider = make_provider()
        context = make_context()

        with patch("streamscribe.providers.cloud._session") as mock_session:
            mock_session.post.return_value = success("Hi")
            speak(provider, context, speech_frames=3)
            provider.flush(context)

        call = mock_session.post.call_args
        assert call.args[0] == "https://cloud.example.com/transcribe"
        assert call.kwargs["headers"]["Authorization"] == "Bearer token-1"
        assert call.kwargs["headers"]["Content-Type"] == "application/json"
        assert call.kwargs["headers"]["User-Agent"].startswith("streamscribe/")

        body = call.kwargs["json"]
        assert body["sessionId"] == "session-1"
        assert body["language"] == "en"
        assert body["vocabulary"] == ["Kubernetes"]
        assert body["previousTranscription"] is None
        assert body["vadProbs"] == [0.9, 0.9, 0.9]
        assert body["formatting"] == {"enabled": False}
        assert "sharedContext" not in body

        samples = base64_float32_to_audio(body["audioData"])
        assert len(samples) == 3 * 512
        assert samples[0] == 0.0
        assert samples[-1] == pytest.approx(0.02)

    def test_shared_context_from_accessibility(self):
        """Accessibility data is forwarded as sharedContext."""
        provider = make_provider()
        accessibility = {
            "context": {
                "application": {"name": "Slack", "bundleIdentifier": "com.tinyspeck.slackmacgap"},
                "textSelection": {"preSelectionText": "Hey team", "selectedText": ""},
            }
        }
        context = make_context(accessibility_context=accessibility)

        with patch("streamscribe.providers.cloud._session") as mock_session:
            mock_session.post.return_value = success("Hi")
            speak(provider, context, speech_frames=2)
            provider.flush(context)

        shared = mock_session.post.call_args.kwargs["json"]["sharedContext"]
        assert shared["appType"] == "chat"
        assert shared["appName"] == "Slack"
        assert shared["beforeText"] == "Hey team"


class TestCloudAuth:
    """Tests for authentication and the 401 retry."""

    def test_unauthenticated_raises_before_buffering(self):
        """No credential: Unauthenticated, no request, no audio buffered."""
        from streamscribe.errors import Unauthenticated

        provider = make_provider(token="")

        with patch("streamscribe.providers.cloud._session") as mock_session:
            with pytest.raises(Unauthenticated):
                provider.transcribe(np.zeros(512, dtype=np.float32), 0.9, make_context())

        mock_session.post.assert_not_called()
        assert provider.aggregator.frame_count == 0

    def test_401_refreshes_and_retries_once(self):
        """A 401 triggers one refresh and one identical retry."""
        refresher = Mock(return_value="token-2")
        provider = make_provider(refresher=refresher)
        context = make_context()

        with patch("streamscribe.providers.cloud._session") as mock_session:
            mock_session.post.side_effect = [
                make_response(401, reason="Unauthorized"),
                success("Retried text"),
            ]
            speak(provider, context, speech_frames=5)
            result = provider.flush(context)

        assert result == "Retried text"
        refresher.assert_called_once()
        assert mock_session.post.call_count == 2

        first, second = mock_session.post.call_args_list
        assert first.kwargs["json"] == second.kwargs["json"]
        assert first.kwargs["headers"]["Authorization"] == "Bearer token-1"
        assert second.kwargs["headers"]["Authorization"] == "Bearer token-2"

    def test_second_401_raises_auth_expired(self):
        """Two 401s in a row: AuthExpired after exactly two requests."""
        from streamscribe.errors import AuthExpired
        from streamscribe.providers.cloud import CloudState

        provider = make_provider(refresher=Mock(return_value="token-2"))
        context = make_context()

        with patch("streamscribe.providers.cloud._session") as mock_session:
            mock_session.post.side_effect = [
                make_response(401, reason="Unauthorized"),
                make_response(401, reason="Unauthorized"),
            ]
            speak(provider, context, speech_frames=5)
            with pytest.raises(AuthExpired) as exc_info:
                provider.flush(context)

        assert mock_session.post.call_count == 2
        assert exc_info.value.status == 401
        assert provider.state == CloudState.FAILED

    def test_refresh_failure_raises_auth_expired(self):
        """If the refresh itself fails, no retry is made."""
        from streamscribe.errors import AuthExpired

        provider = make_provider(refresher=Mock(side_effect=RuntimeError("refresh revoked")))
        context = make_context()

        with patch("streamscribe.providers.cloud._session") as mock_session:
            mock_session.post.return_value = make_response(401, reason="Unauthorized")
            speak(provider, context, speech_frames=5)
            with pytest.raises(AuthExpired):
                provider.flush(context)

        assert mock_session.post.call_count == 1


class TestCloudErrors:
    """Tests for mapping backend responses to errors."""

    def _flush_with(self, response):
        provider = make_provider()
        context = make_context()
        with patch("streamscribe.providers.cloud._session") as mock_session:
            mock_session.post.return_value = response
            speak(provider, context, speech_frames=5)
            try:
                provider.flush(context)
            finally:
                # Audio is discarded even when the call fails
                assert provider.aggregator.frame_count == 0

    def test_403_entitlement_required(self):
        from streamscribe.errors import EntitlementRequired

        with pytest.raises(EntitlementRequired) as exc_info:
            self._flush_with(make_response(403, {"error": "subscription required"}, reason="Forbidden"))
        assert exc_info.value.status == 403
        assert exc_info.value.status_text == "Forbidden"

    def test_429_carries_payload(self):
        from streamscribe.errors import RateLimited

        payload = {"error": "limit", "currentWords": 2000, "limit": 2000}
        with pytest.raises(RateLimited) as exc_info:
            self._flush_with(make_response(429, payload, reason="Too Many Requests"))

        assert exc_info.value.payload == payload
        assert "2000/2000" in str(exc_info.value)

    def test_500_backend_error(self):
        from streamscribe.errors import BackendError

        with pytest.raises(BackendError) as exc_info:
            self._flush_with(make_response(500, text="boom", reason="Internal Server Error"))

        assert exc_info.value.status == 500
        assert exc_info.value.status_text == "Internal Server Error"
        assert exc_info.value.body == "boom"
        assert exc_info.value.provider == "cloud"

    def test_unsuccessful_result(self):
        from streamscribe.errors import BackendError

        with pytest.raises(BackendError, match="model overloaded"):
            self._flush_with(make_response(200, {"success": False, "error": "model overloaded"}))

    def test_invalid_json(self):
        from streamscribe.errors import BackendError

        with pytest.raises(BackendError):
            self._flush_with(make_response(200, text="<html>"))

    def test_network_error(self):
        from streamscribe.errors import BackendError

        provider = make_provider()
        context = make_context()
        with patch("streamscribe.providers.cloud._session") as mock_session:
            mock_session.post.side_effect = requests.ConnectionError("unreachable")
            speak(provider, context, speech_frames=5)
            with pytest.raises(BackendError):
                provider.flush(context)
