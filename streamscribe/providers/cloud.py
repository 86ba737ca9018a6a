"""
Authenticated cloud transcription provider.

Sends raw float32 audio plus session context as JSON to the StreamScribe
cloud API. A 401 triggers exactly one token refresh and one retry of the
identical request.
"""

import os
import platform
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np
import requests

from . import BufferedProvider
from .. import __version__
from ..aggregator import EmissionPolicy, FrameAggregator, SAMPLE_RATE
from ..audio import audio_to_base64_float32
from ..auth import CredentialSource
from ..context import build_shared_context
from ..errors import (
    AuthExpired,
    BackendError,
    EntitlementRequired,
    RateLimited,
    Unauthenticated,
)
from ..types import CloudTranscriptionResponse, TranscribeContext, Utterance


DEFAULT_ENDPOINT = "https://api.streamscribe.app"
REQUEST_TIMEOUT = 30

# Persistent session for connection reuse
_session = requests.Session()


class CloudState(Enum):
    IDLE = "idle"
    BUFFERING = "buffering"
    DISPATCHING = "dispatching"
    RETRYING = "retrying"
    FAILED = "failed"


def get_user_agent() -> str:
    """User-Agent for API requests, e.g. streamscribe/1.0.0 (Darwin)."""
    return f"streamscribe/{__version__} ({platform.system() or 'unknown'})"


class CloudProvider(BufferedProvider):
    """
    Cloud transcription with bearer-token auth.

    The server appends new text to previousTranscription and returns the
    whole session transcript, so callers should replace, not append.
    """

    name = "cloud"
    policy = EmissionPolicy.MIN_SPEECH_THEN_SILENCE
    returns_aggregated = True

    def __init__(
        self,
        credentials: CredentialSource,
        endpoint: Optional[str] = None,
        aggregator: Optional[FrameAggregator] = None,
    ):
        super().__init__(aggregator)
        self.credentials = credentials
        self.endpoint = (endpoint or os.getenv("STREAMSCRIBE_API_ENDPOINT") or DEFAULT_ENDPOINT).rstrip("/")
        self.state = CloudState.IDLE

    def initialize(self) -> None:
        print(f"[{self.name}] Initialized (endpoint: {self.endpoint})")

    def transcribe(
        self,
        frame: np.ndarray,
        speech_probability: float,
        context: TranscribeContext,
    ) -> str:
        """Buffer a frame; transcribe once speech is followed by long silence."""
        if not self.credentials.is_authenticated():
            self.state = CloudState.FAILED
            raise Unauthenticated("Authentication required for cloud transcription", provider=self.name)

        self.state = CloudState.BUFFERING
        return super().transcribe(frame, speech_probability, context)

    def reset(self) -> None:
        super().reset()
        self.state = CloudState.IDLE

    def _should_skip(self, utterance: Utterance, context: TranscribeContext) -> bool:
        # A context-only call is still needed when the server must format text
        has_text_to_format = context.formatting_enabled and bool(
            (context.aggregated_transcription or "").strip()
        )
        return utterance.all_silent and not has_text_to_format

    def _run(self, context: TranscribeContext, is_final: bool) -> str:
        text = super()._run(context, is_final)
        self.state = CloudState.IDLE
        return text

    def _dispatch(self, utterance: Utterance, context: TranscribeContext, is_final: bool) -> str:
        self.state = CloudState.DISPATCHING

        token = self.credentials.get_token()
        if not token:
            self.state = CloudState.FAILED
            raise Unauthenticated("No authentication token available", provider=self.name)

        body = self.build_request_body(utterance, context, is_final)

        print(
            f"[{self.name}] Sending audio: {len(utterance.samples)} samples "
            f"({len(utterance.samples) / SAMPLE_RATE:.2f}s), final={is_final}, "
            f"formatting={context.formatting_enabled}, session={context.session_id}"
        )

        try:
            response = self._post(body, token)

            if response.status_code == 401:
                self.state = CloudState.RETRYING
                print(f"[{self.name}] Got 401 response, attempting token refresh and retry")
                try:
                    self.credentials.refresh_token_if_needed()
                except Exception as e:
                    print(f"[{self.name}] Token refresh failed: {e}")
                    raise AuthExpired(
                        "Authentication failed - please log in again",
                        provider=self.name,
                        status=401,
                        status_text=response.reason or "",
                    ) from e

                token = self.credentials.get_token()
                if not token:
                    raise Unauthenticated("No authentication token available", provider=self.name)

                self.state = CloudState.DISPATCHING
                response = self._post(body, token)
                if response.status_code == 401:
                    raise AuthExpired(
                        "Authentication failed - please log in again",
                        provider=self.name,
                        status=401,
                        status_text=response.reason or "",
                    )

            return self._handle_response(response)
        except Exception:
            self.state = CloudState.FAILED
            raise

    def build_request_body(
        self,
        utterance: Utterance,
        context: TranscribeContext,
        is_final: bool,
    ) -> Dict[str, Any]:
        """Serialize an utterance and its context into the /transcribe body."""
        body: Dict[str, Any] = {
            "sessionId": context.session_id,
            "isFinal": is_final,
            "audioData": audio_to_base64_float32(utterance.samples),
            "vadProbs": list(utterance.speech_probabilities),
            "language": context.language,
            "vocabulary": list(context.vocabulary),
            "previousTranscription": context.aggregated_transcription or None,
            "formatting": {"enabled": context.formatting_enabled},
        }

        shared_context = build_shared_context(context.accessibility_context)
        if shared_context is not None:
            body["sharedContext"] = shared_context

        return body

    def _post(self, body: Dict[str, Any], token: str) -> requests.Response:
        try:
            return _session.post(
                f"{self.endpoint}/transcribe",
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {token}",
                    "User-Agent": get_user_agent(),
                },
                json=body,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            print(f"[{self.name}] Transcription error: {e}")
            raise BackendError(f"Cloud request failed: {e}", provider=self.name) from e

    def _handle_response(self, response: requests.Response) -> str:
        status_text = response.reason or ""

        if response.status_code == 403:
            raise EntitlementRequired(
                "Subscription required for cloud transcription",
                provider=self.name,
                status=403,
                status_text=status_text,
            )

        if response.status_code == 429:
            try:
                payload = response.json()
            except ValueError:
                payload = response.text
            if isinstance(payload, dict):
                message = f"Word limit exceeded: {payload.get('currentWords')}/{payload.get('limit')}"
            else:
                message = "Word limit exceeded"
            raise RateLimited(
                message,
                payload=payload,
                provider=self.name,
                status=429,
                status_text=status_text,
            )

        if not response.ok:
            print(f"[{self.name}] Cloud API error: {response.status_code} {status_text} {response.text[:200]}")
            raise BackendError(
                f"Cloud API error: {response.status_code} {status_text}",
                body=response.text,
                provider=self.name,
                status=response.status_code,
                status_text=status_text,
            )

        try:
            result = CloudTranscriptionResponse.from_json(response.json())
        except (ValueError, AttributeError) as e:
            raise BackendError(
                "Cloud API returned invalid JSON",
                body=response.text,
                provider=self.name,
                status=response.status_code,
                status_text=status_text,
            ) from e

        if not result.success:
            raise BackendError(
                result.error or "Cloud transcription failed",
                provider=self.name,
                status=response.status_code,
                status_text=status_text,
            )

        text = result.transcription or ""
        print(
            f"[{self.name}] Transcription successful: {len(text)} chars, "
            f"language={result.language}, duration={result.duration}"
        )
        return text
