"""
OpenAI-compatible transcription API provider.

Works with any endpoint that accepts the OpenAI /audio/transcriptions
multipart form (OpenAI, Groq, local servers).
"""

from typing import Optional, Sequence

import requests

from . import BufferedProvider
from ..aggregator import EmissionPolicy, FrameAggregator, SAMPLE_RATE
from ..audio import audio_to_wav_bytes, wav_size_for
from ..errors import AuthExpired, BackendError, PayloadTooLarge, RateLimited
from ..types import TranscribeContext, Utterance


DEFAULT_ENDPOINT = "https://api.openai.com/v1/audio/transcriptions"
DEFAULT_MODEL = "whisper-1"
MAX_FILE_SIZE_BYTES = 25 * 1024 * 1024  # 25 MB limit for OpenAI-compatible APIs
REQUEST_TIMEOUT = 30

# Persistent session for connection reuse
_session = requests.Session()


def generate_prompt(vocabulary: Optional[Sequence[str]], aggregated_transcription: Optional[str]) -> str:
    """Bias prompt: vocabulary list followed by what was said so far."""
    parts = []
    if vocabulary:
        parts.append(", ".join(vocabulary))
    if aggregated_transcription:
        parts.append(aggregated_transcription)
    return " ".join(parts)


class OpenAICompatibleProvider(BufferedProvider):
    """
    Cloud transcription through an OpenAI-compatible HTTP API.

    Calls are metered, so buffering is capped at 30 seconds and fully
    silent utterances are never sent.
    """

    name = "openai"
    policy = EmissionPolicy.SILENCE_OR_MAX_LENGTH

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        endpoint: str = DEFAULT_ENDPOINT,
        name: Optional[str] = None,
        max_file_size_bytes: int = MAX_FILE_SIZE_BYTES,
        aggregator: Optional[FrameAggregator] = None,
    ):
        super().__init__(aggregator)
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint
        self.max_file_size_bytes = max_file_size_bytes
        if name:
            self.name = name

    def initialize(self) -> None:
        if not self.api_key:
            print(f"[{self.name}] No API key provided")
            return
        print(f"[{self.name}] Initialized (model: {self.model}, endpoint: {self.endpoint})")

    def _dispatch(self, utterance: Utterance, context: TranscribeContext, is_final: bool) -> str:
        """
        Encode the utterance as WAV and post it as a multipart form.

        Raises:
            PayloadTooLarge: Encoded audio is over the size limit
            AuthExpired: 401 from the API
            RateLimited: 429 from the API
            BackendError: Any other failure
        """
        expected_size = wav_size_for(len(utterance.samples))
        if expected_size > self.max_file_size_bytes:
            self._raise_too_large(expected_size)

        wav_bytes = audio_to_wav_bytes(utterance.samples)
        if len(wav_bytes) > self.max_file_size_bytes:
            self._raise_too_large(len(wav_bytes))

        duration_ms = len(utterance.samples) / SAMPLE_RATE * 1000
        print(f"[{self.name}] Sending {len(utterance.samples)} samples ({duration_ms:.0f}ms) to API")

        data = {"model": self.model}
        if context.language and context.language != "auto":
            data["language"] = context.language

        prompt = generate_prompt(context.vocabulary, context.aggregated_transcription)
        if prompt:
            data["prompt"] = prompt

        try:
            response = _session.post(
                self.endpoint,
                headers={"Authorization": f"Bearer {self.api_key}"},
                files={"file": ("audio.wav", wav_bytes, "audio/wav")},
                data=data,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            print(f"[{self.name}] Transcription error: {e}")
            raise BackendError(f"{self.name} request failed: {e}", provider=self.name) from e

        if response.status_code == 401:
            raise AuthExpired(
                f"Authentication failed for {self.name}. Please check your API key.",
                provider=self.name,
                status=response.status_code,
                status_text=response.reason or "",
            )

        if response.status_code == 429:
            raise RateLimited(
                f"Rate limit exceeded for {self.name}.",
                payload=response.text,
                provider=self.name,
                status=response.status_code,
                status_text=response.reason or "",
            )

        if not response.ok:
            print(f"[{self.name}] API error: {response.status_code} {response.reason} {response.text[:200]}")
            raise BackendError(
                f"{self.name} API error: {response.status_code} {response.reason}",
                body=response.text,
                provider=self.name,
                status=response.status_code,
                status_text=response.reason or "",
            )

        try:
            text = response.json().get("text") or ""
        except (ValueError, AttributeError) as e:
            raise BackendError(
                f"{self.name} returned invalid JSON",
                body=response.text,
                provider=self.name,
                status=response.status_code,
                status_text=response.reason or "",
            ) from e

        print(f"[{self.name}] Transcription completed, length: {len(text)}")
        return text

    def _raise_too_large(self, size: int) -> None:
        limit_mb = self.max_file_size_bytes / (1024 * 1024)
        print(f"[{self.name}] Audio file too large: {size} bytes (max {self.max_file_size_bytes})")
        raise PayloadTooLarge(
            f"Audio file exceeds the {limit_mb:g}MB limit",
            size=size,
            limit=self.max_file_size_bytes,
            provider=self.name,
        )
