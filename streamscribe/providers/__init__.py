"""
Transcription providers with lifecycle management.

Each provider owns one FrameAggregator and turns a stream of frames into
text: frames are buffered until the aggregator says to emit, then the
provider drains the buffer and performs its network or inference call.
"""

from abc import ABC, abstractmethod
from typing import Optional, TYPE_CHECKING
import time

import numpy as np

from ..aggregator import FrameAggregator, EmissionPolicy
from ..types import TranscribeContext, Utterance, DispatchRecord

if TYPE_CHECKING:
    from ..auth import CredentialSource
    from ..types import ConfigSnapshot


class TranscriptionProvider(ABC):
    """
    Base class for transcription providers.

    Subclasses must implement:
    - transcribe(): Buffer a frame, maybe transcribe, return text or ""
    - flush(): Transcribe whatever remains buffered (session end)
    - reset(): Discard buffered state without any network call

    Not safe for concurrent calls on the same instance.
    """

    name: str = "base"

    # True when returned text already contains the previous transcription
    returns_aggregated: bool = False

    def initialize(self) -> None:
        """Load model weights / create HTTP client. Optional."""

    def shutdown(self) -> None:
        """Free resources. Optional."""

    @abstractmethod
    def transcribe(
        self,
        frame: np.ndarray,
        speech_probability: float,
        context: TranscribeContext,
    ) -> str:
        pass

    @abstractmethod
    def flush(self, context: TranscribeContext) -> str:
        pass

    @abstractmethod
    def reset(self) -> None:
        pass


class BufferedProvider(TranscriptionProvider):
    """
    Shared buffering for providers built on a FrameAggregator.

    Subclasses implement _dispatch(), which receives an already-drained
    utterance. If _dispatch() raises, that audio is gone.
    """

    policy: EmissionPolicy = EmissionPolicy.SILENCE_OR_MAX_LENGTH

    def __init__(self, aggregator: Optional[FrameAggregator] = None):
        self.aggregator = aggregator or FrameAggregator(self.policy)
        self.last_dispatch: Optional[DispatchRecord] = None

    def transcribe(
        self,
        frame: np.ndarray,
        speech_probability: float,
        context: TranscribeContext,
    ) -> str:
        """
        Buffer one frame and transcribe if the aggregator says so.

        Args:
            frame: Audio frame (512 samples, 16kHz, mono, float32)
            speech_probability: VAD confidence for this frame
            context: Snapshot of session metadata

        Returns:
            Transcribed text, or "" while still buffering
        """
        if not self.aggregator.ingest(frame, speech_probability):
            return ""
        return self._run(context, is_final=False)

    def flush(self, context: TranscribeContext) -> str:
        """Transcribe whatever is buffered. Called once at session end."""
        return self._run(context, is_final=True)

    def reset(self) -> None:
        """Clear buffers without transcribing (session cancelled)."""
        self.aggregator.reset()

    def _run(self, context: TranscribeContext, is_final: bool) -> str:
        utterance = self.aggregator.drain()

        if self._should_skip(utterance, context):
            print(f"[{self.name}] Skipping transcription - all silent ({utterance.frame_count} frames)")
            self.last_dispatch = DispatchRecord(
                provider=self.name,
                sample_count=len(utterance.samples),
                is_final=is_final,
                latency_ms=0,
                skipped=True,
            )
            return ""

        start = time.time()
        text = self._dispatch(utterance, context, is_final)
        latency_ms = int((time.time() - start) * 1000)

        self.last_dispatch = DispatchRecord(
            provider=self.name,
            sample_count=len(utterance.samples),
            is_final=is_final,
            latency_ms=latency_ms,
            text_length=len(text),
        )
        return text

    def _should_skip(self, utterance: Utterance, context: TranscribeContext) -> bool:
        """Whether the utterance is not worth a backend call."""
        return utterance.all_silent

    @abstractmethod
    def _dispatch(self, utterance: Utterance, context: TranscribeContext, is_final: bool) -> str:
        pass


def create_provider(
    snapshot: "ConfigSnapshot",
    credentials: Optional["CredentialSource"] = None,
) -> TranscriptionProvider:
    """
    Build the transcription provider named in the config snapshot.

    Args:
        snapshot: Session config snapshot
        credentials: Auth collaborator for the cloud provider (defaults to
            the configured static token)

    Returns:
        An initialized provider
    """
    name = snapshot.transcription_provider

    if name == "cloud":
        from .cloud import CloudProvider
        from ..auth import StaticTokenCredentials

        provider: TranscriptionProvider = CloudProvider(
            credentials or StaticTokenCredentials(snapshot.cloud_token),
            endpoint=snapshot.cloud_endpoint,
        )
    elif name == "openai":
        from .openai_api import OpenAICompatibleProvider

        provider = OpenAICompatibleProvider(
            api_key=snapshot.openai_api_key,
            model=snapshot.openai_model,
            endpoint=snapshot.openai_endpoint,
        )
    elif name == "whisper":
        from .whisper import WhisperProvider

        provider = WhisperProvider(model_size=snapshot.whisper_model)
    else:
        raise ValueError(f"Unknown transcription provider: {name}")

    provider.initialize()
    return provider
