"""
Offline Whisper provider for local transcription.

Uses faster-whisper (CTranslate2) so no audio leaves the machine.
"""

import gc
import threading
from typing import Optional

from . import BufferedProvider
from .openai_api import generate_prompt
from ..aggregator import EmissionPolicy, FrameAggregator
from ..errors import BackendError
from ..types import TranscribeContext, Utterance


class WhisperProvider(BufferedProvider):
    """
    Local transcription using a faster-whisper model.

    The model is loaded once on initialize() and kept in memory.
    Loading is retried lazily on the first dispatch if it failed.
    """

    name = "whisper"
    policy = EmissionPolicy.SILENCE_OR_MAX_LENGTH

    def __init__(
        self,
        model_size: str = "base",
        device: str = "cpu",
        compute_type: str = "int8",
        aggregator: Optional[FrameAggregator] = None,
    ):
        super().__init__(aggregator)
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.model = None
        self._lock = threading.Lock()

    def initialize(self) -> None:
        """Load Whisper model weights."""
        with self._lock:
            self._load_model()

    def _load_model(self) -> None:
        if self.model is not None:
            return
        try:
            from faster_whisper import WhisperModel

            print(f"[{self.name}] Loading model {self.model_size}...")
            self.model = WhisperModel(self.model_size, device=self.device, compute_type=self.compute_type)
            print(f"[{self.name}] Initialized")

        except Exception as e:
            print(f"[{self.name}] Failed to initialize: {e}")
            self.model = None

    def _dispatch(self, utterance: Utterance, context: TranscribeContext, is_final: bool) -> str:
        with self._lock:
            self._load_model()
            if self.model is None:
                raise BackendError(f"Whisper model '{self.model_size}' is not loaded", provider=self.name)

            language = context.language if context.language and context.language != "auto" else None
            prompt = generate_prompt(context.vocabulary, context.aggregated_transcription)

            try:
                segments, _info = self.model.transcribe(
                    utterance.samples,
                    language=language,
                    initial_prompt=prompt or None,
                    beam_size=5,
                )
                # Segments are generated lazily; join forces decoding
                text = "".join(segment.text for segment in segments)
            except Exception as e:
                print(f"[{self.name}] Transcription error: {e}")
                raise BackendError(f"Whisper transcription failed: {e}", provider=self.name) from e

        print(f"[{self.name}] Transcription completed, length: {len(text)}")
        return text

    def shutdown(self) -> None:
        """Unload model weights."""
        with self._lock:
            self.model = None

        gc.collect()
        print(f"[{self.name}] Shutdown")
