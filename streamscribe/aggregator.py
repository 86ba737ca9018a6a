"""
Frame aggregation for streaming transcription.

Buffers fixed-size audio frames with their speech probabilities and decides,
per frame, whether the buffered utterance should be sent for transcription.
One aggregator is owned by exactly one provider instance.
"""

import time
from enum import Enum
from typing import List

import numpy as np

from .types import SilenceState, Utterance


# Constants
FRAME_SIZE = 512  # 32ms at 16kHz
SAMPLE_RATE = 16000
SPEECH_PROBABILITY_THRESHOLD = 0.2
MIN_SPEECH_DURATION_MS = 500  # Minimum speech before a silence cut is allowed
MAX_SILENCE_DURATION_MS = 3000  # Trailing silence that ends an utterance
MAX_BUFFER_DURATION_MS = 30000  # Absolute cap for metered backends


class EmissionPolicy(Enum):
    """When the aggregator asks its provider to transcribe."""
    MIN_SPEECH_THEN_SILENCE = "min_speech_then_silence"
    SILENCE_OR_MAX_LENGTH = "silence_or_max_length"


def frames_to_ms(frame_count: int) -> float:
    """Duration of frame_count frames in milliseconds."""
    return frame_count * FRAME_SIZE / SAMPLE_RATE * 1000


class FrameAggregator:
    """
    Accumulates frames into a pending utterance.

    Not thread-safe: frames must be ingested in temporal order by a
    single caller.

    Usage:
        aggregator = FrameAggregator(EmissionPolicy.SILENCE_OR_MAX_LENGTH)
        if aggregator.ingest(frame, probability):
            utterance = aggregator.drain()
    """

    def __init__(self, policy: EmissionPolicy):
        self.policy = policy
        self._frames: List[np.ndarray] = []
        self._probabilities: List[float] = []
        self._silence = SilenceState()

    # -- state ---------------------------------------------------------

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    @property
    def sample_count(self) -> int:
        return sum(len(f) for f in self._frames)

    @property
    def silence_state(self) -> SilenceState:
        return SilenceState(
            consecutive_silent_frames=self._silence.consecutive_silent_frames,
            last_speech_timestamp=self._silence.last_speech_timestamp,
        )

    @property
    def buffer_duration_ms(self) -> float:
        return frames_to_ms(len(self._frames))

    @property
    def silence_duration_ms(self) -> float:
        return frames_to_ms(self._silence.consecutive_silent_frames)

    @property
    def speech_duration_ms(self) -> float:
        """Buffered duration up to and including the last speech frame."""
        return frames_to_ms(len(self._frames) - self._silence.consecutive_silent_frames)

    def is_all_silent(self) -> bool:
        """True when no speech frame was seen since the last clear."""
        return self.buffer_duration_ms == self.silence_duration_ms

    # -- operations ----------------------------------------------------

    def ingest(self, frame, speech_probability: float) -> bool:
        """
        Buffer one frame and evaluate the emission policy.

        Args:
            frame: Audio samples (float32, mono, 16kHz)
            speech_probability: VAD confidence in [0, 1]

        Returns:
            True if the buffered utterance should be transcribed now
        """
        self._frames.append(np.asarray(frame, dtype=np.float32))
        self._probabilities.append(float(speech_probability))

        if speech_probability > SPEECH_PROBABILITY_THRESHOLD:
            self._silence.consecutive_silent_frames = 0
            self._silence.last_speech_timestamp = time.monotonic()
        else:
            self._silence.consecutive_silent_frames += 1

        return self.should_emit()

    def should_emit(self) -> bool:
        """Evaluate the configured policy against the current buffer."""
        if self.policy is EmissionPolicy.MIN_SPEECH_THEN_SILENCE:
            # No length cap: a short burst stays buffered, silence and all,
            # until more speech arrives or the provider is flushed
            return (
                self.speech_duration_ms >= MIN_SPEECH_DURATION_MS
                and self.silence_duration_ms >= MAX_SILENCE_DURATION_MS
            )

        # Speech followed by significant silence
        if not self.is_all_silent() and self.silence_duration_ms > MAX_SILENCE_DURATION_MS:
            return True

        # Buffer too long, transcribe anyway
        return self.buffer_duration_ms > MAX_BUFFER_DURATION_MS

    def drain(self) -> Utterance:
        """
        Return the buffered utterance and clear all buffers.

        Buffers and silence counter are cleared together in this call,
        before the caller dispatches anything.
        """
        all_silent = self.is_all_silent()
        frames = self._frames
        probabilities = self._probabilities

        self._frames = []
        self._probabilities = []
        self._silence.consecutive_silent_frames = 0

        if frames:
            samples = np.concatenate(frames)
        else:
            samples = np.array([], dtype=np.float32)

        return Utterance(
            samples=samples,
            speech_probabilities=probabilities,
            frame_count=len(frames),
            all_silent=all_silent,
        )

    def reset(self) -> None:
        """Discard all buffered audio and silence state."""
        self._frames = []
        self._probabilities = []
        self._silence = SilenceState()
