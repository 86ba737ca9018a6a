"""
Shared type definitions for StreamScribe.
"""

from dataclasses import dataclass
from typing import Optional, List, Dict, Tuple, Any
import numpy as np


# Opaque accessibility blob as delivered by the host platform
AccessibilityContext = Dict[str, Any]


@dataclass
class SilenceState:
    """Silence bookkeeping for the frame currently being aggregated."""
    consecutive_silent_frames: int = 0
    last_speech_timestamp: Optional[float] = None   # time.monotonic() of last speech frame


@dataclass
class Utterance:
    """Buffered frames drained from the aggregator for one dispatch."""
    samples: np.ndarray                 # float32, concatenated in time order
    speech_probabilities: List[float]   # one entry per frame
    frame_count: int
    all_silent: bool

    @property
    def is_empty(self) -> bool:
        return len(self.samples) == 0


@dataclass(frozen=True)
class TranscribeContext:
    """
    Per-call metadata for a transcription provider.

    Snapshotted by the caller at call time; providers only read it.
    """
    session_id: str = ""
    language: Optional[str] = None              # None or "auto" = auto-detect
    vocabulary: Tuple[str, ...] = ()
    aggregated_transcription: str = ""
    previous_chunk: Optional[str] = None
    accessibility_context: Optional[AccessibilityContext] = None
    formatting_enabled: bool = False


@dataclass(frozen=True)
class FormatContext:
    """Context handed to a formatting provider."""
    accessibility_context: Optional[AccessibilityContext] = None
    vocabulary: Tuple[str, ...] = ()
    aggregated_transcription: str = ""
    custom_instructions: str = ""
    style: str = "formal"                       # "formal" | "casual" | "technical"


@dataclass(frozen=True)
class FormatterConfig:
    """
    Formatting settings.

    Always replaced as a whole; never merged field by field.
    """
    enabled: bool = False
    model_id: Optional[str] = None
    fallback_model_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormatterConfig":
        """Build a complete config from a dict. Missing keys take defaults."""
        return cls(
            enabled=bool(data.get("enabled", False)),
            model_id=data.get("model_id") or None,
            fallback_model_id=data.get("fallback_model_id") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "model_id": self.model_id,
            "fallback_model_id": self.fallback_model_id,
        }


@dataclass
class AppContext:
    """Information about the focused application, parsed from accessibility data."""
    app_name: str = ""          # e.g., "Slack"
    bundle_id: str = ""         # e.g., "com.tinyspeck.slackmacgap"
    window_title: str = ""
    url: str = ""
    selected_text: str = ""
    before_text: str = ""       # Text before the cursor / selection
    after_text: str = ""        # Text after the cursor / selection
    app_type: str = "default"   # "email" | "chat" | "code" | "document" | "terminal" | "default"


@dataclass(frozen=True)
class ConfigSnapshot:
    """
    Immutable snapshot of configuration for a session.
    Ensures config changes mid-session don't cause inconsistency.
    """
    # Transcription
    transcription_provider: str
    language: Optional[str]
    vocabulary: Tuple[str, ...]
    replacements: Tuple[Tuple[str, str], ...]

    # Offline engine
    whisper_model: str

    # Generic API backend
    openai_api_key: str
    openai_endpoint: str
    openai_model: str

    # Cloud backend
    cloud_endpoint: str
    cloud_token: str

    # Formatting
    formatter: FormatterConfig
    groq_api_key: str
    openrouter_api_key: str
    ollama_url: str
    custom_instructions: str = ""
    formatting_style: str = "formal"

    # Metrics
    metrics_enabled: bool = True
    metrics_file: str = ""


@dataclass
class CloudTranscriptionResponse:
    """Decoded body of a cloud /transcribe response."""
    success: bool
    transcription: Optional[str] = None
    original_transcription: Optional[str] = None
    language: Optional[str] = None
    duration: Optional[float] = None
    error: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "CloudTranscriptionResponse":
        return cls(
            success=bool(data.get("success", False)),
            transcription=data.get("transcription"),
            original_transcription=data.get("originalTranscription"),
            language=data.get("language"),
            duration=data.get("duration"),
            error=data.get("error"),
        )


@dataclass
class DispatchRecord:
    """Timing metadata for one provider dispatch (for metrics)."""
    provider: str
    sample_count: int
    is_final: bool
    latency_ms: int
    text_length: int = 0
    skipped: bool = False
