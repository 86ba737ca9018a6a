"""
Formatting provider routing.

Resolves the configured formatter model to a provider:
- Model ids look like "openrouter:google/gemini-2.5-flash" or "ollama:llama3.2"
- The fallback model is tried when the primary one fails
- Models that keep failing are backed off for a while
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Optional, Tuple
import threading
import time

from .errors import FormattingFailure
from .formatting import FormattingProvider
from .types import ConfigSnapshot, FormatContext, FormatterConfig


# Formatting done server-side by the cloud transcription provider
CLOUD_FORMATTER_ID = "cloud"

# Module-level state for failure tracking (persists across router instances)
_MODEL_FAILURES: Dict[str, int] = defaultdict(int)
_MODEL_BACKOFF_UNTIL: Dict[str, float] = defaultdict(float)
_ROUTER_LOCK = threading.Lock()

FAILURES_BEFORE_BACKOFF = 3
MAX_BACKOFF_SECONDS = 300


@dataclass
class FormattingOutcome:
    """Result of routing a transcript through formatting."""
    text: str
    model_id: Optional[str]     # None if no formatter produced the text
    latency_ms: float


def parse_model_id(model_id: str) -> Tuple[str, str]:
    """Split "provider:model" into its parts. Bare ids default to OpenRouter."""
    if ":" in model_id:
        provider, model = model_id.split(":", 1)
        return provider.strip().lower(), model.strip()
    return "openrouter", model_id.strip()


class FormatterRouter:
    """
    Routes formatting requests to the configured model.

    Usage:
        router = FormatterRouter(snapshot)
        outcome = router.format(text, format_context)
    """

    def __init__(self, config: ConfigSnapshot, formatter: Optional[FormatterConfig] = None):
        self.config = config
        self.formatter_config = formatter or config.formatter
        self._failures = _MODEL_FAILURES
        self._backoff_until = _MODEL_BACKOFF_UNTIL

    @property
    def uses_cloud_formatting(self) -> bool:
        return self.formatter_config.enabled and self.formatter_config.model_id == CLOUD_FORMATTER_ID

    def build_formatter(self, model_id: Optional[str]) -> Optional[FormattingProvider]:
        """
        Create the provider for a model id.

        Returns:
            Provider instance, or None if the model can't be used
        """
        if not model_id or model_id == CLOUD_FORMATTER_ID:
            return None

        provider, model = parse_model_id(model_id)

        if provider == "openrouter":
            if not self.config.openrouter_api_key:
                print("[Router] Formatting skipped: OpenRouter API key missing")
                return None
            from .formatting.openrouter import OpenRouterFormatter
            return OpenRouterFormatter(self.config.openrouter_api_key, model)

        if provider == "openai":
            if not self.config.openai_api_key:
                print("[Router] Formatting skipped: OpenAI API key missing")
                return None
            from .formatting.openrouter import OpenAIFormatter
            return OpenAIFormatter(self.config.openai_api_key, model)

        if provider == "groq":
            if not self.config.groq_api_key:
                print("[Router] Formatting skipped: Groq API key missing")
                return None
            from .formatting.groq import GroqFormatter
            return GroqFormatter(self.config.groq_api_key, model)

        if provider == "ollama":
            if not self.config.ollama_url:
                print("[Router] Formatting skipped: Ollama URL missing")
                return None
            from .formatting.ollama import OllamaFormatter
            return OllamaFormatter(model, url=self.config.ollama_url)

        print(f"[Router] Formatting skipped: unsupported provider '{provider}'")
        return None

    def is_backed_off(self, model_id: str) -> bool:
        with _ROUTER_LOCK:
            return time.time() < self._backoff_until.get(model_id, 0)

    def format(self, text: str, context: Optional[FormatContext] = None) -> FormattingOutcome:
        """
        Format text with the primary model, falling back on failure.

        Never raises. Returns the input text when formatting is disabled,
        nothing is configured, or every candidate fails.
        """
        start = time.perf_counter()

        if not self.formatter_config.enabled:
            return FormattingOutcome(text=text, model_id=None, latency_ms=0.0)

        if not text.strip():
            print("[Router] Formatting skipped: empty transcription")
            return FormattingOutcome(text=text, model_id=None, latency_ms=0.0)

        candidates = [self.formatter_config.model_id, self.formatter_config.fallback_model_id]
        for model_id in candidates:
            if not model_id or model_id == CLOUD_FORMATTER_ID:
                continue
            if self.is_backed_off(model_id):
                print(f"[Router] {model_id} is backing off, skipping")
                continue

            formatter = self.build_formatter(model_id)
            if formatter is None:
                continue

            try:
                formatted = formatter.format_strict(text, context)
            except FormattingFailure as e:
                print(f"[Router] {e}")
                self.record_failure(model_id)
                continue

            self.record_success(model_id)
            elapsed = (time.perf_counter() - start) * 1000
            return FormattingOutcome(text=formatted, model_id=model_id, latency_ms=elapsed)

        elapsed = (time.perf_counter() - start) * 1000
        return FormattingOutcome(text=text, model_id=None, latency_ms=elapsed)

    def record_failure(self, model_id: str) -> None:
        """Record a model failure for backoff logic."""
        with _ROUTER_LOCK:
            self._failures[model_id] += 1
            failures = self._failures[model_id]

            if failures >= FAILURES_BEFORE_BACKOFF:
                # Exponential backoff: 2^failures seconds, max 5 minutes
                backoff_seconds = min(2 ** failures, MAX_BACKOFF_SECONDS)
                self._backoff_until[model_id] = time.time() + backoff_seconds
                print(f"[Router] {model_id} backing off for {backoff_seconds}s after {failures} failures")

    def record_success(self, model_id: str) -> None:
        """Record a model success, reset failure count."""
        with _ROUTER_LOCK:
            self._failures[model_id] = 0
            self._backoff_until[model_id] = 0


def reset_router_state() -> None:
    """Clear failure tracking (new process state, tests)."""
    with _ROUTER_LOCK:
        _MODEL_FAILURES.clear()
        _MODEL_BACKOFF_UNTIL.clear()
