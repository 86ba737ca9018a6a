"""
LLM formatting providers.

Formatting is best-effort: format() never raises and hands back the
original text on any failure, so a transcript is never lost to it.
"""

from abc import ABC, abstractmethod
from typing import Optional
import time

from ..errors import FormattingFailure
from ..prompt import construct_formatter_prompt, extract_formatted_text
from ..types import FormatContext


FORMATTING_TEMPERATURE = 0.1  # Low temperature for consistent formatting
MAX_OUTPUT_TOKENS = 2000
REQUEST_TIMEOUT = 15


class FormattingProvider(ABC):
    """
    Base class for formatting providers.

    Subclasses must implement:
    - _complete(): Send system + user messages, return the raw model reply
    """

    name: str = "base"

    def __init__(self, model: str):
        self.model = model

    def format(self, text: str, context: Optional[FormatContext] = None) -> str:
        """
        Format a transcript. Never raises.

        Args:
            text: Raw transcript
            context: Session context for the system prompt

        Returns:
            Formatted text, or the original text if anything failed
        """
        try:
            return self.format_strict(text, context)
        except Exception as e:
            print(f"[{self.name}] Formatting failed, using unformatted text: {e}")
            return text

    def format_strict(self, text: str, context: Optional[FormatContext] = None) -> str:
        """
        Format a transcript, raising FormattingFailure on any error.

        Used by the router to decide whether to try a fallback model.
        """
        start = time.perf_counter()
        try:
            system_prompt = construct_formatter_prompt(context)
            raw = self._complete(system_prompt, text)
        except FormattingFailure:
            raise
        except Exception as e:
            raise FormattingFailure(f"{self.name} ({self.model}) failed: {e}") from e

        if raw is None:
            raise FormattingFailure(f"{self.name} ({self.model}) returned no content")

        formatted = extract_formatted_text(raw)
        elapsed = (time.perf_counter() - start) * 1000
        print(f"[{self.name}] Formatted {len(text)} -> {len(formatted)} chars in {elapsed/1000:.2f}s")
        return formatted

    @abstractmethod
    def _complete(self, system_prompt: str, user_prompt: str) -> Optional[str]:
        pass
