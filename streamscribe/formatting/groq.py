"""
Groq formatter using the groq SDK.
"""

import threading
from typing import Optional

from . import FormattingProvider, FORMATTING_TEMPERATURE, MAX_OUTPUT_TOKENS, REQUEST_TIMEOUT
from ..errors import FormattingFailure


class GroqFormatter(FormattingProvider):
    """Fast remote formatting through Groq-hosted models."""

    name = "groq"

    def __init__(self, api_key: str, model: str = "openai/gpt-oss-120b"):
        super().__init__(model)
        self.api_key = api_key
        self._client = None
        self._lock = threading.Lock()

    def _get_client(self):
        """Lazy-load Groq client. Thread-safe."""
        if self._client is not None:
            return self._client

        with self._lock:
            if self._client is None:
                from groq import Groq

                self._client = Groq(api_key=self.api_key, timeout=REQUEST_TIMEOUT)
        return self._client

    def _complete(self, system_prompt: str, user_prompt: str) -> Optional[str]:
        if not self.api_key:
            raise FormattingFailure("groq API key missing")

        completion = self._get_client().chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=FORMATTING_TEMPERATURE,
            max_completion_tokens=MAX_OUTPUT_TOKENS,
        )
        return completion.choices[0].message.content
