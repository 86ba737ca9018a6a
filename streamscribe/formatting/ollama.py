"""
Local LLM formatter through an Ollama endpoint.
"""

from typing import Optional

import requests

from . import FormattingProvider, FORMATTING_TEMPERATURE, MAX_OUTPUT_TOKENS, REQUEST_TIMEOUT
from ..errors import FormattingFailure


DEFAULT_OLLAMA_URL = "http://localhost:11434"

_session = requests.Session()


class OllamaFormatter(FormattingProvider):
    """Formatting with a model served by a local Ollama instance."""

    name = "ollama"

    def __init__(self, model: str, url: str = DEFAULT_OLLAMA_URL):
        super().__init__(model)
        self.url = (url or DEFAULT_OLLAMA_URL).rstrip("/")

    def _complete(self, system_prompt: str, user_prompt: str) -> Optional[str]:
        data = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "stream": False,
            "options": {
                "temperature": FORMATTING_TEMPERATURE,
                "num_predict": MAX_OUTPUT_TOKENS,
            },
        }

        response = _session.post(f"{self.url}/api/chat", json=data, timeout=REQUEST_TIMEOUT)

        if not response.ok:
            raise FormattingFailure(f"Ollama API error: {response.status_code}")

        return (response.json().get("message") or {}).get("content") or ""
