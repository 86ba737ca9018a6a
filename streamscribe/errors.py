"""
Error taxonomy for transcription and formatting.

Transcription errors propagate out of transcribe()/flush(); the caller
decides what the user sees. FormattingFailure never leaves a formatter's
format() call.
"""

from typing import Any, Optional


class StreamScribeError(Exception):
    """Base class for all StreamScribe errors."""


class TranscriptionError(StreamScribeError):
    """A transcription call failed. Audio for that attempt is already discarded."""

    def __init__(
        self,
        message: str,
        provider: str = "",
        status: Optional[int] = None,
        status_text: str = "",
    ):
        super().__init__(message)
        self.provider = provider
        self.status = status
        self.status_text = status_text


class Unauthenticated(TranscriptionError):
    """No credential available. No request was made."""


class AuthExpired(TranscriptionError):
    """Backend rejected the credential (401), after any permitted retry."""


class EntitlementRequired(TranscriptionError):
    """Backend requires a subscription or entitlement (403)."""


class RateLimited(TranscriptionError):
    """Backend rate or usage limit hit (429)."""

    def __init__(self, message: str, payload: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        self.payload = payload


class PayloadTooLarge(TranscriptionError):
    """Encoded audio exceeds the backend's upload limit. Never sent."""

    def __init__(self, message: str, size: int, limit: int, **kwargs):
        super().__init__(message, **kwargs)
        self.size = size
        self.limit = limit


class BackendError(TranscriptionError):
    """Any other non-2xx response, unsuccessful result, or transport failure."""

    def __init__(self, message: str, body: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.body = body


class FormattingFailure(StreamScribeError):
    """Formatting failed. Always recovered by returning the unformatted text."""
