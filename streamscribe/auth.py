"""
Credential collaborator for the cloud backend.

The credential is owned by an external auth service; StreamScribe only
reads it and asks for a refresh after a 401.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional


class CredentialSource(ABC):
    """
    Contract the cloud backend needs from an auth service.

    Subclasses must implement:
    - is_authenticated(): Whether a user session exists
    - get_token(): Current bearer token, or None
    - refresh_token_if_needed(): Refresh the token; raise on failure
    """

    @abstractmethod
    def is_authenticated(self) -> bool:
        pass

    @abstractmethod
    def get_token(self) -> Optional[str]:
        pass

    @abstractmethod
    def refresh_token_if_needed(self) -> None:
        pass


class StaticTokenCredentials(CredentialSource):
    """
    Bearer token supplied by configuration (e.g. STREAMSCRIBE_TOKEN).

    An optional refresher callable returns a new token when the backend
    rejects the current one.
    """

    def __init__(self, token: str = "", refresher: Optional[Callable[[], str]] = None):
        self._token = token or None
        self._refresher = refresher

    def is_authenticated(self) -> bool:
        return self._token is not None

    def get_token(self) -> Optional[str]:
        return self._token

    def refresh_token_if_needed(self) -> None:
        """Fetch a new token via the refresher. No-op without one."""
        if self._refresher is None:
            return
        token = self._refresher()
        if not token:
            raise RuntimeError("Token refresh returned no token")
        self._token = token
