"""Error types raised by the sync pipeline."""

from __future__ import annotations

from typing import Optional


class ConsoleError(Exception):
    """Base class for identity console errors."""


class ConfigError(ConsoleError, ValueError):
    """Raised when an environment variable holds an unusable value."""


class FetchError(ConsoleError):
    """A resource collection could not be retrieved at all (first page failed)."""

    def __init__(
        self,
        resource: str,
        message: str,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(f"{resource}: {message}")
        self.resource = resource
        self.message = message
        self.status_code = status_code

    @property
    def is_transport(self) -> bool:
        """True when the relay never answered (no HTTP status received)."""
        return self.status_code is None


class SyncError(ConsoleError):
    """A sync attempt failed; no processed set was produced."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.cause = cause

    @property
    def is_transport(self) -> bool:
        return isinstance(self.cause, FetchError) and self.cause.is_transport
