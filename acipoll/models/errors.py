"""Error taxonomy for the poller."""

from typing import Optional


class PollerError(Exception):
    """Base class for all poller errors."""


class NetworkError(PollerError):
    """
    Transport failure or non-success HTTP status.

    Returned by value inside a FetchResult; callers log it and treat the
    affected item as contributing nothing.
    """

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    def __str__(self) -> str:
        if self.code is not None:
            return f"HTTP {self.code}: {self.message}"
        return self.message


class FileIOError(PollerError):
    """An output file could not be opened or written."""

    def __init__(self, path: str, cause: OSError):
        super().__init__(f"cannot write {path}: {cause}")
        self.path = path
        self.cause = cause


class ProtocolViolation(PollerError):
    """A coordination primitive was used incorrectly. Always a bug."""
