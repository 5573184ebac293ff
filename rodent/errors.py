"""
Exception hierarchy for the Gopher engine.

Protocol non-conformance is never raised: it is counted on the Directory and
repaired in place. Everything here aborts the operation that raised it.
"""

from __future__ import annotations

from typing import Optional


class GopherError(Exception):
    """Base class for every error raised by rodent."""


class URLParseError(GopherError, ValueError):
    def __init__(self, url: str, reason: str):
        super().__init__(f"Invalid gopher URL {url!r}: {reason}")
        self.url = url
        self.reason = reason


class NetworkError(GopherError):
    """A socket level failure. ``errno`` holds the OS error code when known."""

    def __init__(self, message: str, errno: Optional[int] = None):
        super().__init__(message)
        self.errno = errno


class ResolveError(NetworkError):
    pass


class ConnectError(NetworkError):
    pass


class NotConnectedError(NetworkError):
    pass


class SendError(NetworkError):
    pass


class ReceiveError(NetworkError):
    pass


class ItemParseError(GopherError, ValueError):
    def __init__(self, line: str, reason: str):
        super().__init__(f"{reason}: {line!r}")
        self.line = line
        self.reason = reason


class DirectoryClosedError(GopherError):
    pass


class OwnershipError(GopherError):
    pass


class TransferError(GopherError):
    def __init__(self, message: str, errno: Optional[int] = None):
        super().__init__(message)
        self.errno = errno


__all__ = [
    "GopherError",
    "URLParseError",
    "NetworkError",
    "ResolveError",
    "ConnectError",
    "NotConnectedError",
    "SendError",
    "ReceiveError",
    "ItemParseError",
    "DirectoryClosedError",
    "OwnershipError",
    "TransferError",
]
