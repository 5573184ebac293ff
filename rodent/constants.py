"""
Protocol constants and tunables shared by the rodent modules.
"""

from __future__ import annotations

DEFAULT_PORT = 70
URL_SCHEME = "gopher"
URL_PREFIX = "gopher://"

CRLF = b"\r\n"
TERMINATOR_LINE = b".\r\n"

# Bytes peeked per scan while looking for a line terminator.
PEEK_WINDOW = 200

# Bytes requested per recv() when streaming a file.
RECV_CHUNK = 4096

# Wire text encoding; servers are ASCII by the RFC but many send UTF-8.
ENCODING = "utf-8"
ENCODING_ERRORS = "replace"

# Sentinel address given to item lines that carry no target.
DIAGNOSTIC_HOST = "error.host"
DIAGNOSTIC_PORT = 0
DIAGNOSTIC_SELECTOR = "(MALFORMED)"

PARSE_FAILED_PREFIX = "PARSING FAILED: "

__all__ = [
    "DEFAULT_PORT",
    "URL_SCHEME",
    "URL_PREFIX",
    "CRLF",
    "TERMINATOR_LINE",
    "PEEK_WINDOW",
    "RECV_CHUNK",
    "ENCODING",
    "ENCODING_ERRORS",
    "DIAGNOSTIC_HOST",
    "DIAGNOSTIC_PORT",
    "DIAGNOSTIC_SELECTOR",
    "PARSE_FAILED_PREFIX",
]
