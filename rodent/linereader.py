"""
Reassembles CRLF-terminated protocol lines from a stream socket.

TCP gives no guarantee about where a server's writes end up split, so a line
can arrive in many pieces and several lines can arrive in one. The reader
peeks at what is available, and only consumes bytes once it knows they
belong to the current line, so nothing of the next line is ever read early.
"""

from __future__ import annotations

import logging
import socket
from typing import Iterator, Optional

from .constants import CRLF, PEEK_WINDOW
from .errors import ReceiveError
from .log import get_logger

_log = get_logger(__name__)

LF = 0x0A
CR = 0x0D


class LineReader:
    """
    ``read_line()`` returns one line including its CRLF terminator, or
    ``None`` once the peer has closed and everything was delivered.

    ``sock`` only needs ``recv(bufsize[, flags])`` with ``MSG_PEEK`` support.
    """

    def __init__(self, sock, window: int = PEEK_WINDOW, logger: Optional[logging.Logger] = None):
        if window < 1:
            raise ValueError("window must be at least one byte")
        self.sock = sock
        self.window = window
        self.logger = logger or _log
        self.lines_read = 0
        self.bare_lf_count = 0
        self.eof = False

    def read_line(self) -> Optional[bytes]:
        if self.eof:
            return None

        line = bytearray()
        while True:
            peeked = self._recv(self.window, socket.MSG_PEEK)
            if not peeked:
                # Graceful close. A dangling partial line is still handed out.
                self.eof = True
                if not line:
                    return None
                self.logger.warning("Connection closed mid-line, %d bytes unterminated", len(line))
                self.lines_read += 1
                return bytes(line)

            lf = peeked.find(b"\n")
            if lf < 0:
                # No terminator in sight: all of it belongs to this line.
                line += self._consume(len(peeked))
                continue

            line += self._consume(lf + 1)
            break

        # The CR may have arrived in an earlier chunk than its LF.
        if len(line) >= 2 and line[-2] == CR:
            self.lines_read += 1
            return bytes(line)

        self.bare_lf_count += 1
        self.logger.debug("Bare LF terminator, normalizing to CRLF")
        line[-1:] = CRLF
        self.lines_read += 1
        return bytes(line)

    def __iter__(self) -> Iterator[bytes]:
        while True:
            line = self.read_line()
            if line is None:
                return
            yield line

    def _consume(self, size: int) -> bytes:
        """Destructively read exactly ``size`` bytes that were already peeked."""
        data = bytearray()
        while len(data) < size:
            chunk = self._recv(size - len(data))
            if not chunk:
                raise ReceiveError(f"Stream ended while consuming {size} peeked bytes")
            data += chunk
        return bytes(data)

    def _recv(self, size: int, flags: int = 0) -> bytes:
        try:
            return self.sock.recv(size, flags)
        except OSError as e:
            raise ReceiveError(f"Socket error while reading a line: {e.strerror or e}", e.errno) from e


__all__ = ["LineReader"]
