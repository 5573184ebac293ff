"""
Shared fixtures: a loopback Gopher server that replays scripted byte
responses, and a fake socket that delivers a stream in fixed chunks.
"""

from __future__ import annotations

import errno
import socket
import socketserver
import threading
import time
from typing import Dict, List, Optional, Sequence, Union

import pytest

from rodent import ConnectionState

CRLF = "\r\n"

Payload = Union[bytes, str, Sequence[bytes]]


def menu(*lines: str, terminate: bool = True) -> bytes:
    """Build a CRLF listing; the terminator line is appended unless told not to."""
    body = list(lines)
    if terminate:
        body.append(".")
    return (CRLF.join(body) + CRLF).encode("utf-8")


def split_every(data: bytes, size: int) -> List[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


class ScriptedGopherServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True

    def __init__(self, host: str = "127.0.0.1", port: int = 0):
        self.responses: Dict[str, List[bytes]] = {}
        self.requests: List[str] = []
        self.chunk_delay = 0.0
        super().__init__((host, port), GopherRequestHandler)

    @property
    def host(self) -> str:
        return self.server_address[0]

    @property
    def port(self) -> int:
        return self.server_address[1]

    def url(self, path: str = "") -> str:
        return f"gopher://{self.host}:{self.port}/{path}"

    def serve(self, selector: str, payload: Payload, chunk_delay: Optional[float] = None) -> None:
        if isinstance(payload, str):
            chunks = [payload.encode("utf-8")]
        elif isinstance(payload, (bytes, bytearray)):
            chunks = [bytes(payload)]
        else:
            chunks = [bytes(c) for c in payload]
        self.responses[selector] = chunks
        if chunk_delay is not None:
            self.chunk_delay = chunk_delay

    def link(self, type_char: str, label: str, selector: str) -> str:
        return f"{type_char}{label}\t{selector}\t{self.host}\t{self.port}"


class GopherRequestHandler(socketserver.BaseRequestHandler):
    def handle(self):
        server: ScriptedGopherServer = self.server  # type: ignore[assignment]
        selector = self._read_selector()
        server.requests.append(selector)

        chunks = server.responses.get(selector)
        if chunks is None:
            chunks = [menu(f"3Selector not found: {selector or '/'}\tfake\tlocalhost\t0")]

        self.request.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        for chunk in chunks:
            try:
                self.request.sendall(chunk)
            except (BrokenPipeError, ConnectionResetError):
                return
            if server.chunk_delay:
                time.sleep(server.chunk_delay)

    def _read_selector(self) -> str:
        chunks = []
        self.request.settimeout(10)
        while True:
            data = self.request.recv(1024)
            if not data:
                break
            chunks.append(data)
            if b"\n" in data:
                break
        raw = b"".join(chunks).decode("utf-8", errors="replace")
        return raw.split("\n", 1)[0].rstrip("\r")


class ChunkedSocket:
    """
    Stand-in for a blocking stream socket. Each chunk "arrives" only once
    everything before it has been consumed, which is how a slow server looks
    from the client side. MSG_PEEK is honoured.
    """

    def __init__(self, chunks: Sequence[bytes]):
        self._pending = [bytes(c) for c in chunks if c]
        self._buffer = bytearray()
        self.recv_calls = 0

    @property
    def unread(self) -> bytes:
        return bytes(self._buffer) + b"".join(self._pending)

    def recv(self, size: int, flags: int = 0) -> bytes:
        self.recv_calls += 1
        if not self._buffer and self._pending:
            self._buffer += self._pending.pop(0)
        data = bytes(self._buffer[:size])
        if not flags & socket.MSG_PEEK:
            del self._buffer[:size]
        return data


class FailingSocket:
    def __init__(self, exc: OSError):
        self.exc = exc

    def recv(self, size: int, flags: int = 0) -> bytes:
        raise self.exc


class BrokenStreamSocket(ChunkedSocket):
    """
    Delivers its chunks, then fails every further read with ``exc``, like a
    server that resets the connection halfway through a response.
    """

    def __init__(self, chunks: Sequence[bytes], exc: OSError):
        super().__init__(chunks)
        self.exc = exc
        self.sent = bytearray()
        self.closed = False

    def recv(self, size: int, flags: int = 0) -> bytes:
        if not self._buffer and not self._pending:
            self.recv_calls += 1
            raise self.exc
        return super().recv(size, flags)

    def sendall(self, data: bytes) -> None:
        self.sent += data

    def setblocking(self, flag: bool) -> None:
        pass

    def shutdown(self, how: int) -> None:
        pass

    def close(self) -> None:
        self.closed = True


class SocketSpy:
    """Wraps a real socket, recording shutdown calls and optionally failing them."""

    def __init__(self, sock: socket.socket, fail_shutdown: bool = False, fail_close: bool = False):
        self._sock = sock
        self.fail_shutdown = fail_shutdown
        self.fail_close = fail_close
        self.shutdown_calls: List[int] = []
        self.closed = False

    def setblocking(self, flag: bool) -> None:
        self._sock.setblocking(flag)

    def recv(self, size: int, flags: int = 0) -> bytes:
        return self._sock.recv(size, flags)

    def shutdown(self, how: int) -> None:
        self.shutdown_calls.append(how)
        if self.fail_shutdown:
            raise OSError(errno.ENOTCONN, "Transport endpoint is not connected")
        self._sock.shutdown(how)

    def close(self) -> None:
        self._sock.close()
        self.closed = True
        if self.fail_close:
            raise OSError(errno.EBADF, "Bad file descriptor")


def attach_socket(address, sock) -> None:
    """Put ``address`` in the connected state over ``sock``."""
    address._sock = sock
    address.state = ConnectionState.CONNECTED


@pytest.fixture
def gopher_server():
    server = ScriptedGopherServer()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture
def closed_port() -> int:
    """A loopback port nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
