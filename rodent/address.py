"""
Gopherspace addresses: URL parsing/serialization (RFC 4266) and the
connection lifecycle of a single address.
"""

from __future__ import annotations

import errno
import logging
import re
import socket
from enum import Enum
from typing import Optional, Tuple, Union

from . import events
from .constants import (
    CRLF,
    DEFAULT_PORT,
    DIAGNOSTIC_HOST,
    DIAGNOSTIC_PORT,
    DIAGNOSTIC_SELECTOR,
    ENCODING,
    ENCODING_ERRORS,
    RECV_CHUNK,
    URL_PREFIX,
    URL_SCHEME,
)
from .errors import (
    ConnectError,
    GopherError,
    NotConnectedError,
    OwnershipError,
    ReceiveError,
    ResolveError,
    SendError,
    URLParseError,
)
from .itemtypes import ItemType, is_type_char
from .linereader import LineReader
from .log import get_logger

_log = get_logger(__name__)

RE_SCHEME = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*)://")

TypeHint = Union[ItemType, str, None]


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Address:
    """
    A gopherspace resource (host, port, selector, type hint) plus, while
    connected, its open socket and resolved endpoint.

    ``selector=None`` means "no selector" and ``selector=""`` an explicitly
    empty one; both request the server root but serialize differently.
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        selector: Optional[str] = None,
        type: TypeHint = ItemType.UNKNOWN,
        *,
        diagnostic: bool = False,
        logger: Optional[logging.Logger] = None,
        encoding: str = ENCODING,
    ):
        if not 0 <= int(port) <= 0xFFFF:
            raise ValueError(f"Port out of range: {port}")
        self.host = host
        self.port = int(port)
        self.selector = selector
        self.type = ItemType.coerce(type)
        self.diagnostic = diagnostic
        self.logger = logger or _log
        self.encoding = encoding

        self.state = ConnectionState.DISCONNECTED
        self.endpoint: Optional[Tuple[str, int]] = None
        self.closed = False
        self._sock: Optional[socket.socket] = None

    # ---------- Construction ----------

    @classmethod
    def from_url(
        cls,
        url: str,
        default_port: int = DEFAULT_PORT,
        logger: Optional[logging.Logger] = None,
    ) -> "Address":
        return parse_url(url, default_port=default_port, logger=logger)

    @classmethod
    def sentinel(cls, logger: Optional[logging.Logger] = None) -> "Address":
        """Stand-in target for item lines that did not name one."""
        return cls(
            DIAGNOSTIC_HOST,
            DIAGNOSTIC_PORT,
            DIAGNOSTIC_SELECTOR,
            ItemType.INTERNAL,
            diagnostic=True,
            logger=logger,
        )

    def replicate(self) -> "Address":
        """Owned, disconnected copy of this address."""
        return Address(
            self.host,
            self.port,
            self.selector,
            self.type,
            diagnostic=self.diagnostic,
            logger=self.logger,
            encoding=self.encoding,
        )

    def borrow(self) -> "BorrowedAddress":
        return BorrowedAddress(self)

    # ---------- URLs & navigation ----------

    def to_url(self, type: TypeHint = None) -> str:
        return to_url(self, type)

    def has_parent(self) -> bool:
        return _has_parent(self.selector)

    def parent(self) -> Optional["Address"]:
        if not self.has_parent():
            return None
        return Address(
            self.host,
            self.port,
            parent_selector(self.selector),
            ItemType.DIR,
            logger=self.logger,
            encoding=self.encoding,
        )

    def describe(self) -> str:
        return f"{self.host} [{self.port}] {self.selector if self.selector is not None else '(null)'}"

    # ---------- Connection ----------

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def connect(self, timeout: Optional[float] = None) -> None:
        """
        Resolve the host (IPv4, stream socket) and open a TCP connection.

        Blocks until connected; without ``timeout`` a silent server blocks
        forever. On failure the address stays disconnected.
        """
        if self.closed:
            raise GopherError(f"Address {self.describe()} has been closed")
        if self.connected:
            self.logger.warning("connect(): %s is already connected", self.describe())
            return

        self.state = ConnectionState.CONNECTING
        try:
            endpoint = self._resolve()
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            try:
                sock.settimeout(timeout)
                sock.connect(endpoint)
            except OSError as e:
                sock.close()
                raise ConnectError(
                    f"Failed to connect to {self.host}:{self.port}: {e.strerror or e}",
                    e.errno,
                ) from e
        except GopherError as e:
            self.state = ConnectionState.DISCONNECTED
            self.logger.error("%s", e)
            raise

        self._sock = sock
        self.endpoint = endpoint
        self.state = ConnectionState.CONNECTED
        self.logger.info("Connected to %s (%s:%d)", self.describe(), endpoint[0], endpoint[1])
        events.publish(events.CONNECTION_ESTABLISHED, self.logger, address=self.borrow())

    def _resolve(self) -> Tuple[str, int]:
        try:
            infos = socket.getaddrinfo(self.host, self.port, socket.AF_INET, socket.SOCK_STREAM)
        except socket.gaierror as e:
            raise ResolveError(f"Failed to resolve {self.host}: {e.strerror}", e.errno) from e
        except UnicodeError as e:
            raise ResolveError(f"Failed to resolve {self.host}: {e}", errno.EINVAL) from e

        for family, _socktype, _proto, _canonname, sockaddr in infos:
            if family == socket.AF_INET:
                return sockaddr[0], sockaddr[1]
        raise ResolveError(f"Couldn't resolve an IPv4 address for {self.host}", errno.EAFNOSUPPORT)

    def disconnect(self) -> bool:
        """
        Close the connection. Returns False (bad descriptor) when there was
        nothing to close. Never raises: shutdown/close failures are logged.
        """
        sock = self._sock
        if sock is None:
            self.logger.debug("disconnect(): %s is not connected (bad descriptor)", self.describe())
            return False

        try:
            # Skip shutdown when the server already hung up.
            if not _peer_closed(sock):
                try:
                    sock.shutdown(socket.SHUT_RDWR)
                except OSError as e:
                    self.logger.warning("shutdown() failed for %s: %s", self.describe(), e)
        finally:
            try:
                sock.close()
            except OSError as e:
                self.logger.error("close() failed for %s: %s", self.describe(), e)
            self._sock = None
            self.endpoint = None
            self.state = ConnectionState.DISCONNECTED

        self.logger.debug("Disconnected from %s", self.describe())
        events.publish(events.CONNECTION_CLOSED, self.logger, address=self.borrow())
        return True

    def close(self) -> None:
        """Destroy the address, disconnecting first if needed."""
        if self.connected:
            self.disconnect()
        self.closed = True

    def __enter__(self) -> "Address":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    # ---------- Raw I/O ----------

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise NotConnectedError(f"{self.describe()} is not connected", errno.ENOTCONN)
        return self._sock

    def send_line(self, text: str) -> None:
        sock = self._require_socket()
        payload = text.encode(self.encoding, errors=ENCODING_ERRORS) + CRLF
        self.logger.debug("-> %r", payload)
        try:
            sock.sendall(payload)
        except OSError as e:
            raise SendError(f"Failed to send to {self.describe()}: {e.strerror or e}", e.errno) from e

    def recv(self, size: int = RECV_CHUNK) -> bytes:
        sock = self._require_socket()
        try:
            return sock.recv(size)
        except OSError as e:
            raise ReceiveError(f"Failed to receive from {self.describe()}: {e.strerror or e}", e.errno) from e

    def line_reader(self) -> LineReader:
        return LineReader(self._require_socket(), logger=self.logger)

    # ---------- Dunder ----------

    def _key(self):
        return (self.host, self.port, self.selector, self.type)

    def __eq__(self, other) -> bool:
        if isinstance(other, BorrowedAddress):
            other = other._target
        if not isinstance(other, Address):
            return NotImplemented
        return self._key() == other._key()

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"Address(host={self.host!r}, port={self.port}, selector={self.selector!r}, "
            f"type={self.type.name}, state={self.state.value})"
        )


class BorrowedAddress:
    """
    Read-only handle on an Address owned by a Directory or an Item.

    Holders may inspect and copy it (``replicate()``) but never connect,
    disconnect or close it.
    """

    __slots__ = ("_target",)

    def __init__(self, target: Address):
        self._target = target

    @property
    def host(self) -> str:
        return self._target.host

    @property
    def port(self) -> int:
        return self._target.port

    @property
    def selector(self) -> Optional[str]:
        return self._target.selector

    @property
    def type(self) -> ItemType:
        return self._target.type

    @property
    def diagnostic(self) -> bool:
        return self._target.diagnostic

    @property
    def state(self) -> ConnectionState:
        return self._target.state

    @property
    def connected(self) -> bool:
        return self._target.connected

    @property
    def endpoint(self) -> Optional[Tuple[str, int]]:
        return self._target.endpoint

    @property
    def logger(self) -> logging.Logger:
        return self._target.logger

    def to_url(self, type: TypeHint = None) -> str:
        return to_url(self._target, type)

    def has_parent(self) -> bool:
        return self._target.has_parent()

    def parent(self) -> Optional[Address]:
        return self._target.parent()

    def replicate(self) -> Address:
        return self._target.replicate()

    def describe(self) -> str:
        return self._target.describe()

    def connect(self, *args, **kwargs):
        raise OwnershipError("Can't connect a borrowed address; replicate() it first")

    def disconnect(self):
        raise OwnershipError("Can't disconnect a borrowed address")

    def close(self):
        raise OwnershipError("Can't free a read-only gopher address")

    def __eq__(self, other) -> bool:
        return self._target.__eq__(other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"BorrowedAddress({self._target!r})"


AddressLike = Union[Address, BorrowedAddress, str]


def as_owned(address: AddressLike, logger: Optional[logging.Logger] = None) -> Address:
    """Coerce a URL, a borrowed view or an owned address into an owned Address."""
    if isinstance(address, str):
        return parse_url(address, logger=logger)
    if isinstance(address, BorrowedAddress):
        return address.replicate()
    return address


def _peer_closed(sock: socket.socket) -> bool:
    """Non-destructively check whether the peer already closed its side."""
    try:
        sock.setblocking(False)
        return sock.recv(1, socket.MSG_PEEK) == b""
    except BlockingIOError:
        return False
    except ConnectionError:
        return True
    except OSError:
        return False


# ---------- URL handling ----------

def parse_url(
    url: str,
    default_port: int = DEFAULT_PORT,
    logger: Optional[logging.Logger] = None,
) -> Address:
    """
    Parse ``[gopher://]host[:port][/[type]selector]`` into an Address.

    Only the scheme is strict; a missing or bogus port falls back to
    ``default_port`` and a missing path means the root directory.
    """
    log = logger or _log
    body = url.strip()

    m = RE_SCHEME.match(body)
    if m:
        if m.group(1).lower() != URL_SCHEME:
            raise URLParseError(url, f"unsupported scheme {m.group(1)!r}")
        body = body[m.end():]

    authority, sep, item_path = body.partition("/")
    host, colon, port_str = authority.partition(":")
    if not host:
        raise URLParseError(url, "missing host")

    port = default_port
    if colon:
        port = _parse_port(port_str, default_port, url, log)

    if not sep or not item_path:
        return Address(host, port, None, ItemType.DIR, logger=logger)

    type_char, selector = item_path[0], item_path[1:]
    if not is_type_char(type_char):
        # Legacy URL without a type character: the whole path is the selector.
        type_char, selector = ItemType.DIR.value, item_path
    if selector in ("", "/"):
        selector = None

    return Address(host, port, selector, ItemType(type_char), logger=logger)


def _parse_port(text: str, default_port: int, url: str, log: logging.Logger) -> int:
    if not text:
        return default_port
    if text.isascii() and text.isdigit() and 0 < int(text) <= 0xFFFF:
        return int(text)
    log.warning("Invalid port %r in %r, using %d", text, url, default_port)
    return default_port


def to_url(address: Union[Address, BorrowedAddress], type: TypeHint = None) -> str:
    """
    Render an RFC 4266 URL. The port is always explicit, and a type
    character precedes any selector (directory when the hint is unknown).
    """
    item_type = ItemType.coerce(type if type is not None else address.type)
    url = f"{URL_PREFIX}{address.host}:{address.port}/"
    if address.selector is not None:
        url += item_type.url_char + address.selector
    return url


def _has_parent(selector: Optional[str]) -> bool:
    return selector is not None and selector.strip("/") != ""


def parent_selector(selector: Optional[str]) -> Optional[str]:
    """
    One level up in a ``/``-delimited selector; ``None`` stands for the root.
    """
    if not _has_parent(selector):
        return None
    trimmed = selector.rstrip("/")
    if "/" not in trimmed:
        return None
    parent = trimmed.rsplit("/", 1)[0]
    return parent or None


__all__ = [
    "Address",
    "BorrowedAddress",
    "AddressLike",
    "ConnectionState",
    "as_owned",
    "parse_url",
    "to_url",
    "parent_selector",
]
