"""
Directory requests and the browsing history that links fetched directories.
"""

from __future__ import annotations

import logging
from enum import IntFlag
from typing import Iterator, List, Optional, Tuple

from .address import Address, AddressLike, BorrowedAddress, as_owned, to_url
from .constants import ENCODING_ERRORS, TERMINATOR_LINE
from .errors import DirectoryClosedError, ItemParseError, NotConnectedError, ReceiveError
from .item import Item, parse_item
from .itemtypes import ItemType


class Recurse(IntFlag):
    """Which neighbours ``Directory.free()`` takes down along with it."""

    NONE = 0
    FORWARD = 1
    BACKWARD = 2
    BOTH = FORWARD | BACKWARD


class History:
    """
    Linear browsing history: an ordered sequence of Directories plus the one
    that is current. Pushing from anywhere but the tail drops what came
    after it, like a web browser.
    """

    def __init__(self):
        self._entries: List[Directory] = []
        self.current: Optional[Directory] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator["Directory"]:
        return iter(tuple(self._entries))

    @property
    def entries(self) -> Tuple["Directory", ...]:
        return tuple(self._entries)

    def index(self, directory: "Directory") -> int:
        for idx, entry in enumerate(self._entries):
            if entry is directory:
                return idx
        raise DirectoryClosedError("Directory is not part of this history")

    def adopt(self, directory: "Directory") -> None:
        self._entries.append(directory)
        directory.history = self
        if self.current is None:
            self.current = directory

    def attach_after(self, anchor: "Directory", directory: "Directory") -> None:
        """Make ``directory`` the successor of ``anchor``, dropping the old forward chain."""
        self.truncate_forward(anchor)
        directory.history.remove(directory)
        self._entries.append(directory)
        directory.history = self
        self.current = directory

    def before(self, directory: "Directory") -> Optional["Directory"]:
        idx = self.index(directory)
        return self._entries[idx - 1] if idx > 0 else None

    def after(self, directory: "Directory") -> Optional["Directory"]:
        idx = self.index(directory)
        return self._entries[idx + 1] if idx + 1 < len(self._entries) else None

    def truncate_forward(self, directory: "Directory") -> int:
        idx = self.index(directory)
        dropped = self._entries[idx + 1:]
        del self._entries[idx + 1:]
        return self._release_all(dropped, directory)

    def truncate_backward(self, directory: "Directory") -> int:
        idx = self.index(directory)
        dropped = self._entries[:idx]
        del self._entries[:idx]
        return self._release_all(dropped, directory)

    def remove(self, directory: "Directory") -> None:
        idx = self.index(directory)
        del self._entries[idx]
        if self.current is directory:
            if idx > 0:
                self.current = self._entries[idx - 1]
            elif self._entries:
                self.current = self._entries[0]
            else:
                self.current = None

    def _release_all(self, dropped: List["Directory"], survivor: "Directory") -> int:
        for entry in dropped:
            if self.current is entry:
                self.current = survivor
            entry._release()
        return len(dropped)


class Directory:
    """
    Result of a directory request: ordered items, a count of the server's
    protocol slips, and a place in a browsing History.

    The Directory owns its Address; freeing it disconnects that Address.
    """

    def __init__(self, address: Address, history: Optional[History] = None):
        self._address = address
        self._items: List[Item] = []
        self._errors = 0
        self.terminated = False
        self.bare_lf_count = 0
        self.closed = False
        self.history: History = history if history is not None else History()
        self.history.adopt(self)

    @property
    def logger(self) -> logging.Logger:
        return self._address.logger

    # ---------- Requests ----------

    @classmethod
    def request(cls, address: Address) -> "Directory":
        """
        Send the address's selector over its open connection and parse the
        listing until the terminator or the peer's close.

        Only failing to send is fatal: malformed lines, blank lines and a
        missing terminator are counted in ``error_count()`` and patched.
        """
        if not address.connected:
            raise NotConnectedError("Cannot retrieve directory if not previously connected")

        log = address.logger
        address.send_line(address.selector or "")
        directory = cls(address)

        reader = address.line_reader()
        cut_short = False
        while True:
            try:
                raw = reader.read_line()
            except ReceiveError as e:
                log.error("Listing from %s cut short: %s", address.describe(), e)
                directory._count_error("receive error")
                cut_short = True
                break
            if raw is None:
                break

            if raw in (TERMINATOR_LINE, b"."):
                directory.terminated = True
                continue
            if raw[:1] == b"\r":
                directory._count_error("blank line")
                continue

            text = raw.decode(address.encoding, errors=ENCODING_ERRORS)
            try:
                item = parse_item(text, logger=log)
            except ItemParseError as e:
                directory._count_error(str(e))
                item = Item.diagnostic(text, logger=log)
            else:
                if item.target is None:
                    directory._count_error(f"incomplete item line {text.rstrip()!r}")
                    item.target = Address.sentinel(logger=log)
            directory._items.append(item)

        directory.bare_lf_count = reader.bare_lf_count
        # A cut-short listing already counted its error.
        if not directory.terminated and not cut_short:
            directory._count_error("missing termination line")

        log.info(
            "Directory %s: %d items, %d errors",
            address.describe(),
            len(directory._items),
            directory._errors,
        )
        return directory

    @classmethod
    def fetch(cls, address: AddressLike, timeout: Optional[float] = None) -> "Directory":
        """Connect (if needed), request and disconnect in one go."""
        owned = as_owned(address)
        if not owned.connected:
            owned.connect(timeout=timeout)
        try:
            return cls.request(owned)
        finally:
            owned.disconnect()

    def _count_error(self, reason: str) -> None:
        self._errors += 1
        self.logger.warning("Non-conforming listing from %s: %s", self._address.describe(), reason)

    # ---------- Accessors ----------

    @property
    def address(self) -> BorrowedAddress:
        return self._address.borrow()

    def url(self) -> str:
        return to_url(self._address, ItemType.DIR)

    def items(self) -> Tuple[Item, ...]:
        return tuple(self._items)

    def items_count(self) -> int:
        return len(self._items)

    def error_count(self) -> int:
        return self._errors

    def __iter__(self) -> Iterator[Item]:
        return iter(self.items())

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> Item:
        return self._items[index]

    @property
    def is_current(self) -> bool:
        return self.history.current is self

    # ---------- Navigation ----------

    def push(self, address: AddressLike, timeout: Optional[float] = None) -> "Directory":
        """
        Fetch ``address`` and link the result right after this Directory.
        Any forward history from here is freed. If the fetch fails the
        history is left untouched.
        """
        self._ensure_open()
        owned = as_owned(address, logger=self.logger)
        if owned is address:
            # The caller keeps the Address it passed in; history gets a copy.
            owned = owned.replicate()
        directory = Directory.fetch(owned, timeout=timeout)
        self.history.attach_after(self, directory)
        return directory

    def has_prev(self) -> bool:
        self._ensure_open()
        return self.history.before(self) is not None

    def has_next(self) -> bool:
        self._ensure_open()
        return self.history.after(self) is not None

    def prev(self) -> Optional["Directory"]:
        self._ensure_open()
        directory = self.history.before(self)
        if directory is not None:
            self.history.current = directory
        return directory

    def next(self) -> Optional["Directory"]:
        self._ensure_open()
        directory = self.history.after(self)
        if directory is not None:
            self.history.current = directory
        return directory

    def has_parent(self) -> bool:
        return self._address.has_parent()

    def parent(self) -> Optional[Address]:
        return self._address.parent()

    def go_parent(self, timeout: Optional[float] = None) -> Optional["Directory"]:
        parent = self.parent()
        if parent is None:
            return None
        return self.push(parent, timeout=timeout)

    # ---------- Lifetime ----------

    def truncate_forward(self) -> int:
        self._ensure_open()
        return self.history.truncate_forward(self)

    def truncate_backward(self) -> int:
        self._ensure_open()
        return self.history.truncate_backward(self)

    def close(self) -> None:
        if self.closed:
            return
        self.history.remove(self)
        self._release()

    def free(self, recurse: Recurse = Recurse.NONE, inclusive: bool = True) -> None:
        if self.closed:
            return
        if recurse & Recurse.FORWARD:
            self.truncate_forward()
        if recurse & Recurse.BACKWARD:
            self.truncate_backward()
        if inclusive:
            self.close()

    def _release(self) -> None:
        self._address.disconnect()
        self._items.clear()
        self.closed = True

    def _ensure_open(self) -> None:
        if self.closed:
            raise DirectoryClosedError(f"Directory {self.url()} has been freed")

    def __enter__(self) -> "Directory":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.free(Recurse.BOTH)

    def __repr__(self) -> str:
        return (
            f"Directory({self.url()!r}, items={len(self._items)}, errors={self._errors}, "
            f"closed={self.closed})"
        )


__all__ = ["Directory", "History", "Recurse"]
