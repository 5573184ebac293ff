"""
Directory entries and the item-line parser.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from .address import Address, BorrowedAddress, to_url
from .constants import PARSE_FAILED_PREFIX
from .errors import ItemParseError
from .itemtypes import ItemType

HTTP_SELECTOR_PREFIX = "URL:"


@dataclass
class Item:
    """
    One line of a directory listing. ``target`` is owned by the item; callers
    get it through ``address`` as a read-only view.
    """

    char: str
    label: str
    target: Optional[Address] = None
    type: Optional[ItemType] = None
    raw: str = field(default="", repr=False)

    def __post_init__(self):
        if self.type is None:
            self.type = ItemType.from_char(self.char)

    @classmethod
    def diagnostic(cls, raw_line: str, logger: Optional[logging.Logger] = None) -> "Item":
        """Placeholder for a line that could not be parsed at all."""
        text = raw_line.rstrip("\r\n")
        return cls(
            ItemType.INTERNAL.value,
            f"{PARSE_FAILED_PREFIX}{text}",
            Address.sentinel(logger=logger),
            ItemType.INTERNAL,
            raw=text,
        )

    @property
    def address(self) -> Optional[BorrowedAddress]:
        if self.target is None:
            return None
        return self.target.borrow()

    @property
    def is_diagnostic(self) -> bool:
        return self.type is ItemType.INTERNAL or self.target is None or self.target.diagnostic

    def url(self) -> Optional[str]:
        if self.target is None:
            return None
        return to_url(self.target, self.type)

    def http_url(self) -> Optional[str]:
        """The web link behind an ``h`` entry whose selector is ``URL:<link>``."""
        if self.type is not ItemType.HTML or self.target is None:
            return None
        selector = self.target.selector or ""
        if not selector.startswith(HTTP_SELECTOR_PREFIX):
            return None
        return selector[len(HTTP_SELECTOR_PREFIX):]

    def describe(self) -> str:
        target = self.target.describe() if self.target is not None else "(null)"
        return f"[{self.char}] {self.label} -> {target}"


def parse_item(line: str, logger: Optional[logging.Logger] = None) -> Item:
    """
    Parse ``<type><label>\\t<selector>\\t<host>\\t<port>`` (terminator optional).

    A line carrying nothing but a label is accepted with ``target=None``;
    the caller decides how to patch it up.
    """
    if not line or line[0] in "\r\n":
        raise ItemParseError(line, "empty line")

    body = line[:-2] if line.endswith("\r\n") else line.rstrip("\r\n")
    if body == ".":
        raise ItemParseError(line, "termination line is not an item")

    char, rest = body[0], body[1:]
    fields = rest.split("\t")
    if len(fields) < 3:
        # Legacy/truncated line: no host to point at.
        return Item(char, fields[0].rstrip("\r\n"), None, raw=body)

    label, selector, host = fields[0], fields[1], fields[2]
    # Anything after the port (Gopher+ "+" marker and friends) is ignored.
    port = _parse_port(fields[3]) if len(fields) > 3 else 0
    target = Address(host, port, selector, ItemType.from_char(char), logger=logger)
    return Item(char, label, target, raw=body)


def _parse_port(text: str) -> int:
    text = text.strip()
    if text.isascii() and text.isdigit() and int(text) <= 0xFFFF:
        return int(text)
    return 0


__all__ = ["Item", "parse_item"]
