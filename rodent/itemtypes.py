"""
Gopher entry types (RFC 1436 plus the common de facto extensions).
"""

from __future__ import annotations

from enum import Enum
from typing import Union


class ItemType(str, Enum):
    TEXT = "0"
    DIR = "1"
    CSO = "2"
    ERROR = "3"
    BINHEX = "4"
    DOS = "5"
    UUENCODED = "6"
    SEARCH = "7"
    TELNET = "8"
    BINARY = "9"
    MIRROR = "+"
    GIF = "g"
    IMAGE = "I"
    TN3270 = "T"
    HTML = "h"
    INFO = "i"
    SOUND = "s"
    DOC = "d"
    PDF = "P"
    PNG = "p"
    RTF = "r"
    XML = "X"
    BITMAP = ":"
    MOVIE = ";"
    AUDIO = "<"

    # Not wire types: UNKNOWN is "no meaningful hint", INTERNAL marks
    # entries synthesized by the engine itself.
    UNKNOWN = "?"
    INTERNAL = "*"

    @classmethod
    def from_char(cls, char: str) -> "ItemType":
        """Map a wire type character; anything unrecognized is UNKNOWN."""
        if char in _WIRE_CHARS:
            return cls(char)
        return cls.UNKNOWN

    @classmethod
    def coerce(cls, value: Union["ItemType", str, None]) -> "ItemType":
        if value is None:
            return cls.UNKNOWN
        if isinstance(value, cls):
            return value
        return cls.from_char(value)

    @property
    def char(self) -> str:
        return self.value

    @property
    def is_wire_type(self) -> bool:
        return self not in (ItemType.UNKNOWN, ItemType.INTERNAL)

    @property
    def url_char(self) -> str:
        """Type character for RFC 4266 URLs; meaningless hints become DIR."""
        if self.is_wire_type:
            return self.value
        return ItemType.DIR.value

    @property
    def is_directory(self) -> bool:
        return self is ItemType.DIR

    @property
    def is_informational(self) -> bool:
        return self in (ItemType.INFO, ItemType.ERROR, ItemType.INTERNAL)

    @property
    def is_text(self) -> bool:
        return self in (ItemType.TEXT, ItemType.XML)

    @property
    def is_image(self) -> bool:
        return self in (ItemType.GIF, ItemType.IMAGE, ItemType.BITMAP, ItemType.PNG)

    @property
    def is_link(self) -> bool:
        """Entries handed off to another program rather than fetched."""
        return self in (ItemType.TELNET, ItemType.TN3270, ItemType.HTML)

    @property
    def is_interactive(self) -> bool:
        return self in (ItemType.SEARCH, ItemType.CSO, ItemType.TELNET, ItemType.TN3270)

    @property
    def is_downloadable(self) -> bool:
        """Whether a raw file transfer makes sense for this entry type."""
        if self.is_directory or self.is_informational or self.is_interactive:
            return False
        return True


_WIRE_CHARS = frozenset(t.value for t in ItemType if t.is_wire_type)


def is_type_char(char: str) -> bool:
    return char in _WIRE_CHARS


__all__ = ["ItemType", "is_type_char"]
