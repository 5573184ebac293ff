"""
rodent: a portable Gopher (RFC 1436 / RFC 4266) protocol engine.
"""

from .address import (
    Address,
    BorrowedAddress,
    ConnectionState,
    parse_url,
    to_url,
    parent_selector,
)
from .directory import Directory, History, Recurse
from .errors import (
    GopherError,
    URLParseError,
    NetworkError,
    ResolveError,
    ConnectError,
    NotConnectedError,
    SendError,
    ReceiveError,
    ItemParseError,
    DirectoryClosedError,
    OwnershipError,
    TransferError,
)
from .item import Item, parse_item
from .itemtypes import ItemType
from .linereader import LineReader
from .log import configure_logging, get_logger
from .transfer import FileTransfer, download_file, retrieve

__version__ = "0.1.0"

__all__ = [
    "Address",
    "BorrowedAddress",
    "ConnectionState",
    "parse_url",
    "to_url",
    "parent_selector",
    "Directory",
    "History",
    "Recurse",
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
    "Item",
    "parse_item",
    "ItemType",
    "LineReader",
    "configure_logging",
    "get_logger",
    "FileTransfer",
    "download_file",
    "retrieve",
    "__version__",
]
