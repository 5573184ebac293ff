"""
Raw file retrieval: no line framing, the body runs until the server closes.
"""

from __future__ import annotations

import re
import tempfile
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Union

from . import events
from .address import Address, AddressLike, BorrowedAddress, as_owned
from .constants import RECV_CHUNK
from .errors import GopherError, ReceiveError, SendError, TransferError
from .itemtypes import ItemType

RE_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9._\-]+")

ProgressCallback = Callable[[int], None]
TransferCallback = Callable[["FileTransfer", int], None]


def retrieve(
    address: AddressLike,
    sink: BinaryIO,
    progress: Optional[ProgressCallback] = None,
    chunk_size: int = RECV_CHUNK,
    timeout: Optional[float] = None,
) -> int:
    """
    Request ``address`` and copy the raw response into ``sink``.

    ``progress`` gets the cumulative byte count after every chunk. Returns
    the total once the server closes the connection. Connection failures
    propagate as-is; anything going wrong mid-stream raises TransferError.
    """
    owned = as_owned(address)
    if not owned.connected:
        owned.connect(timeout=timeout)

    total = 0
    try:
        owned.send_line(owned.selector or "")
        while True:
            chunk = owned.recv(chunk_size)
            if not chunk:
                break
            sink.write(chunk)
            total += len(chunk)
            if progress is not None:
                progress(total)
    except (SendError, ReceiveError) as e:
        raise TransferError(f"Transfer from {owned.describe()} failed after {total} bytes: {e}", e.errno) from e
    finally:
        owned.disconnect()

    return total


class FileTransfer:
    """
    Downloads one gopherspace file to disk.

    Call ``setup()`` (or ``setup_temp()``), optionally register a callback
    with ``set_transfer_callback()``, then ``download()``.
    """

    def __init__(self):
        self._address: Optional[Address] = None
        self._path: Optional[Path] = None
        self._callback: Optional[TransferCallback] = None
        self.type = ItemType.UNKNOWN
        self.size = 0
        self.finished = False

    # ---------- Setup ----------

    def setup(
        self,
        address: AddressLike,
        type: Union[ItemType, str, None] = None,
        path: Union[str, Path, None] = None,
    ) -> None:
        owned = as_owned(address)
        item_type = ItemType.coerce(type if type is not None else owned.type)
        if not item_type.is_downloadable:
            raise TransferError(f"Entries of type {item_type.name} can't be downloaded as files")

        if path is None:
            target = Path(tempfile.gettempdir()) / self.basename(owned)
        else:
            target = Path(path)
            if target.is_dir():
                target = target / self.basename(owned)

        self._address = owned
        self._path = target
        self.type = item_type
        self.size = 0
        self.finished = False

    def setup_temp(self, address: AddressLike, type: Union[ItemType, str, None] = None) -> None:
        self.setup(address, type, None)

    def set_transfer_callback(self, callback: Optional[TransferCallback]) -> None:
        """``callback(transfer, transferred)`` runs after every received chunk."""
        self._callback = callback

    def basename(self, address: Union[Address, BorrowedAddress, None] = None) -> str:
        """Filesystem-safe name for the file: last selector segment, else the host."""
        address = address if address is not None else self._address
        if address is None:
            raise TransferError("No address to derive a file name from")
        segments = [s for s in (address.selector or "").split("/") if s]
        name = segments[-1] if segments else address.host
        name = RE_UNSAFE_FILENAME.sub("_", name).strip("._")
        return name or "download"

    # ---------- Accessors ----------

    @property
    def address(self) -> Optional[BorrowedAddress]:
        return self._address.borrow() if self._address is not None else None

    @property
    def path(self) -> Optional[str]:
        return str(self._path) if self._path is not None else None

    # ---------- Transfer ----------

    def download(self, timeout: Optional[float] = None) -> int:
        if self._address is None or self._path is None:
            raise TransferError("download() called before setup()")

        log = self._address.logger
        self.size = 0
        self.finished = False
        log.info("Downloading %s to %s", self._address.to_url(self.type), self._path)

        try:
            with open(self._path, "wb") as fh:
                total = retrieve(self._address, fh, progress=self._report, timeout=timeout)
        except OSError as e:
            self._discard_partial()
            raise TransferError(f"Can't write {self._path}: {e.strerror or e}", e.errno) from e
        except GopherError:
            self._discard_partial()
            raise

        self.size = total
        self.finished = True
        log.info("Downloaded %d bytes to %s", total, self._path)
        events.publish(events.TRANSFER_FINISHED, log, transfer=self)
        return total

    def _report(self, transferred: int) -> None:
        log = self._address.logger
        self.size = transferred
        if self._callback is not None:
            try:
                self._callback(self, transferred)
            except Exception as e:
                log.error("transfer callback error: %s", e)
        events.publish(events.TRANSFER_PROGRESS, log, transfer=self, transferred=transferred)

    def _discard_partial(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            self._address.logger.warning("Could not remove partial file %s: %s", self._path, e)

    def __repr__(self) -> str:
        url = self._address.to_url(self.type) if self._address is not None else None
        return f"FileTransfer(url={url!r}, path={self.path!r}, size={self.size}, finished={self.finished})"


def download_file(
    address: AddressLike,
    type: Union[ItemType, str, None] = None,
    path: Union[str, Path, None] = None,
    callback: Optional[TransferCallback] = None,
    timeout: Optional[float] = None,
) -> FileTransfer:
    """One-shot download; without ``path`` the file lands in the temp directory."""
    transfer = FileTransfer()
    transfer.setup(address, type, path)
    transfer.set_transfer_callback(callback)
    transfer.download(timeout=timeout)
    return transfer


__all__ = ["FileTransfer", "retrieve", "download_file"]
