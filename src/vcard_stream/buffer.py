"""Byte buffer that starts in memory and moves itself to a temp file when it grows.

One ``SpillBuffer`` holds one logical vCard line. It is written once by the
unfolder, then read once by the parser (or, for large values, by the caller).
"""
from __future__ import annotations

import io
import logging
import math
import os
import tempfile
from typing import BinaryIO

logger = logging.getLogger(__name__)

DEFAULT_LARGE_VALUE_THRESHOLD = 1024 * 1024  # 1 MiB


class SpillBuffer:
    """Append-then-read buffer, memory-backed until ``threshold`` bytes are exceeded.

    The first write that pushes the total size strictly past ``threshold``
    copies everything written so far into a ``tempfile.TemporaryFile`` and all
    later writes go there. A buffer never moves back to memory.
    """

    def __init__(self, threshold: float | None = DEFAULT_LARGE_VALUE_THRESHOLD) -> None:
        self.threshold = math.inf if threshold is None else threshold
        self._file: BinaryIO = io.BytesIO()
        self._size = 0
        self._origin = 0
        self.spilled = False

    # ── writing ────────────────────────────────────────────────────────────────

    def write(self, data: bytes) -> int:
        self._size += len(data)
        if not self.spilled and self._size > self.threshold:
            self._spill()
        return self._file.write(data)

    def truncate_tail(self, count: int = 1) -> None:
        """Drop the last ``count`` bytes and leave the position at the end."""
        self._size = max(self._size - count, 0)
        self._file.truncate(self._size)
        self._file.seek(0, os.SEEK_END)

    def _spill(self) -> None:
        tmp = tempfile.TemporaryFile(prefix="vcard_stream_")
        tmp.write(self._file.getvalue())
        self._file.close()
        self._file = tmp
        self.spilled = True
        logger.debug("line buffer spilled to disk at %d bytes (threshold %s)", self._size, self.threshold)

    # ── reading ────────────────────────────────────────────────────────────────

    def read(self, size: int = -1) -> bytes:
        return self._file.read(size)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        return self._file.seek(offset, whence)

    def tell(self) -> int:
        return self._file.tell()

    def mark_origin(self) -> None:
        """Make the current position the place ``rewind`` returns to."""
        self._origin = self._file.tell()

    def rewind(self) -> None:
        self._file.seek(self._origin)

    def getvalue(self) -> bytes:
        """Everything from the origin on, regardless of the read position."""
        pos = self._file.tell()
        self._file.seek(self._origin)
        data = self._file.read()
        self._file.seek(pos)
        return data

    @property
    def size(self) -> int:
        return self._size

    @property
    def remaining(self) -> int:
        return self._size - self._file.tell()

    # ── lifecycle ──────────────────────────────────────────────────────────────

    @property
    def closed(self) -> bool:
        return self._file.closed

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> SpillBuffer:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        where = "disk" if self.spilled else "memory"
        return f"<SpillBuffer {self._size} bytes in {where}>"
