"""Turn a chunked byte stream into logical vCard lines.

``iter_chunks`` accepts the supported input shapes and yields byte chunks;
``LineUnfolder`` undoes line folding (and, for 2.1, quoted-printable soft
breaks) and hands out one ``SpillBuffer`` per logical line.
"""
from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from typing import Any

from .buffer import DEFAULT_LARGE_VALUE_THRESHOLD, SpillBuffer

DEFAULT_CHUNK_SIZE = 64 * 1024

_CR = 0x0D
_LF = 0x0A
_SP = 0x20
_TAB = 0x09
_EQ = 0x3D

_LINE_END = re.compile(rb"[\r\n]")
_QP_PARAM = re.compile(rb";ENCODING=QUOTED-PRINTABLE", re.IGNORECASE)

# ── unfolder states ───────────────────────────────────────────────────────────
_READING = 0
_AFTER_CR = 1     # saw CR as the last byte of a chunk; an LF may follow
_AFTER_BREAK = 2  # line ended; the next byte decides fold / soft break / new line


def _as_bytes(chunk: Any) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk)


def find_colon(block: bytes, in_quotes: bool = False) -> tuple[int, bool]:
    """Index of the first ``:`` outside double quotes, or -1.

    ``in_quotes`` carries the quote state across blocks; the returned flag is
    the state at the end of ``block`` when no colon was found.
    """
    pos = 0
    while True:
        quote = block.find(b'"', pos)
        if in_quotes:
            if quote < 0:
                return -1, True
            in_quotes = False
            pos = quote + 1
            continue
        colon = block.find(b":", pos)
        if colon >= 0 and (quote < 0 or colon < quote):
            return colon, False
        if quote < 0:
            return -1, False
        in_quotes = True
        pos = quote + 1


def iter_chunks(source: Any, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """Turn any supported input into a stream of non-empty byte chunks.

    Accepts bytes-like objects and ``str`` (whole input at once), binary or
    text file-likes (anything with ``read``), or an iterable of chunks.
    """
    if isinstance(source, (bytes, bytearray, memoryview, str)):
        data = _as_bytes(source)
        if data:
            yield data
        return
    if hasattr(source, "read"):
        while True:
            chunk = source.read(chunk_size)
            if not chunk:
                return
            yield _as_bytes(chunk)
    for chunk in source:
        if chunk:
            yield _as_bytes(chunk)


class LineUnfolder:
    """Rebuild logical vCard lines from a stream of byte chunks.

    Iterating yields one fresh ``SpillBuffer`` per logical line, rewound to its
    start. Line folding (a line break followed by a space or tab) is undone;
    with ``quoted_printable_aware`` set, a trailing ``=`` on a quoted-printable
    property also joins the next physical line. Where chunk boundaries fall
    has no effect on the result.
    """

    def __init__(
        self,
        chunks: Iterable[bytes],
        threshold: float | None = DEFAULT_LARGE_VALUE_THRESHOLD,
        quoted_printable_aware: bool = False,
    ) -> None:
        self._chunks = chunks
        self.threshold = threshold
        self.quoted_printable_aware = quoted_printable_aware

    def __iter__(self) -> Iterator[SpillBuffer]:
        self._state = _READING
        self._new_line()
        for chunk in self._chunks:
            yield from self._feed(chunk)
        if self._has_content:
            yield self._finish_line()
        else:
            self._buffer.close()

    # ── per-line state ─────────────────────────────────────────────────────────

    def _new_line(self) -> None:
        self._buffer = SpillBuffer(self.threshold)
        self._has_content = False
        self._last_byte: int | None = None
        self._head = bytearray()   # parameter section of the first physical line
        self._head_done = False
        self._head_quoted = False

    def _finish_line(self) -> SpillBuffer:
        buffer = self._buffer
        buffer.seek(0)
        return buffer

    # ── chunk processing ───────────────────────────────────────────────────────

    def _feed(self, chunk: bytes) -> Iterator[SpillBuffer]:
        pos = 0
        end = len(chunk)
        while pos < end:
            if self._state == _AFTER_CR:
                self._state = _AFTER_BREAK
                if chunk[pos] == _LF:
                    pos += 1
                    continue

            if self._state == _AFTER_BREAK:
                self._state = _READING
                byte = chunk[pos]
                if byte == _SP or byte == _TAB:
                    pos += 1
                elif self._soft_break():
                    self._buffer.truncate_tail(1)
                    self._last_byte = None
                else:
                    if self._has_content:
                        yield self._finish_line()
                    else:
                        self._buffer.close()
                    self._new_line()
                continue

            match = _LINE_END.search(chunk, pos)
            stop = match.start() if match else end
            if stop > pos:
                self._append(chunk[pos:stop])
            pos = stop
            if match is None:
                break

            self._head_done = True
            pos += 1
            if chunk[stop] == _CR:
                if pos < end:
                    self._state = _AFTER_BREAK
                    if chunk[pos] == _LF:
                        pos += 1
                else:
                    self._state = _AFTER_CR
            else:
                self._state = _AFTER_BREAK

    def _append(self, content: bytes) -> None:
        self._buffer.write(content)
        self._has_content = True
        self._last_byte = content[-1]
        if not self._head_done:
            colon, self._head_quoted = find_colon(content, self._head_quoted)
            if colon < 0:
                self._head += content
            else:
                self._head += content[:colon]
                self._head_done = True

    def _soft_break(self) -> bool:
        return (
            self.quoted_printable_aware
            and self._last_byte == _EQ
            and _QP_PARAM.search(self._head) is not None
        )
