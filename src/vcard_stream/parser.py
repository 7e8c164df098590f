"""Streaming vCard parser for versions 2.1, 3.0 and 4.0.

The input is read in chunks and unfolded into logical lines; each line is
split into name, parameters and value and handed to a sink. Values larger
than the large-value threshold are never read into memory: the sink gets the
line's ``SpillBuffer``, positioned at the start of the value.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from typing import Any

from .buffer import SpillBuffer
from .config import Settings, normalize_threshold
from .dialects import V40, dialect_for
from .handler import CardBuilder, PropertySink, PropertyValue
from .unfold import DEFAULT_CHUNK_SIZE, LineUnfolder, find_colon, iter_chunks

logger = logging.getLogger(__name__)

_HEAD_BLOCK = 256
_VERSION_PREFIX = b"VERSION:"
_VERSION_MAX_LINE = 64
_LINE_END = re.compile(rb"[\r\n]")
# semicolons outside double-quoted parameter values
_PARAM_SPLIT = re.compile(r';(?=(?:[^"]*"[^"]*")*[^"]*$)')

Property = tuple[str, dict[str, str], PropertyValue, str | None, int | None]


# ── Version detection ─────────────────────────────────────────────────────────

def _version_candidate(line: bytearray) -> bool:
    if len(line) > _VERSION_MAX_LINE:
        return False
    head = bytes(line[: len(_VERSION_PREFIX)]).upper()
    return _VERSION_PREFIX.startswith(head)


def _version_value(line: bytearray) -> str | None:
    if len(line) < len(_VERSION_PREFIX) or not _version_candidate(line):
        return None
    return bytes(line[len(_VERSION_PREFIX):]).decode("ascii", errors="replace").strip()


def _replay(seen: SpillBuffer, rest: Iterator[bytes]) -> Iterator[bytes]:
    try:
        seen.seek(0)
        while block := seen.read(DEFAULT_CHUNK_SIZE):
            yield block
    finally:
        seen.close()
    yield from rest


def detect_version(
    chunks: Iterable[bytes],
    threshold: float | None = None,
) -> tuple[str | None, Iterator[bytes]]:
    """Find the ``VERSION:<value>`` line without consuming the input.

    Returns the version (or ``None``) and an iterator that yields the whole
    input again from the start. Bytes read while scanning are held in a
    ``SpillBuffer`` so non-seekable sources work too.
    """
    rest = iter(chunks)
    seen = SpillBuffer(threshold)
    line = bytearray()
    candidate = True
    version = None

    for chunk in rest:
        seen.write(chunk)
        pos = 0
        while pos < len(chunk):
            match = _LINE_END.search(chunk, pos)
            stop = match.start() if match else len(chunk)
            if candidate:
                line += chunk[pos:stop]
                candidate = _version_candidate(line)
            if match is None:
                break
            if candidate:
                version = _version_value(line)
                if version is not None:
                    break
            line.clear()
            candidate = True
            pos = stop + 1
        if version is not None:
            break
    else:
        if candidate:
            version = _version_value(line)

    logger.debug("detected vCard version %r", version)
    return version, _replay(seen, rest)


# ── Tokenizer ─────────────────────────────────────────────────────────────────

def tokenize(line: SpillBuffer) -> tuple[str, list[str]] | None:
    """Split off ``NAME;PARAM;PARAM`` up to the first colon outside quotes.

    On success the buffer is left positioned just after that colon. Returns
    ``None`` for lines with no colon or nothing before it.
    """
    head = bytearray()
    in_quotes = False
    while True:
        offset = line.tell()
        block = line.read(_HEAD_BLOCK)
        if not block:
            return None
        colon, in_quotes = find_colon(block, in_quotes)
        if colon < 0:
            head += block
            continue
        head += block[:colon]
        line.seek(offset + colon + 1)
        break

    text = head.decode("utf-8", errors="replace")
    if not text.strip():
        return None
    name, *params = _PARAM_SPLIT.split(text)
    return name.strip(), params


# ── Parser ────────────────────────────────────────────────────────────────────

class Parser:
    """Parse one vCard from ``source`` into whatever ``sink`` builds.

    ``source`` may be ``str``/``bytes``, a binary or text file object, or an
    iterable of chunks. ``version`` forces a dialect; without it the VERSION
    line is looked up first and unknown or missing versions use 4.0 rules.
    ``large_value_threshold`` (bytes) defaults to the settings value;
    ``math.inf`` keeps everything in memory and ``0`` spills every value.
    """

    def __init__(
        self,
        source: Any,
        *,
        version: str | None = None,
        sink: PropertySink | None = None,
        large_value_threshold: float | None = None,
        chunk_size: int | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or Settings()
        self.source = source
        self.threshold = normalize_threshold(
            settings.large_value_threshold if large_value_threshold is None else large_value_threshold
        )
        self.chunk_size = chunk_size or settings.chunk_size
        self.dialect: V40 | None = dialect_for(version) if version is not None else None
        self._sink = sink

    def parse(self) -> Any:
        properties = self.properties()
        sink = self._sink or CardBuilder(unescape=self.dialect.unescape)
        for name, params, value, type_, pref in properties:
            sink.consume(name, params, value, type_, pref)
        return sink.finish()

    def properties(self) -> Iterator[Property]:
        """Iterator of ``(name, params, value, type, pref)``, one per property line.

        The version is resolved by this call, before any property is
        produced, so ``self.dialect`` is set when it returns.
        """
        chunks: Iterator[bytes] = iter_chunks(self.source, self.chunk_size)
        if self.dialect is None:
            version, chunks = detect_version(chunks, self.threshold)
            self.dialect = dialect_for(version)
        return self._properties(chunks, self.dialect)

    def _properties(self, chunks: Iterator[bytes], dialect: V40) -> Iterator[Property]:
        unfolder = LineUnfolder(chunks, self.threshold, dialect.quoted_printable_aware)
        for line in unfolder:
            tokens = tokenize(line)
            if tokens is None:
                logger.debug("skipping line without a property name and colon")
                line.close()
                continue
            name, raw_params = tokens
            if name.upper() in ("BEGIN", "END"):
                line.close()
                continue
            params = dialect.parse_params(raw_params)
            value = self._read_value(line, params, dialect)
            yield name, params, value, dialect.extract_type(params), dialect.extract_pref(params)

    def _read_value(self, line: SpillBuffer, params: dict[str, str], dialect: V40) -> PropertyValue:
        if line.remaining > self.threshold:
            line.mark_origin()
            logger.debug("keeping %d-byte value on its line buffer", line.remaining)
            return line
        with line:
            raw = line.read()
        return dialect.decode(raw, params)


def parse(source: Any, **kwargs: Any) -> Any:
    """Parse a vCard, detecting its version. See ``Parser`` for the options."""
    return Parser(source, **kwargs).parse()
