"""LineUnfolder and iter_chunks."""
from __future__ import annotations

import io

import pytest

from vcard_stream.buffer import SpillBuffer
from vcard_stream.unfold import LineUnfolder, find_colon, iter_chunks


# ── helpers ────────────────────────────────────────────────────────────────────

def _chunked(data: bytes, size: int | None) -> list[bytes]:
    if size is None:
        return [data]
    return [data[i:i + size] for i in range(0, len(data), size)]


def _lines(data: bytes, size: int | None = None, **kwargs) -> list[bytes]:
    out = []
    for buf in LineUnfolder(_chunked(data, size), **kwargs):
        with buf:
            out.append(buf.read())
    return out


# ── Line endings ───────────────────────────────────────────────────────────────

def test_lf_endings():
    assert _lines(b"FN:Alice\nEMAIL:a@b.com\n") == [b"FN:Alice", b"EMAIL:a@b.com"]


def test_crlf_endings():
    assert _lines(b"FN:Alice\r\nEMAIL:a@b.com\r\n") == [b"FN:Alice", b"EMAIL:a@b.com"]


def test_cr_only_endings():
    assert _lines(b"FN:Alice\rEMAIL:a@b.com\r") == [b"FN:Alice", b"EMAIL:a@b.com"]


def test_final_line_without_line_ending():
    assert _lines(b"FN:Alice") == [b"FN:Alice"]


def test_blank_lines_are_dropped():
    assert _lines(b"FN:A\r\n\r\n\n\rEMAIL:x\r\n\r\n") == [b"FN:A", b"EMAIL:x"]


def test_cr_at_chunk_end_followed_by_lf():
    assert _lines(b"FN:A\r\nFN:B\r\n", size=5) == [b"FN:A", b"FN:B"]


# ── Folding ────────────────────────────────────────────────────────────────────

def test_unfolds_space_continuation():
    assert _lines(b"FN:Alice Very\r\n  Long Name\r\n") == [b"FN:Alice Very Long Name"]


def test_unfolds_tab_continuation():
    assert _lines(b"FN:Alice Very\r\n\tLong Name\r\n") == [b"FN:Alice VeryLong Name"]


def test_multiple_consecutive_continuations():
    assert _lines(b"FN:A\r\n B\r\n C\r\n D\r\n") == [b"FN:ABCD"]


def test_mixed_continuations_and_regular_lines():
    assert _lines(b"FN:Alice\r\n Long\r\nEMAIL:a@b.com\r\n") == [b"FN:AliceLong", b"EMAIL:a@b.com"]


# ── Quoted-printable soft breaks ───────────────────────────────────────────────

def test_soft_break_joins_lines():
    data = b"NOTE;ENCODING=QUOTED-PRINTABLE:first=\r\nsecond\r\n"
    assert _lines(data, quoted_printable_aware=True) == [b"NOTE;ENCODING=QUOTED-PRINTABLE:firstsecond"]


def test_multiple_soft_breaks():
    data = b"NOTE;ENCODING=QUOTED-PRINTABLE:a=\r\nb=\r\nc\r\n"
    assert _lines(data, quoted_printable_aware=True) == [b"NOTE;ENCODING=QUOTED-PRINTABLE:abc"]


def test_soft_break_parameter_match_is_case_insensitive():
    data = b"NOTE;encoding=quoted-printable:a=\nb\n"
    assert _lines(data, quoted_printable_aware=True) == [b"NOTE;encoding=quoted-printable:ab"]


def test_folding_takes_precedence_over_soft_break():
    data = b"FN;ENCODING=QUOTED-PRINTABLE:Alice=\r\n  Smith\r\n"
    assert _lines(data, quoted_printable_aware=True) == [b"FN;ENCODING=QUOTED-PRINTABLE:Alice= Smith"]


def test_base64_padding_is_not_a_soft_break():
    data = b"PHOTO;ENCODING=BASE64:YmluYXJ5IHBob3RvIGRhdGE=\r\nEND:VCARD\r\n"
    assert _lines(data, quoted_printable_aware=True) == [
        b"PHOTO;ENCODING=BASE64:YmluYXJ5IHBob3RvIGRhdGE=",
        b"END:VCARD",
    ]


def test_soft_breaks_ignored_when_not_aware():
    data = b"NOTE;ENCODING=QUOTED-PRINTABLE:first=\r\nsecond\r\n"
    assert _lines(data) == [b"NOTE;ENCODING=QUOTED-PRINTABLE:first=", b"second"]


@pytest.mark.parametrize("size", [1, 3, None])
def test_colon_inside_quoted_parameter_does_not_end_head(size):
    data = b'NOTE;X-L="a:b";ENCODING=QUOTED-PRINTABLE:x=\r\ny\r\nFN:A\r\n'
    assert _lines(data, size=size, quoted_printable_aware=True) == [
        b'NOTE;X-L="a:b";ENCODING=QUOTED-PRINTABLE:xy',
        b"FN:A",
    ]


def test_find_colon_skips_quoted_text():
    assert find_colon(b'A;B="x:y":v') == (9, False)
    assert find_colon(b'A;B="x:') == (-1, True)
    assert find_colon(b'y":v', True) == (2, False)
    assert find_colon(b"no colon") == (-1, False)


def test_equals_in_value_does_not_mark_quoted_printable():
    data = b"NOTE:x;ENCODING=QUOTED-PRINTABLE=\r\nnext:1\r\n"
    assert _lines(data, quoted_printable_aware=True) == [b"NOTE:x;ENCODING=QUOTED-PRINTABLE=", b"next:1"]


# ── Chunk-boundary independence ────────────────────────────────────────────────

_MIXED = (
    b"BEGIN:VCARD\r\nVERSION:2.1\r\nFN:Alice Very\r\n  Long Name\r\n"
    b"NOTE;ENCODING=QUOTED-PRINTABLE:one=\r\ntwo=\r\nthree\r\n"
    b"PHOTO;ENCODING=BASE64:AAAA=\rX-CR:only\rX-LF:only\n"
    b"X-TAB:a\n\tb\r\n\r\nEND:VCARD"
)


@pytest.mark.parametrize("size", [1, 2, 3, 7, 64, None])
def test_result_does_not_depend_on_chunking(size):
    expected = [
        b"BEGIN:VCARD",
        b"VERSION:2.1",
        b"FN:Alice Very Long Name",
        b"NOTE;ENCODING=QUOTED-PRINTABLE:onetwothree",
        b"PHOTO;ENCODING=BASE64:AAAA=",
        b"X-CR:only",
        b"X-LF:only",
        b"X-TAB:ab",
        b"END:VCARD",
    ]
    assert _lines(_MIXED, size=size, quoted_printable_aware=True) == expected


# ── Buffers ────────────────────────────────────────────────────────────────────

def test_yields_readable_buffers_at_start():
    for buf in LineUnfolder([b"FN:Alice\n"]):
        assert isinstance(buf, SpillBuffer)
        assert buf.tell() == 0
        assert buf.read() == b"FN:Alice"


def test_long_line_reassembled_across_small_threshold():
    long_value = b"x" * 100
    data = b"PHOTO;ENCODING=BASE64:" + long_value + b"\r\nFN:Alice\r\n"
    assert _lines(data, size=16, threshold=16) == [b"PHOTO;ENCODING=BASE64:" + long_value, b"FN:Alice"]


def test_large_line_spills_small_line_does_not():
    data = b"PHOTO:" + b"x" * 200 + b"\r\nFN:Alice\r\n"
    buffers = list(LineUnfolder([data], threshold=100))
    assert buffers[0].spilled
    assert not buffers[1].spilled
    assert buffers[0] is not buffers[1]
    assert buffers[0].read() == b"PHOTO:" + b"x" * 200
    for buf in buffers:
        buf.close()


def test_line_at_threshold_stays_in_memory():
    data = b"FN:" + b"x" * 100 + b"\r\n"
    (buf,) = LineUnfolder([data], threshold=103)
    assert not buf.spilled


# ── iter_chunks ────────────────────────────────────────────────────────────────

def test_iter_chunks_str_and_bytes():
    assert list(iter_chunks("FN:Ü")) == ["FN:Ü".encode("utf-8")]
    assert list(iter_chunks(b"FN:A")) == [b"FN:A"]
    assert list(iter_chunks(b"")) == []


def test_iter_chunks_binary_file():
    assert list(iter_chunks(io.BytesIO(b"abcdefg"), chunk_size=3)) == [b"abc", b"def", b"g"]


def test_iter_chunks_text_file():
    assert list(iter_chunks(io.StringIO("abcd"), chunk_size=2)) == [b"ab", b"cd"]


def test_iter_chunks_iterable_skips_empty():
    assert list(iter_chunks([b"a", b"", "b", bytearray(b"c")])) == [b"a", b"b", b"c"]
