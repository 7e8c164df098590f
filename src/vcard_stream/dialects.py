"""Per-version rules for reading and writing vCard properties.

Each dialect bundles the same capabilities: parameter parsing, TYPE/PREF
extraction, value decoding, text (un)escaping and line rendering. The parser
and serializer pick one dialect up front and never branch on the version
themselves.

    V40  RFC 6350  https://datatracker.ietf.org/doc/html/rfc6350
    V30  RFC 2426  https://datatracker.ietf.org/doc/html/rfc2426
    V21  versit    https://web.archive.org/web/20120104222727/http://www.imc.org/pdi/vcard-21.txt
"""
from __future__ import annotations

import base64
import binascii
import logging
import quopri
import re

logger = logging.getLogger(__name__)

_UNESCAPE = re.compile(r"\\([nN,;\\])")
_UNESCAPED = {"n": "\n", "N": "\n", ",": ",", ";": ";", "\\": "\\"}

_ESCAPE = re.compile(r"[\\,\n]")
_ESCAPE_COMPONENT = re.compile(r"[\\,;\n]")
_ESCAPED = {"\\": "\\\\", ",": "\\,", ";": "\\;", "\n": "\\n"}

_LEADING_INT = re.compile(r"\s*(\d+)")
_LINE_BREAK = re.compile(r"[\r\n]")


def _newlines(value: str) -> str:
    return value.replace("\r\n", "\n").replace("\r", "\n")


def _type_values(params: dict[str, str]) -> list[str]:
    raw = params.get("TYPE")
    if raw is None:
        return []
    values = (v.strip().strip('"').lower() for v in raw.split(","))
    return [v for v in values if v]


def _append_type(params: dict[str, str], token: str) -> None:
    existing = params.get("TYPE")
    params["TYPE"] = f"{existing},{token}" if existing else token


def quoted_printable(value: str) -> str:
    """Encode text for a 2.1 QUOTED-PRINTABLE property value.

    Newlines become ``=0D=0A`` and whitespace is always encoded, so the payload
    never contains a raw line break or a continuation line starting with a
    space (which would read back as a folded line).
    """
    data = value.replace("\r\n", "\n").replace("\n", "\r\n").encode("utf-8")
    encoded = binascii.b2a_qp(data, quotetabs=True, istext=False)
    encoded = encoded.replace(b"=\r\n", b"=\n")
    if encoded.endswith(b"=\n"):
        encoded = encoded[:-2]
    return encoded.replace(b"=\n", b"=\r\n").decode("ascii")


class V40:
    version = "4.0"
    quoted_printable_aware = False
    binary_encoding = "b"

    # ── reading ────────────────────────────────────────────────────────────────

    def parse_params(self, tokens: list[str]) -> dict[str, str]:
        params: dict[str, str] = {}
        for token in tokens:
            if not token:
                continue
            if "=" in token:
                key, value = token.split("=", 1)
                params[key.upper()] = value
            else:
                self._bare_param(params, token)
        return params

    def _bare_param(self, params: dict[str, str], token: str) -> None:
        _append_type(params, token)

    def extract_type(self, params: dict[str, str]) -> str | None:
        for value in _type_values(params):
            if value != "pref":
                return value
        return None

    def extract_pref(self, params: dict[str, str]) -> int | None:
        if "pref" in _type_values(params):
            return 1
        raw = params.get("PREF")
        if raw is None:
            return None
        m = _LEADING_INT.match(raw)
        return int(m.group(1)) if m else None

    def decode(self, raw: bytes, params: dict[str, str]) -> str | bytes:
        return raw.decode("utf-8", errors="replace")

    def unescape(self, value: str) -> str:
        return _UNESCAPE.sub(lambda m: _UNESCAPED[m.group(1)], value)

    # ── writing ────────────────────────────────────────────────────────────────

    def escape(self, value: str) -> str:
        value = _newlines(value)
        return _ESCAPE.sub(lambda m: _ESCAPED[m.group()], value)

    def escape_component(self, value: str) -> str:
        # semicolons only need escaping inside structured values (N, ADR)
        value = _newlines(value)
        return _ESCAPE_COMPONENT.sub(lambda m: _ESCAPED[m.group()], value)

    def render_params(self, label: str | None, pref: int | None) -> str:
        parts = []
        if label:
            parts.append(f"TYPE={label}")
        if pref is not None:
            parts.append(f"PREF={pref}")
        return "".join(f";{p}" for p in parts)

    def text_line(self, name: str, value: str, params: str = "") -> str:
        return f"{name}{params}:{self.escape(value)}"

    def structured_line(self, name: str, parts: list[str | None], params: str = "") -> str:
        return f"{name}{params}:" + ";".join(self.escape_component(p or "") for p in parts)

    def custom_text(self, value: str, params: str) -> tuple[str, str]:
        """Value and params for a custom text property.

        Custom values are written as they were read; only line breaks are
        escaped (as ``\\n``) so the value stays on one line.
        """
        if not _LINE_BREAK.search(value):
            return value, params
        return _newlines(value).replace("\n", "\\n"), params


class V30(V40):
    """vCard 3.0: a bare ``PREF`` parameter means preference 1."""

    version = "3.0"

    def _bare_param(self, params: dict[str, str], token: str) -> None:
        if token.upper() == "PREF":
            params["PREF"] = "1"
        else:
            _append_type(params, token)


class V21(V30):
    """vCard 2.1: transport encodings, soft line breaks, no backslash escapes."""

    version = "2.1"
    quoted_printable_aware = True
    binary_encoding = "BASE64"

    def decode(self, raw: bytes, params: dict[str, str]) -> str | bytes:
        encoding = (params.get("ENCODING") or "").upper()
        if encoding == "QUOTED-PRINTABLE":
            value: str | bytes = quopri.decodestring(raw).decode("utf-8")
        elif encoding in ("BASE64", "B"):
            value = base64.b64decode(raw)
        else:
            value = raw.decode("utf-8", errors="replace")
        params.pop("ENCODING", None)
        params.pop("CHARSET", None)
        return value

    def unescape(self, value: str) -> str:
        return value

    def escape(self, value: str) -> str:
        return value

    def escape_component(self, value: str) -> str:
        return value

    def render_params(self, label: str | None, pref: int | None) -> str:
        parts = []
        if label:
            parts.append(label.upper())
        if pref is not None:
            parts.append("PREF")
        return "".join(f";{p}" for p in parts)

    def text_line(self, name: str, value: str, params: str = "") -> str:
        if value.isascii() and "\n" not in value and "\r" not in value:
            return f"{name}{params}:{value}"
        return f"{name}{params};ENCODING=QUOTED-PRINTABLE;CHARSET=UTF-8:{quoted_printable(value)}"

    def structured_line(self, name: str, parts: list[str | None], params: str = "") -> str:
        return self.text_line(name, ";".join(p or "" for p in parts), params)

    def custom_text(self, value: str, params: str) -> tuple[str, str]:
        if not _LINE_BREAK.search(value):
            return value, params
        upper = params.upper()
        if "ENCODING=" in upper and "ENCODING=QUOTED-PRINTABLE" not in upper:
            return super().custom_text(value, params)
        if "ENCODING=" not in upper:
            params = ";".join(filter(None, [params, "ENCODING=QUOTED-PRINTABLE;CHARSET=UTF-8"]))
        return quoted_printable(value), params


DIALECTS = {d.version: d for d in (V21(), V30(), V40())}


def dialect_for(version: str | None) -> V40:
    """Return the rules for ``version``; anything unrecognised reads as 4.0."""
    key = (version or "").strip()
    dialect = DIALECTS.get(key)
    if dialect is None:
        logger.debug("no dialect for version %r, using 4.0 rules", version)
        return DIALECTS["4.0"]
    return dialect
