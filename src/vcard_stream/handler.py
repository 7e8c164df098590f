"""Event sinks: turn a stream of parsed properties into a result object."""
from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Callable
from typing import Any, Protocol

from .buffer import SpillBuffer
from .model import Address, Card, CustomProperty, Email, InstantMessage, Phone, Url

logger = logging.getLogger(__name__)

PropertyValue = str | bytes | SpillBuffer

_UNESCAPED_SEMICOLON = re.compile(r"(?<!\\);")

_SCALARS = {
    "VERSION": "version",
    "UID": "uid",
    "FN": "fn",
    "KIND": "kind",
    "NICKNAME": "nickname",
    "BDAY": "bday",
    "ANNIVERSARY": "anniversary",
    "GENDER": "gender",
    "NOTE": "note",
    "PRODID": "prodid",
}
_UNESCAPED_SCALARS = {"FN", "NICKNAME", "NOTE"}

_NAME_PARTS = ("family_name", "given_name", "additional_names", "honorific_prefix", "honorific_suffix")
_ADDRESS_PARTS = ("po_box", "extended", "street", "locality", "region", "postal_code", "country")


class PropertySink(Protocol):
    """Receives one call per property line, in document order, then ``finish`` once."""

    def consume(
        self,
        name: str,
        params: dict[str, str],
        value: PropertyValue,
        type: str | None,
        pref: int | None,
    ) -> None: ...

    def finish(self) -> Any: ...


def _text(value: PropertyValue) -> str:
    """Materialise a value for a text field; large handles are read and closed."""
    if isinstance(value, SpillBuffer):
        logger.debug("reading %d-byte value into a text field", value.remaining)
        with value:
            value = value.read()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def split_structured(value: str, count: int) -> list[str]:
    """Split on semicolons not preceded by a backslash, padded to ``count`` parts."""
    parts = _UNESCAPED_SEMICOLON.split(value)
    parts.extend([""] * (count - len(parts)))
    return parts[:count]


def params_string(params: dict[str, str]) -> str | None:
    if not params:
        return None
    return ";".join(f"{k}={v}" for k, v in params.items())


class CardBuilder:
    """Default sink: builds a ``Card``.

    ``unescape`` comes from the dialect in use; it is applied to FN, NICKNAME,
    NOTE and to every N and ADR component.
    """

    def __init__(self, unescape: Callable[[str], str] = lambda v: v) -> None:
        self._unescape = unescape
        self._fields: dict[str, Any] = {}
        self._emails: list[Email] = []
        self._phones: list[Phone] = []
        self._addresses: list[Address] = []
        self._urls: list[Url] = []
        self._ims: list[InstantMessage] = []
        self._custom: list[CustomProperty] = []
        self._positions: Counter[str] = Counter()

    def consume(
        self,
        name: str,
        params: dict[str, str],
        value: PropertyValue,
        type: str | None,
        pref: int | None,
    ) -> None:
        key = name.upper()
        if key in _SCALARS:
            text = _text(value)
            if key in _UNESCAPED_SCALARS:
                text = self._unescape(text)
            elif key == "KIND":
                text = text.lower()
            self._fields[_SCALARS[key]] = text
        elif key == "N":
            self._fields.update(self._structured(_text(value), _NAME_PARTS))
        elif key == "ADR":
            parts = self._structured(_text(value), _ADDRESS_PARTS)
            self._addresses.append(Address(**parts, label=type, pref=pref, position=self._next("ADR")))
        elif key == "EMAIL":
            self._emails.append(Email(_text(value), type, pref, self._next(key)))
        elif key == "TEL":
            self._phones.append(Phone(_text(value), type, pref, self._next(key)))
        elif key == "URL":
            self._urls.append(Url(_text(value), type, pref, self._next(key)))
        elif key == "IMPP":
            self._ims.append(InstantMessage(_text(value), type, pref, self._next(key)))
        else:
            self._custom.append(CustomProperty(key, value, params_string(params), self._next("*")))

    def finish(self) -> Card:
        return Card(
            **self._fields,
            emails=self._emails,
            phones=self._phones,
            addresses=self._addresses,
            urls=self._urls,
            ims=self._ims,
            custom_properties=self._custom,
        )

    def _next(self, collection: str) -> int:
        position = self._positions[collection]
        self._positions[collection] += 1
        return position

    def _structured(self, value: str, names: tuple[str, ...]) -> dict[str, str | None]:
        parts = split_structured(value, len(names))
        return {n: (self._unescape(p) or None) for n, p in zip(names, parts)}
