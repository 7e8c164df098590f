from __future__ import annotations

import base64

from .buffer import SpillBuffer
from .dialects import V40, dialect_for
from .model import Card, CustomProperty

CRLF = "\r\n"

_SIMPLE_PROPERTIES = (
    ("NICKNAME", "nickname"),
    ("BDAY", "bday"),
    ("ANNIVERSARY", "anniversary"),
    ("GENDER", "gender"),
    ("NOTE", "note"),
    ("PRODID", "prodid"),
)


class Serializer:
    """Render a ``Card`` as vCard text in one dialect.

    The dialect is ``version`` if given, else the card's own version, else 4.0.
    Output lines are not folded.
    """

    def __init__(self, card: Card, version: str | None = None) -> None:
        self.card = card
        self.version = version or card.version or "4.0"
        self.dialect: V40 = dialect_for(self.version)

    def to_vcf(self) -> str:
        card = self.card
        d = self.dialect
        lines = ["BEGIN:VCARD", f"VERSION:{self.version}", f"UID:{card.uid or ''}"]
        if any(card.name_parts):
            lines.append(d.structured_line("N", card.name_parts))
        lines.append(d.text_line("FN", card.fn or ""))
        if card.kind:
            lines.append(f"KIND:{card.kind}")
        for name, attr in _SIMPLE_PROPERTIES:
            value = getattr(card, attr)
            if value:
                lines.append(d.text_line(name, value))

        for email in card.emails:
            lines.append(f"EMAIL{d.render_params(email.label, email.pref)}:{email.address}")
        for phone in card.phones:
            lines.append(f"TEL{d.render_params(phone.label, phone.pref)}:{phone.number}")
        for adr in card.addresses:
            lines.append(d.structured_line("ADR", adr.parts, d.render_params(adr.label, adr.pref)))
        for url in card.urls:
            lines.append(f"URL{d.render_params(url.label, url.pref)}:{url.url}")
        for im in card.ims:
            lines.append(f"IMPP{d.render_params(im.label, im.pref)}:{im.uri}")
        for prop in card.custom_properties:
            lines.append(self._custom_line(prop))

        lines.append("END:VCARD")
        return CRLF.join(lines) + CRLF

    def _custom_line(self, prop: CustomProperty) -> str:
        params = prop.params or ""
        value = prop.value
        if isinstance(value, SpillBuffer):
            value.rewind()
            value = value.read().decode("utf-8", errors="replace")
        elif isinstance(value, bytes):
            if "ENCODING=" not in params.upper():
                params = ";".join(filter(None, [params, f"ENCODING={self.dialect.binary_encoding}"]))
            value = base64.b64encode(value).decode("ascii")
        else:
            value, params = self.dialect.custom_text(value, params)
        if params:
            return f"{prop.name};{params}:{value}"
        return f"{prop.name}:{value}"


def serialize(card: Card, version: str | None = None) -> str:
    """Return ``card`` as CRLF-terminated vCard text."""
    return Serializer(card, version).to_vcf()
