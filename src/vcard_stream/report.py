from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .buffer import SpillBuffer
from .model import Card

console = Console()

# ── Palette ────────────────────────────────────────────────────────────────────
_ACCENT  = "#4d9fff"
_GREEN   = "#3ecf8e"
_AMBER   = "#f0a500"
_MID     = "#8896af"
_DIM     = "#546075"
_BORDER  = "#2a3347"

_PREVIEW = 60

_SCALARS = (
    ("Version", "version"),
    ("UID", "uid"),
    ("Formatted name", "fn"),
    ("Family name", "family_name"),
    ("Given name", "given_name"),
    ("Additional names", "additional_names"),
    ("Prefix", "honorific_prefix"),
    ("Suffix", "honorific_suffix"),
    ("Kind", "kind"),
    ("Nickname", "nickname"),
    ("Birthday", "bday"),
    ("Anniversary", "anniversary"),
    ("Gender", "gender"),
    ("Note", "note"),
    ("Product id", "prodid"),
)


def describe_value(value: str | bytes | SpillBuffer) -> str:
    """Short, printable description of a property value."""
    if isinstance(value, SpillBuffer):
        where = "on disk" if value.spilled else "in memory"
        return f"<{value.remaining} bytes {where}>"
    if isinstance(value, bytes):
        return f"<{len(value)} bytes>"
    text = value.replace("\r", "").replace("\n", " ⏎ ")
    return text if len(text) <= _PREVIEW else text[: _PREVIEW - 1] + "…"


def _meta(label: str | None, pref: int | None) -> str:
    bits = []
    if label:
        bits.append(label)
    if pref is not None:
        bits.append(f"pref={pref}")
    return " ".join(bits)


def card_table(card: Card) -> Table:
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Field", style=_MID)
    table.add_column("#", justify="right", style=_DIM)
    table.add_column("Value")
    table.add_column("Type / pref", style=_AMBER)

    for title, attr in _SCALARS:
        value = getattr(card, attr)
        if value:
            table.add_row(title, "", describe_value(value), "")

    for e in card.emails:
        table.add_row("Email", str(e.position), e.address, _meta(e.label, e.pref))
    for p in card.phones:
        table.add_row("Phone", str(p.position), p.number, _meta(p.label, p.pref))
    for a in card.addresses:
        joined = ", ".join(part for part in a.parts if part)
        table.add_row("Address", str(a.position), joined, _meta(a.label, a.pref))
    for u in card.urls:
        table.add_row("URL", str(u.position), u.url, _meta(u.label, u.pref))
    for im in card.ims:
        table.add_row("IM", str(im.position), im.uri, _meta(im.label, im.pref))
    for c in card.custom_properties:
        table.add_row(c.name, str(c.position), describe_value(c.value), c.params or "")
    return table


def print_card(card: Card, source_label: str) -> None:
    header = Text()
    header.append(card.fn or "Unnamed", style=f"bold {_ACCENT}")
    header.append(f"\n{source_label}  •  vCard {card.version or '4.0'}", style=f"dim {_DIM}")
    console.print(Panel(header, border_style=_BORDER, padding=(0, 2)))
    console.print(card_table(card))

    spilled = [c for c in card.custom_properties if isinstance(c.value, SpillBuffer)]
    if spilled:
        console.print(
            f"\n[{_GREEN}]{len(spilled)} large value(s) streamed to temporary storage[/]"
        )
