from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .buffer import SpillBuffer
from .config import Settings, load_settings, normalize_threshold, write_default_config
from .dialects import DIALECTS, dialect_for
from .model import Card
from .parser import detect_version, parse
from .report import describe_value, print_card
from .serializer import serialize
from .unfold import LineUnfolder, iter_chunks

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="vcard-stream: read and write vCard 2.1 / 3.0 / 4.0 without loading large values into memory.",
)
console = Console()

_THRESHOLD_HELP = "Bytes above which a value stays on disk (0 = always, inf = never)."


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log parser decisions"),
) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )


# ── Shared helpers ─────────────────────────────────────────────────────────────

def _settings(config: Path | None, threshold: str | None) -> Settings:
    try:
        settings = load_settings(config)
        if threshold is not None:
            value = int(threshold) if threshold.strip().isdigit() else threshold
            settings.large_value_threshold = normalize_threshold(value)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return settings


def _require_file(path: Path) -> None:
    if not path.is_file():
        console.print(f"[bold red]No such file: {path}[/bold red]")
        raise typer.Exit(code=2)


def _release(card: Card) -> None:
    for prop in card.custom_properties:
        if isinstance(prop.value, SpillBuffer):
            prop.value.close()


# ── `show` command ─────────────────────────────────────────────────────────────

@app.command()
def show(
    file: Path = typer.Argument(..., help="A .vcf file"),
    threshold: str | None = typer.Option(None, "--threshold", "-t", help=_THRESHOLD_HELP),
    config: Path | None = typer.Option(None, "--config", "-c", help="TOML settings file"),
) -> None:
    """Parse a vCard and print its fields."""
    _require_file(file)
    settings = _settings(config, threshold)
    with file.open("rb") as fh:
        card = parse(fh, settings=settings)
    try:
        print_card(card, file.name)
    finally:
        _release(card)


# ── `convert` command ──────────────────────────────────────────────────────────

@app.command()
def convert(
    file: Path = typer.Argument(..., help="A .vcf file"),
    to: str = typer.Option("4.0", "--to", help="Target vCard version (2.1, 3.0 or 4.0)"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write here instead of stdout"),
    threshold: str | None = typer.Option(None, "--threshold", "-t", help=_THRESHOLD_HELP),
    config: Path | None = typer.Option(None, "--config", "-c", help="TOML settings file"),
) -> None:
    """Re-serialize a vCard in another version."""
    _require_file(file)
    if to not in DIALECTS:
        raise typer.BadParameter(f"unsupported version {to!r}", param_hint="--to")
    settings = _settings(config, threshold)
    with file.open("rb") as fh:
        card = parse(fh, settings=settings)
    try:
        text = serialize(card, to)
    finally:
        _release(card)

    if output is None:
        typer.echo(text, nl=False)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(text.encode("utf-8"))
    console.print(f"[bold green]✓ Wrote vCard {to} → {output}[/bold green]")


# ── `lines` command ────────────────────────────────────────────────────────────

@app.command()
def lines(
    file: Path = typer.Argument(..., help="A .vcf file"),
    threshold: str | None = typer.Option(None, "--threshold", "-t", help=_THRESHOLD_HELP),
    config: Path | None = typer.Option(None, "--config", "-c", help="TOML settings file"),
) -> None:
    """List the unfolded logical lines and where each one was buffered."""
    _require_file(file)
    settings = _settings(config, threshold)

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("#", justify="right")
    table.add_column("Bytes", justify="right")
    table.add_column("Buffer")
    table.add_column("Line")

    with file.open("rb") as fh:
        version, chunks = detect_version(iter_chunks(fh, settings.chunk_size), settings.large_value_threshold)
        dialect = dialect_for(version)
        unfolder = LineUnfolder(chunks, settings.large_value_threshold, dialect.quoted_printable_aware)
        for i, line in enumerate(unfolder):
            with line:
                where = "disk" if line.spilled else "memory"
                preview = line.read(120).decode("utf-8", errors="replace")
                table.add_row(str(i), str(line.size), where, describe_value(preview))

    console.print(f"[dim]vCard {dialect.version} rules[/dim]")
    console.print(table)


# ── `init-config` command ──────────────────────────────────────────────────────

@app.command("init-config")
def init_config(
    path: Path = typer.Argument(Path("vcard-stream.toml"), help="Where to write the settings file"),
) -> None:
    """Write a settings file with the defaults (existing files are left alone)."""
    existed = path.exists()
    write_default_config(path)
    if existed:
        console.print(f"[yellow]{path} already exists, left unchanged[/yellow]")
    else:
        console.print(f"[bold green]✓ Wrote {path}[/bold green]")


if __name__ == "__main__":
    app()
