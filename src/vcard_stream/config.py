from __future__ import annotations

import logging
import math
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .buffer import DEFAULT_LARGE_VALUE_THRESHOLD
from .unfold import DEFAULT_CHUNK_SIZE

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    large_value_threshold: float = DEFAULT_LARGE_VALUE_THRESHOLD
    chunk_size: int = DEFAULT_CHUNK_SIZE


DEFAULT_CONF = """# vcard-stream configuration (TOML)
# values above this many bytes stay on disk instead of being read into memory;
# 0 sends every value to disk, inf keeps everything in memory
large_value_threshold = 1048576
# bytes requested from the input per read
chunk_size = 65536
"""


def normalize_threshold(value: Any) -> float:
    """Validate a large-value threshold: a non-negative int, or infinity."""
    if isinstance(value, str) and value.strip().lower() in ("inf", "infinity", "unbounded"):
        return math.inf
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"large_value_threshold must be a number of bytes or inf, got {value!r}")
    if value < 0 or math.isnan(value):
        raise ValueError(f"large_value_threshold must not be negative, got {value!r}")
    if math.isinf(value):
        return math.inf
    return int(value)


def _chunk_size(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"chunk_size must be a positive integer, got {value!r}")
    return value


def load_settings(path: Path | None = None) -> Settings:
    """Read settings from a TOML file; a missing file gives the defaults."""
    settings = Settings()
    if path is None or not path.exists():
        return settings
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        logger.warning("%s: malformed config, using defaults (%s)", path, exc)
        return settings

    if "large_value_threshold" in data:
        settings.large_value_threshold = normalize_threshold(data["large_value_threshold"])
    if "chunk_size" in data:
        settings.chunk_size = _chunk_size(data["chunk_size"])
    return settings


def write_default_config(path: Path) -> None:
    """Create ``path`` with the documented defaults unless it already exists."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        path.write_text(DEFAULT_CONF, encoding="utf-8")
