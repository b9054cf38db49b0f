from __future__ import annotations

_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


def format_bytes(size: int | None) -> str:
    """Render a byte count the way the UI shows it: ``1.5 KB``, ``0 Bytes``."""
    if not size or size <= 0:
        return "0 Bytes"
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_UNITS) - 1:
        value /= 1024
        unit += 1
    rendered = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{rendered} {_UNITS[unit]}"
