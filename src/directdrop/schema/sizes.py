"""Byte size parsing and formatting."""

import re

SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]

_SIZE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*(B|KB|MB|GB|TB)?$", re.IGNORECASE)


def parse_size(size: int | str) -> int:
    """Convert a byte count or a unit string such as "10MB" to bytes.

    Units are binary: each rank multiplies by 1024.

    Args:
        size: Byte count or string "<number>[B|KB|MB|GB|TB]"

    Returns:
        Size in bytes

    Raises:
        ValueError: If the string is not a recognised size
    """
    if isinstance(size, bool):
        raise ValueError(f"Invalid size format: {size!r}")
    if isinstance(size, int):
        return size
    if isinstance(size, float):
        return int(size)

    match = _SIZE_PATTERN.match(size.strip())
    if not match:
        raise ValueError(f"Invalid size format: {size}")

    value = float(match.group(1))
    unit = (match.group(2) or "B").upper()
    return int(value * 1024 ** SIZE_UNITS.index(unit))


def format_size(num_bytes: int | float) -> str:
    """Render a byte count with the largest unit that keeps it >= 1."""
    size = float(num_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(SIZE_UNITS) - 1:
        size /= 1024
        unit_index += 1

    if unit_index == 0:
        return f"{size:.0f}{SIZE_UNITS[unit_index]}"
    return f"{size:.1f}{SIZE_UNITS[unit_index]}"
