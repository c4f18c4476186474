"""Formatting utilities for CLI output."""

from datetime import timedelta

_BYTE_UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB")


def format_duration(duration: timedelta) -> str:
    """Format a duration in words, to whole seconds.

    Examples:
        - ``4 hours, 39 minutes, and 25 seconds``
        - ``1 day and 2 seconds``
        - ``0 seconds``
    """
    seconds = int(duration.total_seconds())
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)

    parts = [
        f"{value} {unit}{'s' if value != 1 else ''}"
        for value, unit in ((days, "day"), (hours, "hour"), (minutes, "minute"), (seconds, "second"))
        if value > 0
    ]
    if not parts:
        return "0 seconds"
    if len(parts) == 1:
        return parts[0]
    if len(parts) == 2:
        return f"{parts[0]} and {parts[1]}"
    return f"{', '.join(parts[:-1])}, and {parts[-1]}"


def format_bytes(size: float) -> str:
    """Format a byte count with binary units, e.g. ``1.5 GiB``."""
    value = float(size)
    for unit in _BYTE_UNITS:
        if abs(value) < 1024 or unit == _BYTE_UNITS[-1]:
            break
        value /= 1024
    if unit == "B":
        return f"{int(value)} B"
    return f"{value:.1f} {unit}"


def format_percent(fraction: float) -> str:
    """Format a 0-1 fraction as a percentage."""
    return f"{fraction * 100:.2f}%"
