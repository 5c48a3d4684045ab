"""
Helper functions for formatting data into human-readable strings.
"""

from datetime import datetime, timezone

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")
_DURATION_UNITS = ((3600, "h"), (60, "m"))


def format_size(bytes_size: int) -> str:
    """Formats a byte count with binary multiples (e.g., '512 B', '145.3 MB')."""
    value = float(max(bytes_size, 0))
    for unit in _SIZE_UNITS:
        if value < 1024 or unit == _SIZE_UNITS[-1]:
            break
        value /= 1024
    if unit == "B":
        return f"{int(value)} B"
    return f"{value:.1f} {unit}"


def format_duration(seconds: float) -> str:
    """Formats seconds as compact units (e.g., '2h 34m 12s', '0s')."""
    remaining = max(int(seconds), 0)
    parts = []
    for unit_seconds, suffix in _DURATION_UNITS:
        value, remaining = divmod(remaining, unit_seconds)
        if value:
            parts.append(f"{value}{suffix}")
    if remaining or not parts:
        parts.append(f"{remaining}s")
    return " ".join(parts)


def format_age(created_at: datetime, now: datetime | None = None) -> str:
    """Formats how long ago a timestamp was (e.g., '3h 2m ago')."""
    now = now or datetime.now(timezone.utc)
    return f"{format_duration((now - created_at).total_seconds())} ago"
