"""Human-readable byte sizes."""

UNITS = ["Bytes", "KB", "MB", "GB"]


def format_bytes(size_bytes: int) -> str:
    """Format a byte count using base-1024 units with two decimals.

    ``0`` is rendered as ``"0 Bytes"``. Sizes past the GB range stay in GB.
    """
    if isinstance(size_bytes, bool) or not isinstance(size_bytes, int):
        raise ValueError(f"size must be an integer byte count, got {size_bytes!r}")
    if size_bytes < 0:
        raise ValueError(f"size cannot be negative, got {size_bytes}")
    if size_bytes == 0:
        return "0 Bytes"
    value = float(size_bytes)
    unit = UNITS[0]
    for unit in UNITS:
        if value < 1024 or unit == UNITS[-1]:
            break
        value /= 1024
    return f"{value:.2f} {unit}"


def format_percent(value: float) -> str:
    """Format a percentage with one decimal, e.g. ``"42.5%"``."""
    return f"{value:.1f}%"


def format_seconds(value: float) -> str:
    """Format a duration in seconds with one decimal, e.g. ``"1.3s"``."""
    return f"{value:.1f}s"
