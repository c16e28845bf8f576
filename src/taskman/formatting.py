"""Formatting utilities for process table cells."""

import math

BYTES_PER_MB = 1024 * 1024

# Values below this render as a bare zero, so idle rows don't flicker
ZERO_THRESHOLD = 0.01


def _is_zero(value: float) -> bool:
    return not math.isfinite(value) or abs(value) < ZERO_THRESHOLD


def format_percent(value: float) -> str:
    """Format a percentage: "0%" below threshold, otherwise "5.00%"."""
    if _is_zero(value):
        return "0%"
    return f"{value:.2f}%"


def format_megabytes(num_bytes: float) -> str:
    """Format a byte count as megabytes: "0 MB" or "1.50 MB"."""
    megabytes = num_bytes / BYTES_PER_MB
    if _is_zero(megabytes):
        return "0 MB"
    return f"{megabytes:.2f} MB"


def format_rate(bytes_per_second: float) -> str:
    """Format a byte rate as megabytes per second: "0 MB/s" or "2.00 MB/s"."""
    rate = bytes_per_second / BYTES_PER_MB
    if _is_zero(rate):
        return "0 MB/s"
    return f"{rate:.2f} MB/s"


def format_network(mbps: float = 0.0) -> str:
    """Format the network column. Network accounting is not collected."""
    if _is_zero(mbps):
        return "0 Mbps"
    return f"{mbps:.2f} Mbps"


def format_load(value: float) -> str:
    """Format a header percentage with no decimals: "42%"."""
    if not math.isfinite(value):
        return "0%"
    return f"{value:.0f}%"
