#!/usr/bin/env python3
"""
Utility functions for the log upload strategy
Common helpers for byte formatting and time unit conversion
"""

import math

TIME_UNITS = {
    "milliseconds": 0.001,
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
    "days": 86400,
}


def format_bytes(bytes_value: int, precision: int = 2) -> str:
    """Format bytes as human-readable string with auto-scaling (KB/MB/GB/TB)."""
    if bytes_value < 1024**2:
        return f"{bytes_value / 1024:.{precision}f} KB"
    elif bytes_value < 1024**3:
        return f"{bytes_value / 1024**2:.{precision}f} MB"
    elif bytes_value < 1024**4:
        return f"{bytes_value / 1024**3:.{precision}f} GB"
    else:
        return f"{bytes_value / 1024**4:.{precision}f} TB"


def is_number(value) -> bool:
    """Check for a real int/float (bool is rejected)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_positive_number(value) -> bool:
    """Check for a finite number > 0 (NaN and infinity are rejected)."""
    return is_number(value) and math.isfinite(value) and value > 0


def to_seconds(magnitude: float, unit: str = "seconds") -> float:
    """
    Convert a duration given as magnitude + unit to seconds.

    Args:
        magnitude: Duration value
        unit: One of TIME_UNITS keys

    Returns:
        float: Duration in seconds

    Raises:
        KeyError: If unit is unknown

    Examples:
        >>> to_seconds(10)  # 10.0
        >>> to_seconds(500, 'milliseconds')  # 0.5
        >>> to_seconds(2, 'minutes')  # 120.0
    """
    return float(magnitude) * TIME_UNITS[unit]
