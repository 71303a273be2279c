"""Utility functions for netmeter."""

import ipaddress
from datetime import date, datetime
from typing import Optional, Union

UNITS = ['KB', 'MB', 'GB', 'TB']


def format_bytes(bytes_val: float) -> str:
    """Format bytes to human readable string.

    Values below 1 KB are shown as whole bytes, everything else
    with two decimals. A value that rounds up to 1024 of one unit is
    shown in the next unit.

    Args:
        bytes_val: Number of bytes

    Returns:
        Formatted string like "512 B" or "1.23 MB"
    """
    if round(bytes_val) < 1024:
        return f"{bytes_val:.0f} B"

    for unit in UNITS[:-1]:
        bytes_val /= 1024
        if round(bytes_val, 2) < 1024:
            return f"{bytes_val:.2f} {unit}"
    return f"{bytes_val / 1024:.2f} {UNITS[-1]}"


def format_speed(bytes_per_sec: float) -> str:
    """Format a byte rate, e.g. "1.50 MB/s"."""
    return f"{format_bytes(bytes_per_sec)}/s"


def format_uptime(seconds: float) -> str:
    """Format seconds as HH:MM:SS."""
    total = int(max(seconds, 0))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def day_key(moment: Optional[Union[date, datetime]] = None) -> date:
    """Truncate a moment to its local calendar day."""
    if moment is None:
        return date.today()
    if isinstance(moment, datetime):
        return moment.date()
    return moment


def is_valid_ip(ip_string: str) -> bool:
    """Check if string is a valid IP address.

    Args:
        ip_string: String to validate

    Returns:
        True if valid IP address
    """
    try:
        ipaddress.ip_address(ip_string)
        return True
    except ValueError:
        return False
