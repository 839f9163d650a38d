"""
Helper functions for formatting data into human-readable strings.
"""

from datetime import timedelta


def format_duration(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2h 34m 12s').
    """
    s = int(seconds)
    hours, remainder = divmod(s, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def format_timestamp(value: timedelta) -> str:
    """Formats a media position as HH:MM:SS, the way ffmpeg prints it."""
    total = max(0, int(value.total_seconds()))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def parse_timestamp(value: str) -> timedelta | None:
    """
    Parses an ffmpeg 'HH:MM:SS.ff' timestamp. Returns None for 'N/A' or any
    other value that is not a timestamp.
    """
    parts = value.strip().split(":")
    if len(parts) != 3:
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
        seconds = float(parts[2])
    except ValueError:
        return None
    if hours < 0 or minutes < 0 or seconds < 0:
        return None
    return timedelta(hours=hours, minutes=minutes, seconds=seconds)


def shorten(text: str, width: int) -> str:
    """Trims the middle of a long string (URLs mostly) to fit a column."""
    if len(text) <= width:
        return text
    if width < 3:
        return text[:width]
    keep = max(1, (width - 1) // 2)
    return f"{text[:keep]}…{text[-(width - keep - 1):]}"
