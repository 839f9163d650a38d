"""
Utilities for handling file paths, naming patterns, and source validation.
"""

from pathlib import Path
from urllib.parse import urlsplit

from pathvalidate import sanitize_filename


def is_absolute_uri(value: str) -> bool:
    """
    Checks that a string is a well-formed absolute URI.
    Network schemes need a host, `file:` URIs need a path.
    """
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    if not parts.scheme or len(parts.scheme) < 2:
        # A single letter is a Windows drive, not a scheme
        return False
    if parts.scheme == "file":
        return bool(parts.path)
    return bool(parts.netloc)


def is_existing_path(value: str) -> bool:
    try:
        return Path(value).expanduser().exists()
    except (OSError, ValueError):
        return False


def is_valid_source(value: str) -> bool:
    """True for an absolute URI or an existing local filesystem path."""
    value = value.strip()
    if not value:
        return False
    return is_absolute_uri(value) or is_existing_path(value)


def sanitize_pattern(pattern: str) -> str:
    """Makes a naming pattern safe to use as a file name stem."""
    return sanitize_filename(pattern.strip(), platform="auto").strip()


def build_destination_name(pattern: str, sequence: int) -> str:
    return f"{pattern}_{sequence}"


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)
