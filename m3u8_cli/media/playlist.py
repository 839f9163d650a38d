"""
Fetches and inspects M3U8 playlists so a source can be checked before it is
queued for conversion.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from urllib.parse import urljoin

import aiofiles
import aiohttp

from m3u8_cli.exceptions import PlaylistError
from m3u8_cli.utils.path import is_absolute_uri

log = logging.getLogger(__name__)

_EXTINF_REGEX = re.compile(r"^#EXTINF:\s*(?P<duration>[\d.]+)")
_ATTRIBUTE_REGEX = re.compile(r'(?P<key>[A-Z0-9-]+)=(?P<value>"[^"]*"|[^,]*)')


@dataclass(frozen=True)
class Variant:
    """One rendition listed in a master playlist."""

    uri: str
    bandwidth: int = 0
    resolution: str = ""
    codecs: str = ""


@dataclass
class PlaylistInfo:
    source: str
    is_master: bool = False
    variants: list[Variant] = field(default_factory=list)
    segment_count: int = 0
    duration: timedelta = timedelta(0)
    is_live: bool = True
    target_duration: int | None = None


def _parse_attributes(text: str) -> dict[str, str]:
    return {
        m.group("key"): m.group("value").strip('"')
        for m in _ATTRIBUTE_REGEX.finditer(text)
    }


def parse_playlist(text: str, source: str = "") -> PlaylistInfo:
    """
    Parses the text of a master or media playlist.

    Raises:
        PlaylistError: If the text does not start with the #EXTM3U tag.
    """
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines or not lines[0].lstrip("\ufeff").startswith("#EXTM3U"):
        raise PlaylistError(f"'{source or 'input'}' is not an M3U8 playlist.")

    info = PlaylistInfo(source=source)
    total_seconds = 0.0
    pending_variant: dict[str, str] | None = None

    for line in lines[1:]:
        if line.startswith("#EXT-X-STREAM-INF:"):
            info.is_master = True
            pending_variant = _parse_attributes(line.split(":", 1)[1])
        elif match := _EXTINF_REGEX.match(line):
            total_seconds += float(match.group("duration"))
            info.segment_count += 1
        elif line.startswith("#EXT-X-TARGETDURATION:"):
            try:
                info.target_duration = int(line.split(":", 1)[1])
            except ValueError:
                log.debug(f"Ignoring malformed target duration: {line}")
        elif line.startswith("#EXT-X-ENDLIST"):
            info.is_live = False
        elif not line.startswith("#") and pending_variant is not None:
            try:
                bandwidth = int(pending_variant.get("BANDWIDTH", 0))
            except ValueError:
                bandwidth = 0
            info.variants.append(
                Variant(
                    uri=urljoin(source, line) if is_absolute_uri(source) else line,
                    bandwidth=bandwidth,
                    resolution=pending_variant.get("RESOLUTION", ""),
                    codecs=pending_variant.get("CODECS", ""),
                )
            )
            pending_variant = None

    if info.is_master:
        info.is_live = False
        info.variants.sort(key=lambda v: v.bandwidth, reverse=True)
    info.duration = timedelta(seconds=total_seconds)
    return info


async def fetch_playlist(source: str, timeout: float = 30.0) -> PlaylistInfo:
    """
    Loads a playlist from a URL or a local file and parses it.

    Raises:
        PlaylistError: If the playlist cannot be read or parsed.
    """
    if is_absolute_uri(source) and not source.startswith("file:"):
        client_timeout = aiohttp.ClientTimeout(total=timeout)
        try:
            async with aiohttp.ClientSession(timeout=client_timeout) as session:
                async with session.get(source) as response:
                    response.raise_for_status()
                    text = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise PlaylistError(f"Could not fetch playlist: {e}") from e
    else:
        path = Path(source.removeprefix("file://")).expanduser()
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                text = await f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise PlaylistError(f"Could not read playlist file {path}: {e}") from e

    log.debug(f"Fetched playlist ({len(text)} characters) from {source}")
    return parse_playlist(text, source)
