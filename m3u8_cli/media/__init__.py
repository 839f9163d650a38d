"""
Media Processing Layer.

This package is responsible for all media operations: running the conversion
engine and inspecting M3U8 playlists.
"""

from .converter import ConversionEngine, FFmpegConverter
from .playlist import PlaylistInfo, fetch_playlist, parse_playlist

__all__ = [
    "ConversionEngine",
    "FFmpegConverter",
    "PlaylistInfo",
    "fetch_playlist",
    "parse_playlist",
]
