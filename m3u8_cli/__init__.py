"""
m3u8-cli: queue M3U8 streams and convert them to local video files.
"""

__version__ = "0.3.0"
