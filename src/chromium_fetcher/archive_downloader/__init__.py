"""
Archive downloader.

This package handles:
1. Streaming archives over a pluggable asynchronous transport
2. Detecting truncated downloads
3. Extracting archives safely into staging directories
4. Verifying the extracted executable
"""

from .downloader import Downloader
from .extractor import Extractor
from .transport import ByteStream, Transport, create_transport

__all__ = ["ByteStream", "Downloader", "Extractor", "Transport", "create_transport"]
