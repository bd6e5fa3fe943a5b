"""
Local cache of extracted snapshot builds.
"""

from .store import CacheStore

__all__ = ["CacheStore"]
