"""
Cache primitives
"""

from .kv import TtlCache, CacheEntry

__all__ = [
    "TtlCache",
    "CacheEntry",
]
