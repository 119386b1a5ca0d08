"""
Storage Module
In-memory caching
"""
from .cache import (
    BaseCache,
    MemoryCache,
)

__all__ = [
    "BaseCache",
    "MemoryCache",
]
