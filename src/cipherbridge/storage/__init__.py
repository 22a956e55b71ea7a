"""CipherBridge Storage Module.

This module provides the local key-value store backing the shadow balance
cache.
"""

from .database import MEMORY_DATABASE, DatabaseConfig, KeyValueStore

__all__ = [
    "DatabaseConfig",
    "KeyValueStore",
    "MEMORY_DATABASE",
]
