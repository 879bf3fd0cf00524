"""
Session persistence: pluggable adapters plus the canon reference cache
"""

from .base import StorageAdapter, available_adapters, create_adapter, register_adapter
from .canon_cache import CanonCache
from .database import DatabaseStorageAdapter
from .file import FileStorageAdapter
from .memory_cache import InMemoryCanonCache
from .pokeapi import PokeAPIClient

__all__ = [
    "StorageAdapter",
    "FileStorageAdapter",
    "DatabaseStorageAdapter",
    "CanonCache",
    "InMemoryCanonCache",
    "PokeAPIClient",
    "create_adapter",
    "register_adapter",
    "available_adapters",
]
