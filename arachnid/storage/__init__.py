"""
Storage layer for the crawler.
"""

from .base import StorageBackend, open_storage
from .memory import MemoryStorage
from .page_store import PageStore
from .redis_storage import RedisStorage

__all__ = ['StorageBackend', 'open_storage', 'MemoryStorage', 'PageStore', 'RedisStorage']
