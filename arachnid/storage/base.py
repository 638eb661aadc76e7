"""
Storage backend abstraction.

A backend stores one Page per URL. Everything the crawler needs from it is
listed on ``StorageBackend``; ``open_storage`` turns the ``storage`` crawl
option into a backend instance.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from ..crawler.page import Page
from ..exceptions import ConfigError

logger = logging.getLogger(__name__)


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    def get(self, url: str) -> Optional[Page]:
        """Return the page stored under *url*, or None."""
        raise NotImplementedError

    @abstractmethod
    def put(self, url: str, page: Page):
        """Store *page* under *url*, replacing any previous record."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, url: str) -> Optional[Page]:
        """Remove *url* and return the page that was stored, if any."""
        raise NotImplementedError

    @abstractmethod
    def each(self) -> Iterator[Tuple[str, Page]]:
        """Iterate over ``(url, page)`` pairs in no particular order."""
        raise NotImplementedError

    @abstractmethod
    def has_key(self, url: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def size(self) -> int:
        raise NotImplementedError

    def merge(self, pages: Mapping[str, Page]):
        """Store every page in *pages*."""
        for url, page in pages.items():
            self.put(url, page)

    def keys(self) -> List[str]:
        return [url for url, _ in self.each()]

    def clean(self):
        """Delete every record."""
        for url in self.keys():
            self.delete(url)

    def close(self):
        """Release connections held by the backend."""
        pass


def open_storage(selector: Any = None, redis_config: Optional[Dict[str, Any]] = None) -> StorageBackend:
    """
    Resolve the ``storage`` crawl option into a backend.

    Args:
        selector: None or ``"memory"`` for the in-memory backend, ``"redis"``
            or a ``redis://`` URL for the Redis backend, or a ready
            ``StorageBackend`` instance
        redis_config: Keyword arguments for ``RedisStorage`` when the
            selector is ``"redis"``

    Raises:
        ConfigError: if the selector is not recognised
    """
    if isinstance(selector, StorageBackend):
        return selector

    if selector is None or selector == 'memory':
        from .memory import MemoryStorage
        return MemoryStorage()

    if isinstance(selector, str) and (selector == 'redis' or selector.startswith(('redis://', 'rediss://', 'unix://'))):
        from .redis_storage import RedisStorage
        options = dict(redis_config or {})
        if selector != 'redis':
            return RedisStorage.from_url(selector, key_prefix=options.get('key_prefix', 'arachnid'))
        return RedisStorage(**options)

    raise ConfigError(f"Unknown storage selector: {selector!r}")
