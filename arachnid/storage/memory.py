"""
In-memory storage backend.
"""

import threading
from typing import Dict, Iterator, Mapping, Optional, Tuple

from ..crawler.page import Page
from .base import StorageBackend


class MemoryStorage(StorageBackend):
    """Dictionary of pages keyed by URL. The default backend."""

    def __init__(self):
        self._pages: Dict[str, Page] = {}
        self._lock = threading.Lock()

    def get(self, url: str) -> Optional[Page]:
        with self._lock:
            return self._pages.get(url)

    def put(self, url: str, page: Page):
        with self._lock:
            self._pages[url] = page

    def delete(self, url: str) -> Optional[Page]:
        with self._lock:
            return self._pages.pop(url, None)

    def each(self) -> Iterator[Tuple[str, Page]]:
        with self._lock:
            items = list(self._pages.items())
        return iter(items)

    def merge(self, pages: Mapping[str, Page]):
        with self._lock:
            self._pages.update(pages)

    def has_key(self, url: str) -> bool:
        with self._lock:
            return url in self._pages

    def size(self) -> int:
        with self._lock:
            return len(self._pages)

    def keys(self):
        with self._lock:
            return list(self._pages)

    def clean(self):
        with self._lock:
            self._pages.clear()
