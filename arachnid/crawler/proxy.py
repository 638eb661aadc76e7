"""
Proxy rotation shared by the fetch workers of one crawl.
"""

import logging
import threading
from typing import Iterable, List, Optional


class ProxyRegistry:
    """A list of proxy endpoints and the one currently in use."""

    def __init__(self, endpoints: Optional[Iterable[str]] = None):
        self._lock = threading.Lock()
        self._endpoints: List[str] = []
        self._index = 0
        self.logger = logging.getLogger(__name__)
        if endpoints:
            self.load(endpoints)

    def load(self, endpoints: Optional[Iterable[str]]):
        """Replace the endpoint list and select the first entry."""
        with self._lock:
            self._endpoints = [endpoint for endpoint in (endpoints or []) if endpoint]
            self._index = 0
        if self._endpoints:
            self.logger.info(f"Loaded {len(self._endpoints)} proxies")

    def current(self) -> Optional[str]:
        with self._lock:
            if not self._endpoints:
                return None
            return self._endpoints[self._index]

    def rotate(self) -> Optional[str]:
        """Advance to the next endpoint, wrapping around, and return it."""
        with self._lock:
            if not self._endpoints:
                return None
            self._index = (self._index + 1) % len(self._endpoints)
            endpoint = self._endpoints[self._index]
        self.logger.debug(f"Switched proxy to {endpoint}")
        return endpoint

    def __len__(self) -> int:
        with self._lock:
            return len(self._endpoints)
