"""
Page store: URL deduplication and crash-resumable crawl state on top of a
storage backend.

Every URL the crawler knows about has an entry. An entry is *pending* while
the URL is queued but not yet processed (a stub page with ``visited``
False) and *complete* once the crawler has processed it.
"""

import logging
from collections import deque
from typing import Dict, Iterable, Iterator, List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from ..crawler.page import LinkRequest, Page
from .base import StorageBackend

SCHEMES = ('http', 'https')


def scheme_variants(url: str) -> List[str]:
    """The http and https forms of *url*, or just *url* for other schemes."""
    url = str(url)
    parts = urlsplit(url)
    if parts.scheme not in SCHEMES:
        return [url]
    return [urlunsplit((scheme,) + tuple(parts[1:])) for scheme in SCHEMES]


def page_key(url: str) -> str:
    """*url* with https folded into http; equal for two forms of one page."""
    return scheme_variants(url)[0]


class PageStore:
    """Wraps a StorageBackend with the crawler's bookkeeping."""

    def __init__(self, storage: StorageBackend):
        self.storage = storage
        self.logger = logging.getLogger(__name__)

    def __getitem__(self, url: str) -> Optional[Page]:
        return self.get(url)

    def __setitem__(self, url: str, page: Page):
        self.put(url, page)

    def __contains__(self, url: str) -> bool:
        return self.has_page(url)

    def __len__(self) -> int:
        return self.size()

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def get(self, url: str) -> Optional[Page]:
        return self.storage.get(str(url))

    def put(self, url: str, page: Page):
        """Store the finished page for *url*, completing its entry."""
        page.visited = True
        self.storage.put(str(url), page)

    def delete(self, url: str) -> Optional[Page]:
        return self.storage.delete(str(url))

    def has_key(self, url: str) -> bool:
        return self.storage.has_key(str(url))

    def has_page(self, url: str) -> bool:
        """
        True if *url* is pending or complete. The http and https forms of
        a URL are treated as the same page.
        """
        return any(self.has_key(variant) for variant in scheme_variants(url))

    def size(self) -> int:
        return self.storage.size()

    def keys(self) -> List[str]:
        return self.storage.keys()

    def items(self) -> Iterator[Tuple[str, Page]]:
        return self.storage.each()

    def values(self) -> List[Page]:
        return [page for _, page in self.items()]

    def mark_pending(self, url: str, referer: Optional[str] = None, depth: int = 0):
        """Reserve *url* without a full record. Existing entries are kept."""
        self.mark_pending_batch([url], referer=referer, depth=depth)

    def mark_pending_batch(self, urls: Iterable[str], referer: Optional[str] = None,
                           depth: int = 0):
        """Reserve every URL in *urls* that has no entry yet."""
        stubs: Dict[str, Page] = {}
        for url in urls:
            url = str(url)
            if url in stubs or self.has_key(url):
                continue
            stubs[url] = Page(url=url, referer=referer, depth=depth)
        self.storage.merge(stubs)

    def mark_complete(self, url: str):
        """
        Claim *url* once its page is taken off the result queue.

        The key is reserved but the entry stays pending until ``put`` stores
        the processed page, so a run that dies in between resumes it.
        """
        self.mark_pending(url)

    def is_pending(self, url: str) -> bool:
        page = self.get(url)
        return page is not None and not page.visited

    def pending_urls(self) -> List[str]:
        return [url for url, page in self.items() if not page.visited]

    def visited_urls(self) -> List[str]:
        return [url for url, page in self.items() if page.visited]

    def reset(self):
        """Delete every entry."""
        self.logger.info("Cleaning page store")
        self.storage.clean()

    def resume(self, link_queue):
        """
        Push a LinkRequest for every pending entry onto *link_queue*.

        Used after an interrupted crawl. Complete entries are left alone.
        Entries without depth or referer are resumed at depth 0 with no
        referer.

        Returns:
            The queue that was passed in
        """
        resumed = 0
        for url, page in self.items():
            if page.visited:
                continue
            link_queue.put(LinkRequest(url=url, referer=page.referer, depth=page.depth or 0))
            resumed += 1

        if resumed:
            self.logger.info(f"Resumed {resumed} pending URLs from the page store")
        return link_queue

    def pages_linking_to(self, urls: Iterable[str]) -> Dict[str, List[Page]]:
        """Map each URL in *urls* to the stored pages that link to it."""
        targets = {str(url): [] for url in urls}
        for _, page in self.items():
            for link in page.links:
                if link in targets:
                    targets[link].append(page)
        return targets

    def urls_linking_to(self, urls: Iterable[str]) -> Dict[str, List[str]]:
        """Map each URL in *urls* to the URLs of pages that link to it."""
        return {url: [page.url for page in pages]
                for url, pages in self.pages_linking_to(urls).items()}

    def shortest_paths(self, root: str) -> 'PageStore':
        """
        Rewrite each reachable page's depth as its link distance from *root*.
        """
        root = str(root)
        distances = {root: 0}
        queue = deque([root])

        while queue:
            url = queue.popleft()
            page = self.get(url)
            if page is None:
                continue
            if page.depth != distances[url]:
                page.depth = distances[url]
                self.storage.put(url, page)
            for link in page.links:
                if link not in distances:
                    distances[link] = distances[url] + 1
                    queue.append(link)

        return self

    def close(self):
        self.storage.close()
