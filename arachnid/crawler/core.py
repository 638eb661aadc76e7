"""
Crawl orchestrator.

The crawler owns a pool of Tentacle threads, a link queue feeding them and a
page queue they fill. A single loop on the calling thread drains the page
queue, runs the page callbacks, queues the links worth following and records
every page in the PageStore.
"""

import logging
import queue
import re
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Pattern, Tuple, Union
from urllib.parse import urljoin, urlsplit

from ..exceptions import ConfigError, CrawlerError
from ..storage import PageStore, open_storage
from ..storage.page_store import page_key
from ..utils.config import CrawlOptions
from ..utils.monitoring import CrawlMetrics
from .fetcher import http_fetcher_factory
from .page import LinkRequest, Page
from .parser import normalize_url
from .proxy import ProxyRegistry
from .robots import RobotsChecker
from .tentacle import END, Tentacle
from .work_queue import WorkQueue

PatternLike = Union[str, Pattern]
PageCallback = Callable[[Page], Any]

# How often the quiescence wait checks that the workers are still alive
WORKER_CHECK_INTERVAL = 1.0


def _compile(patterns: Iterable[PatternLike]) -> List[Pattern]:
    compiled = []
    for pattern in patterns:
        if pattern is None:
            continue
        compiled.append(re.compile(pattern) if isinstance(pattern, str) else pattern)
    return compiled


def _flatten(patterns: Tuple[Any, ...]) -> List[PatternLike]:
    flat = []
    for pattern in patterns:
        if isinstance(pattern, (list, tuple, set)):
            flat.extend(pattern)
        else:
            flat.append(pattern)
    return flat


class Crawler:
    """
    Crawls one or more seed URLs.

    Register callbacks and filters, then call ``run``::

        crawler = Crawler('http://example.com/', threads=2, depth_limit=3)
        crawler.skip_links_like(r'\\.pdf$')
        crawler.on_every_page(lambda page: print(page.url))
        pages = crawler.run()
    """

    def __init__(self, urls: Union[str, Iterable[str]],
                 fetcher_factory: Optional[Callable] = None,
                 metrics: Optional[CrawlMetrics] = None,
                 redis_config: Optional[Dict[str, Any]] = None,
                 **options):
        if isinstance(urls, str):
            urls = [urls]
        self.urls = [self._normalize_seed(url) for url in urls]

        # Fail on bad options now rather than at run time
        CrawlOptions.resolve(options)
        self._overrides = dict(options)
        self.options: Optional[CrawlOptions] = None

        self.fetcher_factory = fetcher_factory or http_fetcher_factory
        self.metrics = metrics or CrawlMetrics()
        self.redis_config = redis_config
        self.proxies = ProxyRegistry()
        self.robots: Optional[RobotsChecker] = None
        self.pages: Optional[PageStore] = None
        self.tentacles: List[Tentacle] = []

        self._on_every_page_blocks: List[PageCallback] = []
        self._on_pages_like_blocks: List[Tuple[List[Pattern], PageCallback]] = []
        self._skip_link_patterns: List[Pattern] = []
        self._after_crawl_blocks: List[Callable[[PageStore], Any]] = []
        self._focus_crawl_block: Optional[Callable[[Page], Iterable[str]]] = None
        self._stop_crawl = threading.Event()

        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _normalize_seed(url) -> str:
        normalized = normalize_url(str(url))
        if normalized is None:
            raise ConfigError(f"Invalid seed URL: {url!r}")
        return normalized

    def configure(self, **options) -> 'Crawler':
        """Change crawl options. Only allowed before the crawl starts."""
        if self.options is not None:
            raise ConfigError("Crawl options are frozen once the crawl has started")
        merged = dict(self._overrides)
        merged.update(options)
        CrawlOptions.resolve(merged)
        self._overrides = merged
        return self

    def after_crawl(self, block: Callable[[PageStore], Any]) -> 'Crawler':
        """Add a callable run with the PageStore once the crawl is finished."""
        self._after_crawl_blocks.append(block)
        return self

    def skip_links_like(self, *patterns: PatternLike) -> 'Crawler':
        """Add regular expressions for URL paths which should not be followed."""
        self._skip_link_patterns.extend(_compile(_flatten(patterns)))
        return self

    def on_every_page(self, block: PageCallback) -> 'Crawler':
        """Add a callable run on every page as it is processed."""
        self._on_every_page_blocks.append(block)
        return self

    def on_pages_like(self, *args) -> 'Crawler':
        """
        Add a callable run on pages whose URL matches any of the patterns.

        Usage: ``on_pages_like(pattern, [pattern, ...], block)``
        """
        if not args or not callable(args[-1]):
            raise TypeError("on_pages_like() needs one or more patterns and a callable")
        *patterns, block = args
        compiled = _compile(_flatten(tuple(patterns)))
        if compiled:
            self._on_pages_like_blocks.append((compiled, block))
        return self

    def focus_crawl(self, block: Callable[[Page], Iterable[str]]) -> 'Crawler':
        """
        Set the callable choosing which links to follow from each page.
        It receives the page and returns the URLs to consider.
        """
        self._focus_crawl_block = block
        return self

    def stop_crawl(self):
        """
        Ask the crawler to stop once the current page has been processed.

        Meant to be called from a page callback. Links still queued and pages
        not yet processed are discarded; their URLs stay pending in the store.
        """
        self._stop_crawl.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_crawl.is_set()

    def set_new_proxy(self) -> Optional[str]:
        """Switch the workers to the next proxy in the proxy list."""
        return self.proxies.rotate()

    def clean_db(self):
        if self.pages is not None:
            self.pages.reset()

    def run(self) -> PageStore:
        """
        Perform the crawl.

        Returns:
            The PageStore holding every page seen
        """
        self._process_options()
        self.tentacles = []

        with self._open_page_store() as pages:
            self.pages = pages
            if self.options.force_start or self.options.clean_db_only:
                pages.reset()
            if self.options.clean_db_only:
                self.logger.info("clean_db_only set, not crawling")
                return pages

            seeds = [url for url in self._unique_seeds() if self.visit_link(url)]
            if self.options.force_start and not seeds:
                self.logger.warning("No eligible seed URLs, nothing to crawl")
                return pages

            link_queue = WorkQueue()
            page_queue: queue.Queue = queue.Queue()
            try:
                self._start_tentacles(link_queue, page_queue)
                for url in seeds:
                    link_queue.put(LinkRequest(url=url, referer=None, depth=0))

                self.logger.debug(f"Link queue size before resume: {link_queue.qsize()}")
                pages.resume(link_queue)
                # after resume, which would otherwise queue the seeds twice
                pages.mark_pending_batch(seeds, depth=0)
                self.logger.info(f"Starting crawl with {link_queue.qsize()} queued links "
                                 f"and {len(self.tentacles)} workers")

                if not link_queue.empty():
                    self._process_pages(link_queue, page_queue)
            finally:
                self._stop_tentacles(link_queue)

            self._do_after_crawl_blocks()
            if self.options.clean_on_finish:
                self.clean_db()

            self.logger.info(f"Crawl finished: {self.metrics.summary()}")
        return pages

    def _process_options(self):
        if self.options is not None:
            return
        self.options = CrawlOptions.resolve(self._overrides)
        self.proxies.load(self.options.proxy_list)
        if self.options.obey_robots_txt:
            self.robots = RobotsChecker(self.options.user_agent)

    @contextmanager
    def _open_page_store(self) -> Iterator[PageStore]:
        pages = PageStore(open_storage(self.options.storage, self.redis_config))
        try:
            yield pages
        finally:
            try:
                pages.close()
            except CrawlerError as e:
                self.logger.error(f"Error closing storage: {e}")

    def _start_tentacles(self, link_queue: WorkQueue, page_queue: queue.Queue):
        for i in range(self.options.threads):
            fetcher = self.fetcher_factory(self.options, self.proxies)
            tentacle = Tentacle(f"tentacle-{i}", link_queue, page_queue, fetcher, self.options)
            tentacle.start()
            self.tentacles.append(tentacle)

    def _stop_tentacles(self, link_queue: WorkQueue):
        dropped = link_queue.clear()
        if dropped:
            self.logger.info(f"Discarded {dropped} queued links")
        for _ in self.tentacles:
            link_queue.put(END)
        for tentacle in self.tentacles:
            tentacle.join()

    def _process_pages(self, link_queue: WorkQueue, page_queue: queue.Queue):
        while True:
            page = page_queue.get()
            self.pages.mark_complete(page.url)

            message = f"{page.url} Queue: {link_queue.qsize()}"
            if self.options.verbose:
                self.logger.info(message)
            else:
                self.logger.debug(message)

            self._do_page_blocks(page)
            if self.options.discard_page_bodies:
                page.discard_body()

            links = self._links_to_follow(page)
            for link in links:
                link_queue.put(LinkRequest(url=link, referer=page.url, depth=page.depth + 1))
            self.pages.mark_pending_batch(links, referer=page.url, depth=page.depth + 1)

            self.pages[page.url] = page

            self.metrics.record_page(failed=page.error is not None)
            self.metrics.record_links(len(links))
            self.metrics.update_queues(link_queue.qsize(), link_queue.num_waiting)

            if self._stop_crawl.is_set():
                self.logger.info(f"Crawl stopped after {page.url}")
                break

            # if we are done with the crawl, tell the workers to end
            if link_queue.empty() and page_queue.empty():
                self._wait_for_idle_tentacles(link_queue)
                if page_queue.empty():
                    break

    def _wait_for_idle_tentacles(self, link_queue: WorkQueue):
        """Block until every worker is waiting for a link."""
        while not link_queue.wait_for_waiters(len(self.tentacles), timeout=WORKER_CHECK_INTERVAL):
            if not all(tentacle.is_alive() for tentacle in self.tentacles):
                raise CrawlerError("A worker thread exited unexpectedly")

    def _do_after_crawl_blocks(self):
        for block in self._after_crawl_blocks:
            block(self.pages)

    def _do_page_blocks(self, page: Page):
        for block in self._on_every_page_blocks:
            block(page)

        for patterns, block in self._on_pages_like_blocks:
            if any(pattern.search(page.url) for pattern in patterns):
                block(page)

    def _unique_seeds(self) -> List[str]:
        """Seed URLs in order, keeping the first of any http/https pair."""
        seeds: Dict[str, str] = {}
        for url in self.urls:
            seeds.setdefault(page_key(url), url)
        return list(seeds.values())

    def _links_to_follow(self, page: Page) -> List[str]:
        """
        The links to queue from *page*: the focus_crawl selection or the
        page's own links, minus those that should not be visited.
        """
        if self._focus_crawl_block is not None:
            candidates = self._focus_crawl_block(page) or []
        else:
            candidates = page.links

        links = []
        seen = set()
        for candidate in candidates:
            link = normalize_url(urljoin(page.url, str(candidate)))
            if link is None or page_key(link) in seen:
                continue
            seen.add(page_key(link))
            if self.visit_link(link, page):
                links.append(link)
        return links

    def visit_link(self, link: str, from_page: Optional[Page] = None) -> bool:
        """
        True if *link* has not been seen, is not excluded by a skip pattern,
        the query string rule or robots.txt, and *from_page* is not at the
        depth limit.
        """
        return (not self._too_deep(from_page) and
                not self.pages.has_page(link) and
                not self._skip_link(link) and
                not self._skip_query_string(link) and
                self._allowed(link))

    def _allowed(self, link: str) -> bool:
        if not self.options.obey_robots_txt:
            return True
        try:
            return self.robots.allowed(link)
        except Exception as e:
            self.logger.warning(f"robots.txt check failed for {link}, skipping it: {e}")
            return False

    def _too_deep(self, from_page: Optional[Page]) -> bool:
        if from_page is None or self.options.depth_limit is None:
            return False
        return from_page.depth >= self.options.depth_limit

    def _skip_query_string(self, link: str) -> bool:
        return self.options.skip_query_strings and bool(urlsplit(link).query)

    def _skip_link(self, link: str) -> bool:
        path = urlsplit(link).path
        return any(pattern.search(path) for pattern in self._skip_link_patterns)


def crawl(urls: Union[str, Iterable[str]], setup: Optional[Callable[[Crawler], Any]] = None,
          **options) -> Crawler:
    """
    Convenience method to start a crawl.

    *setup* receives the crawler before it runs, to register callbacks.
    """
    crawler = Crawler(urls, **options)
    if setup is not None:
        setup(crawler)
    crawler.run()
    return crawler
