"""
Fetch worker threads.
"""

import logging
import queue
import threading
import time

from ..utils.config import CrawlOptions
from ..utils.logger import get_crawl_logger
from .page import LinkRequest, Page
from .work_queue import WorkQueue

# Put on the link queue once per worker to shut the pool down
END = object()


class Tentacle(threading.Thread):
    """
    Worker that takes LinkRequests off the link queue, fetches them and puts
    exactly one Page per request on the page queue.
    """

    def __init__(self, name: str, link_queue: WorkQueue, page_queue: queue.Queue,
                 fetcher, options: CrawlOptions):
        super().__init__(name=name, daemon=True)
        self.link_queue = link_queue
        self.page_queue = page_queue
        self.fetcher = fetcher
        self.options = options
        self.pages_fetched = 0
        self.logger = get_crawl_logger(__name__, worker=name)

    def run(self):
        self.logger.debug(f"Worker {self.name} started")
        try:
            while True:
                request = self.link_queue.get()
                if request is END:
                    break

                self.page_queue.put(self._fetch(request))
                self.pages_fetched += 1

                if self.options.delay:
                    time.sleep(self.options.delay)
        finally:
            self._close_fetcher()
            self.logger.debug(f"Worker {self.name} finished after {self.pages_fetched} pages")

    def _fetch(self, request: LinkRequest) -> Page:
        try:
            page = self.fetcher.fetch(request)
        except Exception as e:
            self.logger.url_event(logging.ERROR, request.url, f"Unexpected error fetching {request.url}: {e}",
                                      exc_info=True)
            return Page.from_request(request, error=f"Unexpected error: {e}")

        if page.error:
            self.logger.url_event(logging.WARNING, request.url, f"Failed to fetch {request.url}: {page.error}")
        return page

    def _close_fetcher(self):
        close = getattr(self.fetcher, 'close', None)
        if close is None:
            return
        try:
            close()
        except Exception as e:
            self.logger.warning(f"Error closing fetcher: {e}")
