"""
Shared fixtures: an in-memory "web" that fetch workers read from.
"""

import threading
import time
from collections import Counter
from urllib.parse import urljoin

import pytest

from arachnid.crawler.page import Page

ROOT = 'http://example.com/'


def url(path):
    return urljoin(ROOT, path)


class FakeWeb:
    """
    A link graph served to the crawler instead of the network.

    ``graph`` maps a URL to the hrefs on that page; URLs missing from it
    answer 404, URLs in ``errors`` fail to fetch, URLs in ``raises`` make the
    fetcher raise.
    """

    def __init__(self, graph, errors=(), raises=(), latency=0.0):
        self.graph = {url(page): links for page, links in graph.items()}
        self.errors = {url(page) for page in errors}
        self.raises = {url(page) for page in raises}
        self.latency = latency
        self.requests = []
        self.fetchers = []
        self._lock = threading.Lock()

    def factory(self, options, proxies):
        fetcher = FakeFetcher(self, proxies)
        self.fetchers.append(fetcher)
        return fetcher

    def record(self, request):
        with self._lock:
            self.requests.append(request)

    @property
    def fetched_urls(self):
        return [request.url for request in self.requests]

    def fetch_counts(self):
        return Counter(self.fetched_urls)


class FakeFetcher:

    def __init__(self, web, proxies):
        self.web = web
        self.proxies = proxies
        self.closed = False

    def fetch(self, request):
        self.web.record(request)
        if self.web.latency:
            time.sleep(self.web.latency)

        if request.url in self.web.raises:
            raise RuntimeError("fetcher blew up")
        if request.url in self.web.errors:
            return Page.from_request(request, error="Client error: connection refused")

        links = self.web.graph.get(request.url)
        headers = {'Content-Type': 'text/html; charset=utf-8'}
        if links is None:
            return Page.from_request(request, code=404, headers=headers, body='', fetched=True)

        anchors = ''.join(f'<a href="{href}">{href}</a>' for href in links)
        body = f'<html><body>{anchors}</body></html>'
        return Page.from_request(request, code=200, headers=headers, body=body, fetched=True)

    def close(self):
        self.closed = True


@pytest.fixture
def make_web():
    return FakeWeb
