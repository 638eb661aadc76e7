"""
Tests for HttpFetcher and RobotsChecker against a local HTTP server.
"""

import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import aiohttp
import pytest

from arachnid.crawler.fetcher import HttpFetcher
from arachnid.crawler.page import LinkRequest
from arachnid.crawler.proxy import ProxyRegistry
from arachnid.crawler.robots import RobotsChecker
from arachnid.utils.config import CrawlOptions

ROBOTS_TXT = "User-agent: *\nDisallow: /private\n"


class SiteHandler(BaseHTTPRequestHandler):
    robots_requests = 0

    def do_GET(self):
        if self.path == '/page':
            self._send(200, 'text/html; charset=utf-8',
                       '<html><body><a href="/a">a</a><a href="/b">b</a></body></html>')
        elif self.path == '/echo':
            self._send(200, 'text/html',
                       f"<p>{self.headers.get('User-Agent')}|{self.headers.get('Referer')}</p>")
        elif self.path == '/file.pdf':
            self._send(200, 'application/pdf', '%PDF-1.4')
        elif self.path == '/redirect':
            self._redirect('/page')
        elif self.path == '/loop':
            self._redirect('/loop')
        elif self.path == '/robots.txt':
            type(self).robots_requests += 1
            self._send(200, 'text/plain', ROBOTS_TXT)
        else:
            self._send(404, 'text/html', '<p>not found</p>')

    def _send(self, code, content_type, body):
        data = body.encode('utf-8')
        self.send_response(code)
        self.send_header('Content-Type', content_type)
        self.send_header('Content-Length', str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def _redirect(self, location):
        self.send_response(302)
        self.send_header('Location', location)
        self.send_header('Content-Length', '0')
        self.end_headers()

    def log_message(self, format, *args):
        pass


class EmptySiteHandler(SiteHandler):
    """Serves nothing, not even robots.txt."""

    def do_GET(self):
        self._send(404, 'text/html', '<p>not found</p>')


def serve(handler):
    server = ThreadingHTTPServer(('127.0.0.1', 0), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server, f"http://127.0.0.1:{server.server_address[1]}"


@pytest.fixture
def site():
    SiteHandler.robots_requests = 0
    server, base = serve(SiteHandler)
    yield base
    server.shutdown()
    server.server_close()


@pytest.fixture
def empty_site():
    server, base = serve(EmptySiteHandler)
    yield base
    server.shutdown()
    server.server_close()


@pytest.fixture
def closed_port():
    sock = socket.socket()
    sock.bind(('127.0.0.1', 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def make_fetcher():
    fetchers = []

    def make(**overrides):
        fetcher = HttpFetcher(CrawlOptions.resolve(overrides))
        fetchers.append(fetcher)
        return fetcher

    yield make
    for fetcher in fetchers:
        fetcher.close()


def test_fetch_html_page(site, make_fetcher):
    page = make_fetcher().fetch(LinkRequest(url=f"{site}/page", depth=1))

    assert page.code == 200
    assert page.fetched
    assert page.error is None
    assert page.depth == 1
    assert page.links == [f"{site}/a", f"{site}/b"]
    assert page.response_time is not None


def test_fetch_sends_user_agent_and_referer(site, make_fetcher):
    fetcher = make_fetcher(user_agent='test-agent')

    page = fetcher.fetch(LinkRequest(url=f"{site}/echo", referer=f"{site}/page"))

    assert page.body == f"<p>test-agent|{site}/page</p>"


def test_non_html_body_is_dropped(site, make_fetcher):
    page = make_fetcher().fetch(LinkRequest(url=f"{site}/file.pdf"))

    assert page.code == 200
    assert page.body is None
    assert page.links == []
    assert page.content_type == 'application/pdf'


def test_not_found_is_a_fetched_page(site, make_fetcher):
    page = make_fetcher().fetch(LinkRequest(url=f"{site}/missing"))

    assert page.not_found
    assert page.fetched
    assert page.error is None


def test_redirect_is_followed(site, make_fetcher):
    page = make_fetcher().fetch(LinkRequest(url=f"{site}/redirect"))

    assert page.code == 200
    assert page.redirect_to == f"{site}/page"
    assert page.links == [f"{site}/a", f"{site}/b"]


def test_redirect_not_followed_without_limit(site, make_fetcher):
    page = make_fetcher(redirect_limit=0).fetch(LinkRequest(url=f"{site}/redirect"))

    assert page.code == 302
    assert page.redirect
    assert page.redirect_to == f"{site}/page"


def test_redirect_loop_becomes_error_page(site, make_fetcher):
    fetcher = make_fetcher(redirect_limit=2)

    page = fetcher.fetch(LinkRequest(url=f"{site}/loop"))

    assert not page.fetched
    assert page.error == "Redirect limit of 2 exceeded"
    assert fetcher.stats['failed_requests'] == 1


def test_connection_refused_becomes_error_page(closed_port, make_fetcher):
    page = make_fetcher().fetch(LinkRequest(url=f"http://127.0.0.1:{closed_port}/"))

    assert not page.fetched
    assert page.code is None
    assert page.error.startswith("Client error")


def test_fetcher_reuses_session(site, make_fetcher):
    fetcher = make_fetcher()

    fetcher.fetch(LinkRequest(url=f"{site}/page"))
    session = fetcher.session
    fetcher.fetch(LinkRequest(url=f"{site}/echo"))

    assert fetcher.session is session
    assert fetcher.stats['successful_requests'] == 2


def test_close_is_idempotent(make_fetcher):
    fetcher = make_fetcher()
    fetcher.close()
    fetcher.close()


def test_proxy_url_from_options():
    options = CrawlOptions.resolve({'proxy_host': 'proxy.local', 'proxy_port': 3128})

    assert HttpFetcher(options).proxy_url() == 'http://proxy.local:3128'
    assert HttpFetcher(CrawlOptions.resolve()).proxy_url() is None


def test_proxy_url_follows_registry():
    options = CrawlOptions.resolve({'proxy_host': 'fallback.local'})
    registry = ProxyRegistry(['p1:8080', 'https://p2:8443'])
    fetcher = HttpFetcher(options, registry)

    assert fetcher.proxy_url() == 'http://p1:8080'
    registry.rotate()
    assert fetcher.proxy_url() == 'https://p2:8443'


def test_robots_rules_are_applied(site):
    checker = RobotsChecker('arachnid-test')

    assert checker.allowed(f"{site}/page")
    assert not checker.allowed(f"{site}/private/data")
    assert checker.allowed(f"{site}/public")
    assert SiteHandler.robots_requests == 1


def test_missing_robots_allows_everything(empty_site):
    assert RobotsChecker('arachnid-test').allowed(f"{empty_site}/private/data")


def test_robots_fetch_failure_is_raised(closed_port):
    with pytest.raises(aiohttp.ClientError):
        RobotsChecker('arachnid-test').allowed(f"http://127.0.0.1:{closed_port}/page")
