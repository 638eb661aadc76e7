"""
HTTP page fetcher used by the worker threads.

Each worker owns one HttpFetcher, which drives an aiohttp session on a
private event loop so the worker thread can call it synchronously.
"""

import asyncio
import logging
import time
from typing import Dict, Optional
from urllib.parse import urljoin

import aiohttp
from aiohttp import ClientSession, ClientTimeout

from ..utils.config import CrawlOptions
from .page import LinkRequest, Page
from .parser import is_html
from .proxy import ProxyRegistry

MAX_BODY_SIZE = 10 * 1024 * 1024


class HttpFetcher:
    """
    Fetches pages with the crawl's user agent, cookies, proxy and redirect
    settings. Failures are returned as pages with ``error`` set.
    """

    def __init__(self, options: CrawlOptions, proxies: Optional[ProxyRegistry] = None):
        self.options = options
        self.proxies = proxies
        self.logger = logging.getLogger(__name__)

        self.session: Optional[ClientSession] = None
        self._loop = asyncio.new_event_loop()

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    def fetch(self, request: LinkRequest) -> Page:
        """Fetch *request* and block until the page is ready."""
        return self._loop.run_until_complete(self.fetch_page(request))

    def close(self):
        """Close the session and the event loop."""
        if self._loop.is_closed():
            return
        if self.session:
            self._loop.run_until_complete(self.session.close())
            self.session = None
        self._loop.close()

    async def start(self):
        """Open the HTTP session on first use."""
        if self.session is not None:
            return

        timeout = ClientTimeout(total=None, sock_read=self.options.read_timeout)
        if self.options.accept_cookies:
            cookie_jar = aiohttp.CookieJar(unsafe=True)
        else:
            cookie_jar = aiohttp.DummyCookieJar()

        self.session = aiohttp.ClientSession(
            timeout=timeout,
            headers={'User-Agent': self.options.user_agent},
            cookie_jar=cookie_jar
        )

    def proxy_url(self) -> Optional[str]:
        """The proxy for the next request: the registry's, else proxy_host."""
        endpoint = self.proxies.current() if self.proxies else None
        if endpoint is None and self.options.proxy_host:
            endpoint = self.options.proxy_host
            if self.options.proxy_port:
                endpoint = f"{endpoint}:{self.options.proxy_port}"
        if endpoint and '://' not in endpoint:
            endpoint = f"http://{endpoint}"
        return endpoint

    async def fetch_page(self, request: LinkRequest) -> Page:
        """
        Fetch a single page.

        Args:
            request: The link to fetch

        Returns:
            Page holding the response, or the error that prevented one
        """
        await self.start()
        start_time = time.time()
        self.stats['total_requests'] += 1

        headers: Dict[str, str] = {}
        if request.referer:
            headers['Referer'] = request.referer

        redirect_limit = self.options.redirect_limit
        cookies = dict(self.options.cookies) if self.options.cookies else None

        try:
            async with self.session.get(
                request.url,
                headers=headers,
                cookies=cookies,
                proxy=self.proxy_url(),
                allow_redirects=redirect_limit > 0,
                max_redirects=max(redirect_limit, 1)
            ) as response:
                response_headers = dict(response.headers)
                content_type = response.headers.get('Content-Type', '')

                body = None
                if is_html(content_type):
                    body = await self._read_content_safely(response)
                else:
                    self.logger.debug(f"Skipping non-HTML content: {request.url} ({content_type})")

                redirect_to = None
                if response.history:
                    redirect_to = str(response.url)
                elif 300 <= response.status < 400 and 'Location' in response.headers:
                    redirect_to = urljoin(request.url, response.headers['Location'])

                self.stats['successful_requests'] += 1
                if body:
                    self.stats['total_bytes_downloaded'] += len(body)

                self.logger.debug(f"Fetched {request.url}: {response.status} "
                                  f"({len(body) if body else 0} bytes)")
                return Page.from_request(
                    request,
                    code=response.status,
                    headers=response_headers,
                    body=body,
                    redirect_to=redirect_to,
                    response_time=time.time() - start_time,
                    fetched=True
                )

        except aiohttp.TooManyRedirects:
            error_msg = f"Redirect limit of {redirect_limit} exceeded"

        except asyncio.TimeoutError:
            error_msg = "Request timeout"

        except aiohttp.ClientError as e:
            error_msg = f"Client error: {e}"

        self.stats['failed_requests'] += 1
        return Page.from_request(
            request,
            error=error_msg,
            response_time=time.time() - start_time
        )

    async def _read_content_safely(self, response, max_size: int = MAX_BODY_SIZE) -> Optional[str]:
        """
        Read the response body, giving up on anything larger than *max_size*.
        """
        content_length = response.headers.get('Content-Length')
        if content_length and content_length.isdigit() and int(content_length) > max_size:
            self.logger.warning(f"Content too large ({content_length} bytes): {response.url}")
            return None

        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > max_size:
                self.logger.warning(f"Content exceeded size limit during reading: {response.url}")
                return None

        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            return content_bytes.decode('utf-8', errors='replace')


def http_fetcher_factory(options: CrawlOptions, proxies: Optional[ProxyRegistry]) -> HttpFetcher:
    """Default factory giving each worker its own HttpFetcher."""
    return HttpFetcher(options, proxies)
