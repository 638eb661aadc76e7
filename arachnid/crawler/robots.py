"""
robots.txt evaluation for the crawler.
"""

import asyncio
import logging
import threading
from typing import Dict, Tuple
from urllib.parse import urlsplit
from urllib.robotparser import RobotFileParser

import aiohttp
from aiohttp import ClientTimeout


class RobotsChecker:
    """
    Caches one parsed robots.txt per scheme and host.

    Errors while retrieving robots.txt are raised to the caller, which
    decides how to treat them.
    """

    def __init__(self, user_agent: str, timeout: float = 10):
        self.user_agent = user_agent
        self.timeout = timeout
        self.robots_cache: Dict[str, RobotFileParser] = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def _get_root(self, url: str) -> str:
        parsed = urlsplit(url)
        return f"{parsed.scheme}://{parsed.netloc.lower()}"

    def allowed(self, url: str) -> bool:
        """Check if *url* may be fetched according to its host's robots.txt."""
        root = self._get_root(url)
        with self._lock:
            parser = self.robots_cache.get(root)
        if parser is None:
            parser = self._load(root)
            with self._lock:
                self.robots_cache[root] = parser

        allowed = parser.can_fetch(self.user_agent, url)
        if not allowed:
            self.logger.info(f"Robots.txt blocks access to: {url}")
        return allowed

    def _load(self, root: str) -> RobotFileParser:
        robots_url = f"{root}/robots.txt"
        status, content = asyncio.run(self._fetch_robots(robots_url))

        parser = RobotFileParser()
        parser.set_url(robots_url)
        if status in (401, 403):
            parser.disallow_all = True
        elif status == 200:
            parser.parse(content.splitlines())
        else:
            # If robots.txt doesn't exist, allow all
            parser.allow_all = True

        self.logger.debug(f"Loaded {robots_url} ({status})")
        return parser

    async def _fetch_robots(self, robots_url: str) -> Tuple[int, str]:
        async with aiohttp.ClientSession(
            timeout=ClientTimeout(total=self.timeout),
            headers={'User-Agent': self.user_agent}
        ) as session:
            async with session.get(robots_url) as response:
                content = await response.text(errors='replace') if response.status == 200 else ''
                return response.status, content
