"""
Crawler core components.
"""

from .page import LinkRequest, Page
from .proxy import ProxyRegistry
from .work_queue import WorkQueue
from .fetcher import HttpFetcher
from .robots import RobotsChecker
from .tentacle import Tentacle
from .core import Crawler, crawl

__all__ = [
    'LinkRequest', 'Page', 'ProxyRegistry', 'WorkQueue',
    'HttpFetcher', 'RobotsChecker', 'Tentacle',
    'Crawler', 'crawl'
]
