"""
arachnid

A multi-threaded web crawler with pluggable, resumable page storage.
"""

__version__ = "1.0.0"
__description__ = "A multi-threaded web crawler with pluggable, resumable page storage"

from .exceptions import ConfigError, CrawlerError, StorageError
from .crawler import Crawler, LinkRequest, Page, crawl
from .storage import PageStore

__all__ = [
    'Crawler', 'crawl', 'Page', 'LinkRequest', 'PageStore',
    'CrawlerError', 'ConfigError', 'StorageError',
]
