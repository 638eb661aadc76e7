"""
Exception hierarchy for the crawler.
"""


class CrawlerError(Exception):
    """Base class for all crawler errors."""
    pass


class ConfigError(CrawlerError):
    """Invalid seed URL, option, storage selector or configuration file."""
    pass


class StorageError(CrawlerError):
    """A storage backend operation failed."""
    pass
