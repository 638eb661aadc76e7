"""
Configuration management for the crawler.

``CrawlOptions`` is the immutable snapshot of crawl options used by a single
run. ``AppConfig`` wraps it together with the ambient sections (Redis,
logging, monitoring) loaded from a YAML file.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .. import __version__
from ..exceptions import ConfigError


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return _is_int(value) or isinstance(value, float)


@dataclass(frozen=True)
class CrawlOptions:
    """Options controlling a crawl. Frozen once the crawl starts."""
    # number of worker threads fetching pages
    threads: int = 4
    # log every page at INFO instead of DEBUG
    verbose: bool = False
    # drop page bodies once the page callbacks have run
    discard_page_bodies: bool = False
    user_agent: str = f"arachnid/{__version__}"
    # seconds to sleep after each request; forces a single thread
    delay: float = 0
    obey_robots_txt: bool = False
    # None (or False) for no limit
    depth_limit: Optional[int] = None
    # number of HTTP redirects followed per fetch
    redirect_limit: int = 5
    # storage selector, see arachnid.storage.open_storage
    storage: Any = None
    # wipe the store before crawling and stop when no seed is eligible
    force_start: bool = True
    cookies: Optional[Mapping[str, str]] = None
    accept_cookies: bool = False
    # skip any link with a query string, e.g. http://foo.com/?u=user
    skip_query_strings: bool = False
    proxy_host: Optional[str] = None
    proxy_port: Optional[int] = None
    proxy_list: Tuple[str, ...] = ()
    # HTTP read timeout in seconds
    read_timeout: Optional[float] = None
    # wipe the store and exit without crawling
    clean_db_only: bool = False
    # wipe the store after the after_crawl callbacks have run
    clean_on_finish: bool = False

    @classmethod
    def option_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in dataclasses.fields(cls))

    @classmethod
    def resolve(cls, overrides: Optional[Mapping[str, Any]] = None) -> 'CrawlOptions':
        """
        Merge caller overrides onto the defaults and return a frozen snapshot.

        Raises:
            ConfigError: for unknown option names or invalid values
        """
        overrides = dict(overrides or {})
        unknown = sorted(set(overrides) - set(cls.option_names()))
        if unknown:
            raise ConfigError(f"Unknown crawl option(s): {', '.join(unknown)}")

        if overrides.get('depth_limit') is False:
            overrides['depth_limit'] = None
        if overrides.get('proxy_list') is None:
            overrides.pop('proxy_list', None)
        else:
            overrides['proxy_list'] = tuple(overrides['proxy_list'])
        if overrides.get('cookies') is not None:
            overrides['cookies'] = MappingProxyType(dict(overrides['cookies']))

        options = cls(**overrides)
        options.validate()

        # rate-limited crawling is serial
        if options.delay > 0 and options.threads != 1:
            options = dataclasses.replace(options, threads=1)
        return options

    def validate(self):
        if not _is_int(self.threads) or self.threads < 1:
            raise ConfigError("threads must be at least 1")
        if not _is_number(self.delay) or self.delay < 0:
            raise ConfigError("delay must be a non-negative number")
        if self.depth_limit is not None and (not _is_int(self.depth_limit) or self.depth_limit < 0):
            raise ConfigError("depth_limit must be a non-negative integer")
        if not _is_int(self.redirect_limit) or self.redirect_limit < 0:
            raise ConfigError("redirect_limit must be a non-negative integer")
        if self.read_timeout is not None and (not _is_number(self.read_timeout)
                                              or self.read_timeout <= 0):
            raise ConfigError("read_timeout must be a positive number")

    def merge(self, **overrides) -> 'CrawlOptions':
        """Return a new snapshot with *overrides* applied on top of this one."""
        current = {name: getattr(self, name) for name in self.option_names()}
        current.update(overrides)
        return CrawlOptions.resolve(current)


@dataclass
class RedisConfig:
    """Connection settings for the Redis storage backend."""
    host: str = 'localhost'
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    key_prefix: str = 'arachnid'


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = 'INFO'
    file: str = 'logs/crawler.log'
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class AppConfig:
    """Main configuration class."""
    seed_urls: List[str] = field(default_factory=list)
    crawler: Dict[str, Any] = field(default_factory=dict)
    redis: RedisConfig = field(default_factory=RedisConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    def crawl_options(self, **overrides) -> CrawlOptions:
        """Build the crawl options for this configuration."""
        merged = dict(self.crawler)
        merged.update(overrides)
        return CrawlOptions.resolve(merged)


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[AppConfig] = None

    def load_config(self) -> AppConfig:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ConfigError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r') as file:
                config_data = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e
        if not isinstance(config_data, dict):
            raise ConfigError(f"Expected a mapping at the top of {self.config_path}")

        try:
            crawler_data = dict(config_data.get('crawler') or {})
            seed_urls = crawler_data.pop('seed_urls', [])
            if isinstance(seed_urls, str):
                seed_urls = [seed_urls]

            self._config = AppConfig(
                seed_urls=list(seed_urls),
                crawler=crawler_data,
                redis=RedisConfig(**(config_data.get('redis') or {})),
                logging=LoggingConfig(**(config_data.get('logging') or {})),
                monitoring=MonitoringConfig(**(config_data.get('monitoring') or {})),
            )
        except TypeError as e:
            raise ConfigError(f"Invalid configuration section: {e}") from e

        self._validate_config()
        return self._config

    def _validate_config(self):
        """Validate configuration values."""
        if not self._config:
            raise ConfigError("Configuration not loaded")

        # Surfaces unknown keys and bad numeric values
        self._config.crawl_options()

        if self._config.monitoring.prometheus_port < 0:
            raise ConfigError("prometheus_port must be non-negative")

        logging.getLogger(__name__).debug("Configuration validation passed")

    @property
    def config(self) -> AppConfig:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigError("Configuration not loaded. Call load_config() first.")
        return self._config


def load_config(config_path: str = "config.yaml") -> AppConfig:
    """Load configuration from file."""
    return ConfigManager(config_path).load_config()
