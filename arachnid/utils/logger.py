"""
Logging setup for crawl runs.

Worker threads log through a ``CrawlLogAdapter`` so every record carries the
worker name, and records about one URL carry that URL. ``JSONFormatter``
copies those attributes into its output.
"""

import json
import logging
import logging.handlers
import platform
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import psutil

from .config import LoggingConfig

# Record attributes added by CrawlLogAdapter
CONTEXT_FIELDS = ('worker', 'url', 'event_type')

NOISY_LOGGERS = ('aiohttp.access', 'urllib3.connectionpool')

QUIET_LOGGERS = ('aiohttp', 'urllib3', 'redis', 'asyncio')

LOG_FILE_MAX_BYTES = 50 * 1024 * 1024
LOG_FILE_BACKUPS = 5


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'thread': record.threadName,
            'message': record.getMessage(),
        }
        entry.update({name: getattr(record, name)
                      for name in CONTEXT_FIELDS if hasattr(record, name)})
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class CrawlLogAdapter(logging.LoggerAdapter):
    """Adds fixed context (such as the worker name) to every record."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs

    def url_event(self, level: int, url: str, message: str, **kwargs):
        """Log *message* about *url*, tagging the record with the URL."""
        kwargs['extra'] = {**kwargs.get('extra', {}), 'url': url, 'event_type': 'url'}
        self.log(level, message, **kwargs)


class NoiseFilter(logging.Filter):
    """Drops records from chatty third-party loggers."""

    def __init__(self, loggers: Tuple[str, ...] = NOISY_LOGGERS):
        super().__init__()
        self.loggers = loggers

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith(self.loggers):
            return False
        if record.levelno == logging.DEBUG:
            return 'dropped connection' not in record.getMessage().lower()
        return True


def _handlers(log_file: Path) -> List[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)

    rotating = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding='utf-8'
    )
    rotating.setLevel(logging.DEBUG)
    return [console, rotating]


def setup_logging(config: Optional[LoggingConfig] = None,
                  enable_json: bool = False,
                  filter_noise: bool = True) -> logging.Logger:
    """
    Route all logging to stdout and a rotating log file.

    Args:
        config: Level, file and format; defaults apply when omitted
        enable_json: Write records with ``JSONFormatter``
        filter_noise: Drop records from chatty third-party loggers

    Returns:
        The root logger
    """
    config = config or LoggingConfig()
    log_file = Path(config.file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    formatter = JSONFormatter() if enable_json else logging.Formatter(config.format)

    root_logger = logging.getLogger()
    root_logger.setLevel(config.level.upper())
    root_logger.handlers.clear()
    for handler in _handlers(log_file):
        handler.setFormatter(formatter)
        if filter_noise:
            handler.addFilter(NoiseFilter())
        root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(f"Logging at {config.level} to {log_file}")
    return root_logger


def get_crawl_logger(name: str, **context) -> CrawlLogAdapter:
    """Logger for *name* whose records all carry *context*."""
    return CrawlLogAdapter(logging.getLogger(name), context)


def log_system_info():
    """Log the host resources available to the crawl."""
    logger = logging.getLogger(__name__)
    memory = psutil.virtual_memory()

    logger.info(f"Host: {platform.node()} ({platform.platform()})")
    logger.info(f"Python {platform.python_version()}")
    logger.info(f"CPUs: {psutil.cpu_count()}, memory: {memory.available / 1024**3:.1f} "
                f"of {memory.total / 1024**3:.1f} GB available")
