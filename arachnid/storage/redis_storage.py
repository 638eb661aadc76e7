"""
Redis storage backend.

Each page is a hash at ``<prefix>:pages:<url>``. Structured fields are stored
as JSON blobs, scalar fields as plain values, and ``None`` values are left
out of the hash.
"""

import functools
import json
import logging
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

import redis

from ..crawler.page import Page
from ..exceptions import StorageError
from .base import StorageBackend

logger = logging.getLogger(__name__)

ENCODED_FIELDS = {
    'links': list,
    'visited': bool,
    'fetched': bool,
    'headers': dict,
}
INT_FIELDS = ('code', 'depth')
FLOAT_FIELDS = ('response_time', 'fetched_at')


def _redis_errors(method):
    """Re-raise Redis client failures as StorageError."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except redis.RedisError as e:
            raise StorageError(f"Redis {method.__name__} failed: {e}") from e
    return wrapper


def encode_page(page: Page) -> Dict[str, Any]:
    """Flatten a page into a Redis hash mapping."""
    data = page.to_dict()
    for name in ENCODED_FIELDS:
        data[name] = json.dumps(data[name])
    return {name: value for name, value in data.items() if value is not None}


def decode_page(data: Mapping[str, str]) -> Optional[Page]:
    """
    Rebuild a page from a Redis hash mapping.

    An absent or empty encoded field decodes to the field's zero value.
    """
    if not data:
        return None

    values: Dict[str, Any] = dict(data)
    for name, zero in ENCODED_FIELDS.items():
        raw = values.get(name)
        values[name] = json.loads(raw) if raw not in (None, '') else zero()
    for name in INT_FIELDS:
        if values.get(name) not in (None, ''):
            values[name] = int(values[name])
    for name in FLOAT_FIELDS:
        if values.get(name) not in (None, ''):
            values[name] = float(values[name])
    return Page.from_dict(values)


class RedisStorage(StorageBackend):
    """Pages stored as Redis hashes under a key prefix."""

    def __init__(self, client: Optional[redis.Redis] = None, key_prefix: str = 'arachnid',
                 **redis_options):
        if client is None:
            redis_options.setdefault('decode_responses', True)
            client = redis.Redis(**redis_options)
        self.redis_client = client
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, key_prefix: str = 'arachnid') -> 'RedisStorage':
        return cls(redis.Redis.from_url(url, decode_responses=True), key_prefix=key_prefix)

    def _key(self, url: str) -> str:
        return f"{self.key_prefix}:pages:{url}"

    def _url(self, rkey) -> str:
        if isinstance(rkey, bytes):
            rkey = rkey.decode('utf-8')
        return rkey[len(self.key_prefix) + len(':pages:'):]

    def _fetch(self, rkey) -> Optional[Page]:
        data = self.redis_client.hgetall(rkey)
        if data and isinstance(next(iter(data)), bytes):
            data = {k.decode('utf-8'): v.decode('utf-8') for k, v in data.items()}
        return decode_page(data)

    def _write(self, pipe, url: str, page: Page):
        rkey = self._key(url)
        pipe.delete(rkey)
        pipe.hset(rkey, mapping=encode_page(page))

    @_redis_errors
    def get(self, url: str) -> Optional[Page]:
        return self._fetch(self._key(url))

    @_redis_errors
    def put(self, url: str, page: Page):
        pipe = self.redis_client.pipeline()
        self._write(pipe, url, page)
        pipe.execute()

    @_redis_errors
    def delete(self, url: str) -> Optional[Page]:
        rkey = self._key(url)
        page = self._fetch(rkey)
        self.redis_client.delete(rkey)
        return page

    def each(self) -> Iterator[Tuple[str, Page]]:
        try:
            for rkey in self.redis_client.scan_iter(match=f"{self.key_prefix}:pages:*"):
                page = self._fetch(rkey)
                # deleted between scan and read
                if page is not None:
                    yield self._url(rkey), page
        except redis.RedisError as e:
            raise StorageError(f"Redis each failed: {e}") from e

    @_redis_errors
    def merge(self, pages: Mapping[str, Page]):
        if not pages:
            return
        pipe = self.redis_client.pipeline()
        for url, page in pages.items():
            self._write(pipe, url, page)
        pipe.execute()

    @_redis_errors
    def has_key(self, url: str) -> bool:
        return self.redis_client.exists(self._key(url)) > 0

    @_redis_errors
    def size(self) -> int:
        return sum(1 for _ in self.redis_client.scan_iter(match=f"{self.key_prefix}:pages:*"))

    @_redis_errors
    def keys(self):
        return [self._url(rkey) for rkey in
                self.redis_client.scan_iter(match=f"{self.key_prefix}:pages:*")]

    @_redis_errors
    def clean(self):
        rkeys = list(self.redis_client.scan_iter(match=f"{self.key_prefix}:pages:*"))
        if rkeys:
            self.redis_client.delete(*rkeys)
        logger.info(f"Removed {len(rkeys)} pages under {self.key_prefix}:pages:")

    @_redis_errors
    def close(self):
        self.redis_client.close()
