"""
Page records and link requests exchanged between the crawler and its workers.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from .parser import extract_links, is_html


@dataclass(frozen=True)
class LinkRequest:
    """A URL waiting to be fetched."""
    url: str
    referer: Optional[str] = None
    depth: int = 0


@dataclass
class Page:
    """
    The outcome of one fetch attempt.

    Failed fetches still produce a Page (with ``error`` set and ``fetched``
    False) so the URL is marked complete and the crawl makes progress.
    """
    url: str
    code: Optional[int] = None
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    depth: int = 0
    referer: Optional[str] = None
    redirect_to: Optional[str] = None
    response_time: Optional[float] = None
    fetched_at: Optional[float] = None
    fetched: bool = False
    visited: bool = False
    error: Optional[str] = None
    _links: Optional[List[str]] = field(default=None, repr=False)

    @classmethod
    def from_request(cls, request: LinkRequest, **kwargs) -> 'Page':
        kwargs.setdefault('fetched_at', time.time())
        return cls(url=request.url, referer=request.referer, depth=request.depth, **kwargs)

    @property
    def links(self) -> List[str]:
        """Same-host absolute URLs found in the body, in document order."""
        if self._links is None:
            if self.body and self.html:
                self._links = extract_links(self.redirect_to or self.url, self.body,
                                            same_host=True)
            else:
                self._links = []
        return self._links

    @links.setter
    def links(self, value: List[str]):
        self._links = list(value)

    @property
    def content_type(self) -> str:
        for name, value in self.headers.items():
            if name.lower() == 'content-type':
                return value
        return ''

    @property
    def html(self) -> bool:
        return is_html(self.content_type)

    @property
    def host(self) -> str:
        return urlsplit(self.url).netloc.lower()

    @property
    def redirect(self) -> bool:
        return self.code is not None and 300 <= self.code < 400

    @property
    def not_found(self) -> bool:
        return self.code == 404

    def discard_body(self):
        """Drop the body to bound memory, keeping the extracted links."""
        self.links
        self.body = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            'url': self.url,
            'code': self.code,
            'headers': dict(self.headers),
            'body': self.body,
            'links': list(self.links),
            'depth': self.depth,
            'referer': self.referer,
            'redirect_to': self.redirect_to,
            'response_time': self.response_time,
            'fetched_at': self.fetched_at,
            'fetched': self.fetched,
            'visited': self.visited,
            'error': self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Page':
        """Create a Page from a dictionary produced by ``to_dict``."""
        page = cls(
            url=data['url'],
            code=data.get('code'),
            headers=dict(data.get('headers') or {}),
            body=data.get('body'),
            depth=data.get('depth') or 0,
            referer=data.get('referer'),
            redirect_to=data.get('redirect_to'),
            response_time=data.get('response_time'),
            fetched_at=data.get('fetched_at'),
            fetched=bool(data.get('fetched')),
            visited=bool(data.get('visited')),
            error=data.get('error'),
        )
        if data.get('links') is not None:
            page.links = data['links']
        return page
