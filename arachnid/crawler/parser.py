"""
Link extraction from HTML documents.
"""

import logging
from typing import List, Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

HTML_CONTENT_TYPES = ('text/html', 'application/xhtml+xml')


def is_html(content_type: Optional[str]) -> bool:
    """Check if a Content-Type header denotes an HTML document."""
    if not content_type:
        return False
    content_type = content_type.lower()
    return any(html_type in content_type for html_type in HTML_CONTENT_TYPES)


def normalize_url(url: str) -> Optional[str]:
    """
    Normalize a URL by lower-casing the host, removing the fragment and
    giving an empty path the root path.

    Returns None for anything that is not an absolute http(s) URL.
    """
    try:
        parsed = urlsplit(url.strip())
    except ValueError:
        return None

    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        return None

    return urlunsplit((
        parsed.scheme,
        parsed.netloc.lower(),
        parsed.path or '/',
        parsed.query,
        ''  # Remove fragment
    ))


def extract_links(base_url: str, html_content: str, same_host: bool = True) -> List[str]:
    """
    Extract the absolute URLs of all ``<a href>`` anchors in document order.

    Args:
        base_url: URL the document was served from
        html_content: Raw HTML content
        same_host: Keep only links on the host of ``base_url``

    Returns:
        De-duplicated list of normalized URLs
    """
    try:
        soup = BeautifulSoup(html_content, 'lxml')
    except Exception as e:
        logger.error(f"Error parsing content from {base_url}: {e}")
        return []

    # <base href> changes the resolution root
    base_tag = soup.find('base', href=True)
    if base_tag:
        base_url = urljoin(base_url, base_tag['href'].strip())

    base_host = urlsplit(base_url).netloc.lower()
    links = []
    seen = set()

    for anchor in soup.find_all('a', href=True):
        href = anchor['href'].strip()
        if not href or href.startswith('#'):
            continue

        normalized_url = normalize_url(urljoin(base_url, href))
        if normalized_url is None or normalized_url in seen:
            continue
        if same_host and urlsplit(normalized_url).netloc != base_host:
            continue

        seen.add(normalized_url)
        links.append(normalized_url)

    logger.debug(f"Extracted {len(links)} links from {base_url}")
    return links
