"""
Tests for link extraction and Page helpers.
"""

import pytest

from arachnid.crawler.page import LinkRequest, Page
from arachnid.crawler.parser import extract_links, is_html, normalize_url

HTML_HEADERS = {'Content-Type': 'text/html; charset=utf-8'}


@pytest.mark.parametrize('url, expected', [
    ('http://Example.COM', 'http://example.com/'),
    ('https://example.com/a#frag', 'https://example.com/a'),
    ('http://example.com/a?x=1', 'http://example.com/a?x=1'),
    ('  http://example.com/b ', 'http://example.com/b'),
    ('ftp://example.com/', None),
    ('mailto:someone@example.com', None),
    ('/relative/path', None),
    ('not a url', None),
])
def test_normalize_url(url, expected):
    assert normalize_url(url) == expected


def test_is_html():
    assert is_html('text/html')
    assert is_html('application/xhtml+xml; charset=utf-8')
    assert not is_html('application/pdf')
    assert not is_html(None)


def test_extract_links_keeps_same_host_in_order():
    html = """
        <a href="/b">b</a>
        <a href="a">a</a>
        <a href="http://other.com/x">other</a>
        <a href="#top">top</a>
        <a href="mailto:x@example.com">mail</a>
        <a href="/b#section">b again</a>
        <a>no href</a>
    """

    links = extract_links('http://example.com/dir/', html)

    assert links == ['http://example.com/b', 'http://example.com/dir/a']


def test_extract_links_all_hosts():
    html = '<a href="http://other.com/x">x</a>'
    assert extract_links('http://example.com/', html, same_host=False) == ['http://other.com/x']


def test_extract_links_honors_base_tag():
    html = '<html><head><base href="http://example.com/docs/"></head>' \
           '<body><a href="page">p</a></body></html>'

    assert extract_links('http://example.com/', html) == ['http://example.com/docs/page']


def test_page_links_from_body():
    page = Page(url='http://example.com/', headers=HTML_HEADERS,
                body='<a href="/a">a</a><a href="/b">b</a>')

    assert page.links == ['http://example.com/a', 'http://example.com/b']


def test_page_links_follow_redirect_target():
    page = Page(url='http://example.com/old', headers=HTML_HEADERS,
                redirect_to='http://example.com/new/', body='<a href="a">a</a>')

    assert page.links == ['http://example.com/new/a']


def test_non_html_page_has_no_links():
    page = Page(url='http://example.com/file', headers={'content-type': 'application/pdf'},
                body='<a href="/a">a</a>')

    assert page.links == []
    assert not page.html


def test_discard_body_keeps_links():
    page = Page(url='http://example.com/', headers=HTML_HEADERS, body='<a href="/a">a</a>')

    page.discard_body()

    assert page.body is None
    assert page.links == ['http://example.com/a']


def test_page_from_request():
    request = LinkRequest(url='http://example.com/a', referer='http://example.com/', depth=2)

    page = Page.from_request(request, code=301, redirect_to='http://example.com/b')

    assert page.referer == 'http://example.com/'
    assert page.depth == 2
    assert page.redirect
    assert not page.not_found
    assert page.fetched_at is not None
    assert page.host == 'example.com'


def test_to_dict_from_dict():
    page = Page(url='http://example.com/', code=200, headers=HTML_HEADERS,
                body='<a href="/a">a</a>', depth=1, fetched=True, visited=True)

    restored = Page.from_dict(page.to_dict())

    assert restored == page
    assert restored.links == ['http://example.com/a']
