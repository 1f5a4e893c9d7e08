"""Shared fixtures: canned pages and a fake requests session."""

import pytest
import requests

MARKER = '<hr size="1" color="#808080">'


def chapter_page(content: str) -> bytes:
    """A chapter page with site chrome around the two grey markers."""
    return (
        '<html><head><meta charset="utf-8"><title>Kapitel</title></head><body>'
        '<p>projekt-gutenberg.org</p>'
        f'{MARKER}{content}{MARKER}'
        '<p>Impressum</p>'
        '</body></html>'
    ).encode('utf-8')


def index_page(hrefs, author='Goethe', title='Faust', firstpub='1808') -> bytes:
    items = ''.join(f'<li><a href="{href}">{href}</a></li>' for href in hrefs)
    return (
        '<html><head><meta charset="utf-8">'
        f'<meta name="author" content="{author}">'
        f'<meta name="title" content="{title}">'
        f'<meta name="firstpub" content="{firstpub}">'
        f'</head><body><ul>{items}</ul></body></html>'
    ).encode('utf-8')


class FakeResponse:
    def __init__(self, url: str, content: bytes = b'', status_code: int = 200):
        self.url = url
        self.content = content
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f'{self.status_code} Error for url: {self.url}')


class FakeSession:
    """Serves pages from a dict; unknown URLs answer 404."""

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.headers = {}
        self.requested = []

    def get(self, url, **kwargs):
        self.requested.append(url)
        page = self.pages.get(url)
        if page is None:
            return FakeResponse(url, status_code=404)
        if isinstance(page, int):
            return FakeResponse(url, status_code=page)
        return FakeResponse(url, page)


@pytest.fixture
def fake_session():
    return FakeSession()
