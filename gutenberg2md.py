#!/usr/bin/env python3
"""
projekt-gutenberg.org book downloader - converts a whole book to Markdown

Downloads the chapter index of a book, fetches every chapter page, keeps the
text between the two grey separator lines of each page and converts it into
a single Markdown file named "<author> -- <title>, <year>.md".

Usage:
    pip install requests beautifulsoup4 html5lib
    python gutenberg2md.py [-dir DIRECTORY] <BOOK_URL>

Examples:
    python gutenberg2md.py https://www.projekt-gutenberg.org/goethe/faust1/
    python gutenberg2md.py -dir books https://projekt-gutenberg.org/kafka/prozess/chap001.html
"""

import argparse
import os
import posixpath
import re
import sys
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup
from bs4.element import NavigableString, PreformattedString, Tag

# Site configuration
SITE_HOST = 'projekt-gutenberg.org'
ALLOWED_HOSTS = (SITE_HOST, 'www.' + SITE_HOST)
ALLOWED_SCHEMES = ('http', 'https')

DEFAULT_REQUEST_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Accept-Language': 'de-DE,de;q=0.9,en;q=0.8',
}

# Every chapter page wraps its text in two of these <hr> elements
MARKER_TAG = 'hr'
MARKER_ATTRS = {'size': '1', 'color': '#808080'}

# "back"/"next" buttons living inside the content region
NAV_LINK_TEXTS = ('<<\u00a0zurück', 'weiter\u00a0>>')

TITLE_PAGE_FILENAME = 'titlepage.html'
TITLE_PAGE_SEPARATOR = '\n----------------\n'

# CSS classes used by the site
CLASS_CENTERBIG = 'centerbig'
CLASS_SPACED = 'spaced'

UNKNOWN = 'Unknown'

FILENAME_UNSAFE_CHARS = r'[/\\\x00]'

# Console colours
COL_RED = '\033[31;1m'
COL_YELLOW = '\033[33;1m'
COL_RESET = '\033[m'
CLEAR_LINE = '\033[2K'

# HTML5 tree builder: closes an open <p> at <hr> and normalizes CRLF
HTML_PARSER = 'html5lib'


class GutenbergError(Exception):
    """Base class for every error raised while converting a book."""


class InvalidURLError(GutenbergError):
    """The book URL is malformed or does not point to the site."""


class PageNotFoundError(GutenbergError):
    """The server answered 404."""


class BookNotFoundError(PageNotFoundError):
    """The chapter index of the book does not exist."""


class NoChaptersFoundError(GutenbergError):
    """The chapter index lists no chapters."""


class ChapterIndexError(GutenbergError):
    """The chapter index does not have the expected markup."""


class ParsingPageError(GutenbergError):
    """A chapter page does not have the expected two-marker layout."""


def clear_line():
    print(CLEAR_LINE, end='')


def print_info(message: str):
    print(f'* {message}')


def print_warn(message: str):
    print(f'{COL_YELLOW}! {message}{COL_RESET}', file=sys.stderr)


def print_error(message: str):
    print(f'{COL_RED}! {message}{COL_RESET}', file=sys.stderr)


@dataclass(frozen=True)
class BookSource:
    base_url: str


@dataclass(frozen=True)
class BookMetadata:
    author: str = UNKNOWN
    title: str = UNKNOWN
    year: str = UNKNOWN

    def to_title(self) -> str:
        return f'{self.author} -- {self.title}, {self.year}'


def normalize_url(raw_url: str) -> BookSource:
    """
    Reduce a book URL to the URL of its chapter index.

    Any page of the book can be passed in; everything after the
    author and book segments of the path is dropped.

    Args:
        raw_url: URL typed by the user

    Returns:
        BookSource pointing at the chapter index

    Raises:
        InvalidURLError: the URL is not a projekt-gutenberg.org book URL
    """
    try:
        parsed = urlparse(raw_url)
        port = parsed.port
    except ValueError as e:
        raise InvalidURLError(f'invalid url: {raw_url}') from e

    if parsed.scheme not in ALLOWED_SCHEMES:
        raise InvalidURLError(f'invalid url scheme: {raw_url}')
    if parsed.hostname not in ALLOWED_HOSTS or port is not None:
        raise InvalidURLError(f'invalid url host: {raw_url}')

    path_parts = parsed.path.strip('/').split('/')
    if len(path_parts) < 2:
        raise InvalidURLError(f'invalid url path: {raw_url}')

    base_path = '/'.join(path_parts[:2])
    return BookSource(f'{parsed.scheme}://{SITE_HOST}/{base_path}')


def parse_html(markup) -> BeautifulSoup:
    """Parse a page; bytes are decoded using the page's own charset."""
    return BeautifulSoup(markup, HTML_PARSER)


def _meta_content(soup: BeautifulSoup, name: str) -> str:
    meta = soup.select_one(f'head meta[name="{name}"]')
    if meta is None:
        return UNKNOWN
    return meta.get('content', UNKNOWN)


def parse_metadata(soup: BeautifulSoup) -> BookMetadata:
    """Read author, title and year of first publication from the <head>."""
    return BookMetadata(
        author=_meta_content(soup, 'author'),
        title=_meta_content(soup, 'title'),
        year=_meta_content(soup, 'firstpub'),
    )


def parse_chapters(soup: BeautifulSoup, base_url: str) -> List[str]:
    """
    Collect the chapter links of the index page

    Args:
        soup: parsed index page
        base_url: URL of the index page, without trailing slash

    Returns:
        absolute chapter URLs in reading order
    """
    chapter_urls = []
    for li in soup.select('body ul li'):
        # The link is not always the list item itself, the site sometimes
        # puts the text and the <a> side by side.
        link = li.select_one('a[href]')
        if link is None:
            raise ChapterIndexError('missing link in chapter index')
        chapter_urls.append(f"{base_url}/{link['href']}")

    if not chapter_urls:
        raise NoChaptersFoundError('no chapters found in index')
    return chapter_urls


def parse_index(soup: BeautifulSoup, base_url: str) -> Tuple[BookMetadata, List[str]]:
    return parse_metadata(soup), parse_chapters(soup, base_url)


def _has_class(tag: Tag, class_name: str) -> bool:
    return class_name in (tag.get('class') or [])


def _is_marker(tag: Tag) -> bool:
    return tag.name == MARKER_TAG and all(tag.get(k) == v for k, v in MARKER_ATTRS.items())


def _is_nav_link(tag: Tag) -> bool:
    return tag.name == 'a' and tag.get_text() in NAV_LINK_TEXTS


class Region(Enum):
    """Position of a body child relative to the two markers."""

    BEFORE = 'before'
    INSIDE = 'inside'
    AFTER = 'after'


# AFTER has no successor, a third marker is an error
_NEXT_REGION = {Region.BEFORE: Region.INSIDE, Region.INSIDE: Region.AFTER}


def select_content(soup: BeautifulSoup) -> List[Tag]:
    """
    Return the children of <body> lying between the two marker lines.

    Raises:
        ParsingPageError: the page has more than two markers
    """
    body = soup.body
    if body is None:
        return []

    content = []
    region = Region.BEFORE
    for child in body.find_all(recursive=False):
        if _is_marker(child):
            if region is Region.AFTER:
                raise ParsingPageError('error parsing page: more than two separators')
            region = _NEXT_REGION[region]
            continue
        if _is_nav_link(child):
            continue
        if region is Region.INSIDE:
            content.append(child)
    return content


def _convert_text(text: str) -> str:
    text = text.replace('\n', '')
    return re.sub(r' {2,}', ' ', text)


def _convert_children(tag: Tag) -> str:
    return ''.join(node_to_markdown(child) for child in tag.children)


def _convert_tag(tag: Tag) -> str:
    name = tag.name
    if name == 'br':
        return '\n\n'
    if re.fullmatch(r'h[1-6]', name):
        return '#' * int(name[1]) + ' ' + _convert_children(tag) + '\n'
    if name == 'p':
        if _has_class(tag, CLASS_CENTERBIG):
            return '#### ' + _convert_children(tag) + '\n\n'
        return _convert_children(tag) + '\n\n'
    if name in ('div', 'a', 'span'):
        return _convert_children(tag)
    if name == 'tt':
        return '`' + _convert_children(tag) + '`'
    if name == 'i':
        return '_' + _convert_children(tag) + '_'
    if name == 'img':
        return ''

    clear_line()
    print_warn(f'Unknown tag: {name}')
    return ''


def node_to_markdown(node) -> str:
    """
    Convert one node of a chapter page to Markdown

    Args:
        node: BeautifulSoup Tag or string

    Returns:
        Markdown text of the node and all its descendants
    """
    if isinstance(node, Tag):
        result = _convert_tag(node)
        if _has_class(node, CLASS_SPACED):
            # Applied to the finished Markdown, so "_x_" becomes "_ x _"
            result = ' '.join(result)
        return result

    if isinstance(node, NavigableString) and not isinstance(node, PreformattedString):
        return _convert_text(str(node))

    clear_line()
    print_warn(f'Unknown node type: {type(node).__name__}')
    return ''


def extract_chapter(soup: BeautifulSoup) -> str:
    """Convert the text of one chapter page to Markdown."""
    return ''.join(node_to_markdown(node) for node in select_content(soup))


class GutenbergCrawler:
    """Downloads one book from projekt-gutenberg.org and converts it to Markdown"""

    def __init__(self, raw_url: str, output_dir: str = '.'):
        """
        Args:
            raw_url: URL of any page of the book
            output_dir: directory the Markdown file is written to

        Raises:
            InvalidURLError: the URL does not point to a book on the site
        """
        self.source = normalize_url(raw_url)
        self.output_dir = output_dir
        self.session = requests.Session()
        self.session.headers.update(DEFAULT_REQUEST_HEADERS)

        self.meta = BookMetadata()
        self.chapter_urls: List[str] = []
        self._parts: List[str] = []

    @property
    def base_url(self) -> str:
        return self.source.base_url

    @property
    def markdown(self) -> str:
        return ''.join(self._parts)

    def fetch_page(self, url: str) -> BeautifulSoup:
        """
        Download and parse a page

        Raises:
            PageNotFoundError: the server answered 404
            requests.RequestException: any other network or HTTP error
        """
        response = self.session.get(url)
        if response.status_code == 404:
            raise PageNotFoundError(f'page not found: {url}')
        response.raise_for_status()
        # Raw bytes, so the charset declared by the page is used
        return parse_html(response.content)

    def fetch_index(self):
        """Fetch the chapter index and read the book metadata from it."""
        try:
            soup = self.fetch_page(self.base_url)
        except PageNotFoundError as e:
            raise BookNotFoundError(f'book not found: {self.base_url}') from e

        self.meta, self.chapter_urls = parse_index(soup, self.base_url)

    def fetch_chapter(self, chapter_url: str):
        soup = self.fetch_page(chapter_url)
        self._parts.append(extract_chapter(soup))

        # Separate the title page from the first chapter
        if posixpath.basename(chapter_url) == TITLE_PAGE_FILENAME:
            self._parts.append(TITLE_PAGE_SEPARATOR)

    @staticmethod
    def _display_progress(current: int, total: int):
        clear_line()
        print(f'* Downloading chapter {current}/{total}...', end='\r', flush=True)

    def crawl(self):
        """Fetch the index and then every chapter, in reading order."""
        self.fetch_index()
        print_info(f'Book: {self.meta.to_title()}')

        total = len(self.chapter_urls)
        for i, chapter_url in enumerate(self.chapter_urls, 1):
            self._display_progress(i, total)
            self.fetch_chapter(chapter_url)
        clear_line()

    @staticmethod
    def _sanitize_filename(title: str) -> str:
        return re.sub(FILENAME_UNSAFE_CHARS, '_', title)

    @property
    def output_path(self) -> str:
        filename = self._sanitize_filename(self.meta.to_title()) + '.md'
        return os.path.join(self.output_dir, filename)

    def save_markdown(self) -> str:
        """
        Write the converted book to disk

        Returns:
            path of the Markdown file
        """
        os.makedirs(self.output_dir, exist_ok=True)

        md_file = self.output_path
        with open(md_file, 'w', encoding='utf-8') as f:
            f.write(self.markdown)
        return md_file


class _ArgumentParser(argparse.ArgumentParser):
    """Exits with status 1 on usage errors."""

    def error(self, message):
        self.print_usage(sys.stderr)
        print_error(message)
        sys.exit(1)


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        description='Download a book from projekt-gutenberg.org as Markdown',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f'''
Book URL format:
  http[s]://[www.]{SITE_HOST}/<author>/<book>[/whateverdoesntmatter]

Output types:
  * <INFO>
  {COL_YELLOW}! <WARNING>{COL_RESET}
  {COL_RED}! <ERROR>{COL_RESET}
        '''
    )

    parser.add_argument('url', metavar='BOOK_URL', help='URL of the book or any of its chapters')
    parser.add_argument('-dir', dest='dir', default='.', metavar='DIRECTORY',
                        help='output directory (default: ".")')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    print_info(f'Book URL: {args.url}')
    try:
        crawler = GutenbergCrawler(args.url, args.dir)
        crawler.crawl()
        md_file = crawler.save_markdown()
    except (GutenbergError, requests.RequestException, OSError) as e:
        clear_line()
        print_error(f'Error: {e}')
        return 1

    print_info(f'Saved as: {md_file}')
    return 0


if __name__ == "__main__":
    sys.exit(main())
