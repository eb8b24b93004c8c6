"""HTML to markdown conversion and link discovery for crawled pages."""

import re
from dataclasses import dataclass
from typing import List
from urllib.parse import urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup
from markdownify import markdownify

NOISE_SELECTORS = ("script", "style", "nav", "footer", ".ad", ".advertisement", ".sidebar")
CONTENT_SELECTORS = (
    "main",
    "article",
    ".content",
    ".main-content",
    ".documentation",
    ".docs",
    "#content",
)

_BLANK_LINES = re.compile(r"\n{3,}")


@dataclass
class HtmlPage:
    """Readable content of one HTML document."""
    title: str
    markdown: str


def normalize_url(url: str) -> str:
    """Drop query string and fragment; give bare hosts a "/" path."""
    parsed = urlparse(url)
    path = parsed.path or "/"
    return urlunparse((parsed.scheme, parsed.netloc, path, "", "", ""))


def extract_title(soup: BeautifulSoup) -> str:
    if soup.title and soup.title.get_text(strip=True):
        return soup.title.get_text(strip=True)
    return "Untitled"


def html_to_markdown(html: str) -> HtmlPage:
    """Convert the main content area of an HTML page to markdown.

    Navigation, footers, scripts, styles and ad/sidebar blocks are removed
    first. The first matching content-area selector wins; the whole body is
    used when none matches.
    """
    soup = BeautifulSoup(html, "html.parser")
    title = extract_title(soup)

    for selector in NOISE_SELECTORS:
        for element in soup.select(selector):
            element.decompose()

    content_node = None
    for selector in CONTENT_SELECTORS:
        content_node = soup.select_one(selector)
        if content_node is not None:
            break
    if content_node is None:
        content_node = soup.body or soup

    markdown = markdownify(str(content_node), heading_style="ATX", bullets="-")
    markdown = _BLANK_LINES.sub("\n\n", markdown).strip()
    return HtmlPage(title=title, markdown=markdown)


def extract_same_host_links(html: str, page_url: str) -> List[str]:
    """Absolute, normalized links on the page that stay on the page's hostname.

    Order of first appearance is kept; duplicates are dropped.
    """
    soup = BeautifulSoup(html, "html.parser")
    host = urlparse(page_url).hostname
    links: List[str] = []
    seen = set()

    for anchor in soup.select("a[href]"):
        href = (anchor.get("href") or "").strip()
        if not href or href.startswith(("mailto:", "tel:", "javascript:")):
            continue
        absolute = urljoin(page_url, href)
        parsed = urlparse(absolute)
        if parsed.scheme not in ("http", "https") or parsed.hostname != host:
            continue
        clean = normalize_url(absolute)
        if clean not in seen:
            seen.add(clean)
            links.append(clean)

    return links
