"""HTML content extraction for the crawl pipeline.

Turns a raw HTML document into a title, a description, normalized main text
and the same-domain links worth following.
"""

import logging
import re
from typing import List, Optional
from urllib.parse import urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup

from .errors import ExtractionTooThin
from .models import ExtractedPage, MAX_PAGE_TEXT
from .security import canonicalize_url

logger = logging.getLogger(__name__)

MIN_CONTENT_LENGTH = 100
MAX_LINKS = 20

BOILERPLATE_TAGS = ["script", "style", "nav", "footer", "header", "iframe", "svg", "noscript"]

ASSET_EXTENSIONS = {
    # images
    ".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp", ".tif", ".tiff", ".svg", ".ico", ".avif",
    # archives and binaries
    ".zip", ".tar", ".gz", ".tgz", ".bz2", ".rar", ".7z", ".exe", ".dmg", ".msi", ".apk", ".iso",
    # stylesheets, scripts and fonts
    ".css", ".js", ".mjs", ".map", ".woff", ".woff2", ".ttf", ".otf", ".eot",
    # feeds and data
    ".xml", ".rss", ".atom", ".json",
    # documents and media
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".mp3", ".mp4", ".wav", ".avi", ".mov", ".webm", ".ogg",
}

_WHITESPACE = re.compile(r"\s+")


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def _is_asset(path: str) -> bool:
    last_segment = path.rsplit("/", 1)[-1].lower()
    if "." not in last_segment:
        return False
    return "." + last_segment.rsplit(".", 1)[-1] in ASSET_EXTENSIONS


def extract_links(soup: BeautifulSoup, base_url: str, domain: Optional[str] = None,
                  max_links: int = MAX_LINKS) -> List[str]:
    """Collect followable same-domain links in document order.

    Links come back in canonical form without fragments. In-page anchors and
    asset URLs are skipped.
    """
    base = urlparse(base_url)
    domain = (domain or base.netloc).lower()
    own_url = canonicalize_url(base_url)

    links: List[str] = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith("#"):
            continue

        parsed = urlparse(urljoin(base_url, href))
        if parsed.scheme not in ("http", "https"):
            continue
        if parsed.netloc.lower() != domain:
            continue
        if _is_asset(parsed.path):
            continue

        clean_url = canonicalize_url(urlunparse(parsed))
        if clean_url == own_url or clean_url in links:
            continue
        links.append(clean_url)
        if len(links) >= max_links:
            break

    return links


def extract(html: str, base_url: str, domain: Optional[str] = None,
            max_links: int = MAX_LINKS) -> ExtractedPage:
    """Extract title, description, main text and links from an HTML page.

    Args:
        html: Raw HTML document
        base_url: URL the document was fetched from; relative links resolve against it
        domain: Host links must stay on (defaults to the host of ``base_url``)
        max_links: Cap on returned links

    Raises:
        ExtractionTooThin: If the main text is shorter than ``MIN_CONTENT_LENGTH``
    """
    soup = BeautifulSoup(html or "", "html.parser")

    # Navigation menus carry most of a site's links, so read them before stripping.
    links = extract_links(soup, base_url, domain=domain, max_links=max_links)

    for element in soup(BOILERPLATE_TAGS):
        element.decompose()

    title = ""
    if soup.title is not None:
        title = _collapse(soup.title.get_text())
    if not title:
        heading = soup.find("h1")
        if heading is not None:
            title = _collapse(heading.get_text())

    description = ""
    meta = soup.find("meta", attrs={"name": re.compile(r"^description$", re.I)})
    if meta is not None and meta.get("content"):
        description = _collapse(meta["content"])

    container = soup.find("article") or soup.find("main") or soup.body or soup
    main_text = _collapse(container.get_text(" "))[:MAX_PAGE_TEXT]

    if len(main_text) < MIN_CONTENT_LENGTH:
        raise ExtractionTooThin(base_url, len(main_text), MIN_CONTENT_LENGTH)

    logger.debug(f"Extracted {len(main_text)} chars and {len(links)} links from {base_url}")
    return ExtractedPage(
        url=base_url,
        title=title,
        description=description,
        main_text=main_text,
        links=links,
    )
