"""Main-content and metadata extraction from rendered HTML."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup, Tag

from .config import EXCLUDED_SELECTORS, EXCLUDED_TAGS, MAIN_SELECTORS
from .document import PageMetadata

LOGGER = logging.getLogger(__name__)

# Below this many characters of text a main-content candidate is ignored.
_MIN_MAIN_TEXT = 50


@dataclass(slots=True)
class ExtractedContent:
    title: Optional[str]
    content: Optional[str]


def _meta(soup: BeautifulSoup, name: str) -> Optional[str]:
    tag = soup.find("meta", attrs={"name": name}) or soup.find(
        "meta", attrs={"property": name}
    )
    if tag is None:
        return None
    content = (tag.get("content") or "").strip()
    return content or None


def extract_metadata(html: str) -> PageMetadata:
    """Read ``<title>`` and the common ``<meta>`` tags."""
    soup = BeautifulSoup(html or "", "html.parser")
    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else None
    return PageMetadata(
        title=title or None,
        description=_meta(soup, "description") or _meta(soup, "og:description"),
        keywords=_meta(soup, "keywords"),
        author=_meta(soup, "author"),
        og_title=_meta(soup, "og:title"),
        og_type=_meta(soup, "og:type"),
    )


def _strip_boilerplate(root: Tag) -> None:
    for tag in root.find_all(EXCLUDED_TAGS):
        tag.decompose()
    for selector in EXCLUDED_SELECTORS:
        for tag in root.select(selector):
            # Code samples stay even when a theme nests them in a sidebar widget.
            if tag.find("pre") is None:
                tag.decompose()


def _find_main(soup: BeautifulSoup) -> Optional[Tag]:
    for selector in MAIN_SELECTORS:
        candidate = soup.select_one(selector)
        if candidate is not None and len(candidate.get_text(strip=True)) >= _MIN_MAIN_TEXT:
            return candidate
    return None


def extract_content(html: str, url: str = "") -> ExtractedContent:
    """Isolate the main content of a page as an HTML fragment.

    The first main-content selector with enough text wins; otherwise the
    whole ``<body>`` is used. Navigation, headers, footers, scripts and
    similar chrome are removed first.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    _strip_boilerplate(soup)

    main = _find_main(soup)
    if main is None:
        main = soup.body or soup
        LOGGER.debug("No main content container found for %s; using body", url)

    heading = main.find("h1")
    title = heading.get_text(" ", strip=True) if heading else None
    if not title:
        title_tag = soup.find("title")
        title = title_tag.get_text(strip=True) if title_tag else None

    if main is soup:
        content = "".join(str(child) for child in soup.contents)
    else:
        content = main.decode_contents()
    content = content.strip()
    return ExtractedContent(title=title or None, content=content or None)
