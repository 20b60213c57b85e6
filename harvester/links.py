"""Link discovery and scope filtering."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import AbstractSet, List, Optional
from urllib.parse import urldefrag, urljoin, urlparse

import tldextract
from bs4 import BeautifulSoup

from .config import BINARY_EXTENSIONS, HarvestConfig

LOGGER = logging.getLogger(__name__)

_SKIPPED_PREFIXES = ("#", "javascript:", "mailto:", "tel:", "data:", "blob:", "ftp:")


def _normalize_host(host: Optional[str]) -> str:
    """Normalize hostname by removing port and lowercasing."""
    if not host:
        return ""
    return host.split(":")[0].lower()


@lru_cache(maxsize=256)
def _registrable_domain(host: str) -> Optional[str]:
    """Extract the registrable domain from a hostname."""
    if not host:
        return None
    extracted = tldextract.extract(host)
    if not extracted.domain or not extracted.suffix:
        return host
    domain = ".".join(part for part in (extracted.domain, extracted.suffix) if part)
    return domain or host


def normalize_url(url: str, base_url: Optional[str] = None) -> Optional[str]:
    """Resolve ``url`` against ``base_url`` and drop the fragment.

    Returns ``None`` for anything that is not an absolute http(s) URL.
    """
    try:
        absolute = urljoin(base_url, url.strip()) if base_url else url.strip()
        absolute, _ = urldefrag(absolute)
        parsed = urlparse(absolute)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    if not parsed.path:
        absolute = parsed._replace(path="/").geturl()
    return absolute


def is_same_site(url: str, start_url: str, include_subdomains: bool = False) -> bool:
    host = _normalize_host(urlparse(url).netloc)
    seed_host = _normalize_host(urlparse(start_url).netloc)
    if not host or not seed_host:
        return False
    if host == seed_host:
        return True
    if include_subdomains:
        return _registrable_domain(host) == _registrable_domain(seed_host)
    return False


def is_in_scope(url: str, config: HarvestConfig) -> bool:
    """Domain, include/exclude and file-type filters, ignoring visit state."""
    if config.same_domain and not is_same_site(
        url, config.start_url, config.include_subdomains
    ):
        return False
    if config.include_pattern and not config.include_pattern.search(url):
        return False
    if config.exclude_pattern and config.exclude_pattern.search(url):
        return False
    path = urlparse(url).path
    if BINARY_EXTENSIONS.search(path):
        return False
    return True


def should_crawl(url: str, visited: AbstractSet[str], config: HarvestConfig) -> bool:
    return url not in visited and is_in_scope(url, config)


def extract_links(
    html: str,
    base_url: str,
    config: Optional[HarvestConfig] = None,
) -> List[str]:
    """Collect normalized links from anchors in document order, deduplicated.

    When ``config`` is given, out-of-scope links are dropped.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    base_tag = soup.find("base", href=True)
    if base_tag is not None:
        base_url = urljoin(base_url, base_tag["href"])

    links: List[str] = []
    seen = set()
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.lower().startswith(_SKIPPED_PREFIXES):
            continue
        normalized = normalize_url(href, base_url)
        if normalized is None or normalized in seen:
            continue
        if config is not None and not is_in_scope(normalized, config):
            continue
        seen.add(normalized)
        links.append(normalized)
    return links
