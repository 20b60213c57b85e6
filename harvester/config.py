"""Harvest configuration: defaults, validation and Crawl4AI config factories."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Pattern
from urllib.parse import urlparse

from crawl4ai import BrowserConfig, CrawlerRunConfig
from crawl4ai.async_configs import CacheMode

from .errors import ConfigError

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 1
MAX_DEPTH_LIMIT = 10
DEFAULT_DELAY_MS = 500
MAX_DELAY_MS = 10_000
DEFAULT_TIMEOUT_SEC = 30
MAX_TIMEOUT_SEC = 300
DEFAULT_SPA_WAIT_MS = 2000
MAX_SPA_WAIT_MS = 30_000
DEFAULT_OUTPUT_ROOT = "./.context"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

# Additional attempts after the first failure (3 attempts in total).
MAX_FETCH_RETRIES = 2

MAX_PATTERN_LENGTH = 200
# A quantifier closing a group that is itself quantified, e.g. (a+)+ or (a*){2,}
_NESTED_QUANTIFIER = re.compile(r"(\+|\*|\{[^}]*\})\s*\)(\+|\*|\{)")

CATALOG_FILENAME = "index.json"
PAGES_DIR = "pages"
SPECS_DIR = "specs"
CHUNKS_DIR = "chunks"
FULL_MARKDOWN_FILENAME = "full.md"
PAGE_PREFIX = "page-"
PAGE_NUMBER_WIDTH = 3
SLUG_MAX_LENGTH = 50

SPEC_PATTERNS: Dict[str, Pattern[str]] = {
    "openapi": re.compile(r"/(openapi|swagger)\.(ya?ml|json)$", re.IGNORECASE),
    "jsonSchema": re.compile(r"\.schema\.json$|/schema\.json$", re.IGNORECASE),
    "graphql": re.compile(r"/schema\.graphql$", re.IGNORECASE),
}

# Selectors for main content areas (documentation sites, articles, etc.)
MAIN_SELECTORS: List[str] = [
    "main",
    "[role='main']",
    "article",
    ".main-content",
    ".markdown-body",
    ".docs-content",
    ".doc-content",
    ".md-content",
    ".prose",
    "#content-area",
    "#content",
    ".content",
]

# Tags and selectors removed before conversion (chrome, sidebars, cookie banners)
EXCLUDED_TAGS: List[str] = [
    "script",
    "style",
    "noscript",
    "template",
    "iframe",
    "nav",
    "header",
    "footer",
    "aside",
    "form",
]

EXCLUDED_SELECTORS: List[str] = [
    "#navbar",
    "#onetrust-banner-sdk",
    ".toc",
    ".table-of-contents",
    ".breadcrumbs",
    ".sidebar",
    "[role='navigation']",
    "[data-testid='breadcrumbs']",
    ".cky-consent-container",
    ".cky-overlay",
    ".cky-modal",
]

BINARY_EXTENSIONS = re.compile(
    r"\.(png|jpe?g|gif|svg|ico|webp|pdf|zip|tar|gz|tgz|mp4|mp3|wav|woff2?|ttf|eot)$",
    re.IGNORECASE,
)


@dataclass
class HarvestConfig:
    """Validated settings for a single harvest run."""

    start_url: str
    output_dir: str
    max_depth: int = DEFAULT_MAX_DEPTH
    max_pages: Optional[int] = None
    same_domain: bool = True
    include_subdomains: bool = False
    include_pattern: Optional[Pattern[str]] = None
    exclude_pattern: Optional[Pattern[str]] = None
    delay_ms: int = DEFAULT_DELAY_MS
    timeout_sec: float = DEFAULT_TIMEOUT_SEC
    spa_wait_ms: int = DEFAULT_SPA_WAIT_MS
    headed: bool = False
    incremental: bool = False
    pages: bool = True
    merge: bool = True
    chunks: bool = False
    respect_robots: bool = True
    fetcher: str = "browser"
    user_agent: str = DEFAULT_USER_AGENT
    storage_state: Optional[str] = None

    def snapshot(self) -> Dict[str, Any]:
        """Subset of settings recorded in the catalog."""
        return {
            "maxDepth": self.max_depth,
            "maxPages": self.max_pages,
            "sameDomain": self.same_domain,
            "includeSubdomains": self.include_subdomains,
            "include": self.include_pattern.pattern if self.include_pattern else None,
            "exclude": self.exclude_pattern.pattern if self.exclude_pattern else None,
            "diff": self.incremental,
        }


def _clamp(value: Any, default: float, low: float, high: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = float(default)
    if number != number:  # NaN
        number = float(default)
    return max(low, min(number, high))


def parse_pattern(pattern: Optional[str], name: str) -> Optional[Pattern[str]]:
    """Compile a user-supplied URL filter.

    Raises:
        ConfigError: If the pattern is too long, invalid, or prone to
            catastrophic backtracking.
    """
    if not pattern:
        return None
    if len(pattern) > MAX_PATTERN_LENGTH:
        raise ConfigError(
            f"{name} pattern too long (max {MAX_PATTERN_LENGTH} chars)", name
        )
    if _NESTED_QUANTIFIER.search(pattern):
        raise ConfigError(
            f"{name} pattern may cause catastrophic backtracking", name
        )
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigError(f"Invalid {name} pattern: {exc}", name) from exc


def generate_site_name(url: str) -> str:
    """Derive a filesystem-safe directory name from a URL.

    ``https://docs.example.com/api`` becomes ``example-api``.
    """
    parsed = urlparse(url)
    hostname = (parsed.hostname or "").lower()
    if not hostname:
        return "site"

    hostname = re.sub(r"^www\.", "", hostname)
    hostname = re.sub(r"^(docs?|api|www|blog|dev|stage|staging)\.", "", hostname)
    hostname = re.sub(r"\.(co|com|ac|gov|org|net)\.[a-z]{2,}$", "", hostname)
    hostname = re.sub(r"\.[a-z]{2,}$", "", hostname)

    segments = [segment for segment in parsed.path.split("/") if segment]
    name = f"{hostname}-{segments[0]}" if segments else hostname
    name = re.sub(r"[^a-zA-Z0-9-]", "-", name)
    name = re.sub(r"-+", "-", name).strip("-")
    return name or "site"


def build_harvest_config(
    start_url: str,
    *,
    output_dir: Optional[str] = None,
    output_root: str = DEFAULT_OUTPUT_ROOT,
    max_depth: Any = DEFAULT_MAX_DEPTH,
    max_pages: Any = None,
    same_domain: bool = True,
    include_subdomains: bool = False,
    include: Optional[str] = None,
    exclude: Optional[str] = None,
    delay_ms: Any = DEFAULT_DELAY_MS,
    timeout_sec: Any = DEFAULT_TIMEOUT_SEC,
    spa_wait_ms: Any = DEFAULT_SPA_WAIT_MS,
    headed: bool = False,
    incremental: bool = False,
    pages: bool = True,
    merge: bool = True,
    chunks: bool = False,
    respect_robots: bool = True,
    fetcher: str = "browser",
    user_agent: Optional[str] = None,
    storage_state: Optional[str] = None,
) -> HarvestConfig:
    """Validate raw options and build a :class:`HarvestConfig`.

    Numeric options are clamped to their allowed ranges; unparseable numbers
    fall back to the defaults. ``max_pages`` of ``None`` or ``<= 0`` means
    unlimited.

    Raises:
        ConfigError: On an invalid start URL, pattern, or fetcher name.
    """
    parsed = urlparse(start_url or "")
    if parsed.scheme not in ("http", "https"):
        if not parsed.scheme:
            raise ConfigError(f"Invalid URL: {start_url}", "start_url")
        raise ConfigError(
            f"Unsupported protocol: {parsed.scheme}: (only http/https supported)",
            "start_url",
        )
    if not parsed.netloc:
        raise ConfigError(f"Invalid URL: {start_url}", "start_url")

    if fetcher not in ("browser", "static"):
        raise ConfigError(f"Unknown fetcher: {fetcher}", "fetcher")

    pages_limit: Optional[int] = None
    if max_pages is not None:
        try:
            pages_value = int(max_pages)
        except (TypeError, ValueError):
            pages_value = 0
        pages_limit = pages_value if pages_value > 0 else None

    resolved_output = output_dir or f"{output_root.rstrip('/')}/{generate_site_name(start_url)}"

    config = HarvestConfig(
        start_url=start_url,
        output_dir=resolved_output,
        max_depth=int(_clamp(max_depth, DEFAULT_MAX_DEPTH, 0, MAX_DEPTH_LIMIT)),
        max_pages=pages_limit,
        same_domain=same_domain,
        include_subdomains=include_subdomains,
        include_pattern=parse_pattern(include, "include"),
        exclude_pattern=parse_pattern(exclude, "exclude"),
        delay_ms=int(_clamp(delay_ms, DEFAULT_DELAY_MS, 0, MAX_DELAY_MS)),
        timeout_sec=_clamp(timeout_sec, DEFAULT_TIMEOUT_SEC, 1, MAX_TIMEOUT_SEC),
        spa_wait_ms=int(_clamp(spa_wait_ms, DEFAULT_SPA_WAIT_MS, 0, MAX_SPA_WAIT_MS)),
        headed=headed,
        incremental=incremental,
        pages=pages,
        merge=merge,
        chunks=chunks,
        respect_robots=respect_robots,
        fetcher=fetcher,
        user_agent=user_agent or DEFAULT_USER_AGENT,
        storage_state=storage_state,
    )

    if not (config.pages or config.merge or config.chunks):
        LOGGER.warning(
            "Pages, merged output and chunks are all disabled; "
            "only %s will be written.",
            CATALOG_FILENAME,
        )
    return config


def build_browser_config(config: HarvestConfig) -> BrowserConfig:
    """Browser settings for the rendering fetcher."""
    return BrowserConfig(
        headless=not config.headed,
        user_agent=config.user_agent,
        storage_state=config.storage_state,
        use_persistent_context=False,
        verbose=False,
    )


def build_render_run_config(config: HarvestConfig) -> CrawlerRunConfig:
    """Run configuration returning fully rendered HTML for one page."""
    return CrawlerRunConfig(
        verbose=False,
        cache_mode=CacheMode.BYPASS,
        wait_until="load",
        page_timeout=int(config.timeout_sec * 1000),
        delay_before_return_html=config.spa_wait_ms / 1000,
        semaphore_count=1,
        stream=False,
    )
