"""Page fetchers: a Crawl4AI browser renderer and a plain httpx client."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional, Protocol

import httpx
from crawl4ai import AsyncWebCrawler, CrawlerRunConfig

from .config import HarvestConfig, build_browser_config, build_render_run_config
from .document import FetchResult
from .errors import DependencyError, FetchError, FetchTimeoutError

LOGGER = logging.getLogger(__name__)

# Extra seconds granted on top of the page timeout before the whole render is abandoned.
_RENDER_GRACE_SEC = 5.0


class Fetcher(Protocol):
    async def fetch(self, url: str) -> Optional[FetchResult]:
        """Return the page, ``None`` when it is not available, or raise FetchError."""

    async def close(self) -> None:
        ...


def _header(headers: Optional[Mapping[str, Any]], name: str) -> str:
    for key, value in (headers or {}).items():
        if str(key).lower() == name:
            return str(value)
    return ""


def _is_success_status(status: Optional[int]) -> bool:
    return status is None or 200 <= status < 300


class StaticFetcher:
    """Fetch raw HTML over HTTP without executing JavaScript."""

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        headers = {"User-Agent": user_agent} if user_agent else None
        self._client = client or httpx.AsyncClient(
            timeout=timeout, follow_redirects=True, headers=headers
        )
        self._closed = False

    async def fetch(self, url: str) -> Optional[FetchResult]:
        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(
                f"Timed out after {self.timeout}s", url, self.timeout
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"HTTP request failed for {url}", url) from exc

        if not _is_success_status(response.status_code):
            LOGGER.debug("%s returned HTTP %d", url, response.status_code)
            return None

        return FetchResult(
            html=response.text,
            final_url=str(response.url),
            content_type=response.headers.get("content-type", ""),
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._client.aclose()


class BrowserFetcher:
    """Render pages in a headless browser through Crawl4AI.

    One browser is started lazily and reused for the whole run. Responses that
    are not HTML (e.g. ``openapi.json``) are re-read over plain HTTP so their
    bytes are not altered by the browser's viewer.
    """

    def __init__(
        self,
        config: HarvestConfig,
        *,
        crawler: Optional[AsyncWebCrawler] = None,
        run_config: Optional[CrawlerRunConfig] = None,
        raw_fetcher: Optional[StaticFetcher] = None,
    ):
        self.timeout = config.timeout_sec
        self._render_timeout = config.timeout_sec + config.spa_wait_ms / 1000 + _RENDER_GRACE_SEC
        self._browser_config = build_browser_config(config)
        self._run_config = run_config or build_render_run_config(config)
        self._crawler = crawler
        self._started = crawler is not None
        self._raw_fetcher = raw_fetcher or StaticFetcher(
            timeout=config.timeout_sec, user_agent=config.user_agent
        )
        self._closed = False

    async def _ensure_crawler(self) -> AsyncWebCrawler:
        if self._crawler is None:
            self._crawler = AsyncWebCrawler(config=self._browser_config)
        if not self._started:
            try:
                await self._crawler.start()
            except Exception as exc:
                if "Executable doesn't exist" in str(exc):
                    raise DependencyError(
                        "Browser not installed; run `crawl4ai-setup` or "
                        "`playwright install chromium`",
                        "playwright",
                    ) from exc
                raise
            self._started = True
        return self._crawler

    async def fetch(self, url: str) -> Optional[FetchResult]:
        crawler = await self._ensure_crawler()
        try:
            container = await asyncio.wait_for(
                crawler.arun(url=url, config=self._run_config),
                timeout=self._render_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise FetchTimeoutError(
                f"Timed out after {self.timeout}s", url, self.timeout
            ) from exc
        except Exception as exc:
            raise FetchError(f"Browser failed to load {url}", url) from exc

        try:
            result = container[0]
        except (IndexError, TypeError):
            result = None

        if result is None:
            raise FetchError(f"Crawler returned no results for {url}", url)

        status = getattr(result, "status_code", None)
        if not result.success:
            if status is not None and not _is_success_status(status):
                LOGGER.debug("%s returned HTTP %d", url, status)
                return None
            message = getattr(result, "error_message", None) or "Unknown error"
            if "timeout" in message.lower():
                raise FetchTimeoutError(message, url, self.timeout)
            raise FetchError(message, url)

        if not _is_success_status(status):
            LOGGER.debug("%s returned HTTP %d", url, status)
            return None

        final_url = str(getattr(result, "redirected_url", None) or result.url or url)
        content_type = _header(getattr(result, "response_headers", None), "content-type")
        if content_type and "html" not in content_type.lower():
            return await self._raw_fetcher.fetch(final_url)

        return FetchResult(
            html=result.html or "",
            final_url=final_url,
            content_type=content_type or "text/html",
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._crawler is not None and self._started:
                await self._crawler.close()
        finally:
            await self._raw_fetcher.close()


def create_fetcher(config: HarvestConfig) -> Fetcher:
    if config.fetcher == "static":
        return StaticFetcher(timeout=config.timeout_sec, user_agent=config.user_agent)
    return BrowserFetcher(config)
