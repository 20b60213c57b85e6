"""Breadth-first traversal of a site into an archive.

The controller owns the frontier, the visited set and the retry ledger for a
single run. Failed fetches are retried passively: the URL is released from
the visited set and only fetched again if a page processed later links to it
again, up to ``MAX_FETCH_RETRIES`` additional attempts.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set, Tuple

from .catalog import CatalogReconciler
from .config import MAX_FETCH_RETRIES, HarvestConfig
from .converter import html_to_markdown
from .document import Catalog, FetchResult, PageRecord, RetryEntry
from .errors import DependencyError
from .extractor import extract_content, extract_metadata
from .fetcher import Fetcher, create_fetcher
from .fingerprint import Fingerprinter, compute_fingerprint
from .links import extract_links, normalize_url, should_crawl
from .postprocess import write_derived_artifacts
from .robots import RobotsPolicy, load_robots_policy
from .writer import ArchiveWriter

LOGGER = logging.getLogger(__name__)


@dataclass
class HarvestResult:
    """Outcome of a harvest run."""

    catalog: Catalog
    output_dir: Path
    catalog_path: Path
    errors: List[Dict[str, str]] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)


class TraversalController:
    """Run one breadth-first harvest from ``config.start_url``."""

    def __init__(
        self,
        config: HarvestConfig,
        *,
        fetcher: Optional[Fetcher] = None,
        writer: Optional[ArchiveWriter] = None,
        reconciler: Optional[CatalogReconciler] = None,
        robots: Optional[RobotsPolicy] = None,
        extract_content: Callable[..., Any] = extract_content,
        extract_metadata: Callable[..., Any] = extract_metadata,
        extract_links: Callable[..., List[str]] = extract_links,
        to_markdown: Callable[..., str] = html_to_markdown,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.start_url = normalize_url(config.start_url) or config.start_url
        self.fetcher = fetcher or create_fetcher(config)
        self.writer = writer or ArchiveWriter(
            config.output_dir, incremental=config.incremental, pages=config.pages
        )
        self.reconciler = reconciler or CatalogReconciler(
            self.start_url, config.snapshot(), incremental=config.incremental
        )
        self.robots = robots
        self._extract_content = extract_content
        self._extract_metadata = extract_metadata
        self._extract_links = extract_links
        self._to_markdown = to_markdown
        self._sleep = sleep

        self._frontier: Deque[Tuple[str, int]] = deque()
        self._visited: Set[str] = set()
        self._attempted: Set[str] = set()
        self._enqueued: Set[str] = set()
        self._retries: Dict[str, RetryEntry] = {}
        self._abandoned: Set[str] = set()
        self._fingerprints = Fingerprinter()
        self._limit_logged = False
        self._fetch_count = 0
        self._written = 0
        self._skipped = 0
        self._errors: List[Dict[str, str]] = []

    @property
    def visited(self) -> Set[str]:
        return set(self._visited)

    @property
    def retry_ledger(self) -> Dict[str, RetryEntry]:
        return dict(self._retries)

    async def run(self) -> HarvestResult:
        """Traverse, reconcile and publish. The previous archive survives any failure."""
        try:
            self.writer.open()
            if self.config.incremental:
                self.reconciler.load_previous(self.writer.catalog_path)
                self._fingerprints = Fingerprinter(
                    self.reconciler.previous_fingerprints()
                )
            if self.robots is None and self.config.respect_robots:
                self.robots = await load_robots_policy(
                    self.start_url,
                    user_agent=self.config.user_agent,
                    timeout=self.config.timeout_sec,
                )

            LOGGER.info(
                "Harvesting %s (depth %d, %s)",
                self.start_url,
                self.config.max_depth,
                f"max {self.config.max_pages} pages"
                if self.config.max_pages
                else "no page limit",
            )
            self._enqueue(self.start_url, 0)
            while self._frontier:
                url, depth = self._frontier.popleft()
                await self._process(url, depth)

            return self._finish()
        finally:
            self.writer.cleanup()
            await self.fetcher.close()

    def _enqueue(self, url: str, depth: int) -> bool:
        if url in self._visited:
            return False
        if url not in self._enqueued:
            limit = self.config.max_pages
            if limit is not None and len(self._enqueued) >= limit:
                if not self._limit_logged:
                    LOGGER.info("Reached page limit of %d", limit)
                    self._limit_logged = True
                return False
            self._enqueued.add(url)
        self._visited.add(url)
        self._frontier.append((url, depth))
        return True

    async def _process(self, url: str, depth: int) -> None:
        if self.robots is not None and not self.robots.is_allowed(url):
            LOGGER.info("Skipping %s (disallowed by robots.txt)", url)
            return

        if self._fetch_count and self.config.delay_ms:
            await self._sleep(self.config.delay_ms / 1000)
        self._fetch_count += 1
        self._attempted.add(url)

        LOGGER.debug("Fetching %s (depth %d)", url, depth)
        try:
            result = await self.fetcher.fetch(url)
        except DependencyError:
            raise
        except Exception as exc:
            self._record_failure(url, exc)
            return

        if result is None:
            self._record_failure(url, None)
            return

        self._retries.pop(url, None)
        await self._handle_result(url, depth, result)

    def _record_failure(self, url: str, exc: Optional[BaseException]) -> None:
        entry = self._retries.setdefault(url, RetryEntry(url))
        entry.attempt_count += 1
        max_attempts = MAX_FETCH_RETRIES + 1

        if exc is None:
            LOGGER.warning(
                "Page not available: %s (attempt %d/%d)",
                url,
                entry.attempt_count,
                max_attempts,
            )
        else:
            LOGGER.warning(
                "Fetch failed for %s (attempt %d/%d): %s",
                url,
                entry.attempt_count,
                max_attempts,
                exc,
            )

        if entry.attempt_count > MAX_FETCH_RETRIES:
            # Stays in the visited set, so later links to it are ignored.
            del self._retries[url]
            self._abandoned.add(url)
            self._errors.append(
                {
                    "url": url,
                    "error": str(exc) if exc is not None else "Page not available",
                    "stage": "fetch",
                }
            )
            return

        self._visited.discard(url)

    async def _handle_result(self, url: str, depth: int, result: FetchResult) -> None:
        final_url = normalize_url(result.final_url) or url
        # A redirect target awaiting a retry must stay rediscoverable.
        if final_url != url and final_url not in self._retries:
            self._visited.add(final_url)

        if not result.is_html:
            self._handle_non_html(url, result)
            return

        try:
            metadata = self._extract_metadata(result.html)
            extracted = self._extract_content(result.html, final_url)
            markdown = self._to_markdown(extracted.content, final_url)
            links = self._extract_links(result.html, final_url, self.config)
        except Exception as exc:
            LOGGER.warning("Failed to extract content from %s: %s", url, exc)
            self._errors.append({"url": url, "error": str(exc), "stage": "extract"})
            return

        fingerprint = compute_fingerprint(markdown)
        title = metadata.title or extracted.title
        if self.config.incremental and not self._fingerprints.has_changed(
            url, fingerprint
        ):
            self._skipped += 1
            LOGGER.debug("Unchanged: %s", url)
        else:
            file = self.writer.save_page(url, markdown, depth, metadata, title)
            self.reconciler.register_page(
                PageRecord(
                    url=url,
                    title=title,
                    file=file,
                    depth=depth,
                    links=list(links),
                    metadata=metadata,
                    fingerprint=fingerprint,
                )
            )
            self._written += 1
            action = "Saved" if self.config.pages else "Cached"
            LOGGER.info("%s %s -> %s", action, url, file)

        if depth >= self.config.max_depth:
            return
        for link in links:
            if should_crawl(link, self._visited, self.config):
                self._enqueue(link, depth + 1)

    def _handle_non_html(self, url: str, result: FetchResult) -> None:
        record = self.writer.save_spec(url, result.html)
        if record is None:
            LOGGER.debug(
                "Ignoring non-HTML response for %s (%s)", url, result.content_type
            )
            return
        self.reconciler.register_spec(record)
        LOGGER.info("Saved %s spec %s -> %s", record.kind, url, record.file)

    def _finish(self) -> HarvestResult:
        for url, entry in self._retries.items():
            self._errors.append(
                {
                    "url": url,
                    "error": f"Not rediscovered after {entry.attempt_count} failed attempt(s)",
                    "stage": "fetch",
                }
            )
        self.reconciler.set_visited_urls(self._attempted)
        catalog = self.reconciler.build_catalog()
        if self.config.incremental:
            self.writer.prune(catalog)
        self.writer.write_catalog(catalog)
        write_derived_artifacts(
            self.writer.working_dir,
            catalog.pages,
            self.writer.read_page,
            merge=self.config.merge,
            chunks=self.config.chunks,
        )
        output_dir = self.writer.finalize()

        stats = {
            "total_pages": catalog.total_pages,
            "written_pages": self._written,
            "skipped_pages": self._skipped,
            "failed_urls": len(self._abandoned) + len(self._retries),
            "specs": len(catalog.specs),
        }
        LOGGER.info(
            "Harvest complete: %d pages (%d written, %d unchanged), %d failed",
            stats["total_pages"],
            stats["written_pages"],
            stats["skipped_pages"],
            stats["failed_urls"],
        )
        return HarvestResult(
            catalog=catalog,
            output_dir=output_dir,
            catalog_path=self.writer.catalog_path,
            errors=list(self._errors),
            stats=stats,
        )
