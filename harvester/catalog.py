"""Catalog persistence and reconciliation of a run with the previous archive."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from .document import Catalog, PageRecord, SpecRecord, utc_timestamp

LOGGER = logging.getLogger(__name__)


def save_catalog(catalog: Catalog, path: Union[str, Path]) -> Path:
    """Serialize the catalog as indented UTF-8 JSON."""
    target = Path(path)
    target.write_text(
        json.dumps(catalog.to_dict(), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    return target


class CatalogReconciler:
    """Merge this run's registrations with the previous catalog.

    In full mode the resulting catalog contains exactly the pages registered
    during the run. In incremental mode previous entries whose URL was
    visited this run but not re-registered (because the content was
    unchanged, or the fetch failed) are carried forward verbatim; previous
    entries not visited this run are dropped.
    """

    def __init__(
        self,
        base_url: str,
        config_snapshot: Optional[Dict[str, Any]] = None,
        *,
        incremental: bool = False,
    ):
        self.base_url = base_url
        self.config_snapshot = dict(config_snapshot or {})
        self.incremental = incremental
        self.crawled_at = utc_timestamp()
        self._previous_pages: Dict[str, PageRecord] = {}
        self._previous_specs: Dict[str, SpecRecord] = {}
        self._pages: Dict[str, PageRecord] = {}
        self._specs: Dict[str, SpecRecord] = {}
        self._visited: Set[str] = set()

    def load_previous(self, path: Union[str, Path]) -> int:
        """Load the previous catalog; returns the number of pages loaded.

        A missing, unreadable or malformed catalog is treated as empty.
        """
        self._previous_pages = {}
        self._previous_specs = {}
        catalog_path = Path(path)
        if not catalog_path.is_file():
            LOGGER.info("No previous catalog at %s; starting fresh", catalog_path)
            return 0

        try:
            data = json.loads(catalog_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            LOGGER.warning("Failed to load catalog %s: %s", catalog_path, exc)
            return 0

        if not isinstance(data, dict) or not isinstance(data.get("pages"), list):
            LOGGER.warning("Catalog format invalid at %s; ignoring it", catalog_path)
            return 0

        for entry in data["pages"]:
            try:
                if not isinstance(entry, dict):
                    raise ValueError("page entry is not an object")
                record = PageRecord.from_dict(entry)
            except (TypeError, ValueError) as exc:
                LOGGER.warning("Skipping malformed catalog page entry: %s", exc)
                continue
            self._previous_pages[record.url] = record

        specs = data.get("specs")
        for entry in specs if isinstance(specs, list) else []:
            try:
                if not isinstance(entry, dict):
                    raise ValueError("spec entry is not an object")
                spec = SpecRecord.from_dict(entry)
            except (TypeError, ValueError) as exc:
                LOGGER.warning("Skipping malformed catalog spec entry: %s", exc)
                continue
            self._previous_specs[spec.url] = spec

        LOGGER.info(
            "Loaded previous catalog with %d pages", len(self._previous_pages)
        )
        return len(self._previous_pages)

    def previous_fingerprints(self) -> Dict[str, str]:
        return {
            url: page.fingerprint
            for url, page in self._previous_pages.items()
            if page.fingerprint
        }

    def previous_page(self, url: str) -> Optional[PageRecord]:
        return self._previous_pages.get(url)

    def register_page(self, record: PageRecord) -> None:
        self._pages[record.url] = record

    def register_spec(self, record: SpecRecord) -> None:
        self._specs[record.url] = record

    def set_visited_urls(self, urls: Iterable[str]) -> None:
        self._visited = set(urls)

    def build_catalog(self) -> Catalog:
        """Produce the catalog for the current state; safe to call repeatedly."""
        pages: List[PageRecord] = list(self._pages.values())
        specs: List[SpecRecord] = list(self._specs.values())

        if self.incremental:
            pages.extend(
                page
                for url, page in self._previous_pages.items()
                if url in self._visited and url not in self._pages
            )
            specs.extend(
                spec
                for url, spec in self._previous_specs.items()
                if url in self._visited and url not in self._specs
            )

        return Catalog(
            base_url=self.base_url,
            config=dict(self.config_snapshot),
            crawled_at=self.crawled_at,
            pages=pages,
            specs=specs,
        )

    def save(self, catalog: Catalog, path: Union[str, Path]) -> Path:
        return save_catalog(catalog, path)
