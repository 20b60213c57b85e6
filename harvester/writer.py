"""Archive layout on disk and the working-directory lifecycle.

All writes of a run go to a hidden sibling of the final archive. The final
directory is only replaced at :meth:`ArchiveWriter.finalize` through the
:class:`~harvester.publisher.ArchivePublisher`.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import tempfile
import unicodedata
from pathlib import Path
from typing import Dict, List, Optional, Union

from .catalog import save_catalog
from .config import (
    CATALOG_FILENAME,
    PAGE_NUMBER_WIDTH,
    PAGE_PREFIX,
    PAGES_DIR,
    SLUG_MAX_LENGTH,
    SPEC_PATTERNS,
    SPECS_DIR,
)
from .document import Catalog, PageMetadata, SpecRecord, utc_timestamp
from .errors import HarvestError
from .publisher import ArchivePublisher, backup_path_for, working_prefix_for

LOGGER = logging.getLogger(__name__)

_PAGE_NUMBER_RE = re.compile(rf"^{re.escape(PAGE_PREFIX)}(\d+)")


def slugify(text: Optional[str]) -> str:
    """Lowercase ASCII slug, at most ``SLUG_MAX_LENGTH`` characters."""
    if not text:
        return ""
    ascii_text = (
        unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    )
    slug = ascii_text.lower()
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug[:SLUG_MAX_LENGTH].strip("-")


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def build_frontmatter(
    url: str,
    title: Optional[str],
    depth: int,
    metadata: Optional[PageMetadata] = None,
    crawled_at: Optional[str] = None,
) -> str:
    lines = [
        "---",
        f"url: {_quote(url)}",
        f"title: {_quote((metadata.title if metadata else None) or title or '')}",
    ]
    if metadata and metadata.description:
        lines.append(f"description: {_quote(metadata.description)}")
    if metadata and metadata.keywords:
        lines.append(f"keywords: {_quote(metadata.keywords)}")
    lines.append(f"crawledAt: {crawled_at or utc_timestamp()}")
    lines.append(f"depth: {depth}")
    lines.append("---")
    return "\n".join(lines) + "\n\n"


def spec_kind_for(url: str) -> Optional[str]:
    path = url.split("?", 1)[0].split("#", 1)[0]
    for kind, pattern in SPEC_PATTERNS.items():
        if pattern.search(path):
            return kind
    return None


class ArchiveWriter:
    """Writes one run's archive into a working directory, then publishes it."""

    def __init__(
        self,
        output_dir: Union[str, Path],
        *,
        incremental: bool = False,
        pages: bool = True,
        publisher: Optional[ArchivePublisher] = None,
    ):
        self.final_dir = Path(output_dir)
        self.backup_dir = backup_path_for(self.final_dir)
        self.incremental = incremental
        self.pages = pages
        self.publisher = publisher or ArchivePublisher(
            self.final_dir, None, self.backup_dir
        )
        self.working_dir: Optional[Path] = None
        self._page_counter = 0
        # Page bodies kept in memory when individual page files are disabled.
        self._page_contents: Dict[str, str] = {}
        self._spec_owners: Dict[str, str] = {}

    @property
    def catalog_path(self) -> Path:
        return self.final_dir / CATALOG_FILENAME

    def _require_open(self) -> Path:
        if self.working_dir is None:
            raise HarvestError("Archive writer is not open", "WRITER_ERROR")
        return self.working_dir

    def open(self) -> Path:
        """Recover leftovers, then create and seed the working directory."""
        self.publisher.recover()

        self.final_dir.parent.mkdir(parents=True, exist_ok=True)
        working = Path(
            tempfile.mkdtemp(prefix=working_prefix_for(self.final_dir), dir=self.final_dir.parent)
        )
        try:
            if self.incremental and self.final_dir.is_dir():
                shutil.copytree(self.final_dir, working, dirs_exist_ok=True)
            (working / PAGES_DIR).mkdir(exist_ok=True)
            (working / SPECS_DIR).mkdir(exist_ok=True)
        except OSError:
            shutil.rmtree(working, ignore_errors=True)
            raise

        self.working_dir = working
        self.publisher.working_dir = working
        self._page_counter = self._highest_page_number(working / PAGES_DIR)
        self._page_contents = {}
        self._spec_owners = {}
        LOGGER.debug("Working directory %s (next page %d)", working, self._page_counter + 1)
        return working

    @staticmethod
    def _highest_page_number(pages_dir: Path) -> int:
        highest = 0
        for path in pages_dir.glob(f"{PAGE_PREFIX}*.md"):
            match = _PAGE_NUMBER_RE.match(path.name)
            if match:
                highest = max(highest, int(match.group(1)))
        return highest

    def save_page(
        self,
        url: str,
        markdown: str,
        depth: int,
        metadata: Optional[PageMetadata] = None,
        title: Optional[str] = None,
        crawled_at: Optional[str] = None,
    ) -> str:
        """Write a page with frontmatter and return its archive-relative path.

        With ``pages`` disabled nothing is written; the content is only
        available through :meth:`read_page`.
        """
        working = self._require_open()
        self._page_counter += 1
        number = str(self._page_counter).zfill(PAGE_NUMBER_WIDTH)
        slug = slugify((metadata.title if metadata else None) or title)
        name = f"{PAGE_PREFIX}{number}-{slug}.md" if slug else f"{PAGE_PREFIX}{number}.md"
        relative = f"{PAGES_DIR}/{name}"

        content = build_frontmatter(url, title, depth, metadata, crawled_at) + markdown
        if self.pages:
            (working / relative).write_text(content, encoding="utf-8")
        else:
            self._page_contents[relative] = content
        return relative

    def save_spec(self, url: str, content: str) -> Optional[SpecRecord]:
        """Store an API specification file if the URL looks like one."""
        kind = spec_kind_for(url)
        if kind is None:
            return None
        working = self._require_open()
        path = url.split("?", 1)[0].split("#", 1)[0]
        filename = path.rstrip("/").rsplit("/", 1)[-1] or "spec"
        relative = self._spec_file_for(url, filename)
        (working / relative).write_text(content, encoding="utf-8")
        return SpecRecord(url=url, kind=kind, file=relative)

    def _spec_file_for(self, url: str, filename: str) -> str:
        stem, suffix = Path(filename).stem, Path(filename).suffix
        candidate = filename
        counter = 1
        while self._spec_owners.get(candidate, url) != url:
            counter += 1
            candidate = f"{stem}-{counter}{suffix}"
        self._spec_owners[candidate] = url
        return f"{SPECS_DIR}/{candidate}"

    def read_page(self, file: str) -> str:
        working = self._require_open()
        if file in self._page_contents:
            return self._page_contents[file]
        return (working / file).read_text(encoding="utf-8")

    def write_catalog(self, catalog: Catalog) -> Path:
        path = self._require_open() / CATALOG_FILENAME
        save_catalog(catalog, path)
        return path

    def prune(self, catalog: Catalog) -> List[str]:
        """Delete page and spec files the catalog no longer references."""
        working = self._require_open()
        referenced = {page.file for page in catalog.pages}
        referenced.update(spec.file for spec in catalog.specs)

        removed: List[str] = []
        for directory in (PAGES_DIR, SPECS_DIR):
            for path in sorted((working / directory).iterdir()):
                relative = f"{directory}/{path.name}"
                if path.is_file() and relative not in referenced:
                    path.unlink()
                    removed.append(relative)
        if removed:
            LOGGER.info("Pruned %d stale files", len(removed))
        return removed

    def finalize(self) -> Path:
        """Publish the working directory as the final archive."""
        self._require_open()
        final = self.publisher.publish()
        self.working_dir = None
        LOGGER.info("Archive published to %s", final)
        return final

    def cleanup(self) -> None:
        """Remove the working directory of an unfinished run."""
        if self.working_dir is None:
            return
        shutil.rmtree(self.working_dir, ignore_errors=True)
        LOGGER.debug("Removed working directory %s", self.working_dir)
        self.working_dir = None
