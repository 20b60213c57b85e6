"""Derived artifacts built from the saved pages: ``full.md`` and ``chunks/``."""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .config import CHUNKS_DIR, FULL_MARKDOWN_FILENAME
from .document import PageRecord

LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 4000
DEFAULT_CHUNK_OVERLAP = 200

_FRONTMATTER_RE = re.compile(r"^---\n.*?\n---\n*", re.DOTALL)
_PARAGRAPH_SPLIT_RE = re.compile(r"\n{2,}")


def strip_frontmatter(markdown: str) -> str:
    return _FRONTMATTER_RE.sub("", markdown, count=1)


def _strip_leading_title(body: str) -> str:
    lines = body.split("\n")
    if lines and lines[0].startswith("# "):
        lines = lines[1:]
        while lines and not lines[0].strip():
            lines = lines[1:]
    return "\n".join(lines)


def build_full_markdown(
    pages: Sequence[PageRecord],
    read_page: Callable[[str], str],
) -> str:
    """Concatenate pages into a single document.

    Each section gets a ``# title`` heading and a source line; the page's own
    frontmatter and leading H1 are dropped.
    """
    sections: List[str] = []
    for page in pages:
        try:
            content = read_page(page.file)
        except OSError as exc:
            LOGGER.warning("Could not read %s for merging: %s", page.file, exc)
            content = ""
        body = _strip_leading_title(strip_frontmatter(content).strip())
        title = page.title or page.url
        sections.append(f"# {title}\n\n> Source: {page.url}\n\n{body}")
    return "\n\n---\n\n".join(sections)


def write_full(root: Path, content: str) -> Path:
    path = root / FULL_MARKDOWN_FILENAME
    path.write_text(content, encoding="utf-8")
    return path


def chunk_markdown(
    content: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> List[str]:
    """Split Markdown into paragraph-aligned chunks of at most ``chunk_size``.

    When a chunk is closed, its last ``overlap`` characters are carried into
    the next chunk. A single paragraph longer than ``chunk_size`` is kept
    whole.
    """
    if not content:
        return []
    if len(content) <= chunk_size:
        return [content]

    chunks: List[str] = []
    current = ""
    for paragraph in _PARAGRAPH_SPLIT_RE.split(content):
        if len(current) + len(paragraph) + 2 <= chunk_size:
            current = f"{current}\n\n{paragraph}" if current else paragraph
            continue
        if current:
            chunks.append(current)
        if len(current) > overlap:
            current = f"{current[-overlap:]}\n\n{paragraph}"
        else:
            current = paragraph
    if current:
        chunks.append(current)
    return chunks


def write_chunks(root: Path, content: str) -> List[str]:
    """Replace ``chunks/`` with freshly numbered chunk files."""
    chunks_dir = root / CHUNKS_DIR
    if chunks_dir.exists():
        shutil.rmtree(chunks_dir)
    chunks_dir.mkdir(parents=True)

    files: List[str] = []
    for index, chunk in enumerate(chunk_markdown(content), start=1):
        name = f"chunk-{index:04d}.md"
        (chunks_dir / name).write_text(chunk, encoding="utf-8")
        files.append(f"{CHUNKS_DIR}/{name}")
    return files


def write_derived_artifacts(
    root: Path,
    pages: Sequence[PageRecord],
    read_page: Callable[[str], str],
    *,
    merge: bool = True,
    chunks: bool = False,
) -> Optional[Path]:
    """Write ``full.md`` and/or ``chunks/`` for the given pages.

    Returns the path of ``full.md`` when it was written.
    """
    if not pages:
        LOGGER.info("No pages harvested; skipping merged output")
        return None
    if not merge and not chunks:
        return None

    content = build_full_markdown(pages, read_page)
    full_path: Optional[Path] = None
    if merge:
        full_path = write_full(root, content)
        LOGGER.info("Wrote merged output to %s", full_path.name)
    if chunks and content:
        files = write_chunks(root, content)
        LOGGER.info("Wrote %d chunks", len(files))
    return full_path
