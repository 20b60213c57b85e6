"""HTML to Markdown conversion built on Crawl4AI's markdown generator."""

from __future__ import annotations

import re
from typing import Optional

from crawl4ai.markdown_generation_strategy import DefaultMarkdownGenerator

_TRAILING_WS_RE = re.compile(r"[ \t]+$", re.MULTILINE)
_BLANK_RUN_RE = re.compile(r"\n{3,}")


def build_markdown_generator() -> DefaultMarkdownGenerator:
    """Generator that keeps the whole extracted fragment (no pruning)."""
    return DefaultMarkdownGenerator(
        options={
            "citations": False,
            "body_width": 0,
            "ignore_images": False,
        },
    )


def normalize_markdown(markdown: str) -> str:
    """Normalize line endings, trailing whitespace and blank-line runs."""
    text = markdown.replace("\r\n", "\n").replace("\r", "\n")
    text = _TRAILING_WS_RE.sub("", text)
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip() + "\n" if text.strip() else ""


def html_to_markdown(
    html: Optional[str],
    base_url: str = "",
    generator: Optional[DefaultMarkdownGenerator] = None,
) -> str:
    """Convert an HTML fragment to normalized Markdown."""
    if not html or not html.strip():
        return ""
    generator = generator or build_markdown_generator()
    generated = generator.generate_markdown(
        html,
        base_url=base_url,
        options=generator.options,
        citations=False,
    )
    raw = getattr(generated, "raw_markdown", "") or ""
    return normalize_markdown(raw)
