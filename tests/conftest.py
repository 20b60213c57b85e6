"""Shared fixtures: an in-memory fetcher and small HTML page builders."""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Union

import pytest

from harvester.config import build_harvest_config
from harvester.document import FetchResult

Outcome = Union[FetchResult, None, BaseException]


def make_page(title: str, body: str, links: Sequence[str] = ()) -> str:
    anchors = "".join(f'<a href="{href}">{href}</a>' for href in links)
    return (
        f"<html><head><title>{title}</title></head><body>"
        f"<nav>{anchors}</nav>"
        f"<main><h1>{title}</h1><p>{body}</p></main>"
        "</body></html>"
    )


class FakeFetcher:
    """Serves canned outcomes per URL.

    An entry may be a single outcome, used for every request, or a list that
    is consumed one element per request (the last element repeats).
    """

    def __init__(self, pages: Optional[Dict[str, Union[Outcome, List[Outcome]]]] = None):
        self.pages: Dict[str, Union[Outcome, List[Outcome]]] = dict(pages or {})
        self.calls: List[str] = []
        self.call_counts: Dict[str, int] = defaultdict(int)
        self.closed = False

    def add_html(self, url: str, html: str) -> None:
        self.pages[url] = FetchResult(html=html, final_url=url)

    async def fetch(self, url: str) -> Optional[FetchResult]:
        self.calls.append(url)
        index = self.call_counts[url]
        self.call_counts[url] += 1

        outcome = self.pages.get(url)
        if isinstance(outcome, list):
            outcome = outcome[min(index, len(outcome) - 1)]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def close(self) -> None:
        self.closed = True


def plain_markdown(html, base_url=""):
    """Stand-in converter that keeps the extracted fragment verbatim."""
    return (html or "") + "\n"


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def harvest_config(tmp_path):
    def _build(start_url: str = "https://x.test/", **overrides):
        options = {
            "output_dir": str(tmp_path / "archive"),
            "delay_ms": 0,
            "respect_robots": False,
            "fetcher": "static",
        }
        options.update(overrides)
        return build_harvest_config(start_url, **options)

    return _build
