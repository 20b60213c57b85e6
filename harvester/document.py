"""Data structures representing harvested pages and the archive catalog."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

SPEC_KINDS = ("openapi", "jsonSchema", "graphql")


def utc_timestamp() -> str:
    """Current UTC time in ISO-8601 with millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


@dataclass(slots=True)
class FetchResult:
    """Raw output of the fetch collaborator."""

    html: str
    final_url: str
    content_type: str = "text/html"

    @property
    def is_html(self) -> bool:
        content_type = (self.content_type or "").lower()
        return "text/html" in content_type or "application/xhtml" in content_type


@dataclass(slots=True)
class PageMetadata:
    """Document-level metadata pulled from <head>."""

    title: Optional[str] = None
    description: Optional[str] = None
    keywords: Optional[str] = None
    author: Optional[str] = None
    og_title: Optional[str] = None
    og_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "title": self.title,
            "description": self.description,
            "keywords": self.keywords,
            "author": self.author,
            "ogTitle": self.og_title,
            "ogType": self.og_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageMetadata":
        return cls(
            title=_optional_str(data.get("title")),
            description=_optional_str(data.get("description")),
            keywords=_optional_str(data.get("keywords")),
            author=_optional_str(data.get("author")),
            og_title=_optional_str(data.get("ogTitle")),
            og_type=_optional_str(data.get("ogType")),
        )


@dataclass(slots=True)
class PageRecord:
    """One harvested page as listed in the catalog."""

    url: str
    title: Optional[str]
    file: str
    depth: int
    links: List[str] = field(default_factory=list)
    metadata: Optional[PageMetadata] = None
    fingerprint: Optional[str] = None
    crawled_at: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "file": self.file,
            "depth": self.depth,
            "links": list(self.links),
            "metadata": self.metadata.to_dict() if self.metadata else None,
            "fingerprint": self.fingerprint,
            "crawledAt": self.crawled_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageRecord":
        """Build a record from catalog JSON.

        Raises:
            ValueError: If the entry has no usable ``url``.
        """
        url = data.get("url")
        if not isinstance(url, str) or not url:
            raise ValueError("page entry has no url")
        metadata = data.get("metadata")
        links = data.get("links") or []
        return cls(
            url=url,
            title=_optional_str(data.get("title")),
            file=str(data.get("file") or ""),
            depth=int(data.get("depth") or 0),
            links=[str(link) for link in links] if isinstance(links, list) else [],
            metadata=PageMetadata.from_dict(metadata)
            if isinstance(metadata, dict)
            else None,
            # Catalogs written before the rename stored the digest as "hash".
            fingerprint=_optional_str(data.get("fingerprint") or data.get("hash")),
            crawled_at=str(data.get("crawledAt") or ""),
        )


@dataclass(slots=True)
class SpecRecord:
    """An API specification file discovered during the harvest."""

    url: str
    kind: str
    file: str

    def to_dict(self) -> Dict[str, str]:
        return {"url": self.url, "type": self.kind, "file": self.file}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SpecRecord":
        url = data.get("url")
        if not isinstance(url, str) or not url:
            raise ValueError("spec entry has no url")
        kind = str(data.get("type") or "")
        if kind not in SPEC_KINDS:
            raise ValueError(f"unknown spec type {kind!r}")
        return cls(url=url, kind=kind, file=str(data.get("file") or ""))


@dataclass(slots=True)
class Catalog:
    """The root index of an archive."""

    base_url: str
    config: Dict[str, Any] = field(default_factory=dict)
    crawled_at: str = field(default_factory=utc_timestamp)
    pages: List[PageRecord] = field(default_factory=list)
    specs: List[SpecRecord] = field(default_factory=list)

    @property
    def total_pages(self) -> int:
        return len(self.pages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "crawledAt": self.crawled_at,
            "baseUrl": self.base_url,
            "config": dict(self.config),
            "totalPages": self.total_pages,
            "pages": [page.to_dict() for page in self.pages],
            "specs": [spec.to_dict() for spec in self.specs],
        }


@dataclass(slots=True)
class RetryEntry:
    """Failed-attempt bookkeeping for one URL."""

    url: str
    attempt_count: int = 0
