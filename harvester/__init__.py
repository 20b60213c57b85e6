"""Incremental, crash-safe website harvester.

Crawls a site breadth-first from a start URL, converts each page to
Markdown and stores the result as an archive directory::

    <output>/
        index.json      catalog of pages and API specs
        pages/          one Markdown file per page, with frontmatter
        specs/          OpenAPI / JSON Schema / GraphQL files found on the way
        full.md         all pages merged (optional)
        chunks/         full.md split for embedding (optional)

The archive is built in a hidden working directory and swapped in with a
rename, so readers never see a half-written archive.

Example usage:

    from harvester import harvest_site, harvest_site_async

    result = await harvest_site_async(
        "https://docs.example.com",
        max_depth=2,
        max_pages=50,
    )
    print(result.output_dir, result.stats)

    # Re-run later and only rewrite pages whose content changed
    result = harvest_site("https://docs.example.com", max_depth=2, incremental=True)
"""

from __future__ import annotations

import asyncio
from typing import Any

from .catalog import CatalogReconciler
from .config import HarvestConfig, build_harvest_config
from .controller import HarvestResult, TraversalController
from .document import Catalog, PageMetadata, PageRecord, SpecRecord
from .errors import (
    ConfigError,
    DependencyError,
    FetchError,
    FetchTimeoutError,
    HarvestError,
)
from .fingerprint import Fingerprinter, compute_fingerprint
from .publisher import ArchivePublisher, PublishState
from .writer import ArchiveWriter

__all__ = [
    # Data model
    "Catalog",
    "PageMetadata",
    "PageRecord",
    "SpecRecord",
    "HarvestResult",
    # Configuration
    "HarvestConfig",
    "build_harvest_config",
    # Core
    "TraversalController",
    "CatalogReconciler",
    "ArchiveWriter",
    "ArchivePublisher",
    "PublishState",
    "Fingerprinter",
    "compute_fingerprint",
    # Errors
    "HarvestError",
    "FetchError",
    "FetchTimeoutError",
    "ConfigError",
    "DependencyError",
    # Entry points
    "harvest_site",
    "harvest_site_async",
    # MCP Server
    "mcp",
]


def get_mcp_server():
    """Get the MCP server instance (lazy import to avoid dependency if not needed)."""
    from .mcp_server import mcp

    return mcp


# Lazy import for mcp to avoid requiring fastmcp if not used
def __getattr__(name):
    if name == "mcp":
        from .mcp_server import mcp

        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


async def harvest_site_async(url: str, **options: Any) -> HarvestResult:
    """
    Harvest a website into an archive directory.

    Args:
        url: The start URL (http or https).
        **options: Keyword arguments accepted by
            :func:`harvester.config.build_harvest_config`, e.g. ``max_depth``,
            ``max_pages``, ``output_dir``, ``incremental``, ``fetcher``.

    Returns:
        HarvestResult with the published catalog, output directory, per-URL
        errors and run statistics.

    Raises:
        ConfigError: If the options are invalid.
        DependencyError: If the browser required for rendering is missing.
        OSError: If the archive cannot be written or published.
    """
    config = build_harvest_config(url, **options)
    return await TraversalController(config).run()


def harvest_site(url: str, **options: Any) -> HarvestResult:
    """Synchronous wrapper for harvest_site_async."""
    return asyncio.run(harvest_site_async(url, **options))
