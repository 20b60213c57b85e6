"""MCP Server exposing the site harvester.

Provides a single ``harvest_site`` tool that crawls a site into an archive
directory and returns a summary of the run.

Supports both STDIO and HTTP transports.

Usage:
    # STDIO (for desktop MCP clients)
    python -m harvester.mcp_server

    # HTTP (for remote access)
    python -m harvester.mcp_server --transport http --port 8000

    # Or via FastMCP CLI
    fastmcp run harvester/mcp_server.py:mcp --transport http --port 8000

Environment Variables:
    HARVESTER_OUTPUT_ROOT: Parent directory for archives (default: ./.context)
    HARVESTER_USER_AGENT: User-Agent sent with requests
    HARVESTER_FETCHER: "browser" (default) or "static"
"""

from __future__ import annotations

import argparse
import json
import logging
from enum import Enum
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastmcp import FastMCP

from .cli_config import env_defaults
from .controller import HarvestResult
from .errors import HarvestError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
LOGGER = logging.getLogger(__name__)

# Load .env before reading environment variables
load_dotenv()

# Create the MCP server
mcp = FastMCP(
    name="Site Harvester",
    instructions="""
    A website harvester that stores a site as a Markdown archive:

    - harvest_site: Crawl a site breadth-first from a start URL and write
      index.json, pages/, specs/ and full.md to an archive directory.
      With incremental=true only pages whose content changed are rewritten.

    Output formats:
    - json: Run summary with statistics, pages and errors (default)
    - markdown: Short human-readable summary
    """,
)


class OutputFormat(str, Enum):
    """Output format for harvest summaries."""

    markdown = "markdown"
    json = "json"


def _result_to_dict(result: HarvestResult) -> Dict[str, Any]:
    """Convert a HarvestResult to a JSON-serializable dict."""
    return {
        "output_dir": str(result.output_dir),
        "catalog_path": str(result.catalog_path),
        "base_url": result.catalog.base_url,
        "crawled_at": result.catalog.crawled_at,
        "stats": dict(result.stats),
        "pages": [
            {
                "url": page.url,
                "title": page.title,
                "file": page.file,
                "depth": page.depth,
            }
            for page in result.catalog.pages
        ],
        "specs": [spec.to_dict() for spec in result.catalog.specs],
        "errors": list(result.errors),
    }


def _format_markdown(result: HarvestResult) -> str:
    stats = result.stats
    lines = [
        f"# Harvest of {result.catalog.base_url}",
        "",
        f"- Archive: `{result.output_dir}`",
        f"- Pages: {stats.get('total_pages', 0)} "
        f"({stats.get('written_pages', 0)} written, "
        f"{stats.get('skipped_pages', 0)} unchanged)",
        f"- Specs: {stats.get('specs', 0)}",
        f"- Failed URLs: {stats.get('failed_urls', 0)}",
    ]
    if result.catalog.pages:
        lines.extend(["", "## Pages", ""])
        for page in result.catalog.pages:
            lines.append(f"- [{page.title or page.url}]({page.url}) -> `{page.file}`")
    if result.errors:
        lines.extend(["", "## Errors", ""])
        for error in result.errors:
            lines.append(f"- {error['url']} ({error['stage']}): {error['error']}")
    return "\n".join(lines)


def _format_output(result: HarvestResult, fmt: OutputFormat) -> str:
    if fmt == OutputFormat.markdown:
        return _format_markdown(result)
    return json.dumps(_result_to_dict(result), indent=2, ensure_ascii=False)


@mcp.tool
async def harvest_site(
    url: str,
    max_depth: int = 1,
    max_pages: Optional[int] = None,
    output_dir: Optional[str] = None,
    include_subdomains: bool = False,
    include: Optional[str] = None,
    exclude: Optional[str] = None,
    incremental: bool = False,
    static: bool = False,
    pages: bool = True,
    chunks: bool = False,
    storage_state: Optional[str] = None,
    output_format: str = "json",
):
    """
    Harvest a website into a Markdown archive directory.

    Args:
        url: The start URL (http or https)
        max_depth: Maximum link depth from the start URL (default: 1, 0 = start page only)
        max_pages: Maximum number of pages to visit (default: unlimited)
        output_dir: Archive directory (default: <HARVESTER_OUTPUT_ROOT>/<site name>)
        include_subdomains: Treat subdomains of the start host as the same site
        include: Only follow URLs matching this regular expression
        exclude: Skip URLs matching this regular expression
        incremental: Keep unchanged pages from the previous archive and only
            rewrite pages whose content changed (default: false)
        static: Fetch with plain HTTP instead of a headless browser
        pages: Write one Markdown file per page into pages/ (default: true)
        chunks: Also split full.md into chunks/ (default: false)
        storage_state: Path to Playwright storage_state JSON for authenticated sites
        output_format: "json" (default) or "markdown"

    Returns:
        A summary of the harvest in the requested format.

    Examples:
        # Start page plus direct links
        harvest_site(url="https://docs.example.com")

        # Deeper, incremental re-run
        harvest_site(url="https://docs.example.com", max_depth=3, incremental=True)
    """
    from . import harvest_site_async

    try:
        fmt = OutputFormat(output_format.lower())
    except ValueError:
        fmt = OutputFormat.json

    defaults = env_defaults()
    LOGGER.info("Starting harvest: %s (max_depth=%d)", url, max_depth)

    try:
        result = await harvest_site_async(
            url,
            max_depth=max_depth,
            max_pages=max_pages,
            output_dir=output_dir,
            output_root=defaults["output_root"],
            include_subdomains=include_subdomains,
            include=include,
            exclude=exclude,
            incremental=incremental,
            pages=pages,
            chunks=chunks,
            fetcher="static" if static else defaults["fetcher"],
            user_agent=defaults["user_agent"],
            storage_state=storage_state,
        )
    except HarvestError as exc:
        LOGGER.error("Harvest failed: %s", exc)
        return json.dumps({"error": str(exc), "code": exc.code})

    LOGGER.info(
        "Harvest complete: %d pages (%d written, %d unchanged)",
        result.stats.get("total_pages", 0),
        result.stats.get("written_pages", 0),
        result.stats.get("skipped_pages", 0),
    )
    return _format_output(result, fmt)


def main():
    """CLI entry point for running the MCP server."""
    parser = argparse.ArgumentParser(
        description="Run the site harvester MCP server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
    HARVESTER_OUTPUT_ROOT  Parent directory for archives (default: ./.context)
    HARVESTER_USER_AGENT   User-Agent sent with requests
    HARVESTER_FETCHER      browser (default) or static

Examples:
    # STDIO transport (default)
    python -m harvester.mcp_server

    # HTTP transport (for remote access)
    python -m harvester.mcp_server --transport http --port 8000
""",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="Transport protocol (default: stdio)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to for HTTP transport (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to for HTTP transport (default: 8000)",
    )

    args = parser.parse_args()

    LOGGER.info("Output root: %s", env_defaults()["output_root"])

    if args.transport == "http":
        LOGGER.info("Starting MCP server on http://%s:%d/mcp", args.host, args.port)
        mcp.run(transport="http", host=args.host, port=args.port)
    else:
        LOGGER.info("Starting MCP server with STDIO transport")
        mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
