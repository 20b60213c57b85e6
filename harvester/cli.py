"""Command-line interface for the site harvester."""

from __future__ import annotations

import argparse
import asyncio
import logging
import shutil
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .cli_config import env_defaults, load_config

# Configuration directory for global CLI usage
CONFIG_DIR = Path.home() / ".config" / "harvester"
CONFIG_ENV_FILE = CONFIG_DIR / ".env"

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID_ARGS = 2
EXIT_DEPENDENCY = 3
EXIT_HARVEST_FAILED = 4
EXIT_INTERRUPTED = 130


def _load_config() -> None:
    """Load .env configuration with fallback to user config directory.

    Search order:
    1. .env in current working directory
    2. ~/.config/harvester/.env

    If neither exists and .env.example is found in the package directory,
    it will be copied to ~/.config/harvester/.env as a starting point.
    """
    load_config(
        config_dir=CONFIG_DIR,
        config_env_file=CONFIG_ENV_FILE,
        cwd=Path.cwd(),
        load_env=load_dotenv,
        copy_file=shutil.copy,
    )


_load_config()

from .config import (
    DEFAULT_DELAY_MS,
    DEFAULT_MAX_DEPTH,
    DEFAULT_SPA_WAIT_MS,
    DEFAULT_TIMEOUT_SEC,
    build_harvest_config,
)
from .controller import HarvestResult, TraversalController
from .errors import ConfigError, DependencyError, HarvestError


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="harvest",
        description="Harvest a website into a Markdown archive.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Examples:
  # Start page plus everything it links to (depth 1)
  harvest https://docs.example.com

  # Deeper crawl into a fixed directory
  harvest https://docs.example.com -d 3 --max-pages 200 -o ./docs-archive

  # Only rewrite pages whose content changed since the last run
  harvest https://docs.example.com -d 3 --diff

  # Plain HTTP instead of a headless browser
  harvest https://example.com --static

  # Only pages under /api, split full.md into chunks
  harvest https://example.com --include '/api/' --chunks

  # Only full.md and index.json, no per-page files
  harvest https://docs.example.com --no-pages

Environment:
  HARVESTER_OUTPUT_ROOT  Parent directory for archives (default: ./.context)
  HARVESTER_USER_AGENT   User-Agent sent with requests
  HARVESTER_FETCHER      browser (default) or static
""",
    )

    parser.add_argument("url", help="Start URL (http or https)")
    parser.add_argument(
        "-d",
        "--depth",
        type=int,
        default=DEFAULT_MAX_DEPTH,
        help=f"Maximum link depth from the start URL, 0-10 (default: {DEFAULT_MAX_DEPTH})",
    )
    parser.add_argument(
        "--max-pages",
        type=int,
        default=None,
        help="Maximum number of pages to visit (default: unlimited)",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Archive directory (default: <output root>/<site name>)",
    )
    parser.add_argument(
        "--no-same-domain",
        dest="same_domain",
        action="store_false",
        help="Follow links to other hosts",
    )
    parser.add_argument(
        "--include-subdomains",
        action="store_true",
        help="Treat subdomains of the start host as the same site",
    )
    parser.add_argument(
        "--include",
        type=str,
        default=None,
        help="Only follow URLs matching this regular expression",
    )
    parser.add_argument(
        "--exclude",
        type=str,
        default=None,
        help="Skip URLs matching this regular expression",
    )
    parser.add_argument(
        "--delay",
        type=int,
        default=DEFAULT_DELAY_MS,
        help=f"Delay between requests in milliseconds (default: {DEFAULT_DELAY_MS})",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_SEC,
        help=f"Page load timeout in seconds (default: {DEFAULT_TIMEOUT_SEC})",
    )
    parser.add_argument(
        "--wait",
        type=int,
        default=DEFAULT_SPA_WAIT_MS,
        help=f"Extra wait for client-side rendering in ms (default: {DEFAULT_SPA_WAIT_MS})",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window",
    )
    parser.add_argument(
        "--static",
        action="store_true",
        help="Fetch with plain HTTP instead of a headless browser",
    )
    parser.add_argument(
        "--storage-state",
        type=str,
        default=None,
        help="Path to Playwright storage_state JSON for authenticated sites",
    )
    parser.add_argument(
        "--diff",
        action="store_true",
        help="Incremental run: keep unchanged pages from the previous archive",
    )
    parser.add_argument(
        "--no-pages",
        dest="pages",
        action="store_false",
        help="Do not write individual files to pages/ (full.md and chunks still include them)",
    )
    parser.add_argument(
        "--no-merge",
        dest="merge",
        action="store_false",
        help="Do not write full.md",
    )
    parser.add_argument(
        "--chunks",
        action="store_true",
        help="Split the merged Markdown into chunks/",
    )
    parser.add_argument(
        "--no-robots",
        dest="respect_robots",
        action="store_false",
        help="Ignore robots.txt",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args(argv)


def _print_summary(result: HarvestResult) -> None:
    stats = result.stats
    print(f"Archive: {result.output_dir}")
    print(
        f"Pages: {stats.get('total_pages', 0)} "
        f"(written {stats.get('written_pages', 0)}, "
        f"unchanged {stats.get('skipped_pages', 0)})"
    )
    if stats.get("specs"):
        print(f"Specs: {stats['specs']}")
    if stats.get("failed_urls"):
        print(f"Failed URLs: {stats['failed_urls']}", file=sys.stderr)


async def _run_harvest_async(args: argparse.Namespace) -> int:
    """Main async entry point for harvest."""
    defaults = env_defaults()
    try:
        config = build_harvest_config(
            args.url,
            output_dir=args.output,
            output_root=defaults["output_root"],
            max_depth=args.depth,
            max_pages=args.max_pages,
            same_domain=args.same_domain,
            include_subdomains=args.include_subdomains,
            include=args.include,
            exclude=args.exclude,
            delay_ms=args.delay,
            timeout_sec=args.timeout,
            spa_wait_ms=args.wait,
            headed=args.headed,
            incremental=args.diff,
            pages=args.pages,
            merge=args.merge,
            chunks=args.chunks,
            respect_robots=args.respect_robots,
            fetcher="static" if args.static else defaults["fetcher"],
            user_agent=defaults["user_agent"],
            storage_state=args.storage_state,
        )
    except ConfigError as exc:
        logging.error("Invalid configuration: %s", exc)
        return EXIT_INVALID_ARGS

    try:
        result = await TraversalController(config).run()
    except DependencyError as exc:
        logging.error("Missing dependency: %s", exc)
        return EXIT_DEPENDENCY
    except (HarvestError, OSError) as exc:
        logging.error("Harvest failed: %s", exc)
        if args.verbose:
            logging.exception("Full traceback:")
        return EXIT_HARVEST_FAILED

    _print_summary(result)
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the harvest command."""
    args = _parse_args(argv)
    _setup_logging(args.verbose)

    try:
        return asyncio.run(_run_harvest_async(args))
    except KeyboardInterrupt:
        logging.info("Interrupted")
        return EXIT_INTERRUPTED
    except Exception as exc:
        logging.error("Error: %s", exc)
        if args.verbose:
            logging.exception("Full traceback:")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
