"""Tests for harvester.cli module."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

# We need to isolate CLI imports from _load_config side effects
with patch("dotenv.load_dotenv"):
    from harvester.cli import (
        EXIT_DEPENDENCY,
        EXIT_ERROR,
        EXIT_HARVEST_FAILED,
        EXIT_INTERRUPTED,
        EXIT_INVALID_ARGS,
        EXIT_OK,
        _parse_args,
        _print_summary,
        _run_harvest_async,
        main,
    )

from harvester.controller import HarvestResult
from harvester.document import Catalog
from harvester.errors import DependencyError, HarvestError


def _result(**stats):
    return HarvestResult(
        catalog=Catalog(base_url="https://x.test/"),
        output_dir=Path("/tmp/x"),
        catalog_path=Path("/tmp/x/index.json"),
        errors=[],
        stats=stats,
    )


def _controller_returning(result=None, side_effect=None):
    controller = MagicMock()
    controller.return_value.run = AsyncMock(return_value=result, side_effect=side_effect)
    return controller


class TestParseArgs:
    def test_defaults(self):
        args = _parse_args(["https://x.test/"])
        assert args.url == "https://x.test/"
        assert args.depth == 1
        assert args.max_pages is None
        assert args.output is None
        assert args.same_domain is True
        assert args.pages is True
        assert args.merge is True
        assert args.respect_robots is True
        assert args.diff is False
        assert args.static is False
        assert args.chunks is False

    def test_all_flags(self):
        args = _parse_args(
            [
                "https://x.test/",
                "-d", "3",
                "--max-pages", "20",
                "-o", "out",
                "--no-same-domain",
                "--include-subdomains",
                "--include", "/docs/",
                "--exclude", "/old/",
                "--delay", "100",
                "--timeout", "12.5",
                "--wait", "0",
                "--headed",
                "--static",
                "--storage-state", "state.json",
                "--diff",
                "--no-pages",
                "--no-merge",
                "--chunks",
                "--no-robots",
                "-v",
            ]
        )
        assert args.depth == 3
        assert args.max_pages == 20
        assert args.output == "out"
        assert args.same_domain is False
        assert args.include_subdomains is True
        assert args.include == "/docs/"
        assert args.exclude == "/old/"
        assert args.delay == 100
        assert args.timeout == 12.5
        assert args.wait == 0
        assert args.headed is True
        assert args.static is True
        assert args.storage_state == "state.json"
        assert args.diff is True
        assert args.pages is False
        assert args.merge is False
        assert args.chunks is True
        assert args.respect_robots is False
        assert args.verbose is True

    def test_url_required(self):
        with pytest.raises(SystemExit):
            _parse_args([])


class TestPrintSummary:
    def test_summary(self, capsys):
        _print_summary(
            _result(total_pages=3, written_pages=1, skipped_pages=2, specs=1, failed_urls=1)
        )
        captured = capsys.readouterr()
        assert "Archive: /tmp/x" in captured.out
        assert "Pages: 3 (written 1, unchanged 2)" in captured.out
        assert "Specs: 1" in captured.out
        assert "Failed URLs: 1" in captured.err


class TestRunHarvestAsync:
    @pytest.mark.asyncio
    async def test_success(self, tmp_path, monkeypatch, capsys):
        monkeypatch.delenv("HARVESTER_FETCHER", raising=False)
        controller = _controller_returning(_result(total_pages=1, written_pages=1))
        args = _parse_args(["https://x.test/", "-o", str(tmp_path / "out"), "--static", "--diff"])

        with patch("harvester.cli.TraversalController", controller):
            code = await _run_harvest_async(args)

        assert code == EXIT_OK
        config = controller.call_args.args[0]
        assert config.fetcher == "static"
        assert config.incremental is True
        assert config.output_dir == str(tmp_path / "out")
        assert "Pages: 1" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_env_fetcher_default(self, monkeypatch):
        monkeypatch.setenv("HARVESTER_FETCHER", "static")
        controller = _controller_returning(_result())

        with patch("harvester.cli.TraversalController", controller):
            await _run_harvest_async(_parse_args(["https://x.test/"]))

        assert controller.call_args.args[0].fetcher == "static"

    @pytest.mark.asyncio
    async def test_invalid_config(self, caplog):
        controller = _controller_returning(_result())
        with patch("harvester.cli.TraversalController", controller):
            code = await _run_harvest_async(_parse_args(["ftp://x.test/"]))
        assert code == EXIT_INVALID_ARGS
        controller.assert_not_called()
        assert "Invalid configuration" in caplog.text

    @pytest.mark.asyncio
    async def test_invalid_pattern(self):
        with patch("harvester.cli.TraversalController", _controller_returning(_result())):
            code = await _run_harvest_async(_parse_args(["https://x.test/", "--include", "(a+)+"]))
        assert code == EXIT_INVALID_ARGS

    @pytest.mark.asyncio
    async def test_dependency_error(self):
        controller = _controller_returning(side_effect=DependencyError("no browser", "playwright"))
        with patch("harvester.cli.TraversalController", controller):
            code = await _run_harvest_async(_parse_args(["https://x.test/"]))
        assert code == EXIT_DEPENDENCY

    @pytest.mark.asyncio
    async def test_harvest_error(self, caplog):
        controller = _controller_returning(side_effect=HarvestError("publish failed", "PUBLISH_ERROR"))
        with patch("harvester.cli.TraversalController", controller):
            code = await _run_harvest_async(_parse_args(["https://x.test/"]))
        assert code == EXIT_HARVEST_FAILED
        assert "Harvest failed: publish failed" in caplog.text

    @pytest.mark.asyncio
    async def test_os_error(self):
        controller = _controller_returning(side_effect=PermissionError("read-only"))
        with patch("harvester.cli.TraversalController", controller):
            code = await _run_harvest_async(_parse_args(["https://x.test/"]))
        assert code == EXIT_HARVEST_FAILED


class TestMainEntryPoint:
    def test_main_ok(self):
        with patch("harvester.cli._run_harvest_async", new_callable=AsyncMock) as mock:
            mock.return_value = EXIT_OK
            assert main(["https://x.test/"]) == EXIT_OK

    def test_main_passes_exit_code(self):
        with patch("harvester.cli._run_harvest_async", new_callable=AsyncMock) as mock:
            mock.return_value = EXIT_HARVEST_FAILED
            assert main(["https://x.test/"]) == EXIT_HARVEST_FAILED

    def test_main_unexpected_error(self):
        with patch(
            "harvester.cli._run_harvest_async",
            new_callable=AsyncMock,
            side_effect=Exception("error"),
        ):
            assert main(["https://x.test/"]) == EXIT_ERROR

    def test_main_interrupted(self):
        with patch("harvester.cli.asyncio.run", side_effect=KeyboardInterrupt):
            assert main(["https://x.test/"]) == EXIT_INTERRUPTED

    def test_verbose_sets_debug(self):
        with patch("harvester.cli._run_harvest_async", new_callable=AsyncMock) as mock, patch(
            "harvester.cli.logging.basicConfig"
        ) as basic_config:
            mock.return_value = EXIT_OK
            main(["https://x.test/", "-v"])
        assert basic_config.call_args.kwargs["level"] == logging.DEBUG
