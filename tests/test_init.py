"""Tests for harvester package entry points."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import harvester
from harvester.errors import ConfigError


class TestExports:
    def test_all_names_resolve(self):
        for name in harvester.__all__:
            assert getattr(harvester, name) is not None

    def test_unknown_attribute(self):
        with pytest.raises(AttributeError):
            harvester.does_not_exist


class TestHarvestSiteAsync:
    @pytest.mark.asyncio
    async def test_builds_config_and_runs(self, tmp_path):
        controller = MagicMock()
        controller.return_value.run = AsyncMock(return_value="result")

        with patch("harvester.TraversalController", controller):
            result = await harvester.harvest_site_async(
                "https://x.test/", max_depth=2, output_dir=str(tmp_path)
            )

        assert result == "result"
        config = controller.call_args.args[0]
        assert config.max_depth == 2
        assert config.output_dir == str(tmp_path)

    @pytest.mark.asyncio
    async def test_invalid_url(self):
        with pytest.raises(ConfigError):
            await harvester.harvest_site_async("not-a-url")


class TestHarvestSite:
    def test_sync_wrapper(self, tmp_path):
        controller = MagicMock()
        controller.return_value.run = AsyncMock(return_value="result")

        with patch("harvester.TraversalController", controller):
            assert harvester.harvest_site("https://x.test/", output_dir=str(tmp_path)) == "result"
