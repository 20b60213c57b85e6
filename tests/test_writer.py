"""Tests for harvester.writer module."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import pytest

from harvester.document import Catalog, PageMetadata, PageRecord, SpecRecord
from harvester.errors import HarvestError
from harvester.publisher import ArchivePublisher, backup_path_for
from harvester.writer import ArchiveWriter, build_frontmatter, slugify, spec_kind_for


class TestSlugify:
    def test_basic(self):
        assert slugify("Getting Started") == "getting-started"

    def test_underscores_and_symbols(self):
        assert slugify("API_Reference: v2!") == "api-reference-v2"

    def test_non_ascii_dropped(self):
        assert slugify("Café Überblick") == "cafe-uberblick"

    def test_only_symbols(self):
        assert slugify("日本語") == ""

    def test_bounded_length(self):
        slug = slugify("word " * 40)
        assert len(slug) <= 50
        assert not slug.endswith("-")

    def test_none(self):
        assert slugify(None) == ""


class TestFrontmatter:
    def test_quotes_and_escapes(self):
        metadata = PageMetadata(title='Say "hi"', description="Line\nbreak")
        text = build_frontmatter("https://x.test/", None, 2, metadata, "2024-01-01T00:00:00.000Z")
        lines = text.splitlines()
        assert lines[0] == "---"
        assert 'url: "https://x.test/"' in lines
        assert 'title: "Say \\"hi\\""' in lines
        assert 'description: "Line\\nbreak"' in lines
        assert "crawledAt: 2024-01-01T00:00:00.000Z" in lines
        assert "depth: 2" in lines
        assert text.endswith("---\n\n")

    def test_optional_fields_omitted(self):
        text = build_frontmatter("https://x.test/", "Title", 0)
        assert "description:" not in text
        assert "keywords:" not in text
        assert 'title: "Title"' in text


class TestSpecKind:
    @pytest.mark.parametrize(
        "url,kind",
        [
            ("https://x.test/openapi.json", "openapi"),
            ("https://x.test/api/swagger.yaml", "openapi"),
            ("https://x.test/user.schema.json", "jsonSchema"),
            ("https://x.test/schema.graphql", "graphql"),
            ("https://x.test/openapi.json?v=2", "openapi"),
            ("https://x.test/data.json", None),
        ],
    )
    def test_patterns(self, url, kind):
        assert spec_kind_for(url) == kind


class TestArchiveWriter:
    def test_requires_open(self, tmp_path):
        writer = ArchiveWriter(tmp_path / "site")
        with pytest.raises(HarvestError):
            writer.save_page("https://x.test/", "# x", 0)

    def test_open_creates_hidden_sibling(self, tmp_path):
        writer = ArchiveWriter(tmp_path / "site")
        working = writer.open()

        assert working.parent == tmp_path
        assert working.name.startswith(".site.tmp-")
        assert (working / "pages").is_dir()
        assert (working / "specs").is_dir()
        assert not (tmp_path / "site").exists()

    def test_save_page_numbering_and_slug(self, tmp_path):
        writer = ArchiveWriter(tmp_path / "site")
        working = writer.open()

        first = writer.save_page("https://x.test/", "# Home\n", 0, title="Home Page")
        second = writer.save_page("https://x.test/a", "body\n", 1, title=None)

        assert first == "pages/page-001-home-page.md"
        assert second == "pages/page-002.md"
        content = (working / first).read_text(encoding="utf-8")
        assert content.startswith("---\nurl: \"https://x.test/\"")
        assert content.endswith("# Home\n")

    def test_metadata_title_preferred_for_slug(self, tmp_path):
        writer = ArchiveWriter(tmp_path / "site")
        writer.open()
        path = writer.save_page(
            "https://x.test/", "x", 0, PageMetadata(title="Meta Title"), "Heading"
        )
        assert path == "pages/page-001-meta-title.md"

    def test_save_spec(self, tmp_path):
        writer = ArchiveWriter(tmp_path / "site")
        working = writer.open()

        record = writer.save_spec("https://x.test/v1/openapi.yaml", "openapi: 3.0.0\n")

        assert record == SpecRecord(
            url="https://x.test/v1/openapi.yaml", kind="openapi", file="specs/openapi.yaml"
        )
        assert (working / "specs" / "openapi.yaml").read_text() == "openapi: 3.0.0\n"
        assert writer.save_spec("https://x.test/data.bin", "x") is None

    def test_same_spec_name_from_different_paths(self, tmp_path):
        writer = ArchiveWriter(tmp_path / "site")
        working = writer.open()

        v1 = writer.save_spec("https://x.test/v1/openapi.json", '{"v": 1}')
        v2 = writer.save_spec("https://x.test/v2/openapi.json", '{"v": 2}')
        again = writer.save_spec("https://x.test/v1/openapi.json", '{"v": 1.1}')

        assert v1.file == "specs/openapi.json"
        assert v2.file == "specs/openapi-2.json"
        assert again.file == "specs/openapi.json"
        assert (working / "specs" / "openapi.json").read_text() == '{"v": 1.1}'
        assert (working / "specs" / "openapi-2.json").read_text() == '{"v": 2}'

    def test_pages_disabled_keeps_content_in_memory(self, tmp_path):
        writer = ArchiveWriter(tmp_path / "site", pages=False)
        working = writer.open()

        first = writer.save_page("https://x.test/", "# Home\n", 0, title="Home")
        second = writer.save_page("https://x.test/a", "body\n", 1)

        assert first == "pages/page-001-home.md"
        assert second == "pages/page-002.md"
        assert list((working / "pages").iterdir()) == []
        assert writer.read_page(first).startswith('---\nurl: "https://x.test/"')
        assert writer.read_page(first).endswith("# Home\n")

    def test_finalize_publishes_and_cleanup_is_noop_after(self, tmp_path):
        writer = ArchiveWriter(tmp_path / "site")
        working = writer.open()
        writer.save_page("https://x.test/", "# Home\n", 0, title="Home")
        writer.write_catalog(Catalog(base_url="https://x.test/"))

        final = writer.finalize()
        writer.cleanup()

        assert final == tmp_path / "site"
        assert (final / "index.json").is_file()
        assert (final / "pages" / "page-001-home.md").is_file()
        assert not working.exists()

    def test_cleanup_removes_working_dir(self, tmp_path):
        writer = ArchiveWriter(tmp_path / "site")
        working = writer.open()
        writer.cleanup()
        assert not working.exists()
        assert not (tmp_path / "site").exists()

    def test_write_catalog_json(self, tmp_path):
        writer = ArchiveWriter(tmp_path / "site")
        working = writer.open()
        catalog = Catalog(
            base_url="https://x.test/",
            pages=[PageRecord(url="https://x.test/", title="Home", file="pages/page-001.md", depth=0)],
        )

        writer.write_catalog(catalog)

        data = json.loads((working / "index.json").read_text(encoding="utf-8"))
        assert data["baseUrl"] == "https://x.test/"
        assert data["totalPages"] == 1


class TestIncrementalSeeding:
    def _previous_archive(self, root: Path) -> Path:
        final = root / "site"
        (final / "pages").mkdir(parents=True)
        (final / "specs").mkdir()
        (final / "pages" / "page-001-home.md").write_text("home", encoding="utf-8")
        (final / "pages" / "page-007-old.md").write_text("old", encoding="utf-8")
        (final / "specs" / "openapi.json").write_text("{}", encoding="utf-8")
        (final / "full.md").write_text("merged", encoding="utf-8")
        return final

    def test_seeds_copy_and_continues_numbering(self, tmp_path):
        final = self._previous_archive(tmp_path)
        writer = ArchiveWriter(final, incremental=True)
        working = writer.open()

        assert (working / "pages" / "page-001-home.md").read_text() == "home"
        assert (working / "full.md").read_text() == "merged"
        assert writer.save_page("https://x.test/new", "new", 1, title="New") == "pages/page-008-new.md"
        assert not (final / "pages" / "page-008-new.md").exists()

    def test_full_mode_does_not_seed(self, tmp_path):
        final = self._previous_archive(tmp_path)
        working = ArchiveWriter(final).open()
        assert list((working / "pages").iterdir()) == []
        assert not (working / "full.md").exists()

    def test_prune_removes_unreferenced_files(self, tmp_path):
        final = self._previous_archive(tmp_path)
        writer = ArchiveWriter(final, incremental=True)
        working = writer.open()
        catalog = Catalog(
            base_url="https://x.test/",
            pages=[PageRecord(url="https://x.test/", title="Home", file="pages/page-001-home.md", depth=0)],
            specs=[],
        )

        removed = writer.prune(catalog)

        assert removed == ["pages/page-007-old.md", "specs/openapi.json"]
        assert (working / "pages" / "page-001-home.md").exists()
        assert (final / "pages" / "page-007-old.md").exists()


class TestRecoveryOnOpen:
    def test_crashed_working_dir_removed_on_open(self, tmp_path, caplog):
        final = tmp_path / "site"
        orphan = tmp_path / ".site.tmp-crashed"
        (orphan / "pages").mkdir(parents=True)
        (orphan / "pages" / "page-001.md").write_text("partial", encoding="utf-8")

        with caplog.at_level(logging.WARNING):
            working = ArchiveWriter(final).open()

        assert not orphan.exists()
        assert working.is_dir()
        assert "Removing leftover directory" in caplog.text

    def test_leftover_backup_restored_before_writes(self, tmp_path, caplog):
        final = tmp_path / "site"
        backup = backup_path_for(final)
        (backup / "pages").mkdir(parents=True)
        (backup / "index.json").write_text('{"pages": []}', encoding="utf-8")

        with caplog.at_level(logging.WARNING):
            ArchiveWriter(final, incremental=True).open()

        assert (final / "index.json").is_file()
        assert not backup.exists()
        assert "Recovering from incomplete finalization" in caplog.text

    def test_failed_recovery_rename_does_not_block_open(self, tmp_path, caplog):
        final = tmp_path / "site"
        backup = backup_path_for(final)
        backup.mkdir()
        calls = []

        def rename(src, dst):
            calls.append((Path(src), Path(dst)))
            if Path(src) == backup:
                raise OSError("denied")
            os.rename(src, dst)

        publisher = ArchivePublisher(final, None, rename=rename)
        writer = ArchiveWriter(final, publisher=publisher)
        with caplog.at_level(logging.ERROR):
            working = writer.open()

        assert calls[0] == (backup, final)
        assert working.is_dir()
        assert backup.exists()
        assert "Failed to restore" in caplog.text
