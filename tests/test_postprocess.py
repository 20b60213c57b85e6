"""Tests for harvester.postprocess module."""

from harvester.document import PageRecord
from harvester.postprocess import (
    build_full_markdown,
    chunk_markdown,
    strip_frontmatter,
    write_chunks,
    write_derived_artifacts,
)

PAGE_A = '---\nurl: "https://x.test/"\ntitle: "Home"\n---\n\n# Home\n\nWelcome.\n'
PAGE_B = '---\nurl: "https://x.test/b"\n---\n\nNo heading here.\n'


def _pages():
    return [
        PageRecord(url="https://x.test/", title="Home", file="pages/page-001-home.md", depth=0),
        PageRecord(url="https://x.test/b", title=None, file="pages/page-002.md", depth=1),
    ]


def _reader(files):
    def read_page(relative):
        if relative not in files:
            raise FileNotFoundError(relative)
        return files[relative]

    return read_page


class TestStripFrontmatter:
    def test_removes_block(self):
        assert strip_frontmatter(PAGE_A) == "# Home\n\nWelcome.\n"

    def test_no_frontmatter(self):
        assert strip_frontmatter("# Title\n") == "# Title\n"


class TestBuildFullMarkdown:
    def test_sections(self):
        files = {"pages/page-001-home.md": PAGE_A, "pages/page-002.md": PAGE_B}
        result = build_full_markdown(_pages(), _reader(files))
        assert result == (
            "# Home\n\n> Source: https://x.test/\n\nWelcome."
            "\n\n---\n\n"
            "# https://x.test/b\n\n> Source: https://x.test/b\n\nNo heading here."
        )

    def test_unreadable_page_kept_as_empty_section(self, caplog):
        result = build_full_markdown(_pages()[:1], _reader({}))
        assert result == "# Home\n\n> Source: https://x.test/\n\n"
        assert "Could not read" in caplog.text


class TestChunkMarkdown:
    def test_small_content_single_chunk(self):
        assert chunk_markdown("short", chunk_size=100) == ["short"]

    def test_empty(self):
        assert chunk_markdown("") == []

    def test_paragraph_split_with_overlap(self):
        content = "a" * 10 + "\n\n" + "b" * 10 + "\n\n" + "c" * 10
        chunks = chunk_markdown(content, chunk_size=20, overlap=5)
        assert chunks == [
            "a" * 10,
            "aaaaa\n\n" + "b" * 10,
            "bbbbb\n\n" + "c" * 10,
        ]

    def test_oversized_paragraph_kept_whole(self):
        big = "x" * 50
        chunks = chunk_markdown(f"intro\n\n{big}", chunk_size=20, overlap=5)
        assert big in chunks[-1]


class TestWriteChunks:
    def test_replaces_previous_chunks(self, tmp_path):
        stale = tmp_path / "chunks" / "chunk-0009.md"
        stale.parent.mkdir()
        stale.write_text("old")

        files = write_chunks(tmp_path, "hello")

        assert files == ["chunks/chunk-0001.md"]
        assert not stale.exists()
        assert (tmp_path / "chunks" / "chunk-0001.md").read_text() == "hello"


class TestWriteDerivedArtifacts:
    FILES = {"pages/page-001-home.md": PAGE_A, "pages/page-002.md": PAGE_B}

    def test_merge_only(self, tmp_path):
        path = write_derived_artifacts(tmp_path, _pages(), _reader(self.FILES))
        assert path == tmp_path / "full.md"
        assert "> Source: https://x.test/b" in path.read_text()
        assert not (tmp_path / "chunks").exists()

    def test_chunks_without_merge(self, tmp_path):
        path = write_derived_artifacts(
            tmp_path, _pages(), _reader(self.FILES), merge=False, chunks=True
        )
        assert path is None
        assert not (tmp_path / "full.md").exists()
        assert (tmp_path / "chunks" / "chunk-0001.md").exists()

    def test_nothing_requested(self, tmp_path):
        assert write_derived_artifacts(
            tmp_path, _pages(), _reader(self.FILES), merge=False, chunks=False
        ) is None
        assert list(tmp_path.iterdir()) == []

    def test_no_pages(self, tmp_path):
        assert write_derived_artifacts(tmp_path, [], _reader({})) is None
        assert not (tmp_path / "full.md").exists()
