"""Tests for incremental sync state and how runs use it."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from docharvest.config import HarvestConfig
from docharvest.constants import STATE_FILENAME, STATE_VERSION
from docharvest.errors import ValidationError
from docharvest.orchestrator import Orchestrator
from docharvest.state import PageState, SyncState
from docharvest.strategies import Options
from docharvest.types import Document

from conftest import FakeFetcher, html_page, written_files


def make_document(url: str = "https://x.com/docs/a", content_hash: str = "h1", **overrides) -> Document:
    values = dict(
        url=url,
        title="A",
        content="# A\n\nText.\n",
        content_hash=content_hash,
        fetched_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    )
    values.update(overrides)
    return Document(**values)


def touch(path, text: str = "x") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


class TestSyncState:
    def test_missing_file_starts_empty(self, tmp_path):
        state = SyncState(tmp_path)
        assert state.load() is False
        assert len(state) == 0

    def test_record_save_load(self, tmp_path):
        state = SyncState(tmp_path)
        state.bind("https://x.com/docs", "crawler")
        state.record(make_document(), tmp_path / "docs" / "a.md")

        assert state.save() is True
        payload = json.loads((tmp_path / STATE_FILENAME).read_text(encoding="utf-8"))
        assert payload["version"] == STATE_VERSION
        assert payload["source_url"] == "https://x.com/docs"
        assert payload["last_sync"] is not None
        assert payload["pages"]["https://x.com/docs/a"]["file_path"] == "docs/a.md"

        reloaded = SyncState(tmp_path)
        assert reloaded.load() is True
        assert reloaded.source_url == "https://x.com/docs"
        assert reloaded.strategy == "crawler"
        assert reloaded.page("https://x.com/docs/a") == PageState(
            content_hash="h1",
            file_path="docs/a.md",
            fetched_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        )

    def test_save_only_when_dirty(self, tmp_path):
        state = SyncState(tmp_path)
        assert state.save() is False
        assert not (tmp_path / STATE_FILENAME).exists()

        state.record(make_document(), tmp_path / "docs" / "a.md")
        assert state.save() is True
        assert state.save() is False

    @pytest.mark.parametrize(
        "content",
        [
            "{not json",
            "[1, 2]",
            json.dumps({"version": STATE_VERSION, "pages": {"u": {"file_path": "a.md"}}}),
        ],
    )
    def test_corrupted_file_starts_fresh(self, tmp_path, content):
        (tmp_path / STATE_FILENAME).write_text(content, encoding="utf-8")
        state = SyncState(tmp_path)
        assert state.load() is False
        assert len(state) == 0

    def test_other_version_starts_fresh(self, tmp_path):
        payload = {"version": STATE_VERSION + 1, "pages": {"u": {"content_hash": "h", "file_path": "a.md"}}}
        (tmp_path / STATE_FILENAME).write_text(json.dumps(payload), encoding="utf-8")
        state = SyncState(tmp_path)
        assert state.load() is False
        assert state.page("u") is None

    def test_is_unchanged(self, tmp_path):
        state = SyncState(tmp_path)
        state.record(make_document(content_hash="h1"), tmp_path / "a.md")

        assert state.is_unchanged("https://x.com/docs/a", "h1")
        assert not state.is_unchanged("https://x.com/docs/a", "h2")
        assert not state.is_unchanged("https://x.com/docs/a", "")
        assert not state.is_unchanged("https://x.com/docs/b", "h1")

    def test_document_without_hash_is_not_recorded(self, tmp_path):
        state = SyncState(tmp_path)
        state.record(make_document(content_hash=""), tmp_path / "a.md")
        assert len(state) == 0

    def test_bind_to_other_source_drops_pages(self, tmp_path):
        state = SyncState(tmp_path, source_url="https://x.com/docs")
        state.record(make_document(), tmp_path / "a.md")

        state.bind("https://x.com/docs", "crawler")
        assert len(state) == 1

        state.bind("https://y.com/", "crawler")
        assert len(state) == 0
        assert state.source_url == "https://y.com/"

    def test_deleted_pages_are_those_not_seen(self, tmp_path):
        earlier = SyncState(tmp_path)
        earlier.record(make_document("https://x.com/a"), tmp_path / "a.md")
        earlier.record(make_document("https://x.com/b"), tmp_path / "b.md")
        earlier.save()

        state = SyncState(tmp_path)
        state.load()
        state.mark_seen("https://x.com/a")

        assert list(state.deleted_pages()) == ["https://x.com/b"]

    def test_prune_removes_markdown_and_sidecar(self, tmp_path):
        touch(tmp_path / "a.md")
        touch(tmp_path / "b.md")
        touch(tmp_path / "b.json")
        state = SyncState(tmp_path)
        state.record(make_document("https://x.com/a"), tmp_path / "a.md")
        state.record(make_document("https://x.com/b"), tmp_path / "b.md")
        state.save()

        state = SyncState(tmp_path)
        state.load()
        state.mark_seen("https://x.com/a")

        assert state.prune() == 1
        assert (tmp_path / "a.md").exists()
        assert not (tmp_path / "b.md").exists()
        assert not (tmp_path / "b.json").exists()
        assert state.page("https://x.com/b") is None
        assert state.save() is True

    def test_prune_counts_already_missing_files(self, tmp_path):
        state = SyncState(tmp_path)
        state.record(make_document("https://x.com/gone"), tmp_path / "gone.md")
        state.save()

        state = SyncState(tmp_path)
        state.load()
        assert state.prune() == 1
        assert len(state) == 0

    def test_prune_stays_inside_output_dir(self, tmp_path):
        root = tmp_path / "out"
        outside = tmp_path / "outside.md"
        touch(outside)
        payload = {
            "version": STATE_VERSION,
            "pages": {"https://x.com/a": {"content_hash": "h", "file_path": "../outside.md"}},
        }
        touch(root / STATE_FILENAME, json.dumps(payload))

        state = SyncState(root)
        assert state.load() is True
        assert state.prune() == 0
        assert outside.exists()
        assert state.page("https://x.com/a") is not None


class TestWriteDocument:
    def test_unchanged_page_is_not_rewritten(self, make_deps, output_dir):
        state = SyncState(output_dir)
        deps = make_deps(state=state)
        options = Options()

        assert deps.write_document(make_document(), options) is True
        path = output_dir / "docs" / "a.md"
        path.write_text("edited", encoding="utf-8")

        assert deps.write_document(make_document(), options) is False
        assert path.read_text(encoding="utf-8") == "edited"
        summary = deps.stats.to_json()["write"]
        assert (summary["written"], summary["unchanged"]) == (1, 1)

    def test_changed_page_is_rewritten(self, make_deps, output_dir):
        state = SyncState(output_dir)
        deps = make_deps(state=state)

        deps.write_document(make_document(content_hash="h1"), Options())
        assert deps.write_document(make_document(content_hash="h2"), Options()) is True
        assert state.page("https://x.com/docs/a").content_hash == "h2"

    def test_missing_file_is_rewritten(self, make_deps, output_dir):
        state = SyncState(output_dir)
        deps = make_deps(state=state)

        deps.write_document(make_document(), Options())
        (output_dir / "docs" / "a.md").unlink()
        assert deps.write_document(make_document(), Options()) is True

    def test_force_rewrites_unchanged(self, make_deps, output_dir):
        state = SyncState(output_dir)
        deps = make_deps(state=state)

        deps.write_document(make_document(), Options())
        assert deps.write_document(make_document(), Options(force=True)) is True
        assert deps.stats.written == 2

    def test_existing_file_without_record_is_written(self, make_deps, output_dir):
        touch(output_dir / "docs" / "a.md", "stale")
        deps = make_deps(state=SyncState(output_dir))

        assert deps.write_document(make_document(), Options()) is True
        assert "stale" not in (output_dir / "docs" / "a.md").read_text(encoding="utf-8")

    def test_without_state_existing_file_is_skipped(self, make_deps, output_dir):
        touch(output_dir / "docs" / "a.md", "stale")
        deps = make_deps()

        assert deps.write_document(make_document(), Options()) is False
        assert deps.stats.to_json()["write"]["skipped_existing"] == 1


class TestSyncRuns:
    def config(self, output_dir, **overrides) -> HarvestConfig:
        values = dict(output_dir=str(output_dir), sitemap_discovery=False, max_depth=1, workers=1, sync=True)
        values.update(overrides)
        return HarvestConfig(**values)

    def run(self, make_deps, output_dir, fetcher, **overrides) -> dict:
        state = SyncState(output_dir)
        state.load()
        deps = make_deps(fetcher, state=state)
        return Orchestrator(self.config(output_dir, **overrides), deps=deps).run("https://x.com/")

    def site(self, *links: str, missing: tuple[str, ...] = ()) -> FakeFetcher:
        fetcher = FakeFetcher()
        fetcher.add("https://x.com/", html_page("Home", links=list(links)))
        for link in links:
            if link not in missing:
                fetcher.add("https://x.com" + link, html_page(link.strip("/").upper()))
        return fetcher

    def test_second_run_skips_unchanged(self, make_deps, output_dir):
        first = self.run(make_deps, output_dir, self.site("/a", "/b"))
        assert first["stats"]["write"]["written"] == 3
        assert (output_dir / STATE_FILENAME).exists()

        second = self.run(make_deps, output_dir, self.site("/a", "/b"))
        assert second["stats"]["write"]["written"] == 0
        assert second["stats"]["write"]["unchanged"] == 3

    def test_changed_page_is_rewritten(self, make_deps, output_dir):
        self.run(make_deps, output_dir, self.site("/a"))

        fetcher = self.site("/a")
        fetcher.add("https://x.com/a", html_page("A", body="Rewritten upstream."))
        result = self.run(make_deps, output_dir, fetcher)

        assert result["stats"]["write"]["written"] == 1
        assert "Rewritten upstream." in (output_dir / "a.md").read_text(encoding="utf-8")

    def test_prune_removes_pages_gone_upstream(self, make_deps, output_dir):
        self.run(make_deps, output_dir, self.site("/a", "/b"))
        assert written_files(output_dir) == ["a.md", "b.md", "index.md"]

        result = self.run(make_deps, output_dir, self.site("/a"), prune=True)

        assert result["stats"]["write"]["pruned"] == 1
        assert written_files(output_dir) == ["a.md", "index.md"]
        payload = json.loads((output_dir / STATE_FILENAME).read_text(encoding="utf-8"))
        assert sorted(payload["pages"]) == ["https://x.com/", "https://x.com/a"]

    def test_without_prune_files_are_kept(self, make_deps, output_dir):
        self.run(make_deps, output_dir, self.site("/a", "/b"))
        self.run(make_deps, output_dir, self.site("/a"))
        assert written_files(output_dir) == ["a.md", "b.md", "index.md"]

    def test_fetch_errors_prevent_pruning(self, make_deps, output_dir):
        self.run(make_deps, output_dir, self.site("/a", "/b"))

        result = self.run(make_deps, output_dir, self.site("/a", "/b", missing=("/b",)), prune=True)

        assert result["stats"]["fetch"]["error"] == 1
        assert result["stats"]["write"]["pruned"] == 0
        assert "b.md" in written_files(output_dir)

    def test_limited_run_does_not_prune(self, make_deps, output_dir):
        self.run(make_deps, output_dir, self.site("/a", "/b"))

        result = self.run(make_deps, output_dir, self.site("/a", "/b"), prune=True, limit=1)

        assert result["stats"]["write"]["pruned"] == 0
        assert written_files(output_dir) == ["a.md", "b.md", "index.md"]


def test_prune_requires_sync():
    with pytest.raises(ValidationError) as excinfo:
        HarvestConfig(prune=True)
    assert excinfo.value.field == "prune"
