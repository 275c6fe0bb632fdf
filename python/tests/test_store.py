"""
Index Store Tests - Verify the catalog and its durable JSON file.

Tests:
- Every mutation is on disk before the call returns
- Reload restores entries, directories, timestamp and warnings
- Corrupt or missing files start an empty catalog
- Write failures raise PersistError but keep in-memory state
"""

import json
from pathlib import Path

import pytest

from slides_indexer.errors import PersistError
from slides_indexer.models import (
    DocumentType, EntryKind, IndexEntry, UnitPreview, entry_id_for,
)
from slides_indexer.store import IndexStore, path_within


def make_entry(path: str, snippet: str = "", modified_at: int = 1_000) -> IndexEntry:
    return IndexEntry(
        id=entry_id_for(path),
        path=path,
        display_name=Path(path).name,
        kind=EntryKind.PPTX,
        document_type=DocumentType.PRESENTATION,
        unit_count=1,
        snippet=snippet,
        keywords=["demo"],
        unit_previews=[UnitPreview(index=1, text=snippet)] if snippet else [],
        modified_at=modified_at,
        checksum="f" * 64,
        created_at=10,
        updated_at=20,
    )


class TestIndexStore:

    def test_starts_empty_without_file(self, test_config):
        store = IndexStore(test_config)

        assert len(store) == 0
        assert store.directories() == []
        assert store.last_indexed_at is None

    def test_upsert_persists_immediately(self, test_config):
        store = IndexStore(test_config)
        store.upsert(make_entry("/docs/a.pptx", "Intro"))

        reloaded = IndexStore(test_config)

        assert len(reloaded) == 1
        assert reloaded.get("/docs/a.pptx").snippet == "Intro"

    def test_upsert_replaces_in_place(self, test_config):
        store = IndexStore(test_config)
        store.upsert(make_entry("/docs/a.pptx", "first"))
        store.upsert(make_entry("/docs/b.pptx", "second"))
        store.upsert(make_entry("/docs/a.pptx", "updated"))

        assert [e.path for e in store.entries()] == ["/docs/a.pptx", "/docs/b.pptx"]
        assert store.get("/docs/a.pptx").snippet == "updated"

    def test_remove(self, test_config):
        store = IndexStore(test_config)
        store.upsert(make_entry("/docs/a.pptx"))

        assert store.remove("/docs/a.pptx") is True
        assert store.remove("/docs/a.pptx") is False
        assert len(IndexStore(test_config)) == 0

    def test_lookup_by_id(self, test_config):
        store = IndexStore(test_config)
        entry = make_entry("/docs/a.pptx")
        store.upsert(entry)

        assert store.get_by_id(entry.id) == entry
        assert store.get_by_id("missing") is None

    def test_entries_within(self, test_config):
        store = IndexStore(test_config)
        store.upsert(make_entry("/docs/a.pptx"))
        store.upsert(make_entry("/docs/sub/b.pptx"))
        store.upsert(make_entry("/docsets/c.pptx"))

        within = [e.path for e in store.entries_within(["/docs"])]

        assert within == ["/docs/a.pptx", "/docs/sub/b.pptx"]

    def test_round_trip_of_full_catalog(self, test_config):
        store = IndexStore(test_config)
        store.set_directories(["/docs", "/books"])
        store.upsert(make_entry("/docs/a.pptx", "Intro"))
        last = store.finish_scan(changed=True, warnings=["Directory not found: /books"])

        reloaded = IndexStore(test_config)

        assert reloaded.directories() == ["/docs", "/books"]
        assert reloaded.last_indexed_at == last
        assert reloaded.snapshot().warnings == ["Directory not found: /books"]
        assert reloaded.get("/docs/a.pptx") == store.get("/docs/a.pptx")

    def test_file_layout(self, test_config):
        store = IndexStore(test_config)
        store.upsert(make_entry("/docs/a.pptx", "Intro"))

        data = json.loads(test_config.state_path.read_text(encoding="utf-8"))

        assert set(data) == {"directories", "entries", "last_indexed_at", "warnings"}
        entry = data["entries"][0]
        assert entry["kind"] == "pptx"
        assert entry["document_type"] == "presentation"
        assert entry["unit_previews"] == [{"index": 1, "text": "Intro"}]
        assert entry["modified_at"] == 1_000

    def test_finish_scan_keeps_timestamp_when_nothing_changed(self, test_config):
        store = IndexStore(test_config)
        first = store.finish_scan(changed=True, warnings=[])
        before = test_config.state_path.read_bytes()

        second = store.finish_scan(changed=False, warnings=[])

        assert second == first
        assert test_config.state_path.read_bytes() == before

    def test_clear_keeps_directories(self, test_config):
        store = IndexStore(test_config)
        store.set_directories(["/docs"])
        store.upsert(make_entry("/docs/a.pptx"))
        store.finish_scan(changed=True, warnings=["something"])

        store.clear()

        reloaded = IndexStore(test_config)
        assert len(reloaded) == 0
        assert reloaded.directories() == ["/docs"]
        assert reloaded.snapshot().warnings == []

    def test_snapshot_is_a_copy(self, test_config):
        store = IndexStore(test_config)
        store.upsert(make_entry("/docs/a.pptx", "Intro"))

        snapshot = store.snapshot()
        snapshot.entries[0].snippet = "mutated"

        assert store.get("/docs/a.pptx").snippet == "Intro"


class TestLoadFailures:

    def test_corrupt_file_starts_empty(self, test_config):
        test_config.state_path.write_text("{not json", encoding="utf-8")

        store = IndexStore(test_config)

        assert len(store) == 0
        # Left alone until the next write
        assert test_config.state_path.read_text(encoding="utf-8") == "{not json"

    def test_partial_entry_starts_empty(self, test_config):
        test_config.state_path.write_text(
            json.dumps({"entries": [{"path": "/docs/a.pptx"}]}), encoding="utf-8"
        )

        assert len(IndexStore(test_config)) == 0

    def test_missing_optional_fields_are_defaulted(self, test_config):
        test_config.state_path.write_text(json.dumps({
            "entries": [{"path": "/docs/a.pptx", "kind": "pptx", "modified_at": 5}],
        }), encoding="utf-8")

        entry = IndexStore(test_config).get("/docs/a.pptx")

        assert entry.id == entry_id_for("/docs/a.pptx")
        assert entry.display_name == "a.pptx"
        assert entry.checksum is None
        assert entry.document_type is None


class TestPersistFailure:

    def test_upsert_raises_but_keeps_memory(self, test_config, monkeypatch):
        store = IndexStore(test_config)

        def fail(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("slides_indexer.store.os.replace", fail)

        with pytest.raises(PersistError):
            store.upsert(make_entry("/docs/a.pptx"))

        assert store.get("/docs/a.pptx") is not None
        assert not test_config.state_path.with_name(test_config.state_path.name + ".tmp").exists()


class TestPathWithin:

    def test_descendants(self):
        assert path_within("/docs/a.pptx", "/docs")
        assert path_within("/docs/x/y/b.pdf", "/docs")
        assert path_within("/docs", "/docs")

    def test_sibling_prefix_is_not_within(self):
        assert not path_within("/docsets/a.pptx", "/docs")
