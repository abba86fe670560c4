"""Unit tests for the in-memory and file-backed schema stores."""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from schema_engine.config import load_settings
from schema_engine.errors import SnapshotNotFoundError, StoreCorruptionError, TransitionNotFoundError
from schema_engine.graph.path_finder import find_path
from schema_engine.models.schema import Column
from schema_engine.models.snapshot import SnapshotMetadata
from schema_engine.models.steps import AddColumnStep
from schema_engine.models.transition import Transition, TransitionMetadata
from schema_engine.store import open_store
from schema_engine.store.base import SchemaStore, validate_environment
from schema_engine.store.file_store import FileSchemaStore
from schema_engine.store.records import create_snapshot, create_transition
from schema_engine.store.state import get_all_states, get_current_snapshot, update_state

_T0 = datetime(2025, 1, 1, tzinfo=UTC)


def _transition(from_hash: str, to_hash: str, column: str = "a", minutes: int = 0) -> Transition:
    step = AddColumnStep(table="t", column=Column(name=column, type="TEXT"))
    return create_transition(
        from_hash,
        to_hash,
        [step],
        TransitionMetadata(created_at=_T0 + timedelta(minutes=minutes)),
    )


# ---------------------------------------------------------------------------
# Environment names
# ---------------------------------------------------------------------------


class TestValidateEnvironment:
    @pytest.mark.parametrize("name", ["production", "staging-eu", "dev_1", "qa.2"])
    def test_accepted(self, name: str):
        assert validate_environment(name) == name

    @pytest.mark.parametrize("name", ["", "..", ".", "../etc", "a/b", "with space"])
    def test_rejected(self, name: str):
        with pytest.raises(ValueError, match="Invalid environment name"):
            validate_environment(name)


# ---------------------------------------------------------------------------
# Behaviour shared by every backend
# ---------------------------------------------------------------------------


class TestSchemaStoreContract:
    def test_satisfies_protocol(self, store):
        assert isinstance(store, SchemaStore)

    def test_snapshot_round_trip(self, store, user_entities: dict[str, Any]):
        snapshot = create_snapshot(user_entities)
        store.save_snapshot(snapshot)
        assert store.snapshot_exists(snapshot.hash)
        loaded = store.load_snapshot(snapshot.hash)
        assert loaded.hash == snapshot.hash
        assert loaded.entities == user_entities

    def test_snapshot_save_is_idempotent(self, store, user_entities: dict[str, Any]):
        snapshot = create_snapshot(user_entities)
        store.save_snapshot(snapshot)
        store.save_snapshot(create_snapshot(user_entities, SnapshotMetadata(description="again")))
        assert [s.hash for s in store.get_all_snapshots()] == [snapshot.hash]
        assert store.load_snapshot(snapshot.hash).metadata.description == ""

    def test_missing_snapshot(self, store):
        assert not store.snapshot_exists("f" * 64)
        with pytest.raises(SnapshotNotFoundError) as exc_info:
            store.load_snapshot("f" * 64)
        assert exc_info.value.hash == "f" * 64

    def test_transition_round_trip(self, store):
        transition = _transition("a" * 64, "b" * 64)
        store.save_transition(transition)
        assert store.transition_exists(transition.hash)
        loaded = store.load_transition(transition.hash)
        assert loaded == transition
        assert loaded.expected_hash() == loaded.hash

    def test_transition_save_is_idempotent(self, store):
        transition = _transition("a" * 64, "b" * 64)
        store.save_transition(transition)
        store.save_transition(transition)
        assert len(store.get_all_transitions()) == 1
        assert len(store.transitions_from("a" * 64)) == 1

    def test_transition_with_wrong_hash_rejected(self, store):
        transition = _transition("a" * 64, "b" * 64)
        tampered = transition.model_copy(update={"to_hash": "c" * 64})
        with pytest.raises(StoreCorruptionError):
            store.save_transition(tampered)

    def test_missing_transition(self, store):
        with pytest.raises(TransitionNotFoundError):
            store.load_transition("e" * 64)

    def test_neighbour_queries_ordered_by_creation(self, store):
        late = _transition("a" * 64, "b" * 64, column="late", minutes=5)
        early = _transition("a" * 64, "c" * 64, column="early", minutes=1)
        store.save_transition(late)
        store.save_transition(early)
        assert [t.hash for t in store.transitions_from("a" * 64)] == [early.hash, late.hash]
        assert [t.hash for t in store.transitions_to("b" * 64)] == [late.hash]
        assert store.transitions_to("a" * 64) == []

    def test_initial_transition_indexed_under_empty_hash(self, store):
        initial = _transition("", "b" * 64)
        store.save_transition(initial)
        assert [t.hash for t in store.transitions_from("")] == [initial.hash]

    def test_state_defaults_to_none(self, store):
        assert store.get_state("production") is None
        assert store.get_current_snapshot("production") is None

    def test_update_state_last_writer_wins(self, store):
        store.update_state("production", "a" * 64)
        store.update_state("production", "b" * 64)
        assert store.get_current_snapshot("production") == "b" * 64

    def test_state_can_be_cleared(self, store):
        store.update_state("staging", "a" * 64)
        store.update_state("staging", None)
        assert store.get_current_snapshot("staging") is None
        assert store.list_environments() == ["staging"]

    def test_states_sorted_by_environment(self, store):
        store.update_state("staging", "a" * 64)
        store.update_state("development", "b" * 64)
        assert store.list_environments() == ["development", "staging"]
        assert [s.environment for s in store.get_all_states()] == ["development", "staging"]

    def test_invalid_environment(self, store):
        with pytest.raises(ValueError):
            store.update_state("../escape", "a" * 64)


# ---------------------------------------------------------------------------
# File store specifics
# ---------------------------------------------------------------------------


class TestFileSchemaStore:
    def test_layout(self, file_store: FileSchemaStore, user_entities: dict[str, Any]):
        snapshot = create_snapshot(user_entities)
        file_store.save_snapshot(snapshot)
        assert (file_store.root / "snapshots" / f"{snapshot.hash}.json").exists()
        manifest = json.loads(file_store.manifest_path.read_text())
        assert manifest["version"] == 1
        assert manifest["records"][snapshot.hash]["kind"] == "snapshot"

    def test_persists_across_instances(self, file_store: FileSchemaStore, user_entities: dict[str, Any]):
        snapshot = create_snapshot(user_entities)
        transition = _transition("", snapshot.hash)
        file_store.save_snapshot(snapshot)
        file_store.save_transition(transition)
        file_store.update_state("production", snapshot.hash)

        reopened = FileSchemaStore(file_store.root)
        assert reopened.load_snapshot(snapshot.hash).hash == snapshot.hash
        assert [t.hash for t in reopened.transitions_to(snapshot.hash)] == [transition.hash]
        assert reopened.get_current_snapshot("production") == snapshot.hash

    def test_no_temporary_files_left(self, file_store: FileSchemaStore, user_entities: dict[str, Any]):
        file_store.save_snapshot(create_snapshot(user_entities))
        file_store.update_state("production", "a" * 64)
        leftovers = [p for p in file_store.root.rglob("*") if p.name.endswith(".tmp")]
        assert leftovers == []

    def test_manifest_rebuilt_when_missing(self, file_store: FileSchemaStore, caplog: pytest.LogCaptureFixture):
        transition = _transition("a" * 64, "b" * 64)
        file_store.save_transition(transition)
        file_store.manifest_path.unlink()

        with caplog.at_level(logging.WARNING, logger="schema_engine.store.file_store"):
            reopened = FileSchemaStore(file_store.root)
        assert "rebuilt" in caplog.text
        assert [t.hash for t in reopened.transitions_from("a" * 64)] == [transition.hash]

    def test_corrupt_json(self, file_store: FileSchemaStore, user_entities: dict[str, Any]):
        snapshot = create_snapshot(user_entities)
        file_store.save_snapshot(snapshot)
        (file_store.snapshot_dir / f"{snapshot.hash}.json").write_text("{not json")
        with pytest.raises(StoreCorruptionError, match="invalid JSON"):
            file_store.load_snapshot(snapshot.hash)

    def test_tampered_transition_content(self, file_store: FileSchemaStore):
        transition = _transition("a" * 64, "b" * 64)
        file_store.save_transition(transition)
        path = file_store.transition_dir / f"{transition.hash}.json"
        record = json.loads(path.read_text())
        record["steps"][0]["column"]["type"] = "INTEGER"
        path.write_text(json.dumps(record))
        with pytest.raises(StoreCorruptionError, match="does not match its hash"):
            file_store.load_transition(transition.hash)

    def test_record_under_wrong_address(self, file_store: FileSchemaStore, user_entities: dict[str, Any]):
        snapshot = create_snapshot(user_entities)
        file_store.save_snapshot(snapshot)
        other = "d" * 64
        (file_store.snapshot_dir / f"{snapshot.hash}.json").rename(file_store.snapshot_dir / f"{other}.json")
        with pytest.raises(StoreCorruptionError, match="does not match its address"):
            file_store.load_snapshot(other)

    def test_malformed_hash_is_not_found(self, file_store: FileSchemaStore):
        with pytest.raises(SnapshotNotFoundError):
            file_store.load_snapshot("../manifest")
        assert not file_store.transition_exists("short")

    def test_invalid_snapshot_hash_rejected_on_save(self, file_store: FileSchemaStore, user_entities: dict[str, Any]):
        snapshot = create_snapshot(user_entities).model_copy(update={"hash": "not-a-hash"})
        with pytest.raises(ValueError, match="Invalid snapshot hash"):
            file_store.save_snapshot(snapshot)

    def test_neighbour_index_layout(self, file_store: FileSchemaStore):
        initial = _transition("", "b" * 64)
        file_store.save_transition(initial)
        index = file_store.root / "index"
        assert (index / "outgoing" / "_initial" / f"{initial.hash}.json").exists()
        assert (index / "incoming" / ("b" * 64) / f"{initial.hash}.json").exists()
        assert "outgoing" not in json.loads(file_store.manifest_path.read_text())

    def test_concurrent_writers_lose_no_transitions(self, file_store: FileSchemaStore):
        source = "a" * 64
        transitions = [_transition(source, f"{i:064x}", column=f"c{i}", minutes=i) for i in range(40)]
        errors: list[Exception] = []

        def _writer(batch: list[Transition]) -> None:
            store = FileSchemaStore(file_store.root)
            try:
                for transition in batch:
                    store.save_transition(transition)
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=_writer, args=(transitions[i::4],)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors, f"Thread errors: {errors}"
        reopened = FileSchemaStore(file_store.root)
        assert [t.hash for t in reopened.transitions_from(source)] == [t.hash for t in transitions]
        assert len(reopened.get_all_transitions()) == 40
        for transition in transitions:
            assert find_path(reopened, source, transition.to_hash).hashes == [transition.hash]
        manifest = json.loads(reopened.manifest_path.read_text())
        assert {t.hash for t in transitions} <= manifest["records"].keys()

    def test_overwritten_manifest_entries_recovered(
        self, file_store: FileSchemaStore, caplog: pytest.LogCaptureFixture
    ):
        first = _transition("a" * 64, "b" * 64, column="first")
        second = _transition("a" * 64, "c" * 64, column="second", minutes=1)
        file_store.save_transition(first)
        before_second = file_store.manifest_path.read_text()
        file_store.save_transition(second)
        # Another writer replaces the manifest with the copy it read earlier.
        file_store.manifest_path.write_text(before_second)

        reopened = FileSchemaStore(file_store.root)
        assert [t.hash for t in reopened.transitions_from("a" * 64)] == [first.hash, second.hash]
        with caplog.at_level(logging.WARNING, logger="schema_engine.store.file_store"):
            assert [t.hash for t in reopened.get_all_transitions()] == [first.hash, second.hash]
        assert "out of date" in caplog.text
        assert second.hash in json.loads(reopened.manifest_path.read_text())["records"]

    def test_deleted_record_dropped_from_manifest(self, file_store: FileSchemaStore, user_entities: dict[str, Any]):
        snapshot = create_snapshot(user_entities)
        file_store.save_snapshot(snapshot)
        (file_store.snapshot_dir / f"{snapshot.hash}.json").unlink()
        assert file_store.get_all_snapshots() == []
        assert snapshot.hash not in json.loads(file_store.manifest_path.read_text())["records"]

    def test_manifest_parsed_once_until_changed(self, file_store: FileSchemaStore):
        file_store.save_transition(_transition("a" * 64, "b" * 64))
        first = file_store._read_manifest()
        assert file_store._read_manifest() is first

        FileSchemaStore(file_store.root).save_transition(_transition("a" * 64, "c" * 64, column="other"))
        refreshed = file_store._read_manifest()
        assert refreshed is not first
        assert len(refreshed["records"]) == 2

    def test_neighbour_lookup_skips_manifest(self, file_store: FileSchemaStore, monkeypatch: pytest.MonkeyPatch):
        transition = _transition("a" * 64, "b" * 64)
        file_store.save_transition(transition)
        file_store.load_transition(transition.hash)

        def _fail(*args: object) -> dict:
            raise AssertionError("manifest read during neighbour lookup")

        monkeypatch.setattr(file_store, "_read_manifest", _fail)
        for _ in range(3):
            assert [t.hash for t in file_store.transitions_from("a" * 64)] == [transition.hash]
            assert [t.hash for t in file_store.transitions_to("b" * 64)] == [transition.hash]

    def test_state_file(self, file_store: FileSchemaStore):
        file_store.update_state("production", "a" * 64)
        record = json.loads((file_store.state_dir / "production.json").read_text())
        assert record["environment"] == "production"
        assert record["current_snapshot"] == "a" * 64


# ---------------------------------------------------------------------------
# Directory helpers
# ---------------------------------------------------------------------------


class TestStateHelpers:
    def test_update_and_read(self, tmp_path: Path):
        update_state(tmp_path, "staging", "a" * 64)
        assert get_current_snapshot(tmp_path, "staging") == "a" * 64
        assert get_current_snapshot(tmp_path, "production") is None

    def test_get_all_states(self, tmp_path: Path):
        update_state(tmp_path, "staging", "a" * 64)
        update_state(tmp_path, "production", "b" * 64)
        assert [(s.environment, s.current_snapshot) for s in get_all_states(tmp_path)] == [
            ("production", "b" * 64),
            ("staging", "a" * 64),
        ]

    def test_open_store_uses_settings(self, tmp_path: Path):
        store = open_store(load_settings(state_dir=tmp_path / "engine"))
        assert isinstance(store, FileSchemaStore)
        assert store.root == tmp_path / "engine"
        assert (tmp_path / "engine" / "manifest.json").exists()
