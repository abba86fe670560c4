"""File-backed schema store.

Layout under the store root::

    manifest.json                           hash -> record location, kept in step with the record files
    snapshots/<hash>.json                   one immutable snapshot per file
    transitions/<hash>.json                 one immutable transition per file
    index/outgoing/<from_hash>/<hash>.json  one entry per transition leaving a snapshot
    index/incoming/<to_hash>/<hash>.json    one entry per transition entering a snapshot
    state/<environment>.json                mutable per-environment state

The manifest looks like::

    {
        "version": 1,
        "records": {
            "<hash>": {"kind": "snapshot", "path": "snapshots/<hash>.json", "created_at": "..."},
            "<hash>": {"kind": "transition", "path": "transitions/<hash>.json",
                       "created_at": "...", "from_hash": "...", "to_hash": "..."}
        }
    }

Every file is written to a temporary sibling and moved into place with
:func:`os.replace`, so readers never observe a partially written record.
There is no cross-process locking.  Record files and neighbour entries are
never shared between two different records, so concurrent writers cannot
lose each other's saves; neighbour lookups list one index directory and
never read the manifest.  The manifest is a single shared file and may miss
entries written by a concurrent process: it is reconciled against the record
directories whenever every record is listed, and rebuilt when missing.
Concurrent writers of the same environment state follow last-writer-wins.

Initial transitions leave the empty hash, indexed under ``_initial``.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from schema_engine.errors import SnapshotNotFoundError, StoreCorruptionError, TransitionNotFoundError
from schema_engine.hashing import is_valid_hash
from schema_engine.models.snapshot import Snapshot
from schema_engine.models.state import EnvironmentState
from schema_engine.models.transition import Transition
from schema_engine.store.base import validate_environment
from schema_engine.store.memory_store import transition_order

logger = logging.getLogger(__name__)

MANIFEST_VERSION = 1
_SNAPSHOT_DIR = "snapshots"
_TRANSITION_DIR = "transitions"
_INDEX_DIR = "index"
_STATE_DIR = "state"
_MANIFEST = "manifest.json"
_OUTGOING = "outgoing"
_INCOMING = "incoming"
_INITIAL_KEY = "_initial"


def _empty_manifest() -> dict[str, Any]:
    return {"version": MANIFEST_VERSION, "records": {}}


def write_json_atomic(path: Path, payload: Any) -> None:
    """Write *payload* as pretty, sorted-key JSON via temp file + ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False, default=str) + "\n"
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def read_json(path: Path) -> Any:
    """Read a JSON record, raising :class:`StoreCorruptionError` if it does not parse."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise StoreCorruptionError(path, f"invalid JSON: {exc}") from exc


def _transition_entry(transition: Transition) -> dict[str, Any]:
    return {
        "kind": "transition",
        "path": f"{_TRANSITION_DIR}/{transition.hash}.json",
        "created_at": transition.metadata.created_at.isoformat(),
        "from_hash": transition.from_hash,
        "to_hash": transition.to_hash,
    }


def _snapshot_entry(snapshot: Snapshot) -> dict[str, Any]:
    return {
        "kind": "snapshot",
        "path": f"{_SNAPSHOT_DIR}/{snapshot.hash}.json",
        "created_at": snapshot.metadata.created_at.isoformat(),
    }


class FileSchemaStore:
    """Directory-backed :class:`~schema_engine.store.base.SchemaStore`."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        self.snapshot_dir = self.root / _SNAPSHOT_DIR
        self.transition_dir = self.root / _TRANSITION_DIR
        self.index_dir = self.root / _INDEX_DIR
        self.state_dir = self.root / _STATE_DIR
        self.manifest_path = self.root / _MANIFEST
        # Parsed manifest keyed by the (inode, mtime_ns, size) it was read at.
        self._manifest_cache: tuple[tuple[int, int, int], dict[str, Any]] | None = None
        # Transitions are immutable once verified, so loads are memoized.
        self._transitions: dict[str, Transition] = {}
        for directory in (self.snapshot_dir, self.transition_dir, self.index_dir, self.state_dir):
            directory.mkdir(parents=True, exist_ok=True)
        if not self.manifest_path.exists():
            self.rebuild_manifest()

    # -- Manifest -----------------------------------------------------------

    def _read_manifest(self) -> dict[str, Any]:
        try:
            stat = self.manifest_path.stat()
        except FileNotFoundError:
            return self.rebuild_manifest()
        key = (stat.st_ino, stat.st_mtime_ns, stat.st_size)
        if self._manifest_cache is not None and self._manifest_cache[0] == key:
            return self._manifest_cache[1]

        manifest = read_json(self.manifest_path)
        if not isinstance(manifest, dict) or not isinstance(manifest.get("records"), dict):
            raise StoreCorruptionError(self.manifest_path, "manifest has no records table")
        self._manifest_cache = (key, manifest)
        return manifest

    def _write_manifest(self, manifest: dict[str, Any]) -> None:
        write_json_atomic(self.manifest_path, manifest)
        self._manifest_cache = None

    def _add_to_manifest(self, record_hash: str, entry: dict[str, Any]) -> None:
        # Re-read right before writing to keep the window for a concurrent
        # overwrite small; entries lost anyway are restored by _reconcile.
        manifest = self._read_manifest()
        if manifest["records"].get(record_hash) == entry:
            return
        updated = {**manifest, "records": {**manifest["records"], record_hash: entry}}
        self._write_manifest(updated)

    def _reconcile(self) -> dict[str, Any]:
        """Bring the manifest in line with the record files actually on disk."""
        manifest = self._read_manifest()
        records = dict(manifest["records"])
        on_disk = {path.stem: ("snapshot", path) for path in self.snapshot_dir.glob("*.json")}
        on_disk.update({path.stem: ("transition", path) for path in self.transition_dir.glob("*.json")})

        missing = sorted(on_disk.keys() - records.keys())
        stale = sorted(records.keys() - on_disk.keys())
        if not missing and not stale:
            return manifest

        for record_hash in stale:
            del records[record_hash]
        for record_hash in missing:
            kind, path = on_disk[record_hash]
            if kind == "snapshot":
                records[record_hash] = _snapshot_entry(self._load_snapshot_file(path, record_hash))
            else:
                transition = self._load_transition_file(path, record_hash)
                self._index_edges(transition)
                records[record_hash] = _transition_entry(transition)

        updated = {**manifest, "records": records}
        self._write_manifest(updated)
        logger.warning(
            "Manifest at %s was out of date; indexed %d and dropped %d record(s)",
            self.root,
            len(missing),
            len(stale),
        )
        return updated

    def rebuild_manifest(self) -> dict[str, Any]:
        """Rebuild ``manifest.json`` and the neighbour index by scanning the record directories."""
        manifest = _empty_manifest()
        for path in sorted(self.snapshot_dir.glob("*.json")):
            snapshot = self._load_snapshot_file(path, path.stem)
            manifest["records"][snapshot.hash] = _snapshot_entry(snapshot)
        for path in sorted(self.transition_dir.glob("*.json")):
            transition = self._load_transition_file(path, path.stem)
            self._index_edges(transition)
            manifest["records"][transition.hash] = _transition_entry(transition)

        self._write_manifest(manifest)
        if manifest["records"]:
            logger.warning("Manifest missing at %s; rebuilt from %d record(s)", self.root, len(manifest["records"]))
        return manifest

    # -- Neighbour index ----------------------------------------------------

    def _edge_dir(self, direction: str, snapshot_hash: str) -> Path:
        return self.index_dir / direction / (snapshot_hash or _INITIAL_KEY)

    def _index_edges(self, transition: Transition) -> None:
        entry = _transition_entry(transition)
        for direction, endpoint in ((_OUTGOING, transition.from_hash), (_INCOMING, transition.to_hash)):
            path = self._edge_dir(direction, endpoint) / f"{transition.hash}.json"
            if not path.exists():
                write_json_atomic(path, entry)

    def _neighbours(self, direction: str, snapshot_hash: str) -> list[Transition]:
        if snapshot_hash and not is_valid_hash(snapshot_hash):
            return []
        directory = self._edge_dir(direction, snapshot_hash)
        if not directory.is_dir():
            return []
        hashes = [path.stem for path in directory.glob("*.json")]
        return sorted((self.load_transition(h) for h in hashes), key=transition_order)

    # -- Record files -------------------------------------------------------

    def _snapshot_path(self, snapshot_hash: str) -> Path:
        return self.snapshot_dir / f"{snapshot_hash}.json"

    def _transition_path(self, transition_hash: str) -> Path:
        return self.transition_dir / f"{transition_hash}.json"

    @staticmethod
    def _load_snapshot_file(path: Path, expected_hash: str) -> Snapshot:
        try:
            snapshot = Snapshot.model_validate(read_json(path))
        except ValidationError as exc:
            raise StoreCorruptionError(path, f"invalid snapshot record: {exc}") from exc
        if snapshot.hash != expected_hash:
            raise StoreCorruptionError(path, f"record hash {snapshot.hash[:8]} does not match its address")
        return snapshot

    @staticmethod
    def _load_transition_file(path: Path, expected_hash: str) -> Transition:
        try:
            transition = Transition.model_validate(read_json(path))
        except ValidationError as exc:
            raise StoreCorruptionError(path, f"invalid transition record: {exc}") from exc
        if transition.hash != expected_hash:
            raise StoreCorruptionError(path, f"record hash {transition.hash[:8]} does not match its address")
        if transition.expected_hash() != transition.hash:
            raise StoreCorruptionError(path, "transition content does not match its hash")
        return transition

    # -- Snapshots ----------------------------------------------------------

    def save_snapshot(self, snapshot: Snapshot) -> None:
        if not is_valid_hash(snapshot.hash):
            raise ValueError(f"Invalid snapshot hash: {snapshot.hash!r}")
        path = self._snapshot_path(snapshot.hash)
        if path.exists():
            logger.debug("Snapshot %s already stored (deduplicated)", snapshot.hash[:8])
            if snapshot.hash not in self._read_manifest()["records"]:
                self._add_to_manifest(snapshot.hash, _snapshot_entry(self.load_snapshot(snapshot.hash)))
            return

        write_json_atomic(path, snapshot.model_dump(mode="json"))
        self._add_to_manifest(snapshot.hash, _snapshot_entry(snapshot))
        logger.info("Saved snapshot %s", snapshot.hash[:8])

    def load_snapshot(self, snapshot_hash: str) -> Snapshot:
        if not is_valid_hash(snapshot_hash):
            logger.warning("Rejected malformed snapshot hash: %r", snapshot_hash)
            raise SnapshotNotFoundError(snapshot_hash)
        path = self._snapshot_path(snapshot_hash)
        if not path.exists():
            raise SnapshotNotFoundError(snapshot_hash)
        return self._load_snapshot_file(path, snapshot_hash)

    def snapshot_exists(self, snapshot_hash: str) -> bool:
        return is_valid_hash(snapshot_hash) and self._snapshot_path(snapshot_hash).exists()

    def get_all_snapshots(self) -> list[Snapshot]:
        manifest = self._reconcile()
        snapshots = [
            self.load_snapshot(record_hash)
            for record_hash, record in manifest["records"].items()
            if record.get("kind") == "snapshot"
        ]
        return sorted(snapshots, key=lambda s: (s.metadata.created_at, s.hash))

    # -- Transitions --------------------------------------------------------

    def save_transition(self, transition: Transition) -> None:
        if transition.expected_hash() != transition.hash:
            raise StoreCorruptionError(transition.hash, "transition hash does not match its content")
        path = self._transition_path(transition.hash)
        if path.exists():
            logger.debug("Transition %s already stored (deduplicated)", transition.hash[:8])
            # Re-saving repairs index entries a crashed writer never created.
            stored = self.load_transition(transition.hash)
            self._index_edges(stored)
            if transition.hash not in self._read_manifest()["records"]:
                self._add_to_manifest(transition.hash, _transition_entry(stored))
            return

        write_json_atomic(path, transition.model_dump(mode="json"))
        self._index_edges(transition)
        self._add_to_manifest(transition.hash, _transition_entry(transition))
        logger.info(
            "Saved transition %s (%s -> %s, %d steps)",
            transition.hash[:8],
            transition.from_hash[:8] or "<empty>",
            transition.to_hash[:8],
            len(transition.steps),
        )

    def load_transition(self, transition_hash: str) -> Transition:
        cached = self._transitions.get(transition_hash)
        if cached is not None:
            return cached
        if not is_valid_hash(transition_hash):
            logger.warning("Rejected malformed transition hash: %r", transition_hash)
            raise TransitionNotFoundError(transition_hash)
        path = self._transition_path(transition_hash)
        if not path.exists():
            raise TransitionNotFoundError(transition_hash)
        transition = self._load_transition_file(path, transition_hash)
        self._transitions[transition_hash] = transition
        return transition

    def transition_exists(self, transition_hash: str) -> bool:
        return is_valid_hash(transition_hash) and self._transition_path(transition_hash).exists()

    def get_all_transitions(self) -> list[Transition]:
        manifest = self._reconcile()
        transitions = [
            self.load_transition(record_hash)
            for record_hash, record in manifest["records"].items()
            if record.get("kind") == "transition"
        ]
        return sorted(transitions, key=transition_order)

    def transitions_from(self, snapshot_hash: str) -> list[Transition]:
        return self._neighbours(_OUTGOING, snapshot_hash)

    def transitions_to(self, snapshot_hash: str) -> list[Transition]:
        return self._neighbours(_INCOMING, snapshot_hash)

    # -- Environment state --------------------------------------------------

    def _state_path(self, environment: str) -> Path:
        return self.state_dir / f"{validate_environment(environment)}.json"

    def get_state(self, environment: str) -> EnvironmentState | None:
        path = self._state_path(environment)
        if not path.exists():
            return None
        try:
            return EnvironmentState.model_validate(read_json(path))
        except ValidationError as exc:
            raise StoreCorruptionError(path, f"invalid state record: {exc}") from exc

    def get_current_snapshot(self, environment: str) -> str | None:
        state = self.get_state(environment)
        return state.current_snapshot if state else None

    def update_state(self, environment: str, snapshot_hash: str | None) -> EnvironmentState:
        path = self._state_path(environment)
        state = EnvironmentState(
            environment=environment,
            current_snapshot=snapshot_hash,
            updated_at=datetime.now(UTC),
        )
        write_json_atomic(path, state.model_dump(mode="json"))
        logger.info("Environment %s now at %s", environment, (snapshot_hash or "<empty>")[:8])
        return state

    def list_environments(self) -> list[str]:
        return sorted(path.stem for path in self.state_dir.glob("*.json"))

    def get_all_states(self) -> list[EnvironmentState]:
        states = []
        for environment in self.list_environments():
            state = self.get_state(environment)
            if state is not None:
                states.append(state)
        return states
