from __future__ import annotations

import os

import pytest

from datasoup.errors import InvalidResourcePath, SnapshotError, StorageError
from datasoup.store import ResourceStore, SnapshotStore


def test_path_is_derived_from_identity(tmp_path) -> None:
    store = ResourceStore(tmp_path)
    path = store.path_for("cbs", "ds-1", "res-1")
    assert path == tmp_path / "cbs" / "ds-1" / "res-1.csv"


@pytest.mark.parametrize("org,ds,res", [("", "d", "r"), ("..", "d", "r"), ("o", "a/b", "r"), ("o", "d", "")])
def test_unsafe_identifiers_are_rejected(tmp_path, org, ds, res) -> None:
    with pytest.raises(InvalidResourcePath):
        ResourceStore(tmp_path).path_for(org, ds, res)


def test_write_replaces_content_atomically(tmp_path) -> None:
    store = ResourceStore(tmp_path)
    path = store.path_for("cbs", "ds-1", "res-1")
    assert store.modified_at(path) is None

    store.write(path, b"a\nb\n")
    store.write(path, b"a\nb\nc\n")

    assert store.read(path) == b"a\nb\nc\n"
    assert store.modified_at(path) is not None
    assert [p.name for p in path.parent.iterdir()] == ["res-1.csv"]


def test_snapshot_round_trip_is_verbatim(tmp_path) -> None:
    raw = b'{"success": true, "result": {"count": 0, "results": []}, "help": "x"}'
    store = SnapshotStore(tmp_path / "packagedata.json")
    store.save(raw)
    snapshot = store.load()
    assert snapshot.raw == raw
    assert snapshot.datasets == []


def test_missing_snapshot_is_fatal(tmp_path) -> None:
    with pytest.raises(SnapshotError):
        SnapshotStore(tmp_path / "packagedata.json").load()


def test_corrupt_snapshot_is_fatal(tmp_path) -> None:
    path = tmp_path / "packagedata.json"
    path.write_bytes(b"<html>Internal Server Error</html>")
    with pytest.raises(SnapshotError):
        SnapshotStore(path).load()


def test_failed_write_leaves_no_temporary_file(tmp_path, monkeypatch) -> None:
    store = ResourceStore(tmp_path)
    path = store.path_for("cbs", "ds-1", "res-1")
    store.write(path, b"old")

    def failing_fsync(fd: int) -> None:
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(os, "fsync", failing_fsync)
    with pytest.raises(StorageError):
        store.write(path, b"new")

    assert store.read(path) == b"old"
    assert [p.name for p in path.parent.iterdir()] == ["res-1.csv"]
