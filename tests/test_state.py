import json
import os
import stat
import time
from pathlib import Path
from typing import Any

import pytest

from localactions.state import SecretStore, StateStore, StateStoreError, StorageKey


def test_partitions_are_isolated_per_folder(tmp_path: Path) -> None:
    store = StateStore(tmp_path / "state")
    store.set(StorageKey.VARIABLES, "/work/a", [{"name": "REGION", "value": "eu"}])
    store.set(StorageKey.VARIABLES, "/work/b", [{"name": "REGION", "value": "us"}])

    assert store.get(StorageKey.VARIABLES, "/work/a") == [{"name": "REGION", "value": "eu"}]
    assert store.get(StorageKey.VARIABLES, "/work/b") == [{"name": "REGION", "value": "us"}]
    assert store.get(StorageKey.VARIABLES, "/work/c") is None
    assert store.partitions(StorageKey.VARIABLES) == ["/work/a", "/work/b"]

    store.delete(StorageKey.VARIABLES, "/work/a")
    assert store.partitions(StorageKey.VARIABLES) == ["/work/b"]


def test_legacy_envelope_is_read_as_data(tmp_path: Path) -> None:
    state_dir = tmp_path / "state"
    store = StateStore(state_dir)
    local_path = state_dir / "options.json"
    legacy = {"schema_version": 1, "revision": 3, "data": {"/work": [{"name": "bind"}]}}
    local_path.write_text(json.dumps(legacy), encoding="utf-8")

    assert store.get(StorageKey.OPTIONS, "/work") == [{"name": "bind"}]

    store.set(StorageKey.OPTIONS, "/work", [])
    assert json.loads(local_path.read_text(encoding="utf-8")) == {"/work": []}


def test_update_applies_changes_under_the_lock(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    store.set(StorageKey.RUNNERS, "/work", 1)

    def _increment(payload: dict[str, Any]) -> None:
        assert store.lock_file.exists()
        payload["/work"] += 1

    store.update(StorageKey.RUNNERS, _increment)

    assert store.get(StorageKey.RUNNERS, "/work") == 2
    assert not store.lock_file.exists()


def test_unchanged_partition_write_leaves_file_untouched(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    store.set(StorageKey.INPUTS, "/work", [{"name": "target"}])
    before = (tmp_path / "inputs.json").read_bytes()

    store.set(StorageKey.INPUTS, "/work", [{"name": "target"}])

    assert (tmp_path / "inputs.json").read_bytes() == before


def test_held_lock_times_out(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = StateStore(tmp_path)
    monkeypatch.setattr(StateStore, "LOCK_TIMEOUT_SECONDS", 0.05)
    store.lock_file.write_text("12345", encoding="utf-8")

    with pytest.raises(StateStoreError, match="Timed out"):
        store.set(StorageKey.OPTIONS, "/work", [])


def test_stale_lock_is_broken(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    store.lock_file.write_text("12345", encoding="utf-8")
    old = time.time() - StateStore.STALE_LOCK_SECONDS - 5
    os.utime(store.lock_file, (old, old))

    store.set(StorageKey.OPTIONS, "/work", [{"name": "bind"}])

    assert store.get(StorageKey.OPTIONS, "/work") == [{"name": "bind"}]
    assert not store.lock_file.exists()


def test_corrupted_state_file_raises(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    (tmp_path / "variables.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(StateStoreError, match="Corrupted state file"):
        store.get(StorageKey.VARIABLES, "/work")


def test_unknown_namespace_is_rejected(tmp_path: Path) -> None:
    store = StateStore(tmp_path)

    with pytest.raises(StateStoreError, match="Unsupported namespace"):
        store.read("metrics")


def test_secret_store_uses_owner_only_permissions(tmp_path: Path) -> None:
    secrets = SecretStore(tmp_path / "protected")
    secrets.store("/work", "secrets", "API_KEY", "hunter2")

    assert secrets.get("/work", "secrets", "API_KEY") == "hunter2"
    assert secrets.get("/other", "secrets", "API_KEY") is None
    assert stat.S_IMODE(secrets.directory.stat().st_mode) == 0o700
    secret_file = secrets.directory / "secrets.json"
    assert stat.S_IMODE(secret_file.stat().st_mode) == 0o600
    assert "/work.secrets.API_KEY" in secret_file.read_text(encoding="utf-8")

    secrets.delete("/work", "secrets", "API_KEY")
    assert secrets.get("/work", "secrets", "API_KEY") is None
