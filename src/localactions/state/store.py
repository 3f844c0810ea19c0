from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class StateStoreError(RuntimeError):
    """Raised when reading or writing persisted state fails."""


class StorageKey:
    SECRETS = "secrets"
    SECRET_FILES = "secretFiles"
    VARIABLES = "variables"
    VARIABLE_FILES = "variableFiles"
    INPUTS = "inputs"
    INPUT_FILES = "inputFiles"
    RUNNERS = "runners"
    PAYLOAD_FILES = "payloadFiles"
    OPTIONS = "options"
    WORKSPACE_HISTORY = "workspaceHistory"

    ALL = frozenset(
        {
            SECRETS,
            SECRET_FILES,
            VARIABLES,
            VARIABLE_FILES,
            INPUTS,
            INPUT_FILES,
            RUNNERS,
            PAYLOAD_FILES,
            OPTIONS,
            WORKSPACE_HISTORY,
        }
    )


class StateStore:
    LOCK_TIMEOUT_SECONDS = 3.0
    STALE_LOCK_SECONDS = 30.0

    def __init__(
        self,
        state_dir: Path,
        *,
        namespaces: Iterable[str] = StorageKey.ALL,
        dir_mode: int | None = None,
        file_mode: int | None = None,
    ) -> None:
        self.state_dir = state_dir.expanduser().resolve()
        self.namespaces = frozenset(namespaces)
        self.dir_mode = dir_mode
        self.file_mode = file_mode
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            if dir_mode is not None:
                os.chmod(self.state_dir, dir_mode)
        except OSError as exc:
            raise StateStoreError(f"Cannot create state directory {self.state_dir}: {exc}") from exc
        self.lock_file = self.state_dir / ".lock"

    def _namespace_file(self, namespace: str) -> Path:
        if namespace not in self.namespaces:
            raise StateStoreError(f"Unsupported namespace: {namespace}")
        return self.state_dir / f"{namespace}.json"

    def _break_stale_lock(self) -> bool:
        try:
            age = time.time() - self.lock_file.stat().st_mtime
        except FileNotFoundError:
            return True
        if age < self.STALE_LOCK_SECONDS:
            return False
        logger.warning("Removing stale state lock %s", self.lock_file)
        self.lock_file.unlink(missing_ok=True)
        return True

    @contextmanager
    def _locked(self) -> Iterator[None]:
        deadline = time.monotonic() + self.LOCK_TIMEOUT_SECONDS
        while True:
            try:
                fd = os.open(self.lock_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError as exc:
                if self._break_stale_lock():
                    continue
                if time.monotonic() > deadline:
                    raise StateStoreError(f"Timed out waiting for {self.lock_file}") from exc
                time.sleep(0.02)
                continue
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(str(os.getpid()))
            break
        try:
            yield
        finally:
            self.lock_file.unlink(missing_ok=True)

    def read(self, namespace: str) -> dict[str, Any]:
        """Return the ``{partition: value}`` mapping stored for ``namespace``."""
        path = self._namespace_file(namespace)
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise StateStoreError(f"Cannot read {path}: {exc}") from exc
        if not content.strip():
            return {}
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            raise StateStoreError(f"Corrupted state file {path}: {exc}") from exc
        # Older files wrap the mapping as {"schema_version", "revision", "data"}.
        if isinstance(payload, dict) and "schema_version" in payload and "data" in payload:
            payload = payload["data"]
        return payload if isinstance(payload, dict) else {}

    def _write(self, namespace: str, payload: dict[str, Any]) -> None:
        target = self._namespace_file(namespace)
        serialized = json.dumps(payload, ensure_ascii=False, sort_keys=True, indent=1)
        fd, temp_path = tempfile.mkstemp(prefix=f".{namespace}-", dir=self.state_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(serialized)
            if self.file_mode is not None:
                os.chmod(temp_path, self.file_mode)
            os.replace(temp_path, target)
        except OSError as exc:
            Path(temp_path).unlink(missing_ok=True)
            raise StateStoreError(f"Cannot write {target}: {exc}") from exc

    def update(self, namespace: str, updater: Callable[[dict[str, Any]], None]) -> None:
        """Apply ``updater`` to the namespace mapping in place while holding the lock.

        The file is rewritten only when the mapping actually changed.
        """
        with self._locked():
            payload = self.read(namespace)
            before = json.dumps(payload, sort_keys=True)
            updater(payload)
            if json.dumps(payload, sort_keys=True) != before:
                self._write(namespace, payload)

    def get(self, namespace: str, partition: str) -> Any | None:
        return self.read(namespace).get(partition)

    def set(self, namespace: str, partition: str, value: Any) -> None:
        def _assign(payload: dict[str, Any]) -> None:
            payload[partition] = value

        self.update(namespace, _assign)

    def delete(self, namespace: str, partition: str) -> None:
        self.update(namespace, lambda payload: payload.pop(partition, None))

    def partitions(self, namespace: str) -> list[str]:
        return sorted(self.read(namespace))


class SecretStore:
    """Secret values, kept apart from plain settings in an owner-only directory."""

    NAMESPACE = "secrets"

    def __init__(self, secrets_dir: Path) -> None:
        self._store = StateStore(
            secrets_dir,
            namespaces={self.NAMESPACE},
            dir_mode=0o700,
            file_mode=0o600,
        )

    @property
    def directory(self) -> Path:
        return self._store.state_dir

    @staticmethod
    def _key(folder: str, category: str, name: str) -> str:
        return f"{folder}.{category}.{name}"

    def get(self, folder: str, category: str, name: str) -> str | None:
        value = self._store.get(self.NAMESPACE, self._key(folder, category, name))
        return value if isinstance(value, str) else None

    def store(self, folder: str, category: str, name: str, value: str) -> None:
        self._store.set(self.NAMESPACE, self._key(folder, category, name), value)

    def delete(self, folder: str, category: str, name: str) -> None:
        self._store.delete(self.NAMESPACE, self._key(folder, category, name))
