from __future__ import annotations

import logging
import os
import re
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from localactions.execution.output import MAIN_STAGE, LogEvent
from localactions.history.models import (
    CommandArgs,
    HistoryRecord,
    HistoryStatus,
    JobRecord,
    RunningTask,
    StepRecord,
)
from localactions.state.store import StateStore, StorageKey

logger = logging.getLogger(__name__)

HistoryEventHook = Callable[[dict[str, Any]], None]
Launcher = Callable[[CommandArgs], Awaitable[HistoryRecord]]

UNSAFE_FILENAME_PATTERN = re.compile(r'[\x00-\x1f\x7f/\\?%*:|"<>]')


class HistoryError(RuntimeError):
    """Raised when a history operation cannot be applied."""


def _utcnow_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


def log_file_name(name: str, count: int, started: datetime) -> str:
    stamp = started.strftime("%Y%m%d_%H%M%S")
    return UNSAFE_FILENAME_PATTERN.sub("_", f"{name} #{count} - {stamp}.log")


def owner_alive(pid: int | None) -> bool:
    """Whether the process that started a run still exists."""
    if not pid:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _partition(raw: Any) -> tuple[list[dict[str, Any]], int]:
    if isinstance(raw, dict):
        items = raw.get("records", [])
        stored_next = raw.get("nextIndex", 0)
    else:
        items = raw
        stored_next = 0
    if not isinstance(items, list):
        return [], int(stored_next or 0)
    return [item for item in items if isinstance(item, dict)], int(stored_next or 0)


class HistoryManager:
    """Run records per workspace folder.

    Several ``local-actions`` processes may share one store. Every write merges
    this process's changes into the stored partition by record index while the
    store lock is held, and new indices are allocated under that lock. Records
    created by this process stay authoritative here; the rest are refreshed from
    the store on each write.
    """

    def __init__(
        self,
        store: StateStore,
        log_directory: Path,
        *,
        max_records: int = 0,
        event_hook: HistoryEventHook | None = None,
    ) -> None:
        self.store = store
        self.log_directory = log_directory
        self.max_records = max(0, int(max_records))
        self.event_hook = event_hook
        self.launcher: Launcher | None = None
        self._history: dict[str, list[HistoryRecord]] = {}
        self._next_index: dict[str, int] = {}
        self._owned: set[tuple[str, int]] = set()
        self._synced = False

    def _emit(self, payload: dict[str, Any]) -> None:
        if self.event_hook is not None:
            self.event_hook(payload)

    def bind_launcher(self, launcher: Launcher) -> None:
        self.launcher = launcher

    @staticmethod
    def _sweep(record: HistoryRecord) -> None:
        for job in record.jobs:
            for step in job.steps:
                if step.status is HistoryStatus.RUNNING:
                    step.status = HistoryStatus.CANCELLED
            if job.status is HistoryStatus.RUNNING:
                job.status = HistoryStatus.CANCELLED
        record.status = HistoryStatus.CANCELLED

    def _orphaned(self, folder: str, record: HistoryRecord) -> bool:
        return (
            record.status is HistoryStatus.RUNNING
            and (folder, record.index) not in self._owned
            and not owner_alive(record.owner_pid)
        )

    def load(self) -> dict[str, list[HistoryRecord]]:
        stored = self.store.read(StorageKey.WORKSPACE_HISTORY)
        self._synced = True
        for folder in sorted(stored):
            items, stored_next = _partition(stored[folder])
            self._absorb(folder, items, stored_next)

        # Runs whose owning process is gone can never report an exit.
        for folder, records in list(self._history.items()):
            orphaned = [record for record in records if self._orphaned(folder, record)]
            if not orphaned:
                continue
            for record in orphaned:
                self._sweep(record)
            logger.info("Marked %d interrupted run(s) in %s as cancelled", len(orphaned), folder)
            self._write(folder, upsert=orphaned)
        return self._history

    def _ensure_loaded(self) -> None:
        if not self._synced:
            self.load()

    def _records(self, folder: str) -> list[HistoryRecord]:
        self._ensure_loaded()
        return self._history.setdefault(folder, [])

    def _absorb(self, folder: str, items: list[dict[str, Any]], stored_next: int) -> None:
        owned = {
            record.index: record
            for record in self._history.get(folder, [])
            if (folder, record.index) in self._owned
        }
        records: list[HistoryRecord] = []
        for item in items:
            record = owned.get(int(item.get("index", 0)))
            records.append(record if record is not None else HistoryRecord.from_dict(item))
        self._history[folder] = records
        highest = max((record.index for record in records), default=-1) + 1
        self._next_index[folder] = max(self._next_index.get(folder, 0), stored_next, highest)

    def _allocate(
        self, record: HistoryRecord, index: int, stored: Iterable[dict[str, Any]]
    ) -> None:
        record.index = index
        record.count = (
            max(
                (int(item.get("count", 0)) for item in stored if item.get("name") == record.name),
                default=0,
            )
            + 1
        )
        started = datetime.fromisoformat(record.started_at).astimezone()
        record.log_path = str(
            self.log_directory / log_file_name(record.name, record.count, started)
        )

    def _write(
        self,
        folder: str,
        *,
        upsert: Iterable[HistoryRecord] = (),
        remove: Iterable[int] = (),
        clear: bool = False,
        created: HistoryRecord | None = None,
    ) -> None:
        upserted = list(upsert)
        removed = set(remove)
        floor = self._next_index.get(folder, 0)
        merged: list[tuple[list[dict[str, Any]], int]] = []

        def _merge(payload: dict[str, Any]) -> None:
            items, stored_next = _partition(payload.get(folder))
            by_index: dict[int, dict[str, Any]] = (
                {} if clear else {int(item.get("index", 0)): item for item in items}
            )
            for index in removed:
                by_index.pop(index, None)
            for record in upserted:
                # A record deleted elsewhere stays deleted.
                if record.index in by_index:
                    by_index[record.index] = record.to_dict()
            next_index = max(floor, stored_next, max(by_index, default=-1) + 1)
            if created is not None:
                self._allocate(created, next_index, by_index.values())
                by_index[created.index] = created.to_dict()
                next_index = created.index + 1
            ordered = [by_index[index] for index in sorted(by_index)]
            payload[folder] = {"nextIndex": next_index, "records": ordered}
            merged[:] = [(ordered, next_index)]

        self.store.update(StorageKey.WORKSPACE_HISTORY, _merge)
        if created is not None:
            self._owned.add((folder, created.index))
            self._history.setdefault(folder, []).append(created)
        ordered, next_index = merged[0]
        self._absorb(folder, ordered, next_index)

    def list_history(self, folder: str) -> list[HistoryRecord]:
        return sorted(self._records(folder), key=lambda record: record.index)

    def get(self, folder: str, index: int) -> HistoryRecord:
        for record in self._records(folder):
            if record.index == index:
                return record
        raise HistoryError(f"No history record #{index} in {folder}")

    def create(
        self,
        command_args: CommandArgs,
        command: str,
        handle: RunningTask | None = None,
    ) -> HistoryRecord:
        folder = command_args.folder
        self._ensure_loaded()
        self.log_directory.mkdir(parents=True, exist_ok=True)
        record = HistoryRecord(
            index=-1,
            name=command_args.name,
            count=1,
            status=HistoryStatus.RUNNING,
            started_at=_utcnow_iso(),
            command_args=command_args,
            command=command,
            handle=handle,
            owner_pid=os.getpid(),
        )
        self._write(folder, created=record)
        self._prune(folder)
        self._emit({"event": "history_created", "folder": folder, "index": record.index})
        return record

    def _prune(self, folder: str) -> None:
        if not self.max_records:
            return
        records = self._history.get(folder, [])
        excess = len(records) - self.max_records
        pruned: list[HistoryRecord] = []
        for record in sorted(records, key=lambda item: item.index):
            if excess <= 0:
                break
            if record.status is HistoryStatus.RUNNING:
                continue
            pruned.append(record)
            excess -= 1
        if not pruned:
            return
        self._write(folder, remove=[record.index for record in pruned])
        for record in pruned:
            self._owned.discard((folder, record.index))
            self._delete_log(record)

    def record_progress(self, record: HistoryRecord, event: LogEvent) -> bool:
        if not event.tracked or event.job_name is None or record.status.is_terminal:
            return False
        now = _utcnow_iso()
        job = next((item for item in record.jobs if item.name == event.job_name), None)
        if job is None:
            job = JobRecord(name=event.job_name, started_at=now)
            record.jobs.append(job)

        if event.step_id is not None and event.step_name is not None:
            if event.stage == MAIN_STAGE and event.step:
                pre_name = f"Pre {event.step}"
                for step in job.steps:
                    # Pre stages never report a result of their own.
                    if (
                        step.id == event.step_id
                        and step.name == pre_name
                        and step.status is HistoryStatus.RUNNING
                    ):
                        step.status = HistoryStatus.SUCCESS
                        step.ended_at = now
            step = next(
                (
                    item
                    for item in job.steps
                    if item.id == event.step_id and item.name == event.step_name
                ),
                None,
            )
            if step is None:
                step = StepRecord(id=event.step_id, name=event.step_name, started_at=now)
                job.steps.append(step)
            if event.step_result:
                step.status = HistoryStatus.from_result(event.step_result)
                step.ended_at = now

        if event.job_result:
            job.status = HistoryStatus.from_result(event.job_result)
            job.ended_at = now
        return True

    def save(self, record: HistoryRecord) -> None:
        self._write(record.folder, upsert=[record])

    def finish(
        self,
        record: HistoryRecord,
        status: HistoryStatus,
        exit_code: int | None = None,
    ) -> HistoryRecord:
        if status is HistoryStatus.RUNNING:
            raise HistoryError("A run cannot transition back to Running.")
        if record.status.is_terminal:
            logger.debug("Ignoring %s signal for finished run %s", status.value, record.title)
            return record

        now = _utcnow_iso()
        leftover = HistoryStatus.UNKNOWN
        if status is HistoryStatus.CANCELLED:
            leftover = HistoryStatus.CANCELLED
        for job in record.jobs:
            for step in job.steps:
                if step.status is HistoryStatus.RUNNING:
                    step.status = leftover
                    step.ended_at = now
            if job.status is HistoryStatus.RUNNING:
                job.status = leftover
                job.ended_at = now

        record.status = status
        record.ended_at = now
        record.exit_code = exit_code
        record.handle = None
        self._write(record.folder, upsert=[record])
        self._emit(
            {
                "event": "history_transition",
                "folder": record.folder,
                "index": record.index,
                "status": status.value,
                "exit_code": exit_code,
            }
        )
        return record

    def complete(
        self, record: HistoryRecord, exit_code: int | None, *, cancelled: bool = False
    ) -> HistoryRecord:
        if cancelled:
            status = HistoryStatus.CANCELLED
        elif exit_code == 0:
            status = HistoryStatus.SUCCESS
        else:
            status = HistoryStatus.FAILED
        return self.finish(record, status, exit_code)

    async def restart(self, record: HistoryRecord) -> HistoryRecord:
        if self.launcher is None:
            raise HistoryError("No launcher is bound; cannot restart runs.")
        self._emit({"event": "history_restart", "folder": record.folder, "index": record.index})
        return await self.launcher(record.command_args)

    def stop(self, record: HistoryRecord) -> bool:
        if record.handle is None:
            return False
        stopped = record.handle.terminate()
        self._emit(
            {
                "event": "history_stop",
                "folder": record.folder,
                "index": record.index,
                "signalled": stopped,
            }
        )
        return stopped

    def _delete_log(self, record: HistoryRecord) -> None:
        if not record.log_path:
            return
        try:
            Path(record.log_path).unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Cannot delete log %s: %s", record.log_path, exc)

    def remove(self, record: HistoryRecord, *, force: bool = False) -> None:
        if record.status is HistoryStatus.RUNNING:
            if not force:
                raise HistoryError(f"{record.title} is still running; stop it first.")
            self.stop(record)
        if all(existing.index != record.index for existing in self._records(record.folder)):
            return
        self._write(record.folder, remove=[record.index])
        self._owned.discard((record.folder, record.index))
        self._delete_log(record)
        self._emit({"event": "history_removed", "folder": record.folder, "index": record.index})

    def clear_all(self, folder: str) -> None:
        for record in self._records(folder):
            self._delete_log(record)
        self._write(folder, clear=True)
        self._owned = {owned for owned in self._owned if owned[0] != folder}
        self._emit({"event": "history_cleared", "folder": folder})

    def view_output(self, record: HistoryRecord) -> str:
        try:
            return Path(record.log_path).read_text(encoding="utf-8")
        except (OSError, ValueError) as exc:
            raise HistoryError(f"{record.title} log file not found") from exc
