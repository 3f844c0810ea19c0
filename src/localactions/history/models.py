from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from localactions.execution.command import CommandTarget


class HistoryStatus(str, Enum):
    RUNNING = "Running"
    SUCCESS = "Success"
    FAILED = "Failed"
    SKIPPED = "Skipped"
    CANCELLED = "Cancelled"
    UNKNOWN = "Unknown"

    @property
    def is_terminal(self) -> bool:
        return self is not HistoryStatus.RUNNING

    @classmethod
    def parse(cls, value: Any) -> HistoryStatus:
        try:
            return cls(str(value))
        except ValueError:
            return cls.UNKNOWN

    @classmethod
    def from_result(cls, result: str) -> HistoryStatus:
        if result == "success":
            return cls.SUCCESS
        if result == "skipped":
            return cls.SKIPPED
        return cls.FAILED


class RunningTask(Protocol):
    def terminate(self) -> bool: ...


@dataclass(slots=True)
class CommandArgs:
    folder: str
    name: str
    target: CommandTarget = field(default_factory=CommandTarget)

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.folder, "name": self.name, "target": self.target.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CommandArgs:
        target = data.get("target")
        return cls(
            folder=str(data.get("path") or ""),
            name=str(data.get("name") or ""),
            target=CommandTarget.from_dict(target) if isinstance(target, dict) else CommandTarget(),
        )


@dataclass(slots=True)
class StepRecord:
    id: str
    name: str
    status: HistoryStatus = HistoryStatus.RUNNING
    started_at: str = ""
    ended_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "date": {"start": self.started_at, "end": self.ended_at},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StepRecord:
        date = data.get("date") if isinstance(data.get("date"), dict) else {}
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            status=HistoryStatus.parse(data.get("status")),
            started_at=str(date.get("start") or ""),
            ended_at=date.get("end") or None,
        )


@dataclass(slots=True)
class JobRecord:
    name: str
    status: HistoryStatus = HistoryStatus.RUNNING
    started_at: str = ""
    ended_at: str | None = None
    steps: list[StepRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "date": {"start": self.started_at, "end": self.ended_at},
            "steps": [step.to_dict() for step in self.steps],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobRecord:
        date = data.get("date") if isinstance(data.get("date"), dict) else {}
        steps = data.get("steps") if isinstance(data.get("steps"), list) else []
        return cls(
            name=str(data.get("name") or ""),
            status=HistoryStatus.parse(data.get("status")),
            started_at=str(date.get("start") or ""),
            ended_at=date.get("end") or None,
            steps=[StepRecord.from_dict(item) for item in steps if isinstance(item, dict)],
        )


@dataclass(slots=True)
class HistoryRecord:
    index: int
    name: str
    count: int
    status: HistoryStatus
    started_at: str
    command_args: CommandArgs
    command: str = ""
    log_path: str = ""
    ended_at: str | None = None
    exit_code: int | None = None
    jobs: list[JobRecord] = field(default_factory=list)
    owner_pid: int | None = None
    handle: RunningTask | None = field(default=None, repr=False, compare=False)

    @property
    def folder(self) -> str:
        return self.command_args.folder

    @property
    def title(self) -> str:
        return f"{self.name} #{self.count}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "name": self.name,
            "count": self.count,
            "status": self.status.value,
            "date": {"start": self.started_at, "end": self.ended_at},
            "commandArgs": self.command_args.to_dict(),
            "command": self.command,
            "logPath": self.log_path,
            "exitCode": self.exit_code,
            "ownerPid": self.owner_pid,
            "jobs": [job.to_dict() for job in self.jobs],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryRecord:
        date = data.get("date") if isinstance(data.get("date"), dict) else {}
        command_args = data.get("commandArgs")
        jobs = data.get("jobs") if isinstance(data.get("jobs"), list) else []
        exit_code = data.get("exitCode")
        owner_pid = data.get("ownerPid")
        return cls(
            index=int(data.get("index", 0)),
            name=str(data.get("name") or ""),
            count=int(data.get("count", 1)),
            status=HistoryStatus.parse(data.get("status")),
            started_at=str(date.get("start") or ""),
            ended_at=date.get("end") or None,
            command_args=(
                CommandArgs.from_dict(command_args)
                if isinstance(command_args, dict)
                else CommandArgs(folder="", name=str(data.get("name") or ""))
            ),
            command=str(data.get("command") or ""),
            log_path=str(data.get("logPath") or ""),
            exit_code=exit_code if isinstance(exit_code, int) else None,
            jobs=[JobRecord.from_dict(item) for item in jobs if isinstance(item, dict)],
            owner_pid=owner_pid if isinstance(owner_pid, int) else None,
        )
