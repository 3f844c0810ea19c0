from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import platformdirs

APP_NAME = "localactions"
CONFIG_FILENAME = "localactions.toml"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


@dataclass(slots=True)
class ActConfig:
    command: str = "act"
    workflows_directory: str = ".github/workflows"
    structured_output: bool = True
    suppress_default_files: bool = True


@dataclass(slots=True)
class StateConfig:
    directory: str = ""
    secrets_directory: str = ""

    def resolved_directory(self) -> Path:
        if self.directory:
            return Path(self.directory).expanduser()
        return Path(platformdirs.user_data_dir(APP_NAME))

    def resolved_secrets_directory(self) -> Path:
        if self.secrets_directory:
            return Path(self.secrets_directory).expanduser()
        return self.resolved_directory() / "protected"


@dataclass(slots=True)
class HistoryConfig:
    log_directory: str = ""
    max_records: int = 0

    def resolved_log_directory(self) -> Path:
        if self.log_directory:
            return Path(self.log_directory).expanduser()
        return Path(platformdirs.user_log_dir(APP_NAME))


@dataclass(slots=True)
class LoggingConfig:
    level: LogLevel = "INFO"


@dataclass(slots=True)
class LocalActionsConfig:
    act: ActConfig = field(default_factory=ActConfig)
    state: StateConfig = field(default_factory=StateConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> LocalActionsConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> LocalActionsConfig:
        return cls(
            act=ActConfig(**data.get("act", {})),
            state=StateConfig(**data.get("state", {})),
            history=HistoryConfig(**data.get("history", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    def to_dict(self) -> dict:
        return {
            "act": {
                "command": self.act.command,
                "workflows_directory": self.act.workflows_directory,
                "structured_output": self.act.structured_output,
                "suppress_default_files": self.act.suppress_default_files,
            },
            "state": {
                "directory": self.state.directory,
                "secrets_directory": self.state.secrets_directory,
            },
            "history": {
                "log_directory": self.history.log_directory,
                "max_records": self.history.max_records,
            },
            "logging": {
                "level": self.logging.level,
            },
        }


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: LocalActionsConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    section_order = ["act", "state", "history", "logging"]
    for section in section_order:
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def load_config(path: Path) -> LocalActionsConfig:
    if not path.exists():
        return LocalActionsConfig.default()
    return LocalActionsConfig.from_dict(tomllib.loads(path.read_text(encoding="utf-8")))


def save_config(path: Path, config: LocalActionsConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")
