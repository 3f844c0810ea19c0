from __future__ import annotations

import re
import shlex
from dataclasses import dataclass
from typing import Any

from localactions.settings.categories import CATEGORIES, Category
from localactions.settings.models import CustomOption, Settings
from localactions.workflows.index import DEFAULT_WORKFLOWS_DIRECTORY

SAFE_DISPLAY_PATTERN = re.compile(r"^[A-Za-z0-9_@%+=:,./\\\"-]+$")
SECRET_MASK = "********"
STRUCTURED_OUTPUT_FLAGS = ("--json", "--verbose")


def escape_special_characters(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def quote_display(value: str) -> str:
    escaped = escape_special_characters(value)
    if value and SAFE_DISPLAY_PATTERN.match(value):
        return escaped
    return f'"{escaped}"'


@dataclass(frozen=True, slots=True)
class CommandTarget:
    workflow_file: str | None = None
    job: str | None = None
    event: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"workflow_file": self.workflow_file, "job": self.job, "event": self.event}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CommandTarget:
        return cls(
            workflow_file=data.get("workflow_file") or None,
            job=data.get("job") or None,
            event=data.get("event") or None,
        )


@dataclass(frozen=True, slots=True)
class CommandLine:
    argv: tuple[str, ...]
    display_command: str
    masked_command: str


@dataclass(frozen=True, slots=True)
class _Token:
    arg: str
    display: str
    masked: str

    @classmethod
    def plain(cls, value: str) -> _Token:
        rendered = quote_display(value)
        return cls(value, rendered, rendered)


class CommandSynthesizer:
    def __init__(
        self,
        base_command: str = "act",
        workflows_directory: str = DEFAULT_WORKFLOWS_DIRECTORY,
        *,
        structured_output: bool = True,
        suppress_default_files: bool = True,
    ) -> None:
        self.base = shlex.split(base_command) or ["act"]
        self.workflows_directory = workflows_directory.rstrip("/") or "."
        self.structured_output = structured_output
        self.suppress_default_files = suppress_default_files

    def target_tokens(self, target: CommandTarget) -> list[_Token]:
        tokens: list[_Token] = []
        if target.event:
            tokens.append(_Token.plain(target.event))
        if target.workflow_file:
            workflows_path = f"{self.workflows_directory}/{target.workflow_file}"
        else:
            workflows_path = self.workflows_directory
        tokens.extend([_Token.plain("--workflows"), _Token.plain(workflows_path)])
        if target.job:
            if not target.workflow_file:
                raise ValueError("A job target requires a workflow file.")
            tokens.extend([_Token.plain("--job"), _Token.plain(target.job)])
        return tokens

    @staticmethod
    def option_tokens(options: list[CustomOption]) -> list[_Token]:
        tokens: list[_Token] = []
        for option in options:
            if not option.selected:
                continue
            if not option.value:
                tokens.append(_Token.plain(option.flag))
            elif option.is_boolean:
                display = f"{option.flag}={quote_display(option.value)}"
                tokens.append(_Token(f"{option.flag}={option.value}", display, display))
            else:
                tokens.extend([_Token.plain(option.flag), _Token.plain(option.value)])
        return tokens

    def category_tokens(self, settings: Settings, category: Category) -> list[_Token]:
        tokens: list[_Token] = []
        if category.value_flag:
            for setting in settings.values(category.name):
                if not setting.selected:
                    continue
                prefix = f"{quote_display(setting.name)}="
                display = prefix + quote_display(setting.value)
                masked = prefix + SECRET_MASK if category.protected and setting.value else display
                tokens.append(_Token.plain(category.value_flag))
                tokens.append(_Token(f"{setting.name}={setting.value}", display, masked))
        if category.file_flag:
            selected = [item for item in settings.files(category.name) if item.selected]
            if selected:
                tokens.extend([_Token.plain(category.file_flag), _Token.plain(selected[0].path)])
            elif self.suppress_default_files:
                tokens.extend([_Token.plain(category.file_flag), _Token.plain("")])
        return tokens

    def build(
        self,
        settings: Settings,
        options: list[CustomOption] | None,
        target: CommandTarget,
    ) -> CommandLine:
        tokens = self.target_tokens(target)
        tokens.extend(self.option_tokens(settings.options if options is None else options))
        for category in CATEGORIES:
            tokens.extend(self.category_tokens(settings, category))

        base = [_Token.plain(part) for part in self.base]
        extra = list(STRUCTURED_OUTPUT_FLAGS) if self.structured_output else []
        argv = tuple([*self.base, *extra, *(token.arg for token in tokens)])
        display = " ".join(token.display for token in [*base, *tokens])
        masked = " ".join(token.masked for token in [*base, *tokens])
        return CommandLine(argv=argv, display_command=display, masked_command=masked)
