from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

MASK = "••••••••"


@dataclass(slots=True)
class Setting:
    name: str
    value: str = ""
    selected: bool = False
    visible: bool | None = None
    password: bool = False

    def display_value(self) -> str:
        if self.password and not self.visible:
            return MASK if self.value else ""
        return self.value

    def to_dict(self, *, include_value: bool = True) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "selected": self.selected}
        if include_value:
            payload["value"] = self.value
        if self.visible is not None:
            payload["visible"] = self.visible
        if self.password:
            payload["password"] = True
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Setting:
        visible = data.get("visible")
        return cls(
            name=str(data.get("name") or data.get("key") or ""),
            value=str(data.get("value") or ""),
            selected=bool(data.get("selected", False)),
            visible=visible if isinstance(visible, bool) else None,
            password=bool(data.get("password", False)),
        )


@dataclass(slots=True)
class SettingFile:
    name: str
    path: str
    selected: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "path": self.path, "selected": self.selected}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SettingFile:
        return cls(
            name=str(data.get("name") or ""),
            path=str(data.get("path") or ""),
            selected=bool(data.get("selected", False)),
        )


@dataclass(slots=True)
class CustomOption:
    name: str
    value: str = ""
    default: str = ""
    description: str = ""
    selected: bool = False
    editable: bool = True

    @property
    def flag(self) -> str:
        return f"--{self.name}"

    @property
    def is_boolean(self) -> bool:
        return self.default in {"true", "false"}

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.value,
            "default": self.default,
            "description": self.description,
            "selected": self.selected,
            "notEditable": not self.editable,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CustomOption:
        return cls(
            name=str(data.get("name") or "").lstrip("-"),
            value=str(data.get("path") or data.get("value") or ""),
            default=str(data.get("default") or ""),
            description=str(data.get("description") or ""),
            selected=bool(data.get("selected", False)),
            editable=not bool(data.get("notEditable", False)),
        )


@dataclass(slots=True)
class Settings:
    secrets: list[Setting] = field(default_factory=list)
    secret_files: list[SettingFile] = field(default_factory=list)
    variables: list[Setting] = field(default_factory=list)
    variable_files: list[SettingFile] = field(default_factory=list)
    inputs: list[Setting] = field(default_factory=list)
    input_files: list[SettingFile] = field(default_factory=list)
    runners: list[Setting] = field(default_factory=list)
    payload_files: list[SettingFile] = field(default_factory=list)
    options: list[CustomOption] = field(default_factory=list)

    def values(self, category: str) -> list[Setting]:
        return {
            "secrets": self.secrets,
            "variables": self.variables,
            "inputs": self.inputs,
            "runners": self.runners,
        }.get(category, [])

    def files(self, category: str) -> list[SettingFile]:
        return {
            "secrets": self.secret_files,
            "variables": self.variable_files,
            "inputs": self.input_files,
            "payload": self.payload_files,
        }.get(category, [])
