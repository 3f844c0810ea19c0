from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class PatternKind(str, Enum):
    SECRETS = "secrets"
    VARIABLES = "variables"
    INPUTS = "inputs"
    RUNNERS = "runners"


@dataclass(frozen=True, slots=True)
class ExtractedName:
    name: str
    comparison: str | None = None


EXPRESSION_PATTERN = re.compile(r"\$\{\{(.*?)\}\}", re.DOTALL)
_NAME = r"([A-Za-z_][A-Za-z0-9_-]*)"
_COMPARISON = r"(?:\s*==\s*('[^']*'|\"[^\"]*\"|[^\s()&|!=]+))?"

REFERENCE_PATTERNS: dict[PatternKind, re.Pattern[str]] = {
    PatternKind.SECRETS: re.compile(rf"(?<![\w.])secrets\.{_NAME}"),
    PatternKind.VARIABLES: re.compile(rf"(?<![\w.])vars\.{_NAME}{_COMPARISON}"),
    PatternKind.INPUTS: re.compile(
        rf"(?<![\w.])(?:github\.event\.)?inputs\.{_NAME}{_COMPARISON}"
    ),
}

RUNS_ON_PATTERN = re.compile(r"^(?P<indent>[ \t]*)(?:-[ \t]+)?runs-on:[ \t]*(?P<value>.*)$")
LIST_ITEM_PATTERN = re.compile(r"^(?P<indent>[ \t]*)-[ \t]+(?P<value>.+)$")


def _strip_comment(value: str) -> str:
    return re.split(r"\s+#", value, maxsplit=1)[0].strip()


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1].strip()
    return value


def _runner_labels(value: str) -> list[str]:
    value = _strip_comment(value)
    if not value or "${{" in value or value.startswith("{"):
        return []
    if value.startswith("["):
        if not value.endswith("]"):
            return []
        items = [_unquote(item) for item in value[1:-1].split(",")]
        return [item for item in items if item and "${{" not in item]
    label = _unquote(value)
    return [label] if label else []


def _extract_runners(text: str) -> list[ExtractedName]:
    found: list[ExtractedName] = []
    lines = text.splitlines()
    for index, line in enumerate(lines):
        match = RUNS_ON_PATTERN.match(line)
        if not match:
            continue
        value = match.group("value")
        if _strip_comment(value):
            found.extend(ExtractedName(label) for label in _runner_labels(value))
            continue
        indent = len(match.group("indent"))
        for follower in lines[index + 1 :]:
            if not follower.strip():
                continue
            item = LIST_ITEM_PATTERN.match(follower)
            if item is None or len(item.group("indent")) < indent:
                break
            found.extend(ExtractedName(label) for label in _runner_labels(item.group("value")))
    return found


def _extract_references(text: str, kind: PatternKind) -> list[ExtractedName]:
    pattern = REFERENCE_PATTERNS[kind]
    found: list[ExtractedName] = []
    for expression in EXPRESSION_PATTERN.finditer(text):
        for match in pattern.finditer(expression.group(1)):
            comparison = match.group(2) if (match.lastindex or 0) >= 2 else None
            found.append(ExtractedName(match.group(1), comparison))
    return found


def dedupe(names: list[ExtractedName]) -> list[ExtractedName]:
    seen: dict[str, ExtractedName] = {}
    for item in names:
        if item.name not in seen:
            seen[item.name] = item
    return list(seen.values())


def extract(text: str | None, kind: PatternKind) -> list[ExtractedName]:
    if not text:
        return []
    kind = PatternKind(kind)
    if kind is PatternKind.RUNNERS:
        return dedupe(_extract_runners(text))
    return dedupe(_extract_references(text, kind))
