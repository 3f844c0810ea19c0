from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_WORKFLOWS_DIRECTORY = ".github/workflows"
WORKFLOW_SUFFIXES = (".yml", ".yaml")
PARSE_ERROR_MESSAGE = "Failed to parse workflow file."


@dataclass(frozen=True, slots=True)
class Job:
    key: str
    name: str


@dataclass(frozen=True, slots=True)
class Workflow:
    path: Path
    name: str
    text: str | None = None
    content: dict[str, Any] | None = None
    error: str | None = None

    @property
    def file_name(self) -> str:
        return self.path.name

    @property
    def jobs(self) -> list[Job]:
        if self.content is None:
            return []
        jobs = self.content.get("jobs")
        if not isinstance(jobs, dict):
            return []
        result: list[Job] = []
        for key, body in jobs.items():
            declared = body.get("name") if isinstance(body, dict) else None
            name = declared if isinstance(declared, str) and declared.strip() else str(key)
            result.append(Job(key=str(key), name=name))
        return result

    @property
    def triggers(self) -> list[str]:
        if self.content is None:
            return []
        # YAML 1.1 reads a bare `on` key as boolean true.
        raw = self.content.get("on", self.content.get(True))
        if isinstance(raw, str):
            return [raw]
        if isinstance(raw, list):
            return [str(item) for item in raw]
        if isinstance(raw, dict):
            return [str(item) for item in raw]
        return []

    def job(self, ref: str) -> Job | None:
        for job in self.jobs:
            if job.key == ref:
                return job
        for job in self.jobs:
            if job.name == ref:
                return job
        return None


def _load_workflow(path: Path) -> Workflow:
    fallback_name = path.stem
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Cannot read workflow %s: %s", path, exc)
        return Workflow(path=path, name=fallback_name, error=PARSE_ERROR_MESSAGE)

    try:
        content = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        logger.warning("Cannot parse workflow %s: %s", path, exc)
        return Workflow(path=path, name=fallback_name, error=PARSE_ERROR_MESSAGE)

    if not isinstance(content, dict):
        logger.warning("Workflow %s is not a mapping document", path)
        return Workflow(path=path, name=fallback_name, error=PARSE_ERROR_MESSAGE)

    declared = content.get("name")
    name = declared if isinstance(declared, str) and declared.strip() else fallback_name
    return Workflow(path=path, name=name, text=text, content=content)


def workflow_files(
    workspace_folder: Path, workflows_directory: str = DEFAULT_WORKFLOWS_DIRECTORY
) -> list[Path]:
    directory = workspace_folder / workflows_directory
    if not directory.is_dir():
        return []
    return sorted(
        path
        for path in directory.iterdir()
        if path.is_file() and path.suffix.lower() in WORKFLOW_SUFFIXES
    )


def scan(
    workspace_folder: Path, workflows_directory: str = DEFAULT_WORKFLOWS_DIRECTORY
) -> list[Workflow]:
    workflows = [
        _load_workflow(path) for path in workflow_files(workspace_folder, workflows_directory)
    ]
    logger.debug(
        "Scanned %d workflow(s) in %s (%d failed)",
        len(workflows),
        workspace_folder,
        sum(1 for workflow in workflows if workflow.error),
    )
    return workflows


def find_workflow(workflows: list[Workflow], ref: str) -> Workflow | None:
    for workflow in workflows:
        if ref in {workflow.file_name, workflow.path.stem, str(workflow.path)}:
            return workflow
    for workflow in workflows:
        if workflow.name == ref:
            return workflow
    return None
