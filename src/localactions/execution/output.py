from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

HIDDEN_LEVELS = {"debug", "trace"}
MAIN_STAGE = "Main"


@dataclass(frozen=True, slots=True)
class LogEvent:
    message: str
    level: str | None = None
    job_id: str | None = None
    job_name: str | None = None
    step_id: str | None = None
    step_name: str | None = None
    step: str | None = None
    stage: str | None = None
    step_result: str | None = None
    job_result: str | None = None
    tracked: bool = False


def _job_name(payload: dict[str, Any], job_names: dict[str, str]) -> str:
    job_id = str(payload["jobID"])
    name = job_names.get(job_id, job_id)
    matrix = payload.get("matrix")
    if isinstance(matrix, dict) and matrix:
        name = f"{name} ({', '.join(str(value) for value in matrix.values())})"
    return name


def parse_log_line(
    line: str,
    job_names: dict[str, str] | None = None,
    *,
    verbose: bool = False,
    raw_json: bool = False,
) -> LogEvent | None:
    """Turn one line of runner output into a display message and progress update.

    Returns None for structured debug noise that should not be shown at all.
    Non-JSON lines are passed through untouched and never update progress.
    """
    text = line.rstrip("\r\n")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return LogEvent(message=text)
    if not isinstance(payload, dict):
        return LogEvent(message=text)

    level = payload.get("level") if isinstance(payload.get("level"), str) else None
    step_result = payload.get("stepResult") if isinstance(payload.get("stepResult"), str) else None
    job_result = payload.get("jobResult") if isinstance(payload.get("jobResult"), str) else None
    stage = payload.get("stage") if isinstance(payload.get("stage"), str) else None

    tracked = True
    is_noise = level in HIDDEN_LEVELS and job_result != "skipped" and step_result != "skipped"
    is_skipped_hook = step_result == "skipped" and stage != MAIN_STAGE
    if is_noise or is_skipped_hook:
        if not verbose:
            return None
        tracked = False

    msg = payload.get("msg")
    if raw_json or not isinstance(msg, str):
        message = text
    else:
        job = payload.get("job")
        message = f"[{job}] {msg}" if job else msg

    job_id = str(payload["jobID"]) if payload.get("jobID") else None
    job_name = _job_name(payload, job_names or {}) if job_id else None

    step_id: str | None = None
    step_name: str | None = None
    step = payload.get("step") if isinstance(payload.get("step"), str) else None
    raw_step_id = payload.get("stepID")
    if isinstance(raw_step_id, list) and raw_step_id:
        step_id = str(raw_step_id[0])
    elif isinstance(raw_step_id, str) and raw_step_id:
        step_id = raw_step_id
    if step_id is not None:
        step_name = step if stage in (None, MAIN_STAGE) else f"{stage} {step}"

    return LogEvent(
        message=message,
        level=level,
        job_id=job_id,
        job_name=job_name,
        step_id=step_id,
        step_name=step_name,
        step=step,
        stage=stage,
        step_result=step_result,
        job_result=job_result,
        tracked=tracked and job_id is not None,
    )
