import json
import logging

import pytest

from localactions.execution.output import parse_log_line
from localactions.log import log_event_hook


def _line(**payload: object) -> str:
    return json.dumps(payload)


def test_plain_lines_pass_through_untracked() -> None:
    event = parse_log_line("docker pull node:20\n")

    assert event is not None
    assert event.message == "docker pull node:20"
    assert event.tracked is False


def test_debug_noise_is_hidden_unless_verbose() -> None:
    line = _line(level="debug", jobID="build", msg="evaluating expression")

    assert parse_log_line(line) is None
    shown = parse_log_line(line, verbose=True)
    assert shown is not None
    assert shown.tracked is False


def test_skipped_results_are_kept_even_at_debug_level() -> None:
    event = parse_log_line(
        _line(level="debug", jobID="deploy", jobResult="skipped", msg="skipped job")
    )

    assert event is not None
    assert event.tracked is True
    assert event.job_result == "skipped"


def test_job_names_include_matrix_values() -> None:
    event = parse_log_line(
        _line(
            level="info",
            job="Test",
            jobID="test",
            matrix={"os": "ubuntu", "node": 20},
            stepID=["2", "post"],
            stage="Post",
            step="Checkout",
            msg="cleanup",
        ),
        {"test": "Unit tests"},
    )

    assert event.message == "[Test] cleanup"
    assert event.job_name == "Unit tests (ubuntu, 20)"
    assert event.step_id == "2"
    assert event.step_name == "Post Checkout"


def test_event_hook_logs_at_debug(caplog: pytest.LogCaptureFixture) -> None:
    hook = log_event_hook(logging.getLogger("localactions.test"))

    with caplog.at_level(logging.DEBUG, logger="localactions"):
        hook({"event": "act_exit", "exit_code": 0})

    assert "act_exit exit_code=0" in caplog.text
