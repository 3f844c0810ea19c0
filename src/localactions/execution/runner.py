from __future__ import annotations

import asyncio
import json
import logging
import signal
from collections.abc import Callable
from pathlib import Path
from typing import Any

from localactions.execution.base import SpawnError
from localactions.execution.command import CommandLine, CommandSynthesizer, CommandTarget
from localactions.execution.output import parse_log_line
from localactions.history.manager import HistoryManager
from localactions.history.models import CommandArgs, HistoryRecord, HistoryStatus
from localactions.settings.manager import SettingsManager, folder_key
from localactions.settings.options import OptionSpec, default_options
from localactions.workflows.index import Workflow, find_workflow, scan

logger = logging.getLogger(__name__)

WORKSPACE_RUN_NAME = "workspace"
STREAM_LIMIT = 16 * 1024 * 1024
TERMINATE_GRACE_SECONDS = 10.0


def _option_default(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class RunHandle:
    def __init__(self, process: asyncio.subprocess.Process) -> None:
        self.process = process
        self.cancel_requested = False

    def terminate(self) -> bool:
        if self.process.returncode is not None:
            return False
        self.cancel_requested = True
        try:
            self.process.send_signal(signal.SIGINT)
        except ProcessLookupError:
            return False
        return True


class ActRunner:
    def __init__(
        self,
        settings: SettingsManager,
        synthesizer: CommandSynthesizer,
        history: HistoryManager,
        *,
        verbose: bool = False,
        echo: Callable[[str], None] | None = None,
        event_hook: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.settings = settings
        self.synthesizer = synthesizer
        self.history = history
        self.verbose = verbose
        self.echo = echo
        self.event_hook = event_hook
        history.bind_launcher(self.launch)

    def _emit(self, payload: dict[str, Any]) -> None:
        if self.event_hook is not None:
            self.event_hook(payload)

    def _workflows(self, folder: str) -> list[Workflow]:
        return scan(Path(folder), self.synthesizer.workflows_directory)

    def resolve_target(self, folder: Path | str, target: CommandTarget) -> CommandTarget:
        """Map a workflow/job reference given by name onto file name and job key."""
        if not target.workflow_file:
            return target
        workflow = find_workflow(self._workflows(folder_key(folder)), target.workflow_file)
        if workflow is None:
            return target
        job_key = target.job
        if target.job:
            job = workflow.job(target.job)
            job_key = job.key if job is not None else target.job
        return CommandTarget(workflow_file=workflow.file_name, job=job_key, event=target.event)

    def run_name(self, folder: Path | str, target: CommandTarget) -> str:
        if not target.workflow_file:
            return target.event or WORKSPACE_RUN_NAME
        workflow = find_workflow(self._workflows(folder_key(folder)), target.workflow_file)
        workflow_name = workflow.name if workflow is not None else target.workflow_file
        if not target.job:
            return workflow_name
        job = workflow.job(target.job) if workflow is not None else None
        return f"{workflow_name}/{job.name if job is not None else target.job}"

    def _job_names(self, folder: str, target: CommandTarget) -> dict[str, str]:
        names: dict[str, str] = {}
        for workflow in self._workflows(folder):
            if target.workflow_file and workflow.file_name != target.workflow_file:
                continue
            for job in workflow.jobs:
                names.setdefault(job.key, job.name)
        return names

    def command_line(self, folder: Path | str, target: CommandTarget) -> CommandLine:
        settings = self.settings.get_settings(folder_key(folder), selected_only=True)
        return self.synthesizer.build(settings, None, target)

    async def run(
        self,
        folder: Path | str,
        target: CommandTarget,
        name: str | None = None,
    ) -> HistoryRecord:
        key = folder_key(folder)
        resolved = self.resolve_target(key, target)
        command_args = CommandArgs(
            folder=key, name=name or self.run_name(key, resolved), target=resolved
        )
        return await self.launch(command_args)

    async def launch(self, command_args: CommandArgs) -> HistoryRecord:
        folder = command_args.folder
        command = self.command_line(folder, command_args.target)
        self._emit(
            {
                "event": "act_spawn",
                "folder": folder,
                "name": command_args.name,
                "command": command.masked_command,
            }
        )
        logger.info("Running %s", command.masked_command)
        try:
            process = await asyncio.create_subprocess_exec(
                *command.argv,
                cwd=folder,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                limit=STREAM_LIMIT,
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise SpawnError(
                f"Cannot start {command.argv[0]}: {exc}",
                command=command.masked_command,
            ) from exc

        handle = RunHandle(process)
        try:
            record = self.history.create(command_args, command.masked_command, handle)
        except BaseException:
            handle.terminate()
            await self._reap(process)
            raise
        try:
            await self._stream(process, record, self._job_names(folder, command_args.target))
            exit_code = await process.wait()
        except BaseException as exc:
            cancelled = handle.cancel_requested or isinstance(
                exc, (asyncio.CancelledError, KeyboardInterrupt)
            )
            handle.terminate()
            exit_code = await self._reap(process)
            if cancelled:
                self.history.complete(record, exit_code, cancelled=True)
            else:
                logger.error("Run %s aborted: %s", record.title, exc)
                self.history.finish(record, HistoryStatus.FAILED, exit_code)
            raise

        self._emit({"event": "act_exit", "folder": folder, "exit_code": exit_code})
        return self.history.complete(record, exit_code, cancelled=handle.cancel_requested)

    async def _reap(self, process: asyncio.subprocess.Process) -> int | None:
        try:
            return await asyncio.wait_for(process.wait(), TERMINATE_GRACE_SECONDS)
        except TimeoutError:
            logger.warning("Runner ignored SIGINT; killing it")
            try:
                process.kill()
            except ProcessLookupError:
                pass
            return await process.wait()

    async def _stream(
        self,
        process: asyncio.subprocess.Process,
        record: HistoryRecord,
        job_names: dict[str, str],
    ) -> None:
        if process.stdout is None:
            return
        with open(record.log_path, "w", encoding="utf-8") as log_file:
            async for raw_line in process.stdout:
                line = raw_line.decode("utf-8", errors="replace")
                event = parse_log_line(line, job_names, verbose=self.verbose)
                if event is None:
                    continue
                log_file.write(event.message + "\n")
                log_file.flush()
                if self.echo is not None:
                    self.echo(event.message)
                if self.history.record_progress(record, event) and (
                    event.step_result or event.job_result
                ):
                    self.history.save(record)

    async def list_options(self) -> list[OptionSpec]:
        command = [*self.synthesizer.base, "--list-options"]
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as exc:
            logger.debug("Cannot list runner options: %s", exc)
            return default_options()

        stdout, _ = await process.communicate()
        if process.returncode != 0:
            self._emit({"event": "act_list_options_fallback", "exit_code": process.returncode})
            return default_options()
        try:
            payload = json.loads(stdout.decode("utf-8", errors="replace"))
        except json.JSONDecodeError:
            self._emit({"event": "act_list_options_fallback", "exit_code": 0})
            return default_options()
        if not isinstance(payload, list):
            return default_options()

        specs: list[OptionSpec] = []
        for item in payload:
            if not isinstance(item, dict) or not item.get("name"):
                continue
            specs.append(
                OptionSpec(
                    name=str(item["name"]).lstrip("-"),
                    default=_option_default(item.get("default")),
                    description=str(item.get("description") or ""),
                )
            )
        return specs or default_options()
