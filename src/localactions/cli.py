from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from localactions.config import CONFIG_FILENAME, load_config, save_config
from localactions.execution.base import ExecutionError
from localactions.execution.command import CommandTarget
from localactions.history.manager import HistoryError
from localactions.history.models import HistoryRecord, HistoryStatus
from localactions.log import configure_logging
from localactions.runtime import Runtime, load_runtime, resolve_config_path
from localactions.settings.categories import CATEGORIES
from localactions.settings.manager import SettingsError
from localactions.settings.models import Setting, SettingFile
from localactions.state.store import StateStoreError
from localactions.workflows.index import find_workflow, scan

ENGINE_ERRORS = (StateStoreError, SettingsError, ExecutionError, HistoryError)

VALUE_CATEGORIES = [category.name for category in CATEGORIES if category.has_values]
FILE_CATEGORIES = [category.name for category in CATEGORIES if category.has_files]


def _workspace_options(command: Callable[..., Any]) -> Callable[..., Any]:
    command = click.option(
        "--config", "config_value", default=CONFIG_FILENAME, show_default=True
    )(command)
    return click.option(
        "--folder",
        "folder_value",
        type=click.Path(file_okay=False, path_type=Path),
        default=".",
        show_default=True,
    )(command)


def _load(folder_value: Path, config_value: str, *, echo: bool = False) -> Runtime:
    folder = folder_value.resolve()
    config_path = resolve_config_path(folder, config_value)
    ctx = click.get_current_context()
    debug = bool((ctx.find_root().obj or {}).get("debug"))
    config = load_config(config_path)
    configure_logging(config.logging.level, verbose=debug)
    return load_runtime(
        folder,
        config_path,
        verbose=debug,
        echo=click.echo if echo else None,
    )


def _format_record(record: HistoryRecord) -> str:
    ended = record.ended_at or "-"
    status = record.status.value
    return f"#{record.index:<4} {status:<9} {record.title}  {record.started_at} -> {ended}"


@click.group()
@click.option("--debug", is_flag=True, default=False, help="Verbose logging and runner output.")
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """Run GitHub Actions workflows locally with act."""
    ctx.obj = {"debug": debug}


@cli.command("init")
@_workspace_options
def init_command(folder_value: Path, config_value: str) -> None:
    folder = folder_value.resolve()
    config_path = resolve_config_path(folder, config_value)
    config = load_config(config_path)
    save_config(config_path, config)
    runtime = _load(folder, config_value)
    workflows = scan(folder, config.act.workflows_directory)

    click.echo(f"Initialized local actions in {folder}")
    click.echo(f"Config: {config_path}")
    click.echo(f"State: {runtime.config.state.resolved_directory()}")
    click.echo(f"Workflows found: {len(workflows)}")


@cli.command("workflows")
@_workspace_options
def workflows_command(folder_value: Path, config_value: str) -> None:
    runtime = _load(folder_value, config_value)
    workflows = scan(runtime.folder, runtime.config.act.workflows_directory)
    if not workflows:
        click.echo("No workflows found.")
        return
    for workflow in workflows:
        if workflow.error:
            click.echo(f"{workflow.file_name:<30} {workflow.name}  [error: {workflow.error}]")
            continue
        triggers = ", ".join(workflow.triggers) or "-"
        click.echo(f"{workflow.file_name:<30} {workflow.name}  ({triggers})")


@cli.command("jobs")
@click.argument("workflow_ref")
@_workspace_options
def jobs_command(workflow_ref: str, folder_value: Path, config_value: str) -> None:
    runtime = _load(folder_value, config_value)
    workflows = scan(runtime.folder, runtime.config.act.workflows_directory)
    workflow = find_workflow(workflows, workflow_ref)
    if workflow is None:
        raise click.ClickException(f"Workflow not found: {workflow_ref}")
    if workflow.error:
        raise click.ClickException(f"{workflow.file_name}: {workflow.error}")
    for job in workflow.jobs:
        click.echo(f"{job.key:<24} {job.name}")


@cli.group("settings")
def settings_group() -> None:
    """Secrets, variables, inputs and runner labels referenced by workflows."""


@settings_group.command("list")
@click.argument("category", type=click.Choice(VALUE_CATEGORIES))
@click.option("--show", is_flag=True, default=False, help="Reveal secret values.")
@_workspace_options
def settings_list_command(
    category: str, show: bool, folder_value: Path, config_value: str
) -> None:
    runtime = _load(folder_value, config_value)
    try:
        settings = runtime.settings.reconcile(runtime.folder, category)
    except ENGINE_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    if not settings:
        click.echo(f"No {category} referenced by workflows.")
        return
    for setting in settings:
        marker = "x" if setting.selected else " "
        value = setting.value if show else setting.display_value()
        click.echo(f"[{marker}] {setting.name} = {value}")


@settings_group.command("set")
@click.argument("category", type=click.Choice(VALUE_CATEGORIES))
@click.argument("name")
@click.argument("value")
@click.option("--select/--no-select", "select", default=None)
@_workspace_options
def settings_set_command(
    category: str,
    name: str,
    value: str,
    select: bool | None,
    folder_value: Path,
    config_value: str,
) -> None:
    runtime = _load(folder_value, config_value)
    try:
        current = {
            setting.name: setting
            for setting in runtime.settings.reconcile(runtime.folder, category)
        }
        previous = current.get(name)
        if previous is None:
            raise click.ClickException(f"{name} is not referenced by any workflow.")
        runtime.settings.edit_setting(
            runtime.folder,
            Setting(
                name=name,
                value=value,
                selected=previous.selected if select is None else select,
                visible=previous.visible,
                password=previous.password,
            ),
            category,
        )
    except ENGINE_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Updated {category} {name}")


def _select_settings(
    category: str, names: tuple[str, ...], selected: bool, folder_value: Path, config_value: str
) -> None:
    runtime = _load(folder_value, config_value)
    try:
        runtime.settings.reconcile(runtime.folder, category)
        runtime.settings.select_settings(runtime.folder, category, names, selected)
    except ENGINE_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    verb = "Selected" if selected else "Deselected"
    click.echo(f"{verb} {category}: {', '.join(names)}")


@settings_group.command("select")
@click.argument("category", type=click.Choice(VALUE_CATEGORIES))
@click.argument("names", nargs=-1, required=True)
@_workspace_options
def settings_select_command(
    category: str, names: tuple[str, ...], folder_value: Path, config_value: str
) -> None:
    _select_settings(category, names, True, folder_value, config_value)


@settings_group.command("deselect")
@click.argument("category", type=click.Choice(VALUE_CATEGORIES))
@click.argument("names", nargs=-1, required=True)
@_workspace_options
def settings_deselect_command(
    category: str, names: tuple[str, ...], folder_value: Path, config_value: str
) -> None:
    _select_settings(category, names, False, folder_value, config_value)


@cli.group("files")
def files_group() -> None:
    """Secret, variable, input and payload files passed to the runner."""


@files_group.command("list")
@click.argument("category", type=click.Choice(FILE_CATEGORIES))
@_workspace_options
def files_list_command(category: str, folder_value: Path, config_value: str) -> None:
    runtime = _load(folder_value, config_value)
    try:
        files = runtime.settings.list_setting_files(runtime.folder, category)
    except ENGINE_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    if not files:
        click.echo(f"No {category} files.")
        return
    for setting_file in files:
        marker = "x" if setting_file.selected else " "
        click.echo(f"[{marker}] {setting_file.name} -> {setting_file.path}")


@files_group.command("add")
@click.argument("category", type=click.Choice(FILE_CATEGORIES))
@click.argument("name")
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--select", is_flag=True, default=False)
@_workspace_options
def files_add_command(
    category: str,
    name: str,
    path: Path,
    select: bool,
    folder_value: Path,
    config_value: str,
) -> None:
    runtime = _load(folder_value, config_value)
    try:
        runtime.settings.add_setting_file(
            runtime.folder,
            SettingFile(name=name, path=str(path.expanduser().resolve()), selected=select),
            category,
        )
    except ENGINE_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Added {category} file {name}")


@files_group.command("remove")
@click.argument("category", type=click.Choice(FILE_CATEGORIES))
@click.argument("name")
@_workspace_options
def files_remove_command(category: str, name: str, folder_value: Path, config_value: str) -> None:
    runtime = _load(folder_value, config_value)
    try:
        runtime.settings.remove_setting_file(runtime.folder, name, category)
    except ENGINE_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Removed {category} file {name}")


def _select_files(
    category: str, names: tuple[str, ...], selected: bool, folder_value: Path, config_value: str
) -> None:
    runtime = _load(folder_value, config_value)
    try:
        runtime.settings.select_setting_files(runtime.folder, category, names, selected)
    except ENGINE_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    verb = "Selected" if selected else "Deselected"
    click.echo(f"{verb} {category} files: {', '.join(names)}")


@files_group.command("select")
@click.argument("category", type=click.Choice(FILE_CATEGORIES))
@click.argument("names", nargs=-1, required=True)
@_workspace_options
def files_select_command(
    category: str, names: tuple[str, ...], folder_value: Path, config_value: str
) -> None:
    _select_files(category, names, True, folder_value, config_value)


@files_group.command("deselect")
@click.argument("category", type=click.Choice(FILE_CATEGORIES))
@click.argument("names", nargs=-1, required=True)
@_workspace_options
def files_deselect_command(
    category: str, names: tuple[str, ...], folder_value: Path, config_value: str
) -> None:
    _select_files(category, names, False, folder_value, config_value)


@cli.group("options")
def options_group() -> None:
    """Extra act command-line options."""


@options_group.command("list")
@click.option("--available", is_flag=True, default=False, help="List options act supports.")
@_workspace_options
def options_list_command(available: bool, folder_value: Path, config_value: str) -> None:
    runtime = _load(folder_value, config_value)
    if available:
        for spec in asyncio.run(runtime.runner.list_options()):
            default = f" (default: {spec.default})" if spec.default else ""
            click.echo(f"--{spec.name:<28} {spec.description}{default}")
        return

    options = runtime.settings.list_options(runtime.folder)
    if not options:
        click.echo("No options configured.")
        return
    for option in options:
        marker = "x" if option.selected else " "
        value = f" {option.value}" if option.value else ""
        click.echo(f"[{marker}] {option.flag}{value}")


@options_group.command("add")
@click.argument("name")
@click.argument("value", required=False, default="")
@_workspace_options
def options_add_command(name: str, value: str, folder_value: Path, config_value: str) -> None:
    runtime = _load(folder_value, config_value)
    try:
        option = runtime.settings.add_option(runtime.folder, name, value)
    except ENGINE_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Added option {option.flag}")


@options_group.command("remove")
@click.argument("name")
@_workspace_options
def options_remove_command(name: str, folder_value: Path, config_value: str) -> None:
    runtime = _load(folder_value, config_value)
    try:
        runtime.settings.remove_option(runtime.folder, name)
    except ENGINE_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Removed option --{name.lstrip('-')}")


def _target(
    runtime: Runtime, workflow_ref: str | None, job: str | None, event: str | None
) -> CommandTarget:
    if job and not workflow_ref:
        raise click.ClickException("--job requires a workflow.")
    target = CommandTarget(workflow_file=workflow_ref, job=job, event=event)
    return runtime.runner.resolve_target(runtime.folder, target)


@cli.command("command")
@click.argument("workflow_ref", required=False)
@click.option("--job", default=None)
@click.option("--event", default=None)
@_workspace_options
def command_command(
    workflow_ref: str | None,
    job: str | None,
    event: str | None,
    folder_value: Path,
    config_value: str,
) -> None:
    runtime = _load(folder_value, config_value)
    try:
        command = runtime.runner.command_line(
            runtime.folder, _target(runtime, workflow_ref, job, event)
        )
    except ENGINE_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(command.display_command)


def _report(record: HistoryRecord) -> None:
    click.echo(f"{record.title}: {record.status.value}")
    if record.log_path:
        click.echo(f"Log: {record.log_path}")
    if record.status is not HistoryStatus.SUCCESS:
        click.get_current_context().exit(1)


@cli.command("run")
@click.argument("workflow_ref", required=False)
@click.option("--job", default=None)
@click.option("--event", default=None)
@_workspace_options
def run_command(
    workflow_ref: str | None,
    job: str | None,
    event: str | None,
    folder_value: Path,
    config_value: str,
) -> None:
    runtime = _load(folder_value, config_value, echo=True)
    target = _target(runtime, workflow_ref, job, event)
    try:
        record = asyncio.run(runtime.runner.run(runtime.folder, target))
    except ENGINE_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    except KeyboardInterrupt:
        runtime.close()
        raise click.Abort() from None
    _report(record)


@cli.group("history")
def history_group() -> None:
    """Runs recorded for this workspace."""


def _record(runtime: Runtime, index: int) -> HistoryRecord:
    try:
        return runtime.history.get(runtime.folder_key, index)
    except HistoryError as exc:
        raise click.ClickException(str(exc)) from exc


@history_group.command("list")
@_workspace_options
def history_list_command(folder_value: Path, config_value: str) -> None:
    runtime = _load(folder_value, config_value)
    records = runtime.history.list_history(runtime.folder_key)
    if not records:
        click.echo("No runs recorded.")
        return
    for record in records:
        click.echo(_format_record(record))


@history_group.command("show")
@click.argument("index", type=int)
@click.option("--output", "show_output", is_flag=True, default=False, help="Print the run log.")
@_workspace_options
def history_show_command(
    index: int, show_output: bool, folder_value: Path, config_value: str
) -> None:
    runtime = _load(folder_value, config_value)
    record = _record(runtime, index)
    if show_output:
        try:
            click.echo(runtime.history.view_output(record), nl=False)
        except HistoryError as exc:
            raise click.ClickException(str(exc)) from exc
        return
    click.echo(json.dumps(record.to_dict(), ensure_ascii=False, indent=2))


@history_group.command("restart")
@click.argument("index", type=int)
@_workspace_options
def history_restart_command(index: int, folder_value: Path, config_value: str) -> None:
    runtime = _load(folder_value, config_value, echo=True)
    record = _record(runtime, index)
    try:
        restarted = asyncio.run(runtime.history.restart(record))
    except ENGINE_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    except KeyboardInterrupt:
        runtime.close()
        raise click.Abort() from None
    _report(restarted)


@history_group.command("remove")
@click.argument("index", type=int)
@click.option("--force", is_flag=True, default=False, help="Stop the run first if it is running.")
@_workspace_options
def history_remove_command(index: int, force: bool, folder_value: Path, config_value: str) -> None:
    runtime = _load(folder_value, config_value)
    record = _record(runtime, index)
    try:
        runtime.history.remove(record, force=force)
    except HistoryError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Removed {record.title}")


@history_group.command("clear")
@_workspace_options
def history_clear_command(folder_value: Path, config_value: str) -> None:
    runtime = _load(folder_value, config_value)
    try:
        runtime.history.clear_all(runtime.folder_key)
    except ENGINE_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo("Cleared run history.")
