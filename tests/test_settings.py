from pathlib import Path

import pytest

from localactions.settings import (
    CustomOption,
    Setting,
    SettingFile,
    SettingsError,
    SettingsManager,
    folder_key,
)
from localactions.state import SecretStore, StateStore, StorageKey

BUILD_WORKFLOW = """\
on: push
jobs:
  build:
    runs-on: ubuntu-latest
    env:
      TOKEN: ${{ secrets.API_KEY }}
    if: ${{ vars.REGION == 'us-east-1' }}
    steps:
      - run: echo building
"""


def _workspace(tmp_path: Path, text: str = BUILD_WORKFLOW) -> Path:
    folder = tmp_path / "workspace"
    directory = folder / ".github" / "workflows"
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "build.yml").write_text(text, encoding="utf-8")
    return folder


def _manager(tmp_path: Path) -> SettingsManager:
    return SettingsManager(
        StateStore(tmp_path / "state"),
        SecretStore(tmp_path / "state" / "protected"),
    )


def test_first_reconciliation_yields_empty_unselected_entries(tmp_path: Path) -> None:
    folder = _workspace(tmp_path)
    manager = _manager(tmp_path)

    secrets = manager.reconcile(folder, "secrets")
    variables = manager.reconcile(folder, "variables")

    assert [(item.name, item.value, item.selected) for item in secrets] == [
        ("API_KEY", "", False)
    ]
    assert [(item.name, item.value, item.selected) for item in variables] == [
        ("REGION", "", False)
    ]
    assert secrets[0].password is True
    assert secrets[0].visible is False


def test_reconciliation_carries_forward_values_and_drops_stale_names(tmp_path: Path) -> None:
    folder = _workspace(tmp_path)
    manager = _manager(tmp_path)
    manager.reconcile(folder, "variables")
    manager.edit_setting(folder, Setting("REGION", "eu-west-1", selected=True), "variables")

    workflow = folder / ".github" / "workflows" / "build.yml"
    workflow.write_text(
        BUILD_WORKFLOW.replace("echo building", "echo ${{ vars.STAGE }}"), encoding="utf-8"
    )
    refreshed = manager.reconcile(folder, "variables")

    assert [(item.name, item.value, item.selected) for item in refreshed] == [
        ("REGION", "eu-west-1", True),
        ("STAGE", "", False),
    ]

    workflow.write_text("on: push\njobs: {}\n", encoding="utf-8")
    assert manager.reconcile(folder, "variables") == []
    assert manager.list_settings(folder, "variables") == []


def test_reconciliation_is_idempotent_on_disk(tmp_path: Path) -> None:
    folder = _workspace(tmp_path)
    manager = _manager(tmp_path)
    manager.reconcile(folder, "variables")
    state_file = tmp_path / "state" / "variables.json"
    before = state_file.read_bytes()

    manager.reconcile(folder, "variables")

    assert state_file.read_bytes() == before


def test_secret_values_never_reach_the_plain_store(tmp_path: Path) -> None:
    folder = _workspace(tmp_path)
    manager = _manager(tmp_path)
    manager.reconcile(folder, "secrets")
    manager.edit_setting(folder, Setting("API_KEY", 'p@ss"word', selected=True), "secrets")

    plain = (tmp_path / "state" / "secrets.json").read_text(encoding="utf-8")
    assert "p@ss" not in plain
    assert manager.secrets.get(folder_key(folder), StorageKey.SECRETS, "API_KEY") == 'p@ss"word'

    reloaded = manager.reconcile(folder, "secrets")
    assert reloaded[0].value == 'p@ss"word'
    assert reloaded[0].selected is True
    assert reloaded[0].display_value() == "••••••••"


def test_dropped_secret_name_removes_protected_value(tmp_path: Path) -> None:
    folder = _workspace(tmp_path)
    manager = _manager(tmp_path)
    manager.reconcile(folder, "secrets")
    manager.edit_setting(folder, Setting("API_KEY", "value"), "secrets")

    (folder / ".github" / "workflows" / "build.yml").write_text("jobs: {}\n", encoding="utf-8")
    manager.reconcile(folder, "secrets")

    assert manager.secrets.get(folder_key(folder), StorageKey.SECRETS, "API_KEY") is None


def test_folders_are_reconciled_independently(tmp_path: Path) -> None:
    first = _workspace(tmp_path / "one")
    second = _workspace(tmp_path / "two")
    manager = _manager(tmp_path)
    manager.reconcile(first, "variables")
    manager.reconcile(second, "variables")
    manager.edit_setting(first, Setting("REGION", "eu", selected=True), "variables")

    assert manager.reconcile(second, "variables")[0].value == ""
    assert manager.reconcile(first, "variables")[0].value == "eu"


def test_select_settings_rejects_unknown_names(tmp_path: Path) -> None:
    folder = _workspace(tmp_path)
    manager = _manager(tmp_path)
    manager.reconcile(folder, "runners")

    selected = manager.select_settings(folder, "runners", ["ubuntu-latest"])
    assert selected[0].selected is True

    with pytest.raises(SettingsError, match="Unknown runners"):
        manager.select_settings(folder, "runners", ["windows-latest"])


def test_setting_files_add_edit_select_and_remove(tmp_path: Path) -> None:
    folder = _workspace(tmp_path)
    manager = _manager(tmp_path)

    manager.add_setting_file(folder, SettingFile("local", "/tmp/a.env"), "variables")
    manager.edit_setting_file(folder, SettingFile("local", "/tmp/b.env"), "variables")
    files = manager.select_setting_files(folder, "variables", ["local"])

    with pytest.raises(SettingsError, match="already exists"):
        manager.add_setting_file(folder, SettingFile("local", "/tmp/c.env"), "variables")
    assert files == [SettingFile("local", "/tmp/b.env", selected=True)]
    assert manager.remove_setting_file(folder, "local", "variables") == []
    with pytest.raises(SettingsError):
        manager.remove_setting_file(folder, "local", "variables")
    with pytest.raises(SettingsError, match="does not accept files"):
        manager.add_setting_file(folder, SettingFile("x", "/tmp/x"), "runners")
    with pytest.raises(SettingsError, match="only accepts files"):
        manager.list_settings(folder, "payload")


def test_options_use_catalogue_defaults(tmp_path: Path) -> None:
    folder = _workspace(tmp_path)
    manager = _manager(tmp_path)

    option = manager.add_option(folder, "--action-offline-mode", "true")

    assert option.name == "action-offline-mode"
    assert option.default == "false"
    assert option.is_boolean is True
    assert option.description

    manager.edit_option(folder, CustomOption("bind", selected=True))
    assert [item.name for item in manager.list_options(folder)] == [
        "action-offline-mode",
        "bind",
    ]
    manager.select_options(folder, ["bind"], selected=False)
    assert manager.list_options(folder)[1].selected is False
    assert [item.name for item in manager.remove_option(folder, "--bind")] == [
        "action-offline-mode"
    ]


def test_non_editable_option_value_is_protected(tmp_path: Path) -> None:
    folder = _workspace(tmp_path)
    manager = _manager(tmp_path)
    manager.edit_option(folder, CustomOption("pull", "false", editable=False))

    with pytest.raises(SettingsError, match="not editable"):
        manager.edit_option(folder, CustomOption("pull", "true", editable=False))


def test_get_settings_filters_selected_entries(tmp_path: Path) -> None:
    folder = _workspace(tmp_path)
    manager = _manager(tmp_path)
    manager.get_settings(folder)
    manager.edit_setting(folder, Setting("REGION", "eu", selected=True), "variables")
    manager.add_setting_file(folder, SettingFile("event", "/tmp/event.json"), "payload")

    everything = manager.get_settings(folder)
    selected = manager.get_settings(folder, selected_only=True)

    assert [item.name for item in everything.secrets] == ["API_KEY"]
    assert [item.name for item in everything.runners] == ["ubuntu-latest"]
    assert [item.name for item in everything.payload_files] == ["event"]
    assert selected.secrets == []
    assert [item.name for item in selected.variables] == ["REGION"]
    assert selected.payload_files == []
