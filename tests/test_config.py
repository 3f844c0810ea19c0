import tomllib
from pathlib import Path

from localactions import __version__
from localactions.config import LocalActionsConfig, dumps_toml, load_config, save_config


def test_config_roundtrip(tmp_path: Path) -> None:
    config_path = tmp_path / "localactions.toml"
    config = LocalActionsConfig.default()
    config.act.command = "gh act"
    config.act.workflows_directory = "ci/workflows"
    config.act.structured_output = False
    config.state.directory = str(tmp_path / "state")
    config.history.max_records = 25
    config.logging.level = "DEBUG"

    save_config(config_path, config)
    loaded = load_config(config_path)

    assert loaded.act.command == "gh act"
    assert loaded.act.workflows_directory == "ci/workflows"
    assert loaded.act.structured_output is False
    assert loaded.act.suppress_default_files is True
    assert loaded.state.resolved_directory() == tmp_path / "state"
    assert loaded.state.resolved_secrets_directory() == tmp_path / "state" / "protected"
    assert loaded.history.max_records == 25
    assert loaded.logging.level == "DEBUG"


def test_missing_config_file_yields_defaults(tmp_path: Path) -> None:
    loaded = load_config(tmp_path / "absent.toml")

    assert loaded == LocalActionsConfig.default()
    assert loaded.act.command == "act"
    assert loaded.act.workflows_directory == ".github/workflows"


def test_toml_dump_contains_all_sections() -> None:
    rendered = dumps_toml(LocalActionsConfig.default())

    assert "[act]" in rendered
    assert "[state]" in rendered
    assert "[history]" in rendered
    assert "[logging]" in rendered
    assert "structured_output = true" in rendered
    assert "max_records = 0" in rendered
    assert tomllib.loads(rendered)["act"]["command"] == "act"


def test_package_version_constant_matches_pyproject() -> None:
    project_root = Path(__file__).resolve().parents[1]
    pyproject = tomllib.loads((project_root / "pyproject.toml").read_text(encoding="utf-8"))

    assert __version__ == pyproject["project"]["version"]
