from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from localactions.config import LocalActionsConfig, load_config
from localactions.execution.command import CommandSynthesizer
from localactions.execution.runner import ActRunner
from localactions.history.manager import HistoryManager
from localactions.log import log_event_hook
from localactions.settings.manager import SettingsManager, folder_key
from localactions.state.store import SecretStore, StateStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Runtime:
    folder: Path
    config_path: Path
    config: LocalActionsConfig
    store: StateStore
    secrets: SecretStore
    settings: SettingsManager
    history: HistoryManager
    synthesizer: CommandSynthesizer
    runner: ActRunner

    @property
    def folder_key(self) -> str:
        return folder_key(self.folder)

    def close(self) -> None:
        for record in self.history.list_history(self.folder_key):
            if record.handle is not None:
                self.history.stop(record)


def resolve_config_path(folder: Path, config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = folder / config_path
    return config_path.resolve()


def load_runtime(
    folder: Path,
    config_path: Path,
    *,
    verbose: bool = False,
    echo: Callable[[str], None] | None = None,
    event_hook: Callable[[dict[str, Any]], None] | None = None,
) -> Runtime:
    config = load_config(config_path)
    hook = event_hook if event_hook is not None else log_event_hook(logger)
    store = StateStore(config.state.resolved_directory())
    secrets = SecretStore(config.state.resolved_secrets_directory())
    settings = SettingsManager(
        store,
        secrets,
        workflows_directory=config.act.workflows_directory,
    )
    history = HistoryManager(
        store,
        config.history.resolved_log_directory(),
        max_records=config.history.max_records,
        event_hook=hook,
    )
    synthesizer = CommandSynthesizer(
        config.act.command,
        config.act.workflows_directory,
        structured_output=config.act.structured_output,
        suppress_default_files=config.act.suppress_default_files,
    )
    runner = ActRunner(
        settings,
        synthesizer,
        history,
        verbose=verbose,
        echo=echo,
        event_hook=hook,
    )
    return Runtime(
        folder=folder.resolve(),
        config_path=config_path,
        config=config,
        store=store,
        secrets=secrets,
        settings=settings,
        history=history,
        synthesizer=synthesizer,
        runner=runner,
    )
