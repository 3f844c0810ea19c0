from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from localactions.settings.categories import CATEGORIES, Category, get_category
from localactions.settings.models import CustomOption, Setting, SettingFile, Settings
from localactions.settings.options import OptionSpec, default_options, find_option_spec
from localactions.state.store import SecretStore, StateStore, StorageKey
from localactions.workflows.index import DEFAULT_WORKFLOWS_DIRECTORY, Workflow, scan
from localactions.workflows.placeholders import ExtractedName, dedupe, extract

logger = logging.getLogger(__name__)


class SettingsError(RuntimeError):
    """Raised when a settings edit does not fit the target category."""


def folder_key(folder: Path | str) -> str:
    return str(Path(folder).expanduser().resolve())


class SettingsManager:
    def __init__(
        self,
        store: StateStore,
        secrets: SecretStore,
        *,
        workflows_directory: str = DEFAULT_WORKFLOWS_DIRECTORY,
        option_specs: list[OptionSpec] | None = None,
    ) -> None:
        self.store = store
        self.secrets = secrets
        self.workflows_directory = workflows_directory
        self.option_specs = option_specs if option_specs is not None else default_options()

    @staticmethod
    def _category(category: str | Category) -> Category:
        try:
            return get_category(category)
        except KeyError as exc:
            raise SettingsError(f"Unknown settings category: {category}") from exc

    @staticmethod
    def _records(raw: Any) -> list[dict[str, Any]]:
        if not isinstance(raw, list):
            return []
        return [item for item in raw if isinstance(item, dict)]

    def _value_category(self, category: str | Category) -> Category:
        resolved = self._category(category)
        self._storage_key(resolved)
        return resolved

    def _file_category(self, category: str | Category) -> Category:
        resolved = self._category(category)
        self._file_storage_key(resolved)
        return resolved

    @staticmethod
    def _storage_key(category: Category) -> str:
        if category.storage_key is None:
            raise SettingsError(f"Category '{category.name}' only accepts files.")
        return category.storage_key

    @staticmethod
    def _file_storage_key(category: Category) -> str:
        if category.file_storage_key is None:
            raise SettingsError(f"Category '{category.name}' does not accept files.")
        return category.file_storage_key

    def _load_values(self, key: str, category: Category) -> list[Setting]:
        storage_key = self._storage_key(category)
        settings: list[Setting] = []
        for item in self._records(self.store.get(storage_key, key)):
            setting = Setting.from_dict(item)
            if not setting.name:
                continue
            if category.protected:
                setting.value = self.secrets.get(key, storage_key, setting.name) or ""
                setting.password = True
                if setting.visible is None:
                    setting.visible = False
            settings.append(setting)
        return settings

    def _save_values(self, key: str, category: Category, settings: list[Setting]) -> None:
        storage_key = self._storage_key(category)
        if category.protected:
            stored_records = self._records(self.store.get(storage_key, key))
            previous = {str(item.get("name")) for item in stored_records}
            current = {setting.name for setting in settings}
            for setting in settings:
                stored = self.secrets.get(key, storage_key, setting.name)
                if setting.value and setting.value != stored:
                    self.secrets.store(key, storage_key, setting.name, setting.value)
                elif not setting.value and stored is not None:
                    self.secrets.delete(key, storage_key, setting.name)
            for name in sorted(previous - current):
                if self.secrets.get(key, storage_key, name) is not None:
                    self.secrets.delete(key, storage_key, name)
        payload = [
            setting.to_dict(include_value=not category.protected) for setting in settings
        ]
        self.store.set(storage_key, key, payload)

    def extract_names(
        self, workflows: Iterable[Workflow], category: str | Category
    ) -> list[ExtractedName]:
        resolved = self._value_category(category)
        if resolved.pattern is None:
            raise SettingsError(f"Category '{resolved.name}' has no extraction pattern.")
        names: list[ExtractedName] = []
        for workflow in workflows:
            if workflow.text is None:
                continue
            names.extend(extract(workflow.text, resolved.pattern))
        return dedupe(names)

    def reconcile(
        self,
        folder: Path | str,
        category: str | Category,
        workflows: list[Workflow] | None = None,
    ) -> list[Setting]:
        resolved = self._value_category(category)
        key = folder_key(folder)
        if workflows is None:
            workflows = scan(Path(key), self.workflows_directory)

        extracted = self.extract_names(workflows, resolved)
        existing = {setting.name: setting for setting in self._load_values(key, resolved)}

        result: list[Setting] = []
        for item in extracted:
            previous = existing.get(item.name)
            if previous is not None:
                result.append(
                    Setting(
                        name=item.name,
                        value=previous.value,
                        selected=previous.selected,
                        visible=previous.visible,
                        password=resolved.protected,
                    )
                )
            else:
                result.append(
                    Setting(
                        name=item.name,
                        visible=False if resolved.protected else None,
                        password=resolved.protected,
                    )
                )

        dropped = sorted(set(existing) - {setting.name for setting in result})
        if dropped:
            logger.debug("Dropping unreferenced %s in %s: %s", resolved.name, key, dropped)
        self._save_values(key, resolved, result)
        return result

    def list_settings(self, folder: Path | str, category: str | Category) -> list[Setting]:
        return self._load_values(folder_key(folder), self._value_category(category))

    def edit_setting(
        self, folder: Path | str, setting: Setting, category: str | Category
    ) -> list[Setting]:
        resolved = self._value_category(category)
        key = folder_key(folder)
        settings = self._load_values(key, resolved)
        if resolved.protected:
            setting.password = True
        for index, existing in enumerate(settings):
            if existing.name == setting.name:
                settings[index] = setting
                break
        else:
            settings.append(setting)
        self._save_values(key, resolved, settings)
        return settings

    def select_settings(
        self,
        folder: Path | str,
        category: str | Category,
        names: Iterable[str],
        selected: bool = True,
    ) -> list[Setting]:
        names = list(names)
        resolved = self._value_category(category)
        key = folder_key(folder)
        settings = self._load_values(key, resolved)
        by_name = {setting.name: setting for setting in settings}
        missing = [name for name in names if name not in by_name]
        if missing:
            raise SettingsError(f"Unknown {resolved.name}: {', '.join(missing)}")
        for name in names:
            by_name[name].selected = selected
        self._save_values(key, resolved, settings)
        return settings

    def list_setting_files(self, folder: Path | str, category: str | Category) -> list[SettingFile]:
        resolved = self._file_category(category)
        raw = self.store.get(self._file_storage_key(resolved), folder_key(folder))
        return [SettingFile.from_dict(item) for item in self._records(raw)]

    def _save_setting_files(
        self, folder: Path | str, category: Category, files: list[SettingFile]
    ) -> None:
        self.store.set(
            self._file_storage_key(category),
            folder_key(folder),
            [setting_file.to_dict() for setting_file in files],
        )

    def edit_setting_file(
        self, folder: Path | str, setting_file: SettingFile, category: str | Category
    ) -> list[SettingFile]:
        resolved = self._file_category(category)
        files = self.list_setting_files(folder, resolved)
        for index, existing in enumerate(files):
            if existing.name == setting_file.name:
                files[index] = setting_file
                break
        else:
            files.append(setting_file)
        self._save_setting_files(folder, resolved, files)
        return files

    def add_setting_file(
        self, folder: Path | str, setting_file: SettingFile, category: str | Category
    ) -> list[SettingFile]:
        resolved = self._file_category(category)
        files = self.list_setting_files(folder, resolved)
        if any(existing.name == setting_file.name for existing in files):
            raise SettingsError(f"{resolved.name} file '{setting_file.name}' already exists.")
        files.append(setting_file)
        self._save_setting_files(folder, resolved, files)
        return files

    def remove_setting_file(
        self, folder: Path | str, name: str, category: str | Category
    ) -> list[SettingFile]:
        resolved = self._file_category(category)
        files = self.list_setting_files(folder, resolved)
        remaining = [setting_file for setting_file in files if setting_file.name != name]
        if len(remaining) == len(files):
            raise SettingsError(f"Unknown {resolved.name} file: {name}")
        self._save_setting_files(folder, resolved, remaining)
        return remaining

    def select_setting_files(
        self,
        folder: Path | str,
        category: str | Category,
        names: Iterable[str],
        selected: bool = True,
    ) -> list[SettingFile]:
        names = list(names)
        resolved = self._file_category(category)
        files = self.list_setting_files(folder, resolved)
        by_name = {setting_file.name: setting_file for setting_file in files}
        missing = [name for name in names if name not in by_name]
        if missing:
            raise SettingsError(f"Unknown {resolved.name} file: {', '.join(missing)}")
        for name in names:
            by_name[name].selected = selected
        self._save_setting_files(folder, resolved, files)
        return files

    def list_options(self, folder: Path | str) -> list[CustomOption]:
        raw = self.store.get(StorageKey.OPTIONS, folder_key(folder))
        options = [CustomOption.from_dict(item) for item in self._records(raw)]
        return [option for option in options if option.name]

    def _save_options(self, folder: Path | str, options: list[CustomOption]) -> None:
        self.store.set(
            StorageKey.OPTIONS, folder_key(folder), [option.to_dict() for option in options]
        )

    def add_option(
        self, folder: Path | str, name: str, value: str = "", *, selected: bool = True
    ) -> CustomOption:
        spec = find_option_spec(name, self.option_specs)
        option = CustomOption(
            name=name.lstrip("-"),
            value=value,
            default=spec.default if spec else "",
            description=spec.description if spec else "",
            selected=selected,
        )
        self.edit_option(folder, option)
        return option

    def edit_option(self, folder: Path | str, option: CustomOption) -> list[CustomOption]:
        options = self.list_options(folder)
        for index, existing in enumerate(options):
            if existing.name == option.name:
                if not existing.editable and existing.value != option.value:
                    raise SettingsError(f"Option '{option.name}' is not editable.")
                options[index] = option
                break
        else:
            options.append(option)
        self._save_options(folder, options)
        return options

    def remove_option(self, folder: Path | str, name: str) -> list[CustomOption]:
        normalized = name.lstrip("-")
        options = self.list_options(folder)
        remaining = [option for option in options if option.name != normalized]
        if len(remaining) == len(options):
            raise SettingsError(f"Unknown option: {name}")
        self._save_options(folder, remaining)
        return remaining

    def select_options(
        self, folder: Path | str, names: Iterable[str], selected: bool = True
    ) -> list[CustomOption]:
        options = self.list_options(folder)
        by_name = {option.name: option for option in options}
        normalized = [name.lstrip("-") for name in names]
        missing = [name for name in normalized if name not in by_name]
        if missing:
            raise SettingsError(f"Unknown option: {', '.join(missing)}")
        for name in normalized:
            by_name[name].selected = selected
        self._save_options(folder, options)
        return options

    def get_settings(self, folder: Path | str, *, selected_only: bool = False) -> Settings:
        key = folder_key(folder)
        workflows = scan(Path(key), self.workflows_directory)
        settings = Settings(options=self.list_options(key))
        for category in CATEGORIES:
            if category.has_values:
                settings.values(category.name).extend(self.reconcile(key, category, workflows))
            if category.has_files:
                settings.files(category.name).extend(self.list_setting_files(key, category))

        if selected_only:
            for category in CATEGORIES:
                values = settings.values(category.name)
                values[:] = [setting for setting in values if setting.selected]
                files = settings.files(category.name)
                files[:] = [setting_file for setting_file in files if setting_file.selected]
            settings.options = [option for option in settings.options if option.selected]
        return settings
