from __future__ import annotations

from dataclasses import dataclass

from localactions.state.store import StorageKey
from localactions.workflows.placeholders import PatternKind


@dataclass(frozen=True, slots=True)
class Category:
    """Extraction pattern, storage partitions and render flags for one settings category."""

    name: str
    pattern: PatternKind | None
    storage_key: str | None
    file_storage_key: str | None
    value_flag: str | None
    file_flag: str | None
    protected: bool = False

    @property
    def has_values(self) -> bool:
        return self.storage_key is not None

    @property
    def has_files(self) -> bool:
        return self.file_storage_key is not None


SECRETS = Category(
    name="secrets",
    pattern=PatternKind.SECRETS,
    storage_key=StorageKey.SECRETS,
    file_storage_key=StorageKey.SECRET_FILES,
    value_flag="--secret",
    file_flag="--secret-file",
    protected=True,
)
VARIABLES = Category(
    name="variables",
    pattern=PatternKind.VARIABLES,
    storage_key=StorageKey.VARIABLES,
    file_storage_key=StorageKey.VARIABLE_FILES,
    value_flag="--var",
    file_flag="--var-file",
)
INPUTS = Category(
    name="inputs",
    pattern=PatternKind.INPUTS,
    storage_key=StorageKey.INPUTS,
    file_storage_key=StorageKey.INPUT_FILES,
    value_flag="--input",
    file_flag="--input-file",
)
RUNNERS = Category(
    name="runners",
    pattern=PatternKind.RUNNERS,
    storage_key=StorageKey.RUNNERS,
    file_storage_key=None,
    value_flag="--platform",
    file_flag=None,
)
PAYLOAD = Category(
    name="payload",
    pattern=None,
    storage_key=None,
    file_storage_key=StorageKey.PAYLOAD_FILES,
    value_flag=None,
    file_flag="--eventpath",
)

# Render order of injection flags.
CATEGORIES: tuple[Category, ...] = (SECRETS, VARIABLES, INPUTS, RUNNERS, PAYLOAD)
CATEGORY_NAMES = tuple(category.name for category in CATEGORIES)


def get_category(name: str | Category) -> Category:
    if isinstance(name, Category):
        return name
    for category in CATEGORIES:
        if category.name == name:
            return category
    raise KeyError(name)
