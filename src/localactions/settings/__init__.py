from localactions.settings.categories import CATEGORIES, CATEGORY_NAMES, Category, get_category
from localactions.settings.manager import SettingsError, SettingsManager, folder_key
from localactions.settings.models import CustomOption, Setting, SettingFile, Settings

__all__ = [
    "CATEGORIES",
    "CATEGORY_NAMES",
    "Category",
    "CustomOption",
    "Setting",
    "SettingFile",
    "Settings",
    "SettingsError",
    "SettingsManager",
    "folder_key",
    "get_category",
]
