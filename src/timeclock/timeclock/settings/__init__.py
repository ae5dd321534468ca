from __future__ import annotations

import importlib
import os
from types import ModuleType


def get_settings_module() -> str:
    # Pick the settings module from APP_ENV, defaulting to development
    env = os.getenv("APP_ENV", "development").lower()

    if env in {"prod", "production"}:
        return "timeclock.settings.production"

    if env in {"test", "testing"}:
        return "timeclock.settings.testing"

    return "timeclock.settings.development"


def load_settings(module_name: str | None = None) -> ModuleType:
    return importlib.import_module(module_name or get_settings_module())
