"""Config, data and skills directory resolution."""

from __future__ import annotations

import os
import sys
from pathlib import Path

_APP_DIR = "conductor"


def get_platform() -> str:
    if sys.platform == "win32":
        return "windows"
    if sys.platform == "darwin":
        return "macos"
    return "linux"


def _app_dir(override_env: str, windows_env: str, windows_default: Path, xdg_env: str, xdg_default: Path) -> Path:
    override = os.environ.get(override_env)
    if override:
        return Path(override)

    platform = get_platform()
    if platform == "windows":
        return Path(os.environ.get(windows_env, windows_default)) / _APP_DIR
    if platform == "macos":
        return Path.home() / "Library" / "Application Support" / _APP_DIR
    return Path(os.environ.get(xdg_env, xdg_default)) / _APP_DIR


def get_config_dir() -> Path:
    return _app_dir(
        "CONDUCTOR_CONFIG_DIR",
        "APPDATA", Path.home() / "AppData" / "Roaming",
        "XDG_CONFIG_HOME", Path.home() / ".config",
    )


def get_data_dir() -> Path:
    return _app_dir(
        "CONDUCTOR_DATA_DIR",
        "LOCALAPPDATA", Path.home() / "AppData" / "Local",
        "XDG_DATA_HOME", Path.home() / ".local" / "share",
    )


def get_skills_dir() -> Path:
    """Default location of user-installed SKILL.md definitions."""
    return get_config_dir() / "skills"
