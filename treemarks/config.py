from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from . import __version__


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None else v


@dataclass
class Settings:
    # Server
    api_url: str = "http://localhost:3096/api"
    timeout_s: float = 15.0
    connect_timeout_s: float = 5.0
    user_agent: str = f"treemarks/{__version__}"

    # Export
    export_title: str = "Bookmarks"

    # Logging / UX
    log_level: str = "INFO"
    no_color: bool = False

    @staticmethod
    def from_env() -> "Settings":
        s = Settings()
        s.api_url = _env_str("TREEMARKS_API_URL", s.api_url)
        s.timeout_s = _env_float("TREEMARKS_TIMEOUT_S", s.timeout_s)
        s.connect_timeout_s = _env_float("TREEMARKS_CONNECT_TIMEOUT_S", s.connect_timeout_s)
        s.user_agent = _env_str("TREEMARKS_USER_AGENT", s.user_agent)

        s.export_title = _env_str("TREEMARKS_EXPORT_TITLE", s.export_title)

        s.log_level = _env_str("TREEMARKS_LOG_LEVEL", s.log_level)
        s.no_color = _env_bool("TREEMARKS_NO_COLOR", s.no_color)
        return s

    @staticmethod
    def from_file(path: Path) -> "Settings":
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        s = Settings.from_env()
        for k, v in data.items():
            if hasattr(s, k):
                setattr(s, k, v)
        return s


def load_settings(config_path: Optional[str]) -> Settings:
    if config_path:
        return Settings.from_file(Path(config_path))
    return Settings.from_env()
