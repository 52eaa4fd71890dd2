from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

import yaml
from dotenv import load_dotenv

log = logging.getLogger(__name__)

DEFAULT_DATABASES_DIR = "data/databases"
DEFAULT_PREFS_DIR = "data/shared_prefs"


@dataclass
class Settings:
    """
    Centralized engine configuration.

    Values are layered: dataclass defaults, then an optional YAML file
    (INSPECTOR_CONFIG), then environment variables. Relative directories
    resolve against the current working directory.
    """

    # --- Store locations ---
    databases_dir: str = DEFAULT_DATABASES_DIR
    prefs_dir: str = DEFAULT_PREFS_DIR

    # --- Paging ---
    default_page_size: int = 50
    max_page_size: int = 500

    # --- SQLite busy timeout (seconds) ---
    busy_timeout_sec: float = 3.0

    # --- App version ---
    app_version: str = "dev"

    def __post_init__(self) -> None:
        self.databases_dir = str(Path(self.databases_dir).expanduser().resolve())
        self.prefs_dir = str(Path(self.prefs_dir).expanduser().resolve())
        if self.max_page_size < 1:
            self.max_page_size = 1
        self.default_page_size = min(max(1, self.default_page_size), self.max_page_size)

    @classmethod
    def from_mapping(cls, raw: Dict[str, Any]) -> "Settings":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(raw) - known)
        if unknown:
            log.warning("Ignoring unknown settings keys", extra={"keys": unknown})
        return cls(**{k: v for k, v in raw.items() if k in known})

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build Settings from the optional YAML file and environment variables.

        - INSPECTOR_CONFIG points at a YAML mapping of Settings fields.
        - INSPECTOR_* variables override anything from the file.
        """

        def getenv_int(name: str, default: int) -> int:
            raw = os.getenv(name)
            if raw is None or raw.strip() == "":
                return default
            try:
                return int(raw)
            except ValueError:
                return default

        def getenv_float(name: str, default: float) -> float:
            raw = os.getenv(name)
            if raw is None or raw.strip() == "":
                return default
            try:
                return float(raw)
            except ValueError:
                return default

        base: Dict[str, Any] = {}
        raw_cfg = os.getenv("INSPECTOR_CONFIG", "").strip()
        if raw_cfg:
            base = load_yaml_config(raw_cfg)
        defaults = cls.from_mapping(base) if base else cls()

        return cls(
            databases_dir=os.getenv("INSPECTOR_DATABASES_DIR", defaults.databases_dir),
            prefs_dir=os.getenv("INSPECTOR_PREFS_DIR", defaults.prefs_dir),
            default_page_size=getenv_int(
                "INSPECTOR_DEFAULT_PAGE_SIZE", defaults.default_page_size
            ),
            max_page_size=getenv_int("INSPECTOR_MAX_PAGE_SIZE", defaults.max_page_size),
            busy_timeout_sec=getenv_float(
                "INSPECTOR_BUSY_TIMEOUT_SEC", defaults.busy_timeout_sec
            ),
            app_version=os.getenv("APP_VERSION", defaults.app_version),
        )


def load_yaml_config(path: str) -> Dict[str, Any]:
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Inspector config not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Inspector config must be a mapping: {cfg_path}")
    return data


@lru_cache()
def get_settings() -> Settings:
    load_dotenv()
    return Settings.from_env()
