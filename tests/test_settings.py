from __future__ import annotations

from pathlib import Path

import pytest

from inspector.settings import Settings, get_settings, load_yaml_config

_ENV_KEYS = (
    "INSPECTOR_CONFIG",
    "INSPECTOR_DATABASES_DIR",
    "INSPECTOR_PREFS_DIR",
    "INSPECTOR_DEFAULT_PAGE_SIZE",
    "INSPECTOR_MAX_PAGE_SIZE",
    "INSPECTOR_BUSY_TIMEOUT_SEC",
    "APP_VERSION",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults_resolve_relative_dirs(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    s = Settings.from_env()

    assert Path(s.databases_dir) == (tmp_path / "data" / "databases").resolve()
    assert Path(s.prefs_dir) == (tmp_path / "data" / "shared_prefs").resolve()
    assert s.default_page_size == 50
    assert s.max_page_size == 500
    assert s.busy_timeout_sec == 3.0
    assert s.app_version == "dev"


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("INSPECTOR_DATABASES_DIR", str(tmp_path / "db"))
    monkeypatch.setenv("INSPECTOR_DEFAULT_PAGE_SIZE", "20")
    monkeypatch.setenv("INSPECTOR_BUSY_TIMEOUT_SEC", "0.5")
    monkeypatch.setenv("APP_VERSION", "1.2.3")

    s = Settings.from_env()

    assert s.databases_dir == str((tmp_path / "db").resolve())
    assert s.default_page_size == 20
    assert s.busy_timeout_sec == 0.5
    assert s.app_version == "1.2.3"


def test_bad_numeric_env_falls_back(monkeypatch):
    monkeypatch.setenv("INSPECTOR_MAX_PAGE_SIZE", "lots")
    assert Settings.from_env().max_page_size == 500


def test_yaml_file_then_env(tmp_path, monkeypatch):
    cfg = tmp_path / "inspector.yaml"
    cfg.write_text(
        "prefs_dir: {}\nmax_page_size: 100\ndefault_page_size: 80\nunknown_key: 1\n".format(
            tmp_path / "prefs"
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("INSPECTOR_CONFIG", str(cfg))
    monkeypatch.setenv("INSPECTOR_DEFAULT_PAGE_SIZE", "30")

    s = Settings.from_env()

    assert s.prefs_dir == str((tmp_path / "prefs").resolve())
    assert s.max_page_size == 100
    assert s.default_page_size == 30


def test_missing_yaml_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_yaml_config(str(tmp_path / "nope.yaml"))


def test_yaml_must_be_mapping(tmp_path):
    cfg = tmp_path / "list.yaml"
    cfg.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_yaml_config(str(cfg))


def test_page_sizes_are_clamped(tmp_path):
    s = Settings(databases_dir=str(tmp_path), max_page_size=0, default_page_size=10)
    assert s.max_page_size == 1
    assert s.default_page_size == 1


def test_get_settings_is_cached():
    assert get_settings() is get_settings()
