"""Tests for extpoints.settings and ExtensionManager.from_settings."""

import os
from pathlib import Path
from typing import Callable, Iterator

import pytest
import yaml

from extpoints.manager import ExtensionManager
from extpoints.registry import descriptors
from extpoints.settings import (
    ENV_LOG_LEVEL,
    ENV_MANIFEST_PATH,
    get_default_settings,
    get_setting,
    load_settings,
    reload_settings,
)


class Exporter:
    pass


class CsvExporter(Exporter):
    pass


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.delenv(ENV_MANIFEST_PATH, raising=False)
    monkeypatch.delenv(ENV_LOG_LEVEL, raising=False)
    reload_settings()
    yield
    reload_settings()


def test_defaults_when_file_missing(tmp_path: Path) -> None:
    """Without extpoints.yaml, defaults are returned."""
    settings = load_settings(tmp_path)
    assert settings["manifest_paths"] == []
    assert settings["declarations"] == []
    assert settings["logging"]["level"] == "INFO"
    assert settings["logging"]["log_to_console"] is True


def test_default_settings_are_copies() -> None:
    """Mutating returned defaults does not leak into later calls."""
    get_default_settings()["logging"]["level"] = "DEBUG"
    assert get_default_settings()["logging"]["level"] == "INFO"


def test_yaml_is_merged_and_paths_resolved(tmp_path: Path) -> None:
    """Nested keys merge over defaults; relative paths resolve against the config dir."""
    data = {"manifest_paths": ["manifests"], "logging": {"level": "DEBUG"}}
    (tmp_path / "extpoints.yaml").write_text(yaml.safe_dump(data))
    settings = load_settings(tmp_path)
    assert settings["manifest_paths"] == [tmp_path / "manifests"]
    assert settings["logging"]["level"] == "DEBUG"
    assert settings["logging"]["backup_count"] == 3


def test_invalid_yaml_falls_back_to_defaults(tmp_path: Path) -> None:
    """A malformed settings file is ignored."""
    (tmp_path / "extpoints.yaml").write_text("manifest_paths: [unclosed\n")
    assert load_settings(tmp_path)["manifest_paths"] == []


def test_environment_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """EXTPOINTS_MANIFEST_PATH and EXTPOINTS_LOG_LEVEL override the file."""
    (tmp_path / "extpoints.yaml").write_text(yaml.safe_dump({"manifest_paths": ["a"]}))
    monkeypatch.setenv(ENV_MANIFEST_PATH, os.pathsep.join(["x", "y"]))
    monkeypatch.setenv(ENV_LOG_LEVEL, "WARNING")
    settings = load_settings(tmp_path)
    assert settings["manifest_paths"] == [tmp_path / "x", tmp_path / "y"]
    assert settings["logging"]["level"] == "WARNING"


def test_dotenv_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """.env next to the settings file is read; the process environment wins."""
    (tmp_path / ".env").write_text(f"{ENV_MANIFEST_PATH}=from_dotenv\n{ENV_LOG_LEVEL}=ERROR\n")
    monkeypatch.setenv(ENV_LOG_LEVEL, "DEBUG")
    settings = load_settings(tmp_path)
    assert settings["manifest_paths"] == [tmp_path / "from_dotenv"]
    assert settings["logging"]["level"] == "DEBUG"


def test_cache_and_reload(tmp_path: Path) -> None:
    """Settings are cached until reload_settings()."""
    first = load_settings(tmp_path)
    (tmp_path / "extpoints.yaml").write_text(yaml.safe_dump({"logging": {"level": "ERROR"}}))
    assert load_settings(tmp_path) is first
    reload_settings()
    assert load_settings(tmp_path)["logging"]["level"] == "ERROR"


def test_get_setting() -> None:
    """Dot paths read nested values, missing keys return the default."""
    settings = get_default_settings()
    assert get_setting(settings, "logging.level") == "INFO"
    assert get_setting(settings, "logging.missing", "x") == "x"
    assert get_setting(settings, "manifest_paths.deeper") is None


def test_manager_from_settings(tmp_path: Path, write_manifest: Callable[..., Path]) -> None:
    """Declaration files are registered and manifests searched."""
    module = Exporter.__module__
    declarations = {
        "extension_points": [{"type": f"{module}:Exporter", "version": "1.1"}],
        "extensions": [
            {
                "type": f"{module}:CsvExporter",
                "provider": "acme",
                "name": "csv",
                "version": "1.0.0",
                "extension_point_version": "1.1",
                "scope": "LOCAL",
            }
        ],
    }
    (tmp_path / "declarations.yaml").write_text(yaml.safe_dump(declarations))
    (tmp_path / "extpoints.yaml").write_text(
        yaml.safe_dump({"manifest_paths": ["manifests"], "declarations": ["declarations.yaml"]})
    )
    write_manifest(Exporter, CsvExporter, root=tmp_path / "manifests")
    try:
        manager = ExtensionManager.from_settings(load_settings(tmp_path))
        assert manager.manifest_paths == (tmp_path / "manifests",)
        assert isinstance(manager.get_extension(Exporter), CsvExporter)
        assert manager.get_extensions_metadata(Exporter)[0].name == "csv"
    finally:
        descriptors.discard(Exporter)
        descriptors.discard(CsvExporter)
