"""Load engine settings from extpoints.yaml, with environment overrides."""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values

SETTINGS_FILE = "extpoints.yaml"
ENV_MANIFEST_PATH = "EXTPOINTS_MANIFEST_PATH"
ENV_LOG_LEVEL = "EXTPOINTS_LOG_LEVEL"

_DEFAULTS: dict[str, Any] = {
    # Roots searched for discovery manifests, in order
    "manifest_paths": [],
    # YAML declaration files registered by ExtensionManager.from_settings()
    "declarations": [],
    "logging": {
        "level": "INFO",
        "log_to_console": True,
        "file": None,
        "max_bytes": 10485760,  # 10 MB
        "backup_count": 3,
    },
}

_cached: dict[str, Any] | None = None


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Merge overlay into base recursively. Mutates base."""
    for key, value in overlay.items():
        if value is None:
            continue
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def get_default_settings() -> dict[str, Any]:
    return _deep_copy_nested(_DEFAULTS)


def get_setting(settings: dict[str, Any], path: str, default: Any = None) -> Any:
    """Get a nested value by dot path (e.g. 'logging.level')."""
    current: Any = settings
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def reload_settings() -> None:
    """Clear the settings cache."""
    global _cached
    _cached = None


def _env_overrides(config_dir: Path) -> dict[str, Any]:
    env_file = config_dir / ".env"
    env: dict[str, str | None] = dict(dotenv_values(env_file)) if env_file.exists() else {}
    env.update(os.environ)
    overrides: dict[str, Any] = {}
    manifest_path = env.get(ENV_MANIFEST_PATH)
    if manifest_path:
        overrides["manifest_paths"] = [p for p in manifest_path.split(os.pathsep) if p]
    log_level = env.get(ENV_LOG_LEVEL)
    if log_level:
        overrides["logging"] = {"level": log_level}
    return overrides


def load_settings(config_dir: Path | None = None) -> dict[str, Any]:
    """Defaults merged with extpoints.yaml and environment; paths resolve against config_dir."""
    global _cached
    if _cached is not None:
        return _cached

    if config_dir is None:
        config_dir = Path.cwd()
    path = config_dir / SETTINGS_FILE

    result = get_default_settings()
    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                _deep_merge(result, data)
        except (yaml.YAMLError, OSError):
            pass
    _deep_merge(result, _env_overrides(config_dir))
    result["manifest_paths"] = [config_dir / p for p in result["manifest_paths"]]
    result["declarations"] = [config_dir / p for p in result["declarations"]]

    _cached = result
    return result


def _deep_copy_nested(obj: Any) -> Any:
    """Return a deep copy of nested dicts/lists for defaults."""
    if isinstance(obj, dict):
        return {k: _deep_copy_nested(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_deep_copy_nested(x) for x in obj]
    return obj
