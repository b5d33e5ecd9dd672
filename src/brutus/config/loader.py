"""Configuration loading: TOML files, env var overrides, merge logic.

Discovery order (later overrides earlier):
    1. Built-in defaults (Pydantic model defaults)
    2. User config: ``~/.config/brutus/config.toml``
    3. Project-local config: ``./brutus.toml``
    4. ``$BRUTUS_CONFIG`` environment variable (explicit path)
    5. Programmatic overrides (passed to ``load_config``)

Relative ``working_dir`` and ``status_dir`` values in a config file are
resolved against that file's directory. Provider API keys are read from
the env var named by ``api_key_env`` when ``api_key`` is not set explicitly.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from brutus.core.errors import ConfigError

from .schema import BrutusConfig

# Directory settings written relative to the config file that holds them.
_PATH_KEYS = (("general", "working_dir"), ("coordination", "status_dir"))


def _user_config_path() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / "brutus" / "config.toml"


def _discover_config_files() -> list[Path]:
    """Return config files in merge order (first = lowest priority)."""
    paths = [p for p in (_user_config_path(), Path.cwd() / "brutus.toml") if p.is_file()]

    env_path = os.environ.get("BRUTUS_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.is_file():
            msg = f"BRUTUS_CONFIG points to non-existent file: {env_path}"
            raise ConfigError(msg)
        paths.append(p)

    return paths


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {path}: {e}"
        raise ConfigError(msg) from e
    except OSError as e:
        msg = f"Cannot read config file {path}: {e}"
        raise ConfigError(msg) from e
    return _anchor_paths(data, path.parent)


def _anchor_paths(data: dict[str, Any], base: Path) -> dict[str, Any]:
    """Resolve relative directory settings against the file that set them."""
    for section, key in _PATH_KEYS:
        table = data.get(section)
        if not isinstance(table, dict) or not isinstance(table.get(key), str):
            continue
        value = Path(table[key]).expanduser()
        if not value.is_absolute():
            value = base.resolve() / value
        table[key] = str(value)
    return data


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override wins on conflicts."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> BrutusConfig:
    """Load and validate configuration.

    Args:
        path: Explicit config file path (highest file priority).
        overrides: Dict merged last (highest overall priority).

    Raises:
        ConfigError: On invalid TOML, missing files, or validation failure.
    """
    files = _discover_config_files()
    if path is not None:
        p = Path(path)
        if not p.is_file():
            msg = f"Config file not found: {path}"
            raise ConfigError(msg)
        files.append(p)

    merged: dict[str, Any] = {}
    for config_file in files:
        merged = deep_merge(merged, _read_toml(config_file))
    if overrides:
        merged = deep_merge(merged, overrides)

    try:
        config = BrutusConfig.model_validate(merged)
    except ValidationError as e:
        msg = f"Configuration validation failed: {e}"
        raise ConfigError(msg) from e

    for provider in config.providers.values():
        if provider.api_key is None and provider.api_key_env:
            provider.api_key = os.environ.get(provider.api_key_env)

    return config
