"""Configuration loading utilities."""

import json
import threading
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from capslap.config.schema import Config
from capslap.utils.exceptions import ConfigError
from capslap.utils.helpers import ensure_dir

# Keys whose children are env var names and must keep their spelling.
_VERBATIM_KEYS = {"env"}

_cache_lock = threading.Lock()
# (resolved path, file mtime or None, loaded config)
_cached: tuple[Path, float | None, Config] | None = None


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".capslap" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("config root must be a JSON object")
            # Keyword init keeps the CAPSLAP_* env source for keys the file omits.
            return Config(**convert_keys(data))
        except (json.JSONDecodeError, ValidationError, ValueError) as e:
            raise ConfigError(
                f"Failed to load config from {path}: {e}. "
                "Fix the file or remove it to regenerate defaults.",
                path=str(path),
            ) from e

    return Config()


def _mtime(path: Path) -> float | None:
    try:
        return path.stat().st_mtime
    except OSError:
        return None


def get_config(config_path: Path | None = None, *, force_reload: bool = False) -> Config:
    """Return the loaded config, re-reading it when the path or the file's mtime changes."""
    global _cached
    path = Path(config_path or get_config_path()).expanduser().resolve()
    stamp = _mtime(path)
    with _cache_lock:
        if not force_reload and _cached is not None and _cached[:2] == (path, stamp):
            return _cached[2]
        config = load_config(path)
        _cached = (path, stamp, config)
        return config


def clear_config_cache() -> None:
    global _cached
    with _cache_lock:
        _cached = None


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    ensure_dir(path.parent)

    data = convert_to_camel(config.model_dump())

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    clear_config_cache()


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        result: dict[str, Any] = {}
        for k, v in data.items():
            new_k = camel_to_snake(k)
            if new_k in _VERBATIM_KEYS and isinstance(v, dict):
                result[new_k] = dict(v)
            else:
                result[new_k] = convert_keys(v)
        return result
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase."""
    if isinstance(data, dict):
        result: dict[str, Any] = {}
        for k, v in data.items():
            new_k = snake_to_camel(k)
            if new_k in _VERBATIM_KEYS and isinstance(v, dict):
                result[new_k] = dict(v)
            else:
                result[new_k] = convert_to_camel(v)
        return result
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
