"""Configuration loading for officehours.

A config file holds process-wide defaults plus an optional ``servers`` section
with per-server overrides::

    queue:
      auto_clear_minutes: 30
    backup:
      enabled: true
      directory: ${OFFICEHOURS_DATA}/backups
    servers:
      guild-1:
        queue:
          auto_clear_minutes: 90

``${VAR}`` references are expanded from the environment (and a ``.env`` file
next to the config file) before validation.
"""

import copy
import os
import re
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from officehours.core.config.models import Config

ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def expand_env_vars(value: Any) -> Any:
    """Expand ``${VAR}`` references in a string or in nested dicts and lists.

    Unknown variables are left as written so :func:`check_unexpanded_vars`
    can report them.

    Examples:
        >>> os.environ['OFFICEHOURS_DATA'] = '/srv/officehours'
        >>> expand_env_vars({'backup': {'directory': '${OFFICEHOURS_DATA}/backups'}})
        {'backup': {'directory': '/srv/officehours/backups'}}
    """
    if isinstance(value, dict):
        return {key: expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    if isinstance(value, str):
        return ENV_VAR_PATTERN.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)
    return value


def _iter_strings(value: Any) -> Iterator[str]:
    if isinstance(value, dict):
        for item in value.values():
            yield from _iter_strings(item)
    elif isinstance(value, list):
        for item in value:
            yield from _iter_strings(item)
    elif isinstance(value, str):
        yield value


def check_unexpanded_vars(data: Any, source: str) -> None:
    """Fail if any ``${VAR}`` reference survived expansion.

    Args:
        data: Expanded configuration data.
        source: Label used in the error message (e.g. the file path).

    Raises:
        ValueError: Listing every unresolved variable.
    """
    unresolved = sorted(
        {f"${{{name}}}" for text in _iter_strings(data) for name in ENV_VAR_PATTERN.findall(text)}
    )
    if unresolved:
        raise ValueError(
            f"Unresolved environment variable(s) in {source}: {', '.join(unresolved)}. "
            f"Set these variables or remove the ${{VAR}} references."
        )


def merge_configs(base_config: dict[str, Any], override_config: dict[str, Any]) -> dict[str, Any]:
    """Deep merge ``override_config`` over ``base_config`` without mutating either.

    Examples:
        >>> merge_configs({'queue': {'auto_clear_minutes': 30, 'periodic_update_minutes': 60}},
        ...               {'queue': {'auto_clear_minutes': 90}})
        {'queue': {'auto_clear_minutes': 90, 'periodic_update_minutes': 60}}
    """
    result = copy.deepcopy(base_config)
    for key, value in override_config.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def load_config(path: Path | str, overrides: dict[str, Any] | None = None) -> Config:
    """Load configuration from a YAML file.

    A ``.env`` file next to the config file is loaded first, without
    replacing variables that are already set.

    Args:
        path: Path to the YAML configuration file.
        overrides: Settings merged over the file contents (e.g. from the CLI).

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the YAML is malformed.
        ValueError: If a ${VAR} reference cannot be resolved.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    env_file = config_path.parent / ".env"
    if env_file.exists():
        load_dotenv(env_file, override=False)

    with config_path.open() as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}

    if overrides:
        data = merge_configs(data, overrides)

    data = expand_env_vars(data)
    check_unexpanded_vars(data, source=str(config_path))

    return Config(**data)


def resolve_server_config(config: Config, server_id: str) -> Config:
    """Effective config for one server: its ``servers`` entry merged over the defaults.

    Returns ``config`` itself when the server has no overrides.
    """
    overrides = config.servers.get(server_id)
    if not overrides:
        return config
    base = config.model_dump(exclude={"servers"})
    return Config(**merge_configs(base, overrides))
