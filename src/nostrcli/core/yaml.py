"""YAML configuration loading for nostrcli.

Loads configuration files with ``yaml.safe_load`` so that untrusted YAML
cannot instantiate arbitrary Python objects. Used by
[Client.from_yaml()][nostrcli.core.client.Client.from_yaml] and
[RelayPool.from_yaml()][nostrcli.core.pool.RelayPool.from_yaml].

Examples:
    ```python
    from nostrcli.core.yaml import load_yaml

    config = load_yaml("~/.nostr-cli-app/config.yaml")
    ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from nostrcli.exceptions import ConfigurationError


def load_yaml(config_path: str | Path) -> dict[str, Any]:
    """Load and parse a YAML configuration file.

    Args:
        config_path: Path to the YAML file; ``~`` is expanded.

    Returns:
        Parsed configuration as a nested dictionary. Returns an empty dict
        if the file exists but contains no data.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is not valid YAML or its top level
            is not a mapping.

    Warning:
        The structure of the returned dictionary is not validated here.
        Callers pass it to a Pydantic model
        ([ClientConfig][nostrcli.core.client.ClientConfig],
        [PoolConfig][nostrcli.core.pool.PoolConfig]) for schema validation.
    """
    path = Path(config_path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with path.open(encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data
