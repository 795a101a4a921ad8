"""YAML configuration loading for relaysite.

Safe YAML loading via ``yaml.safe_load`` for
[SiteSettings.from_yaml()][relaysite.core.settings.SiteSettings.from_yaml].

Examples:
    ```python
    from relaysite.core.yaml import load_yaml

    config = load_yaml("config/site.yaml")
    ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError


def load_yaml(config_path: str | Path) -> dict[str, Any]:
    """Load and parse a YAML configuration file.

    Args:
        config_path: Path to the YAML file (absolute or relative).

    Returns:
        Parsed configuration as a nested dictionary. Returns an empty dict
        if the file exists but contains no data.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is not valid YAML or its top level
            is not a mapping.

    Warning:
        The structure of the returned dictionary is not validated here;
        pass it to [SiteSettings][relaysite.core.settings.SiteSettings].
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with path.open(encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"{config_path}: top level must be a mapping, got {type(data).__name__}"
        )
    return data
