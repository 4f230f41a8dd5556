"""Site configuration for Inkwell.

Holds the naming conventions of a site tree and loads the optional
``config.yaml`` found inside the configuration directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

CONF_DIR_NAME = ".inkwell"
PUB_DIR_NAME = ".pub"
CONFIG_FILE_NAME = "config.yaml"
DEFAULT_DELIM = "@@@@@@@"
DEFAULT_LAYOUT = "layout.html"
ENV_PREFIX = "INK_"

DEFAULT_CONFIG: dict[str, Any] = {
    "header_delim": DEFAULT_DELIM,
    "port": 8080,
    "show_vars": False,
    "open_browser": True,
}


def load_config(conf_dir: Path | None) -> dict[str, Any]:
    """Load site configuration from config.yaml.

    Args:
        conf_dir: The site configuration directory, or None when unknown.

    Returns:
        Dictionary containing configuration values, with defaults applied.
    """
    config = DEFAULT_CONFIG.copy()
    if conf_dir is None:
        return config
    config_path = conf_dir / CONFIG_FILE_NAME
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
            if isinstance(loaded, dict):
                config.update(loaded)
    return config
