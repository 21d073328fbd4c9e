"""
SOMIGRATIONS Saved Object Migration Engine
Copyright (C) 2024 HOMESERVER LLC

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

"""
Configuration helpers shared by the engine and its modules.

The root index.json holds the engine configuration; these helpers load it,
fill in defaults and expose the debug flag.
"""

import copy
import json
import os
from typing import Any, Dict, Optional

from .index import log_message

ROOT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "..", "index.json")

DEFAULT_CONFIG = {
    "metadata": {
        "schema_version": "1.0.0",
        "document_type": "cases-comments",
    },
    "config": {
        "target_version": None,
        "min_deferred_version": "8.10.0",
        "max_workers": 4,
        "default_source_version": "0.0.0",
    },
    "debug": False,
}


class ConfigError(Exception):
    """Custom exception for an explicitly requested configuration that cannot be used."""
    pass


def _merge_defaults(defaults: Dict[str, Any], loaded: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(defaults)
    for key, value in loaded.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_root_config(config_path: Optional[str] = None, required: bool = False) -> Dict[str, Any]:
    """
    Load the engine configuration from index.json.

    Args:
        config_path: Path to an index.json file (defaults to the packaged one)
        required: Raise instead of falling back to the defaults

    Returns:
        dict: Loaded configuration merged over DEFAULT_CONFIG, or the defaults
        alone if the file is missing or invalid and not required

    Raises:
        ConfigError: if ``required`` and the file is missing or invalid
    """
    path = config_path or ROOT_CONFIG_PATH
    try:
        with open(path, 'r') as f:
            loaded = json.load(f)
        if not isinstance(loaded, dict):
            raise ValueError("configuration root must be an object")
        return _merge_defaults(DEFAULT_CONFIG, loaded)
    except (OSError, ValueError) as e:
        if required:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e
        log_message(f"Failed to load config from {path}: {e}", "WARNING")
        return copy.deepcopy(DEFAULT_CONFIG)


def conditional_config_return(result_dict: dict, config_data: dict, debug_key: str = "debug") -> dict:
    """
    Conditionally add config to result based on debug flag.

    Args:
        result_dict: The result dictionary to potentially add config to
        config_data: The configuration data to add if debug is enabled
        debug_key: The key to check in root config (default: "debug")

    Returns:
        dict: Result dictionary with config added if debug is enabled
    """
    if get_module_debug_mode(debug_key=debug_key):
        result_dict["config"] = config_data
    return result_dict


def get_module_debug_mode(config: Optional[Dict[str, Any]] = None, debug_key: str = "debug") -> bool:
    """Return True when the given configuration (or the packaged one) enables debug mode."""
    if config is None:
        config = load_root_config()
    return bool(config.get(debug_key, False))
