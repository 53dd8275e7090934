# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Configuration management for readalong.
Handles loading and saving settings from a YAML config file.
"""

import copy
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, TypedDict

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME: str = ".readalong.yaml"


class TrackingSettings(TypedDict):
    """Type definition for tracking configuration settings."""
    lookahead: int
    lookbehind: int
    min_match_len: int
    match_threshold: float
    anchor_size: int
    history_size: int


class RecognitionSettings(TypedDict):
    """Type definition for speech recognition settings."""
    lang: str
    restart_delay_ms: int


class Config(TypedDict):
    """Type definition for the complete configuration."""
    # Server settings
    host: str
    port: int
    tracking: TrackingSettings
    recognition: RecognitionSettings


# Default configuration values
DEFAULT_CONFIG: Config = {
    # Server settings
    "host": "127.0.0.1",
    "port": 8000,

    # Window search tuning
    "tracking": {
        # Forward search distance; bridges gaps left by recognizer restarts
        "lookahead": 16,
        "lookbehind": 2,
        # Script words shorter than this only count on an exact match
        "min_match_len": 2,
        # Average word similarity (0-1) an alignment must exceed
        "match_threshold": 0.45,
        "anchor_size": 3,
        # Final spoken words remembered for anchoring
        "history_size": 20,
    },

    # Recognizer settings (passed through to the client)
    "recognition": {
        "lang": "en-US",
        "restart_delay_ms": 1000,
    },
}


def get_config_path() -> Path:
    """Get the path to the config file in the current working directory."""
    return Path.cwd() / CONFIG_FILENAME


def _deep_merge(base, override):
    """
    Deep merge two dictionaries, with override taking precedence.
    Returns a new dictionary without modifying the originals.

    Args:
        base: Base dictionary to merge from.
        override: Dictionary with values that take precedence over base.

    Returns:
        New dictionary with merged values.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict):
            # A section that is not a mapping (e.g. an empty "tracking:") is ignored
            if isinstance(value, dict):
                result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _section(config: Mapping[str, object], name: str) -> dict[str, Any]:
    """A config section, or an empty one if it is missing or not a mapping."""
    section: object = config.get(name)
    return section if isinstance(section, dict) else {}


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file, merged with defaults.

    Args:
        config_path: Optional path to config file. If None, uses default location.

    Returns:
        Configuration dictionary with all values (defaults + overrides from file).
    """
    if config_path is None:
        config_path = get_config_path()

    # Start with defaults
    config: dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)  # type: ignore[assignment]

    # Load from file if it exists
    if config_path.exists():
        try:
            with open(config_path, encoding='utf-8') as f:
                file_config: dict[str, Any] | None = yaml.safe_load(f)
                if isinstance(file_config, dict):
                    config = _deep_merge(config, file_config)
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Could not load config from %s: %s", config_path, e)

    return config  # type: ignore[return-value]


def save_config(config: Config, config_path: Path | None = None) -> bool:
    """
    Save configuration to file.

    Args:
        config: Configuration dictionary to save.
        config_path: Optional path to config file. If None, uses default location.

    Returns:
        True if save was successful, False otherwise.
    """
    if config_path is None:
        config_path = get_config_path()

    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(dict(config), f, default_flow_style=False, sort_keys=False)
        return True
    except (OSError, yaml.YAMLError) as e:
        logger.error("Error saving config to %s: %s", config_path, e)
        return False


def get_tracking_settings(config: Config) -> TrackingSettings:
    """
    Extract tracking settings from config.

    Args:
        config: Configuration dictionary.

    Returns:
        Tracking settings dictionary.
    """
    return _deep_merge(
        DEFAULT_CONFIG["tracking"], _section(config, "tracking"))  # type: ignore[return-value]


def get_recognition_settings(config: Config) -> RecognitionSettings:
    """
    Extract recognition settings from config.

    Args:
        config: Configuration dictionary.

    Returns:
        Recognition settings dictionary.
    """
    return _deep_merge(
        DEFAULT_CONFIG["recognition"], _section(config, "recognition"))  # type: ignore[return-value]


def update_config_tracking(config: Config, tracking_settings: dict[str, Any]) -> Config:
    """
    Update the tracking section of the config with new settings.
    Returns a new config dict.

    Args:
        config: Current configuration.
        tracking_settings: New tracking settings to merge in.

    Returns:
        New configuration with updated tracking settings.
    """
    new_config: dict[str, Any] = _deep_merge({}, config)
    new_config["tracking"] = _deep_merge(
        _section(new_config, "tracking"),
        tracking_settings
    )
    return new_config  # type: ignore[return-value]
