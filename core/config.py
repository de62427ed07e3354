"""
Session configuration.

Reads config.yaml once and hands the same dict to every component: camera
constraints, the engine module and its options, detection loop pacing,
session rules, logging and the demo UI.

Usage:
    from core.config import get_config, configure_logging
    config = get_config()
    configure_logging(config)
    session_rules = config["session"]

Set FACEAUTH_CONFIG to point at a different file.
"""

import logging
import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional


CONFIG_ENV_VAR = "FACEAUTH_CONFIG"
CONFIG_FILENAME = "config.yaml"
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Loaded once, shared by every caller of get_config()
_config_instance: Optional[Dict[str, Any]] = None


def get_project_root() -> Path:
    """
    Locate the directory holding config.yaml.

    Starts next to this package and walks towards the filesystem root.

    Raises:
        FileNotFoundError: If no ancestor directory holds config.yaml.
    """
    current_dir = Path(__file__).resolve().parent

    while current_dir != current_dir.parent:
        if (current_dir / CONFIG_FILENAME).exists():
            return current_dir
        current_dir = current_dir.parent

    raise FileNotFoundError(
        f"No {CONFIG_FILENAME} found above {Path(__file__).resolve().parent}; "
        f"set {CONFIG_ENV_VAR} to its location."
    )


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Read a YAML config file.

    Args:
        config_path: File to read. Falls back to $FACEAUTH_CONFIG, then to
                     config.yaml at the project root.

    Returns:
        The parsed config; an empty file gives an empty dict.

    Raises:
        FileNotFoundError: The file does not exist.
        yaml.YAMLError: The file is not valid YAML.
    """
    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV_VAR)

    path = Path(config_path) if config_path else get_project_root() / CONFIG_FILENAME
    if not path.exists():
        raise FileNotFoundError(f"Config file missing: {path}")

    with open(path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    return config or {}


def get_config(reload: bool = False) -> Dict[str, Any]:
    """Return the shared config, reading it from disk on first use or when reload is set."""
    global _config_instance

    if reload or _config_instance is None:
        _config_instance = load_config()

    return _config_instance


def get_section(section_name: str, config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Return one top-level section ("camera", "engine", "session", ...).

    Args:
        section_name: Section key.
        config: Dict to read; the shared config when omitted.

    Raises:
        KeyError: Unknown section; the message lists the known ones.
    """
    if config is None:
        config = get_config()

    try:
        return config[section_name]
    except KeyError:
        raise KeyError(
            f"No '{section_name}' section in config "
            f"(have: {', '.join(config.keys())})"
        ) from None


def get_camera_config() -> Dict[str, Any]:
    return get_section("camera")


def get_engine_config() -> Dict[str, Any]:
    return get_section("engine")


def get_detection_loop_config() -> Dict[str, Any]:
    return get_section("detection_loop")


def get_session_config() -> Dict[str, Any]:
    return get_section("session")


def get_ui_config() -> Dict[str, Any]:
    return get_section("ui")


def configure_logging(config: Optional[Dict[str, Any]] = None) -> None:
    """
    Set up root logging from the `logging` section.

    INFO and the default format apply when the section is absent.
    """
    if config is None:
        config = get_config()
    log_config = config.get("logging", {}) or {}

    level_name = str(log_config.get("level", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=log_config.get("format", DEFAULT_LOG_FORMAT),
    )


if __name__ == "__main__":
    config = get_config()
    print(f"Config sections: {', '.join(config.keys())}")

    camera = get_camera_config()
    print(f"Camera: {camera['width']}x{camera['height']} @ {camera['fps']} fps")
    print(f"Engine module: {get_engine_config()['module']}")
    print(f"Minimum identifiers to register: {get_session_config()['min_register_identifiers']}")
