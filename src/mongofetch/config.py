"""
Configuration loading for Mongofetch.

Settings live in a YAML file (``mongofetch.yaml``) in the platform config
directory. Keys are upper-case; unknown keys are ignored. Values given on the
command line override the file.
"""

import os
import platform
from typing import Any, Dict, Optional

import platformdirs
import yaml

from mongofetch.constants import (
    APP_NAME,
    CONFIG_FILE_NAME,
    DEFAULT_ARCH,
    DEFAULT_DOWNLOAD_DIR,
    DEFAULT_EDITION,
    DEFAULT_FEED_URL,
    FEED_REQUEST_TIMEOUT,
)
from mongofetch.download.builds import parse_arch, parse_edition
from mongofetch.exceptions import (
    BuildOptionsError,
    ConfigFileError,
    ConfigValidationError,
)
from mongofetch.log_utils import logger


def default_target() -> str:
    """Return the build target matching the host operating system."""
    system = platform.system()
    if system == "Darwin":
        return "osx"
    if system == "Windows":
        return "windows_x86_64"
    return "linux"


def default_config() -> Dict[str, Any]:
    return {
        "DOWNLOAD_DIR": DEFAULT_DOWNLOAD_DIR,
        "FEED_URL": DEFAULT_FEED_URL,
        "MAX_WORKERS": os.cpu_count() or 1,
        "EDITION": DEFAULT_EDITION,
        "ARCH": DEFAULT_ARCH,
        "TARGET": default_target(),
        "FORCE_DOWNLOAD": False,
        "LOG_LEVEL": "INFO",
        "FEED_TIMEOUT": FEED_REQUEST_TIMEOUT,
    }


def get_config_file_path() -> str:
    return os.path.join(platformdirs.user_config_dir(APP_NAME), CONFIG_FILE_NAME)


def _validate(config: Dict[str, Any]) -> Dict[str, Any]:
    try:
        config["EDITION"] = parse_edition(config["EDITION"])
        config["ARCH"] = parse_arch(config["ARCH"])
    except BuildOptionsError as e:
        raise ConfigValidationError(str(e)) from e

    workers = config["MAX_WORKERS"]
    if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
        raise ConfigValidationError(
            "MAX_WORKERS must be a positive integer", details=f"got {workers!r}"
        )

    timeout = config["FEED_TIMEOUT"]
    if (
        isinstance(timeout, bool)
        or not isinstance(timeout, (int, float))
        or timeout <= 0
    ):
        raise ConfigValidationError(
            "FEED_TIMEOUT must be a positive number", details=f"got {timeout!r}"
        )

    if not config["TARGET"] or not isinstance(config["TARGET"], str):
        raise ConfigValidationError("TARGET must be a non-empty string")

    config["FORCE_DOWNLOAD"] = bool(config["FORCE_DOWNLOAD"])
    config["DOWNLOAD_DIR"] = os.path.expanduser(str(config["DOWNLOAD_DIR"]))
    return config


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load and validate the configuration.

    Parameters:
        path (Optional[str]): Explicit config file; defaults to the file in the
            platform config directory.

    Returns:
        Dict[str, Any]: The defaults overlaid with the file's values. A missing
        file yields the defaults.

    Raises:
        ConfigFileError: If the file cannot be read or is not valid YAML.
        ConfigValidationError: If the document is not a mapping or a value is
            invalid.
    """
    config_path = path or get_config_file_path()
    config = default_config()

    if not os.path.exists(config_path):
        logger.debug(f"No configuration file at {config_path}, using defaults")
        return _validate(config)

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except OSError as e:
        raise ConfigFileError(
            f"could not read configuration file {config_path}", details=str(e)
        ) from e
    except yaml.YAMLError as e:
        raise ConfigFileError(
            f"invalid YAML in configuration file {config_path}", details=str(e)
        ) from e

    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(
            f"configuration file {config_path} must contain a mapping",
            details=f"got {type(loaded).__name__}",
        )

    for key, value in loaded.items():
        if key not in config:
            logger.debug(f"Ignoring unknown configuration key {key}")
            continue
        config[key] = value

    logger.debug(f"Loaded configuration from {config_path}")
    return _validate(config)
