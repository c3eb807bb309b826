"""Loads the images configuration file."""

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from imageprobe.consts import DEFAULT_CONFIG_PATH
from imageprobe.models.model_config import ProbeConfig

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or parsed."""


def load_config(path: Path | str = DEFAULT_CONFIG_PATH) -> ProbeConfig:
    """Read and validate the images configuration.

    Expected format:
        images:
          - alpine:3.18
          - debian:bookworm
        target: xz                              # optional
        command: ["sh", "-c", "xz --version"]   # optional

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Parsed ProbeConfig.

    Raises:
        ConfigError: If the file is missing, is not valid YAML, or does not
            match the expected structure.
    """
    config_path = Path(path)

    try:
        content = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping with an 'images' key")

    try:
        config = ProbeConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {config_path}: {e}") from e

    logger.info(f"Loaded {len(config.images)} images from {config_path}")
    return config
