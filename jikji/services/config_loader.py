"""Load the exporter configuration document from TOML."""

import logging
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from jikji.exceptions import ConfigurationError
from jikji.models.config import Configuration

logger = logging.getLogger(__name__)


def parse_configuration(document: str) -> Configuration:
    """Parse a TOML string into a validated ``Configuration``.

    Raises:
        ConfigurationError: On TOML syntax errors or schema violations.
    """
    try:
        data = tomllib.loads(document)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Configuration is not valid TOML: {e}") from e

    return _validate(data)


def load_configuration(path: str | Path) -> Configuration:
    """Read and validate the configuration file at ``path``."""
    config_path = Path(path)
    logger.info(f"Loading configuration from: {config_path}")

    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {config_path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"{config_path} is not valid TOML: {e}") from e

    configuration = _validate(data)
    logger.info(
        f"Loaded configuration {configuration.title!r}: "
        f"{len(configuration.databases)} databases, "
        f"{configuration.metric_count} metrics"
    )
    return configuration


def _validate(data: dict[str, Any]) -> Configuration:
    try:
        return Configuration.model_validate(data)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors(include_url=False, include_input=False)
        ]
        raise ConfigurationError.from_errors(errors) from e
