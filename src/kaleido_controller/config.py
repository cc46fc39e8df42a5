"""Controller settings: environment defaults overlaid by an optional YAML file."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import cast

import yaml
from pydantic import BaseModel, Field, ValidationError

from kaleido_controller import const
from kaleido_controller.logging_abstraction import get_logger
from kaleido_controller.protocol.exceptions import KaleidoProtocolError
from kaleido_controller.transport.retry_policy import RetryPolicy, TimeoutConfig

logger = get_logger(__name__)

__all__ = ["ConfigurationError", "KaleidoSettings", "load_settings"]

CONFIG_SECTION = "kaleido"


class ConfigurationError(KaleidoProtocolError):
    """Settings could not be read or did not validate."""


class KaleidoSettings(BaseModel):
    """Connection and runtime settings for one Kaleido controller."""

    host: str | None = Field(default_factory=lambda: const.KALEIDO_HOST)
    port: int = Field(default_factory=lambda: const.KALEIDO_PORT, gt=0, lt=65536)
    connect_timeout: float = Field(default=3.0, gt=0)
    write_timeout: float = Field(default=2.0, gt=0)
    response_timeout: float = Field(default_factory=lambda: const.KALEIDO_RESPONSE_TIMEOUT, gt=0)
    max_buffer_bytes: int = Field(default_factory=lambda: const.KALEIDO_MAX_BUFFER_BYTES, gt=0)
    reconnect_base_delay: float = Field(default=1.0, gt=0)
    reconnect_max_delay: float = Field(default=30.0, gt=0)
    reconnect_max_attempts: int | None = None
    debug: bool = Field(default_factory=lambda: const.KALEIDO_DEBUG)
    enable_metrics: bool = Field(default_factory=lambda: const.KALEIDO_ENABLE_METRICS)
    metrics_port: int = Field(default_factory=lambda: const.KALEIDO_METRICS_PORT, gt=0, lt=65536)

    def timeout_config(self) -> TimeoutConfig:
        return TimeoutConfig(
            response_timeout_seconds=self.response_timeout,
            connect_timeout_seconds=self.connect_timeout,
            write_timeout_seconds=self.write_timeout,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            base_delay_seconds=self.reconnect_base_delay,
            max_delay_seconds=self.reconnect_max_delay,
            max_attempts=self.reconnect_max_attempts,
        )


def _settings_section(document: object, config_file: Path) -> Mapping[str, object]:
    if document is None:
        return {}
    if not isinstance(document, Mapping):
        msg = f"{config_file}: expected a mapping at the document root"
        raise ConfigurationError(msg)
    root = cast("Mapping[str, object]", document)
    section = root.get(CONFIG_SECTION, root)
    if not isinstance(section, Mapping):
        msg = f"{config_file}: '{CONFIG_SECTION}' must be a mapping"
        raise ConfigurationError(msg)
    return cast("Mapping[str, object]", section)


def load_settings(config_file: Path | None = None, **overrides: object) -> KaleidoSettings:
    """Build settings from environment defaults, an optional YAML file and explicit overrides.

    Overrides whose value is None are ignored, so unset CLI options do not mask
    file or environment values.

    Raises:
        ConfigurationError: The file is unreadable, not YAML, or a value is invalid

    """
    values: dict[str, object] = {}
    if config_file is not None:
        logger.debug("Loading settings file: %s", config_file)
        try:
            with config_file.open() as f:
                document = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            msg = f"Failed to read config file {config_file}: {e}"
            raise ConfigurationError(msg) from e
        values.update(_settings_section(document, config_file))

    values.update({key: value for key, value in overrides.items() if value is not None})

    try:
        settings = KaleidoSettings.model_validate(values)
    except ValidationError as e:
        msg = f"Invalid settings: {e}"
        raise ConfigurationError(msg) from e

    logger.debug(
        "Settings loaded",
        extra={"host": settings.host, "port": settings.port, "source": str(config_file or "environment")},
    )
    return settings
