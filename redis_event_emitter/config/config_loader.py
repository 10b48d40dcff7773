"""
Purpose:
    - Loads the [redis_event_emitter] section of a TOML file
    - Overlays REDIS_EVENT_EMITTER_* environment variables
    - Validates the result into RedisEventEmitterOptions

Example file:
    [redis_event_emitter]
    host = "redis.internal"
    port = 6380
    scope = "orders-service"
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from redis_event_emitter.config.configs import RedisEventEmitterOptions
from redis_event_emitter.errors.errors import ConfigurationError

_LOGGER = logging.getLogger(__name__)

DEFAULT_SECTION = "redis_event_emitter"
ENV_PREFIX = "REDIS_EVENT_EMITTER_"


class ConfigLoader:
    """
    Config-loader; loading toml file.
    """

    def __init__(self, base_dir: str = ".", env_prefix: str = ENV_PREFIX) -> None:
        if not env_prefix:
            raise ValueError("Environment prefix must be a non-empty string")
        self._base_dir = base_dir
        self._env_prefix = env_prefix

    def load(self, file_name: str) -> dict[str, Any]:
        path = Path(file_name)
        if not path.is_absolute():
            path = Path(self._base_dir) / file_name

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open("rb") as f:
            try:
                return tomllib.load(f)
            except tomllib.TOMLDecodeError as exc:
                raise ConfigurationError(f"Invalid TOML in {path}: {exc}") from exc

    def env_overrides(self, environ: Optional[Mapping[str, str]] = None) -> dict[str, str]:
        """Map REDIS_EVENT_EMITTER_<FIELD> variables to option names."""
        environ = os.environ if environ is None else environ
        known = set(RedisEventEmitterOptions.model_fields)
        overrides: dict[str, str] = {}
        for key, value in environ.items():
            if not key.startswith(self._env_prefix):
                continue
            field_name = key[len(self._env_prefix):].lower()
            if field_name not in known:
                _LOGGER.debug(
                    "env_override_ignored",
                    extra={"event": "env_override_ignored", "variable": key},
                )
                continue
            overrides[field_name] = value
        return overrides

    def load_options(
        self,
        file_name: Optional[str] = None,
        *,
        section: str = DEFAULT_SECTION,
        environ: Optional[Mapping[str, str]] = None,
    ) -> RedisEventEmitterOptions:
        """
        Build options from (in increasing precedence) defaults, the TOML section and
        environment variables.
        """
        data: dict[str, Any] = {}
        if file_name is not None:
            raw = self.load(file_name)
            section_data = raw.get(section, {})
            if not isinstance(section_data, dict):
                raise ConfigurationError(
                    f"[{section}] must be a table", field=section, value=section_data
                )
            data.update(section_data)

        overrides = self.env_overrides(environ)
        data.update(overrides)

        try:
            options = RedisEventEmitterOptions.model_validate(data)
        except ValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ())) or None
            raise ConfigurationError(
                f"Invalid event emitter configuration: {first.get('msg')}",
                field=field,
                value=first.get("input"),
                details={"errors": exc.error_count()},
            ) from exc

        _LOGGER.debug(
            "emitter_config_resolved",
            extra={
                "event": "emitter_config_resolved",
                "keys_total": len(data),
                "env_overrides": sorted(overrides),
            },
        )
        return options
