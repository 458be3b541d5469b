"""Server configuration: pydantic settings loaded from YAML and the environment.

Typical usage::

    settings = load_settings(Path("graphmem.yaml"))
    settings.protocol_versions   # ["2025-06-18", ...]

Values are resolved in this order (later wins): model defaults, the YAML
file (``--config`` or ``$GRAPHMEM_CONFIG``), ``GRAPHMEM_*`` variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from graphmem import __version__

SUPPORTED_PROTOCOL_VERSIONS = ["2025-06-18", "2025-03-26", "2024-11-05"]

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}

# Environment variable -> settings field.
_ENV_OVERRIDES = {
    "GRAPHMEM_LOG_LEVEL": "log_level",
    "GRAPHMEM_FILES_ROOT": "files_root",
    "GRAPHMEM_REQUIRE_INITIALIZE": "require_initialize",
    "GRAPHMEM_DEFAULT_CONTEXT": "default_context",
}


class ConfigError(Exception):
    """Raised when a configuration file cannot be read or fails validation."""


class TelemetrySettings(BaseModel):
    """Optional telemetry configuration."""

    enabled: bool = False
    otlp_endpoint: str | None = None


class ServerSettings(BaseModel):
    """Everything the stdio server needs at startup."""

    name: str = "graphmem"
    version: str = __version__
    protocol_versions: list[str] = Field(
        default_factory=lambda: list(SUPPORTED_PROTOCOL_VERSIONS),
        min_length=1,
    )
    require_initialize: bool = Field(
        default=False,
        description="Reject every method except 'initialize' until a handshake succeeds.",
    )
    instructions: str | None = None
    log_level: str = "INFO"
    max_line_bytes: int = Field(default=16 * 1024 * 1024, gt=1024)
    files_root: Path = Field(default_factory=Path.cwd)
    contexts: list[str] = Field(default_factory=lambda: ["personal", "work"], min_length=1)
    default_context: str = "personal"
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            msg = f"unknown log level '{value}'"
            raise ValueError(msg)
        return level

    @model_validator(mode="after")
    def _default_context_exists(self) -> ServerSettings:
        if self.default_context not in self.contexts:
            msg = f"default_context '{self.default_context}' not in contexts {self.contexts}"
            raise ValueError(msg)
        return self

    @property
    def latest_protocol_version(self) -> str:
        return self.protocol_versions[0]


def load_settings(path: Path | None = None, **overrides: Any) -> ServerSettings:
    """Build :class:`ServerSettings` from *path*, the environment, and *overrides*.

    ``None`` values in *overrides* are ignored, so CLI options that were not
    given do not mask the file or the environment.

    Raises:
        ConfigError: On unreadable files, YAML errors, or validation failures.
    """
    if path is None and os.environ.get("GRAPHMEM_CONFIG"):
        path = Path(os.environ["GRAPHMEM_CONFIG"])

    data: dict[str, Any] = _read_file(path) if path is not None else {}

    for env_name, field in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            data[field] = value

    data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return ServerSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def _read_file(path: Path) -> dict[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc

    expanded = os.path.expandvars(raw)

    try:
        data: Any = yaml.safe_load(expanded)
    except yaml.YAMLError as exc:
        raise ConfigError(f"YAML parse error: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Config YAML must be a mapping")
    return data
