"""
Configuration loader — reads cops.yml into the operator config model.

Resolution order, later wins:
    built-in defaults  <  cops.yml  <  COPS_* environment variables

A missing cops.yml is not an error (defaults apply); an unreadable or
invalid one is.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cops.core.errors import CopsError

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "cops.yml"

ENV_PREFIX = "COPS_"


class ConfigError(CopsError):
    """Raised when operator configuration is invalid or unreadable."""


class OperatorConfig(BaseModel):
    """Operator-wide settings; none of these change what a child looks like
    except ``enable_disruption_budget`` and ``owner_references``."""

    model_config = ConfigDict(extra="forbid")

    namespaces: list[str] = Field(default_factory=list)   # empty = all namespaces
    resync_interval: float = Field(default=30.0, gt=0)
    enable_disruption_budget: bool = False
    owner_references: bool = True
    kubectl_timeout: int = Field(default=15, gt=0)
    kubectl_context: str | None = None

    # Requeue backoff for failed passes
    max_attempts: int = Field(default=5, ge=1)
    base_delay: float = Field(default=1.0, gt=0)
    max_delay: float = Field(default=60.0, gt=0)


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for cops.yml starting from the given directory, walking up."""
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for field_name in OperatorConfig.model_fields:
        raw = environ.get(ENV_PREFIX + field_name.upper())
        if raw is None:
            continue
        if field_name == "namespaces":
            overrides[field_name] = [ns.strip() for ns in raw.split(",") if ns.strip()]
        else:
            # pydantic coerces "true"/"30"/"1.5" for the scalar fields
            overrides[field_name] = raw
    return overrides


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> OperatorConfig:
    """Load and validate operator configuration.

    Args:
        path: Explicit path to cops.yml. If None, searches upward.
        environ: Environment mapping (default: ``os.environ``).

    Raises:
        ConfigError: If the file is unreadable or the settings are invalid.
    """
    environ = os.environ if environ is None else environ
    data: dict[str, Any] = {}

    explicit = path is not None
    if path is None:
        path = find_config_file()

    if path is not None:
        if not path.is_file():
            if explicit:
                raise ConfigError(f"Config file not found: {path}")
        else:
            logger.debug("Loading operator config from %s", path)
            try:
                raw = path.read_text(encoding="utf-8")
            except OSError as e:
                raise ConfigError(f"Cannot read {path}: {e}") from e
            try:
                loaded = yaml.safe_load(raw)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e
            if loaded is None:
                loaded = {}
            if not isinstance(loaded, dict):
                raise ConfigError(
                    f"Expected a YAML mapping in {path}, got {type(loaded).__name__}"
                )
            data = loaded

    data.update(_env_overrides(environ))

    try:
        config = OperatorConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid operator configuration: {e}") from e

    logger.info(
        "Operator config: namespaces=%s resync=%.0fs pdb=%s",
        ",".join(config.namespaces) or "*",
        config.resync_interval,
        config.enable_disruption_budget,
    )
    return config
