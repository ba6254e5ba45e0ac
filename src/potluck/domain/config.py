from __future__ import annotations

"""
Configuration Domain Management.

Global settings shared by all potluck services (the data directory) and
the nginx-specific port settings. Settings can be changed in code through
``configure`` / ``configure_nginx`` or loaded from a JSON or YAML file
through ``load_settings``.
"""

import json
import logging
from dataclasses import dataclass, field, fields
from typing import Any, Callable, List, Optional, Tuple

import yaml

from potluck.core.validator import (
    DEFAULT_HTTP_PORT,
    DEFAULT_HTTPS_PORT,
    validate_settings,
)
from potluck.domain.exceptions import ConfigurationError
from potluck.infra.fs import get_default_data_dir, read_text

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Constants & Defaults
# -----------------------------------------------------------------------------
YAML_SUFFIXES = (".yml", ".yaml")

# -----------------------------------------------------------------------------
# Configuration Models
# -----------------------------------------------------------------------------

@dataclass
class PotluckConfig:
    """
    Settings for all potluck services.

    Attributes:
        dir: Directory holding one subdirectory of generated files per service
            instance.
    """
    dir: str = field(default_factory=get_default_data_dir)


@dataclass
class NginxSettings:
    """
    Settings for the nginx service.

    Attributes:
        http_port: Port the generated HTTP server block listens on.
        https_port: Port the generated HTTPS server block listens on.
    """
    http_port: int = DEFAULT_HTTP_PORT
    https_port: int = DEFAULT_HTTPS_PORT


_config = PotluckConfig()
_nginx_settings = NginxSettings()

# -----------------------------------------------------------------------------
# Facade API
# -----------------------------------------------------------------------------

def get_config() -> PotluckConfig:
    return _config


def get_nginx_settings() -> NginxSettings:
    return _nginx_settings


def configure(callback: Optional[Callable[[PotluckConfig], Any]] = None, **changes: Any) -> PotluckConfig:
    """
    Change the global settings.

    Examples:

        configure(dir="/etc/potluck")

        def settings(config):
            config.dir = "/srv/potluck"

        configure(settings)

    Returns:
        PotluckConfig: The global (mutated) instance.
    """
    _apply(_config, callback, changes)
    return _config


def configure_nginx(callback: Optional[Callable[[NginxSettings], Any]] = None, **changes: Any) -> NginxSettings:
    """Change the global nginx settings (see ``configure``)."""
    _apply(_nginx_settings, callback, changes)
    return _nginx_settings


def reset_config() -> None:
    """Restore every global setting to its default."""
    global _config, _nginx_settings
    _config = PotluckConfig()
    _nginx_settings = NginxSettings()

# -----------------------------------------------------------------------------
# Persistence Logic
# -----------------------------------------------------------------------------

def load_settings(path: str, *, strict: bool = False) -> Tuple[PotluckConfig, NginxSettings, List[str]]:
    """
    Read settings from a JSON or YAML file.

    The file content is validated (see ``validate_settings``); fields that
    are missing keep their defaults.

    Args:
        path: Settings file; ``.yml``/``.yaml`` files are parsed as YAML,
            anything else as JSON.
        strict: Raise on invalid fields instead of falling back.

    Returns:
        Tuple of the potluck config, nginx settings, and validation warnings.

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    try:
        content = read_text(path)
        if path.lower().endswith(YAML_SUFFIXES):
            raw = yaml.safe_load(content)
        else:
            raw = json.loads(content) if content.strip() else None
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load settings from {path}: {e}", context={"path": path}) from e

    settings, warnings = validate_settings(raw, strict=strict)
    for w in warnings:
        logger.warning(f"Settings constraint ({path}): {w}")

    config = PotluckConfig(dir=settings["dir"])
    nginx = NginxSettings(**settings["nginx"])
    return config, nginx, warnings


def apply_settings(path: str, *, strict: bool = False) -> List[str]:
    """Load settings from ``path`` into the global instances; return warnings."""
    config, nginx, warnings = load_settings(path, strict=strict)
    configure(dir=config.dir)
    configure_nginx(http_port=nginx.http_port, https_port=nginx.https_port)
    return warnings

# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _apply(target: Any, callback: Optional[Callable[[Any], Any]], changes: dict) -> None:
    unknown = sorted(set(changes) - {f.name for f in fields(target)})
    if unknown:
        raise ConfigurationError(
            f"Unknown {type(target).__name__} setting(s): {', '.join(unknown)}",
            context={"settings": unknown},
        )
    for name, value in changes.items():
        setattr(target, name, value)
    if callback is not None:
        callback(target)
