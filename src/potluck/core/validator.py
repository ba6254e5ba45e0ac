from __future__ import annotations

"""
Settings Validation Service.

Normalizes untrusted settings (from a JSON/YAML file or keyword arguments)
into the typed values used by PotluckConfig and NginxSettings. Invalid values
fall back to defaults with a warning, or raise in strict mode.
"""

import logging
from typing import Any, Dict, List, Mapping, Tuple

from potluck.domain.exceptions import ConfigurationError
from potluck.infra.fs import get_default_data_dir, normalize_path

logger = logging.getLogger(__name__)

DEFAULT_HTTP_PORT = 8080
DEFAULT_HTTPS_PORT = 4433

# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def get_default_settings() -> Dict[str, Any]:
    """Default values for every recognized setting."""
    return {
        "dir": get_default_data_dir(),
        "nginx": {
            "http_port": DEFAULT_HTTP_PORT,
            "https_port": DEFAULT_HTTPS_PORT,
        },
    }


def validate_settings(
        settings: Any,
        *,
        strict: bool = False,
) -> Tuple[Dict[str, Any], List[str]]:
    """
    Validate and normalize a settings mapping.

    Args:
        settings: Raw settings (usually a parsed file).
        strict: Raise ConfigurationError instead of falling back to defaults.

    Returns:
        Tuple[Dict[str, Any], List[str]]: Normalized settings and warnings.
    """
    warnings: List[str] = []
    defaults = get_default_settings()

    if settings is None:
        return defaults, warnings

    if not isinstance(settings, Mapping):
        msg = f"Invalid settings type: expected mapping, received {type(settings).__name__}."
        if strict:
            raise ConfigurationError(msg)
        warnings.append(f"{msg} Using defaults.")
        logger.warning(msg)
        return defaults, warnings

    known = set(defaults)
    for key in settings:
        if key not in known:
            _fail(f"Unknown setting '{key}'.", warnings, strict, suffix="Ignored.")

    merged: Dict[str, Any] = dict(defaults)

    merged["dir"] = normalize_path(
        _as_str(settings.get("dir"), defaults["dir"], "dir", warnings, strict),
        defaults["dir"],
    )

    nginx_raw = settings.get("nginx")
    nginx_defaults = defaults["nginx"]
    if nginx_raw is None:
        nginx_raw = {}
    elif not isinstance(nginx_raw, Mapping):
        _fail(
            f"Invalid field 'nginx': expected mapping, received {type(nginx_raw).__name__}.",
            warnings, strict,
        )
        nginx_raw = {}

    merged["nginx"] = {
        field: _as_port(nginx_raw.get(field), fallback, f"nginx.{field}", warnings, strict)
        for field, fallback in nginx_defaults.items()
    }

    if merged["nginx"]["http_port"] == merged["nginx"]["https_port"]:
        _fail(
            "Fields 'nginx.http_port' and 'nginx.https_port' must differ.",
            warnings, strict,
        )
        merged["nginx"] = dict(nginx_defaults)

    return merged, warnings

# -----------------------------------------------------------------------------
# PRIVATE HELPERS: TYPE COERCION
# -----------------------------------------------------------------------------

def _fail(msg: str, warnings: List[str], strict: bool, suffix: str = "Using fallback.") -> None:
    if strict:
        raise ConfigurationError(msg)
    warnings.append(f"{msg} {suffix}")


def _as_str(value: Any, fallback: Any, field: str, warnings: List[str], strict: bool) -> Any:
    """Validate and strip string inputs."""
    if value is None:
        return fallback
    if isinstance(value, str):
        v = value.strip()
        return v if v else fallback

    _fail(f"Invalid field '{field}': expected str, received {type(value).__name__}.", warnings, strict)
    return fallback


def _as_port(value: Any, fallback: int, field: str, warnings: List[str], strict: bool) -> int:
    """Coerce ints and numeric strings into a TCP port number."""
    if value is None:
        return fallback

    port = None
    if isinstance(value, int) and not isinstance(value, bool):
        port = value
    elif isinstance(value, str) and value.strip().isdigit() and not strict:
        port = int(value.strip())
        warnings.append(f"Field '{field}' converted from '{value}' to {port}.")

    if port is None:
        _fail(f"Invalid field '{field}': expected int, received {type(value).__name__}.", warnings, strict)
        return fallback

    if not 1 <= port <= 65535:
        _fail(f"Invalid field '{field}': port {port} out of range 1-65535.", warnings, strict)
        return fallback

    return port
