from __future__ import annotations

"""
potluck: configuration and supervision of external development services.

The nginx configuration builder lives in ``potluck.core.directives`` and the
service wrappers in ``potluck.services``.
"""

from potluck.core.directives import NginxConfig
from potluck.domain.config import configure, configure_nginx, get_config, get_nginx_settings
from potluck.domain.exceptions import (
    ConfigurationError,
    InvalidDirectiveError,
    PotluckError,
    ServiceError,
)
from potluck.services import SSL, Nginx, Service, ServiceStatus

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "InvalidDirectiveError",
    "Nginx",
    "NginxConfig",
    "PotluckError",
    "SSL",
    "Service",
    "ServiceError",
    "ServiceStatus",
    "configure",
    "configure_nginx",
    "get_config",
    "get_nginx_settings",
]
