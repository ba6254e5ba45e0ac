from __future__ import annotations

from .nginx import Nginx
from .service import ManageCommands, Service, ServiceStatus
from .ssl import SSL

__all__ = [
    "ManageCommands",
    "Nginx",
    "SSL",
    "Service",
    "ServiceStatus",
]
