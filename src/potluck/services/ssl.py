from __future__ import annotations

"""
SSL Settings for the nginx service.

Describes the TLS material used by the HTTPS server block and the ssl_*
directives derived from it. Certificates are either all supplied by the
caller or all left to an external provisioner, which uses ``files_present``
to decide whether self-signed files have to be produced.
"""

import copy
import os
from typing import Any, Dict, Mapping, Optional

from potluck.domain.exceptions import ConfigurationError

# Based on https://hackernoon.com/how-properly-configure-nginx-server-for-tls-sg1d3udt
DEFAULT_CONFIG: Dict[str, Any] = {
    "ssl_ciphers": "ECDH+AESGCM:ECDH+AES256-CBC:ECDH+AES128-CBC:DH+3DES:!ADH:!AECDH:!MD5",
    "ssl_prefer_server_ciphers": "on",
    "ssl_protocols": "TLSv1.2 TLSv1.3",
    "ssl_session_cache": "shared:SSL:40m",
    "ssl_session_tickets": "on",
    "ssl_session_timeout": "4h",
    "add_header": ["Strict-Transport-Security 'max-age=31536000; includeSubDomains' always"],
}


class SSL:
    """
    TLS material and directives for one host.

    Attributes:
        auto_generated: True when no certificate files were supplied.
        csr_file, crt_file, key_file, dhparam_file: Paths of the TLS files.
        config: Ordered directive mapping merged into the HTTPS server block.
    """

    def __init__(
            self,
            directory: str,
            host: str,
            crt_file: Optional[str] = None,
            key_file: Optional[str] = None,
            dhparam_file: Optional[str] = None,
            config: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Raises:
            ConfigurationError: If some but not all of crt_file, key_file and
                dhparam_file are given.
        """
        supplied = [f for f in (crt_file, key_file, dhparam_file) if f]
        if supplied and len(supplied) != 3:
            raise ConfigurationError(
                "Must supply values for all three or none: crt_file, key_file, dhparam_file",
                context={"crt_file": crt_file, "key_file": key_file, "dhparam_file": dhparam_file},
            )

        self.directory = directory
        self.host = host
        self.auto_generated = not supplied

        self.csr_file = os.path.join(directory, f"{host}.csr")
        self.crt_file = crt_file or os.path.join(directory, f"{host}.crt")
        self.key_file = key_file or os.path.join(directory, f"{host}.key")
        self.dhparam_file = dhparam_file or os.path.join(directory, "dhparam.pem")

        stapling = None if self.auto_generated else "on"
        self.config: Dict[str, Any] = {
            "ssl_certificate": self.crt_file,
            "ssl_certificate_key": self.key_file,
            "ssl_dhparam": self.dhparam_file,
            "ssl_stapling": stapling,
            "ssl_stapling_verify": stapling,
        }
        self.config.update(copy.deepcopy(DEFAULT_CONFIG))
        self.config.update(config or {})

    def files_present(self) -> bool:
        """True if every TLS file exists; the CSR only counts for generated certificates."""
        paths = [self.crt_file, self.key_file, self.dhparam_file]
        if self.auto_generated:
            paths.append(self.csr_file)
        return all(os.path.exists(p) for p in paths)
