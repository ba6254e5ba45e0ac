from __future__ import annotations

"""
Nginx Service.

Each Nginx instance manages its own configuration file under
``<potluck dir>/<host>/``. The file is included from the base nginx
configuration through a wildcard include and is activated or deactivated by
renaming it, so any number of processes can manage their own configuration
without interfering with each other or with nginx setups potluck knows
nothing about.

Examples:

    def extra(c):
        with c.block("server"):
            c.add_leaf("access_log", "/path/to/access.log")
            c.add_leaf("add_header", "X-Greeting", "'hello' always")

    nginx = Nginx("hello.world", 1234, ssl={}, config=extra, manage=True)
    nginx.start()
"""

import logging
import os
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from potluck.core.directives.builder import ConfigBody, NginxConfig
from potluck.domain.config import NginxSettings, PotluckConfig, get_config, get_nginx_settings
from potluck.domain.exceptions import ServiceError
from potluck.infra.fs import move_file, read_text, safe_mkdir, write_text, write_text_atomic
from potluck.services.service import ManageCommands, ManageOption, Service, ServiceStatus
from potluck.services.ssl import SSL

CONFIG_NAME_ACTIVE = "nginx.conf"
CONFIG_NAME_INACTIVE = "nginx-stopped.conf"

HOSTS_FILE = "/etc/hosts"

TEST_CONFIG_REGEX = re.compile(r"nginx: configuration file (?P<config>.+) test (failed|is successful)")
HTTP_BLOCK_REGEX = re.compile(r"^( *http *{)( *\n?)( *)", re.MULTILINE)

DEFAULT_COMMANDS = ManageCommands(start="nginx", stop="nginx -s stop")

GZIP_TYPES = "application/javascript application/json application/xml text/css text/javascript text/plain"

SECURITY_HEADERS = [
    ("Referrer-Policy", "'same-origin' always"),
    ("X-Frame-Options", "'DENY' always"),
    ("X-XSS-Protection", "'1; mode=block' always"),
    ("X-Content-Type-Options", "'nosniff' always"),
]

NORMALIZE_SNIPPET = """\
set $normalized {protocol}$host_normalized$port_normalized$uri_normalized$args_normalized;

if ($normalized != '$scheme://$host$port$request_uri') {{
  return 308 $normalized;
}}
"""

CertificateProvisioner = Callable[[SSL], Any]


class Nginx(Service):
    """
    Configuration and control of one nginx virtual host setup.

    The generated configuration contains an upstream for the application
    server, URL normalization maps, and an HTTP server block (plus an HTTPS
    one when SSL is enabled) that proxies to the upstream.
    """

    process_pattern = r"nginx: master process"

    def __init__(
            self,
            hosts: Union[str, Sequence[str]],
            port: int,
            *,
            subdomains: Union[str, Sequence[str], None] = None,
            ssl: Optional[Mapping[str, Any]] = None,
            one_host: bool = False,
            www: Optional[bool] = None,
            multiple_slashes: Optional[bool] = None,
            multiple_question_marks: Optional[bool] = None,
            trailing_slash: Optional[bool] = None,
            trailing_question_mark: Optional[bool] = None,
            config: Union[ConfigBody, Mapping[str, Any], None] = None,
            ensure_host_entries: bool = False,
            settings: Optional[NginxSettings] = None,
            potluck_config: Optional[PotluckConfig] = None,
            certificate_provisioner: Optional[CertificateProvisioner] = None,
            logger: Optional[logging.Logger] = None,
            manage: ManageOption = False,
    ) -> None:
        """
        Args:
            hosts: Host name(s); a leading ``www.`` is dropped.
            port: Port the upstream application server listens on.
            subdomains: Extra server names.
            ssl: Keyword arguments for SSL (an empty mapping enables SSL with
                generated certificate paths).
            one_host: Normalize URLs to the first host.
            www: Normalize URLs to include ``www.`` (True), exclude it
                (False), or allow either (None).
            multiple_slashes: False collapses repeated slashes.
            multiple_question_marks: False collapses repeated question marks.
            trailing_slash: Require (True), strip (False), or allow (None)
                a trailing slash.
            trailing_question_mark: Require (True), strip (False), or allow
                (None) a trailing question mark.
            config: Builder body or mapping applied after the generated
                configuration (see ``config``).
            ensure_host_entries: Map hosts to localhost in /etc/hosts on start.
            settings: Port settings; the global NginxSettings when None.
            potluck_config: Global settings; the global PotluckConfig when None.
            certificate_provisioner: Called with the SSL instance on start when
                generated certificate files are missing.
            logger: See Service.
            manage: See Service; True uses ``nginx`` / ``nginx -s stop``.

        Raises:
            ConfigurationError: If the SSL arguments are inconsistent.
            ServiceError: If the instance directory cannot be created.
        """
        super().__init__(logger=logger, manage=manage)

        host_list = [hosts] if isinstance(hosts, str) else list(hosts)
        self.hosts: List[str] = list(dict.fromkeys(re.sub(r"^www\.", "", h) for h in host_list))
        if not self.hosts:
            raise ServiceError("Nginx needs at least one host")

        self.host = self.hosts[0]
        self.port = port
        self.subdomains: List[str] = [subdomains] if isinstance(subdomains, str) else list(subdomains or [])

        self._settings = settings
        self._potluck_config = potluck_config
        self._ensure_host_entries = ensure_host_entries
        self._certificate_provisioner = certificate_provisioner

        self.dir = os.path.join(self.potluck_config.dir, self.host)
        self.ssl = SSL(self.dir, self.host, **ssl) if ssl is not None else None

        self.one_host = bool(one_host)
        self.www = www
        self.multiple_slashes = multiple_slashes
        self.multiple_question_marks = multiple_question_marks
        self.trailing_slash = trailing_slash
        self.trailing_question_mark = trailing_question_mark

        self._config_bodies: List[ConfigBody] = []
        if config is not None:
            self.config(config)

        ok, err = safe_mkdir(self.dir)
        if not ok:
            raise ServiceError(f"Cannot create {self.dir}: {err}", context={"dir": self.dir})

        self.config_file_active = os.path.join(self.dir, CONFIG_NAME_ACTIVE)
        self.config_file_inactive = os.path.join(self.dir, CONFIG_NAME_INACTIVE)

    @classmethod
    def default_manage_commands(cls) -> Optional[ManageCommands]:
        return DEFAULT_COMMANDS

    @property
    def settings(self) -> NginxSettings:
        return self._settings or get_nginx_settings()

    @property
    def potluck_config(self) -> PotluckConfig:
        return self._potluck_config or get_config()

    @property
    def active_config_pattern(self) -> str:
        """Wildcard matching the active config file of every instance."""
        return os.path.join(self.potluck_config.dir, "*", CONFIG_NAME_ACTIVE)

    # -------------------------------------------------------------------------
    # CONFIGURATION
    # -------------------------------------------------------------------------

    def config(self, body: Union[ConfigBody, Mapping[str, Any]]) -> None:
        """
        Add configuration applied on top of the generated configuration.

        Bodies run in the order they were added, each receiving the builder
        positioned at the root of the file. A mapping is appended as with
        ``NginxConfig.append``.

        Examples:

            nginx.config(lambda c: c.add_block(
                "server", body=lambda c: c.add_leaf("add_header", "X-Subject", "'world' always"),
            ))
        """
        if isinstance(body, Mapping):
            content = dict(body)
            self._config_bodies.append(lambda c: c.append(content))
        else:
            self._config_bodies.append(body)

    def build_config(self) -> NginxConfig:
        """Assemble a fresh builder holding the complete configuration."""
        config = NginxConfig()

        with config.block("upstream", self.host):
            config.add_leaf("server", f"127.0.0.1:{self.port}")

        self._add_maps(config)

        with config.block("server", 0):
            self._add_server(config, ssl=False)

        if self.ssl is not None:
            with config.block("server", 1):
                self._add_server(config, ssl=True)

        for body in self._config_bodies:
            config.modify(body)

        return config

    def config_file_content(self) -> str:
        return self.build_config().render()

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """
        Activate this instance's configuration and start or reload nginx.

        Does nothing if nginx is not managed.

        Raises:
            ServiceError: If the configuration test fails, SSL files are
                missing, or nginx does not start.
        """
        if not self.is_managed():
            return

        self._ensure_ssl_files()
        if self._ensure_host_entries:
            self.ensure_host_entries()
        self.ensure_include()

        self.write_config()
        self.activate_config()

        self.run("nginx -t")

        if self.status() == ServiceStatus.ACTIVE:
            self.reload()
        else:
            super().start()

    def stop(self, hard: bool = False) -> None:
        """
        Deactivate this instance's configuration.

        Args:
            hard: Stop the nginx process as well; otherwise nginx is only
                reloaded when it is running.
        """
        if not self.is_managed():
            return

        self.deactivate_config()

        if hard or self.status() != ServiceStatus.ACTIVE:
            super().stop()
        else:
            self.reload()

    def reload(self) -> None:
        if not self.is_managed():
            return

        self.run("nginx -s reload")

    # -------------------------------------------------------------------------
    # FILES
    # -------------------------------------------------------------------------

    def write_config(self) -> None:
        """Write the configuration to the inactive file."""
        write_text_atomic(self.config_file_inactive, self.config_file_content())

    def activate_config(self) -> None:
        move_file(self.config_file_inactive, self.config_file_active)

    def deactivate_config(self) -> None:
        move_file(self.config_file_active, self.config_file_inactive, missing_ok=True)

    def ensure_include(self) -> None:
        """
        Make the base nginx configuration include every instance's active file.

        The base file is located through ``nginx -t`` and edited in place (no
        sudo), so it must be writable by the current user.
        """
        output = self.run("nginx -t", check=False)
        match = TEST_CONFIG_REGEX.search(output)
        if not match:
            raise ServiceError("Could not locate the nginx configuration file", context={"output": output})

        base_file = match.group("config")
        content = read_text(base_file)

        pattern = self.active_config_pattern
        include_regex = re.compile(rf"^ *include +{re.escape(pattern)} *;", re.MULTILINE)
        if include_regex.search(content):
            return

        updated, replaced = HTTP_BLOCK_REGEX.subn(
            lambda m: f"{m.group(1)}{m.group(2)}{m.group(3)}include {pattern};\n\n{m.group(3)}",
            content,
            count=1,
        )
        if not replaced:
            raise ServiceError(
                f"No http block found in {base_file}; could not add include for {pattern}",
                context={"path": base_file},
            )
        write_text(base_file, updated)
        self.log(f"Added include for {pattern} to {base_file}")

    def ensure_host_entries(self) -> None:
        """Map hosts and subdomains to localhost in the hosts file (uses sudo)."""
        content = read_text(HOSTS_FILE)
        missing = [h for h in self.hosts + self.subdomains if f" {h}\n" not in content]
        if not missing:
            return

        self.log(f"Writing host entries to {HOSTS_FILE}...")

        entries = "\n".join(f"127.0.0.1 {h}\n::1       {h}" for h in missing)
        self.run(f"sudo sh -c 'printf \"\n{entries}\n\" >> {HOSTS_FILE}'")

    # -------------------------------------------------------------------------
    # PRIVATE HELPERS
    # -------------------------------------------------------------------------

    def _ensure_ssl_files(self) -> None:
        if self.ssl is None or not self.ssl.auto_generated or self.ssl.files_present():
            return

        if self._certificate_provisioner is None:
            raise ServiceError(
                f"SSL files for {self.host} are missing and no certificate provisioner is configured",
                context={"dir": self.dir},
            )
        self._certificate_provisioner(self.ssl)

    def _normalized_port(self) -> int:
        return self.settings.https_port if self.ssl is not None else self.settings.http_port

    def _host_map(self) -> Dict[str, str]:
        """Host header to normalized host, skipping identity mappings."""
        host_map: Dict[str, str] = {}
        for h in self.hosts:
            target = self.host if self.one_host else h
            host_map[f"www.{h}"] = f"{'' if self.www is False else 'www.'}{target}"
        for h in self.hosts:
            target = self.host if self.one_host else h
            host_map[h] = f"{'www.' if self.www else ''}{target}"
        return {k: v for k, v in host_map.items() if k != v}

    def _add_maps(self, config: NginxConfig) -> None:
        port = self._normalized_port()

        if self.trailing_question_mark is False:
            only_question_marks: Optional[str] = "''"
        elif self.multiple_question_marks is False:
            only_question_marks = "?"
        else:
            only_question_marks = None

        config.merge({
            "map $host $host_normalized": {
                "default": "$host",
                **self._host_map(),
            },
            "map $http_host $port": {
                "default": "''",
                "~(:[0-9]+)$": "$1",
            },
            "map $http_host $port_normalized": {
                "default": "''",
                "~:[0-9]+$": f":{port}",
            },
            "map $http_host $x_forwarded_port": {
                "default": str(port),
                "~:([0-9]+)$": "$1",
            },
            "map $uri $uri_normalized": {
                "default": "$uri",
                "~^(.*/[^/.]+)/+$": "$1" if self.trailing_slash is False else None,
                "~^(.*/[^/.]+)$": "$1/" if self.trailing_slash else None,
            },
            "map $request_uri $q": {
                "default": "''",
                "~\\?": "?",
            },
            "map $q$args $args_normalized": {
                "default": "$q$args",
                "~^\\?+([^\\?].*)$": "?$1" if self.multiple_question_marks is False else None,
                "~^(\\?+)$": only_question_marks,
                "''": "?" if self.trailing_question_mark else None,
            },
        })

    def _add_server(self, config: NginxConfig, ssl: bool) -> None:
        """Populate the server block the builder currently points into."""
        settings = self.settings
        protocol = "https://" if self.ssl is not None else "http://"

        config.add_leaf("server_name", " ".join(
            self.hosts + [f"www.{h}" for h in self.hosts] + self.subdomains
        ))

        if ssl:
            config.add_leaf("listen", f"{settings.https_port} ssl")
            config.add_leaf("listen", f"[::]:{settings.https_port} ssl")
            config.add_leaf("http2", "on")
            config.merge(self.ssl.config)
        else:
            config.add_leaf("listen", str(settings.http_port))
            config.add_leaf("listen", f"[::]:{settings.http_port}")

        config.add_leaf("charset", "UTF-8", soft=True)
        config.add_leaf("gzip", "on", soft=True)
        config.add_leaf("gzip_types", GZIP_TYPES, soft=True)
        config.add_leaf("access_log", os.path.join(self.dir, "nginx-access.log"), soft=True)
        config.add_leaf("error_log", os.path.join(self.dir, "nginx-error.log"), soft=True)
        config.add_leaf("merge_slashes", "on" if self.multiple_slashes is False else "off", soft=True)

        for name, value in SECURITY_HEADERS:
            config.add_leaf("add_header", name, value)

        with config.block("location", "/"):
            config.append_raw(NORMALIZE_SNIPPET.format(protocol=protocol))

            config.add_leaf("proxy_pass", f"http://{self.host}")
            config.add_leaf("proxy_redirect", "off")
            config.add_leaf("proxy_set_header", "Host", "$http_host")
            config.add_leaf("proxy_set_header", "X-Real-IP", "$remote_addr")
            config.add_leaf("proxy_set_header", "X-Forwarded-For", "$proxy_add_x_forwarded_for")
            config.add_leaf("proxy_set_header", "X-Forwarded-Proto", "https" if ssl else "http")
            config.add_leaf("proxy_set_header", "X-Forwarded-Port", "$x_forwarded_port")
