"""Deployment parameters resolved once at startup."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

from .config import AppConfig
from .errors import ErrorKind, SetupError
from .filesystem import canonicalize

DNS_LABEL_PATTERN = r"(?:[a-z0-9]|[a-z0-9][a-z0-9\-]{0,61}[a-z0-9])"
DNS_NAME_RE = re.compile(rf"(?:{DNS_LABEL_PATTERN}\.)*{DNS_LABEL_PATTERN}", re.IGNORECASE)
APP_NAME_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]*")

TEMPLATE_VARIABLE_NAMES = (
    "APP_NAME",
    "APP_DIR",
    "CONF_DIR",
    "LOGS_DIR",
    "TMP_DIR",
    "FPM_SOCK",
    "PRIMARY_DOMAIN",
    "NGINX_USER",
)


@dataclass(frozen=True, slots=True)
class DeploymentParameters:
    """Names and paths describing a single vhost deployment.

    The four root directories are canonical and existed when the parameters
    were built; the project paths beneath ``project_root`` are what the
    provisioner creates.
    """

    app_name: str
    domain_name: str
    nginx_user: str
    vhosts_root: Path
    cert_root: Path
    nginx_conf_dir: Path
    fpm_conf_dir: Path
    logrotate_dir: Path = Path("/etc/logrotate.d")
    fpm_socket_dir: Path = Path("/var/run/php-fpm")

    @property
    def project_root(self) -> Path:
        """Directory holding everything for this app."""
        return self.vhosts_root / self.app_name

    @property
    def app_dir(self) -> Path:
        """Checkout of the application repository."""
        return self.project_root / "app"

    @property
    def conf_dir(self) -> Path:
        """Rendered nginx, php-fpm and logrotate configs."""
        return self.project_root / "conf"

    @property
    def logs_dir(self) -> Path:
        """Log directory, group-writable by the nginx user."""
        return self.project_root / "logs"

    @property
    def logs_archive_dir(self) -> Path:
        """Rotated logs."""
        return self.logs_dir / "archive"

    @property
    def tmp_dir(self) -> Path:
        """Parent of the php session, wsdl and opcache directories."""
        return self.project_root / "tmp"

    @property
    def fpm_socket(self) -> Path:
        """Unix socket the php-fpm pool listens on."""
        return self.fpm_socket_dir / f"{self.app_name}.sock"

    @classmethod
    def build(
        cls,
        *,
        app_name: str,
        domain_name: str | None,
        nginx_user: str,
        vhosts_root: str | os.PathLike[str],
        cert_root: str | os.PathLike[str] | None,
        nginx_conf_dir: str | os.PathLike[str],
        fpm_conf_dir: str | os.PathLike[str],
        logrotate_dir: str | os.PathLike[str] = "/etc/logrotate.d",
        fpm_socket_dir: str | os.PathLike[str] = "/var/run/php-fpm",
    ) -> DeploymentParameters:
        """Validate names and resolve root directories.

        *domain_name* defaults to *app_name*; *cert_root* defaults to
        ``{vhosts_root}/default/public``. Any failure is reported as an
        initialisation error.
        """
        try:
            app = validate_app_name(app_name)
            domain = validate_domain_name(domain_name if domain_name else app)
            if not nginx_user.strip():
                raise SetupError(ErrorKind.INVALID_INPUT, "nginx user must not be empty")

            vhosts = canonicalize(vhosts_root)
            if cert_root is None:
                cert_root = vhosts / "default" / "public"
            cert = canonicalize(cert_root)
            nginx_conf = canonicalize(nginx_conf_dir)
            fpm_conf = canonicalize(fpm_conf_dir)
        except SetupError as exc:
            raise exc.as_initialization() from exc

        return cls(
            app_name=app,
            domain_name=domain,
            nginx_user=nginx_user,
            vhosts_root=vhosts,
            cert_root=cert,
            nginx_conf_dir=nginx_conf,
            fpm_conf_dir=fpm_conf,
            logrotate_dir=Path(logrotate_dir),
            fpm_socket_dir=Path(fpm_socket_dir),
        )

    @classmethod
    def from_config(cls, config: AppConfig, domain_name: str | None = None) -> DeploymentParameters:
        """Build parameters from a resolved :class:`AppConfig`."""
        return cls.build(
            app_name=config.app_name,
            domain_name=domain_name,
            nginx_user=config.nginx_user,
            vhosts_root=config.vhosts_root,
            cert_root=config.cert_root,
            nginx_conf_dir=config.nginx_conf_dir,
            fpm_conf_dir=config.fpm_conf_dir,
            logrotate_dir=config.logrotate_dir,
            fpm_socket_dir=config.fpm_socket_dir,
        )

    def template_variables(self) -> dict[str, str]:
        """Return the values substituted into every shipped config template."""
        return {
            "APP_NAME": self.app_name,
            "APP_DIR": str(self.app_dir),
            "CONF_DIR": str(self.conf_dir),
            "LOGS_DIR": str(self.logs_dir),
            "TMP_DIR": str(self.tmp_dir),
            "FPM_SOCK": str(self.fpm_socket),
            "PRIMARY_DOMAIN": self.domain_name,
            "NGINX_USER": self.nginx_user,
        }

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly summary for the operation log."""
        return {
            "app_name": self.app_name,
            "domain_name": self.domain_name,
            "nginx_user": self.nginx_user,
            "vhosts_root": str(self.vhosts_root),
            "cert_root": str(self.cert_root),
            "nginx_conf_dir": str(self.nginx_conf_dir),
            "fpm_conf_dir": str(self.fpm_conf_dir),
            "logrotate_dir": str(self.logrotate_dir),
            "project_root": str(self.project_root),
        }


def validate_domain_name(name: str) -> str:
    """Return *name* if it is a valid DNS name, otherwise raise."""
    if not DNS_NAME_RE.fullmatch(name):
        raise SetupError(ErrorKind.INVALID_INPUT, f"'{name}' is not a valid DNS name")
    return name


def validate_app_name(name: str) -> str:
    """Return *name* if it is usable as a directory and file name."""
    if not APP_NAME_RE.fullmatch(name):
        raise SetupError(
            ErrorKind.INVALID_INPUT,
            f"'{name}' is not a valid app name (expected [A-Za-z0-9][A-Za-z0-9._-]*)",
        )
    return name


def assert_running_as_root() -> None:
    """Raise unless the effective user is root."""
    if os.geteuid() != 0:
        raise SetupError(
            ErrorKind.NOT_ROOT,
            "This script must be run as root",
            initialization=True,
        )


__all__ = [
    "DNS_NAME_RE",
    "DeploymentParameters",
    "TEMPLATE_VARIABLE_NAMES",
    "assert_running_as_root",
    "validate_app_name",
    "validate_domain_name",
]
