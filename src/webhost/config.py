"""Configuration loader for webhost.

Values are merged from several sources, later ones winning:

1. Built-in defaults.
2. ``/etc/webhost/config.yml`` (or an override path).
3. Environment variables prefixed with ``WEBHOST_``.
4. Explicit overrides supplied programmatically (CLI options).

Environment keys use double underscores to express nesting, e.g.::

    export WEBHOST_NGINX_USER=www-data
    export WEBHOST_COMMANDS__SERVICE=/usr/sbin/service

Values are coerced via PyYAML's ``safe_load`` so lists and numbers parse
naturally. The result is an immutable :class:`AppConfig`.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml

ENV_PREFIX = "WEBHOST_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

GIT_URL = "git@github.com:DaveRandom/WebHost.git"


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class CommandsConfig:
    """External programs invoked during provisioning."""

    git: str = "git"
    service: str = "service"
    certificate_tools: tuple[str, ...] = ("certbot", "certbot-auto")

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "git": self.git,
            "service": self.service,
            "certificate_tools": list(self.certificate_tools),
        }


@dataclass(frozen=True)
class TLSConfig:
    """Where the certificate tool stores issued certificates."""

    live_dir: Path = Path("/etc/letsencrypt/live")

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"live_dir": str(self.live_dir)}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for webhost."""

    config_file: Path
    app_name: str
    vhosts_root: Path
    cert_root: Path | None
    nginx_conf_dir: Path
    fpm_conf_dir: Path
    logrotate_dir: Path
    nginx_user: str
    fpm_socket_dir: Path
    git_url: str
    logs_dir: Path
    services: tuple[str, ...]
    commands: CommandsConfig
    tls: TLSConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "app_name": self.app_name,
            "vhosts_root": str(self.vhosts_root),
            "cert_root": str(self.cert_root) if self.cert_root is not None else None,
            "nginx_conf_dir": str(self.nginx_conf_dir),
            "fpm_conf_dir": str(self.fpm_conf_dir),
            "logrotate_dir": str(self.logrotate_dir),
            "nginx_user": self.nginx_user,
            "fpm_socket_dir": str(self.fpm_socket_dir),
            "git_url": self.git_url,
            "logs_dir": str(self.logs_dir),
            "services": list(self.services),
            "commands": self.commands.to_dict(),
            "tls": self.tls.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/webhost/config.yml",
    "app_name": "webhost",
    "vhosts_root": "/srv/www",
    "cert_root": None,  # derived from vhosts_root when absent
    "nginx_conf_dir": "/etc/nginx/conf.d",
    "fpm_conf_dir": "/etc/php-fpm.d",
    "logrotate_dir": "/etc/logrotate.d",
    "nginx_user": "nginx",
    "fpm_socket_dir": "/var/run/php-fpm",
    "git_url": GIT_URL,
    "logs_dir": "/var/log/webhost",
    "services": ["nginx", "php-fpm"],
    "commands": {
        "git": "git",
        "service": "service",
        "certificate_tools": ["certbot", "certbot-auto"],
    },
    "tls": {
        "live_dir": "/etc/letsencrypt/live",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, {key: value for key, value in overrides.items() if value is not None})

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(
            f"Failed to parse config file {path}: {_describe_yaml_error(exc)}"
        ) from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _describe_yaml_error(exc: yaml.YAMLError) -> str:
    """Condense a PyYAML error into one line with its position."""
    if isinstance(exc, yaml.MarkedYAMLError) and exc.problem_mark is not None:
        mark = exc.problem_mark
        problem = exc.problem or exc.context or "invalid YAML"
        return f"{problem} (line {mark.line + 1}, column {mark.column + 1})"
    return " ".join(str(exc).split())


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    commands = _as_dict(raw.get("commands"), "commands")
    unknown_commands = set(commands.keys()) - {"git", "service", "certificate_tools"}
    if unknown_commands:
        joined = ", ".join(sorted(unknown_commands))
        raise ConfigError(f"Unknown keys for commands: {joined}.")

    tls = _as_dict(raw.get("tls"), "tls")
    unknown_tls = set(tls.keys()) - {"live_dir"}
    if unknown_tls:
        joined = ", ".join(sorted(unknown_tls))
        raise ConfigError(f"Unknown keys for tls: {joined}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    commands_raw = _as_dict(raw.get("commands"), "commands")
    certificate_tools = _expect_str_tuple(
        commands_raw.get("certificate_tools"),
        "commands.certificate_tools",
    )
    if not certificate_tools:
        raise ConfigError("commands.certificate_tools must list at least one command.")
    commands = CommandsConfig(
        git=_expect_str(commands_raw.get("git"), "commands.git"),
        service=_expect_str(commands_raw.get("service"), "commands.service"),
        certificate_tools=certificate_tools,
    )

    tls_raw = _as_dict(raw.get("tls"), "tls")
    tls = TLSConfig(live_dir=_to_path(tls_raw.get("live_dir")))

    cert_root_raw = raw.get("cert_root")
    cert_root = _to_path(cert_root_raw) if cert_root_raw is not None else None

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        app_name=_expect_str(raw.get("app_name"), "app_name"),
        vhosts_root=_to_path(raw.get("vhosts_root")),
        cert_root=cert_root,
        nginx_conf_dir=_to_path(raw.get("nginx_conf_dir")),
        fpm_conf_dir=_to_path(raw.get("fpm_conf_dir")),
        logrotate_dir=_to_path(raw.get("logrotate_dir")),
        nginx_user=_expect_str(raw.get("nginx_user"), "nginx_user"),
        fpm_socket_dir=_to_path(raw.get("fpm_socket_dir")),
        git_url=_expect_str(raw.get("git_url"), "git_url"),
        logs_dir=_to_path(raw.get("logs_dir")),
        services=_expect_str_tuple(raw.get("services"), "services"),
        commands=commands,
        tls=tls,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    raise ConfigError(f"Expected {key} to resolve to a non-empty string. Got {value!r}.")


def _expect_str_tuple(value: object, label: str) -> tuple[str, ...]:
    if isinstance(value, str):
        # A single value from the environment, e.g. WEBHOST_SERVICES=nginx
        return (value,)
    if not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    items: list[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ConfigError(f"Entries of {label} must be non-empty strings. Got {item!r}.")
        items.append(item)
    return tuple(items)


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "CommandsConfig",
    "ConfigError",
    "GIT_URL",
    "TLSConfig",
    "load_config",
]
