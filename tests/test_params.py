"""Tests for deployment parameter resolution and validation."""
from __future__ import annotations

import os
from pathlib import Path

import pytest

from webhost.config import load_config
from webhost.errors import ErrorCategory, ErrorKind, SetupError
from webhost.params import (
    TEMPLATE_VARIABLE_NAMES,
    DeploymentParameters,
    assert_running_as_root,
    validate_app_name,
    validate_domain_name,
)


def _build(roots: dict[str, Path], **overrides: object) -> DeploymentParameters:
    kwargs: dict[str, object] = {
        "app_name": "acme",
        "domain_name": "acme.example.com",
        "nginx_user": "nginx",
        "vhosts_root": roots["vhosts_root"],
        "cert_root": None,
        "nginx_conf_dir": roots["nginx_conf_dir"],
        "fpm_conf_dir": roots["fpm_conf_dir"],
    }
    kwargs.update(overrides)
    return DeploymentParameters.build(**kwargs)  # type: ignore[arg-type]


def test_derived_paths(roots: dict[str, Path]) -> None:
    """Project paths hang off the vhosts root and app name."""
    params = _build(roots)

    project = roots["vhosts_root"] / "acme"
    assert params.project_root == project
    assert params.app_dir == project / "app"
    assert params.conf_dir == project / "conf"
    assert params.logs_dir == project / "logs"
    assert params.logs_archive_dir == project / "logs" / "archive"
    assert params.tmp_dir == project / "tmp"
    assert not project.exists()


def test_cert_root_defaults_below_vhosts_root(roots: dict[str, Path]) -> None:
    """Without an explicit cert root the default vhost webroot is used."""
    params = _build(roots)

    assert params.cert_root == roots["cert_root"]


def test_roots_are_canonicalised(roots: dict[str, Path], tmp_path: Path) -> None:
    """Symlinked roots resolve to their real location."""
    alias = tmp_path / "www-alias"
    alias.symlink_to(roots["vhosts_root"])

    params = _build(roots, vhosts_root=alias)

    assert params.vhosts_root == roots["vhosts_root"]


def test_domain_defaults_to_app_name(roots: dict[str, Path]) -> None:
    """Omitting the domain reuses the app name."""
    params = _build(roots, domain_name=None)

    assert params.domain_name == "acme"


@pytest.mark.parametrize("root_key", ["vhosts_root", "nginx_conf_dir", "fpm_conf_dir"])
def test_missing_root_is_initialisation_failure(
    roots: dict[str, Path],
    tmp_path: Path,
    root_key: str,
) -> None:
    """Roots must exist before provisioning starts."""
    missing = tmp_path / "does-not-exist"

    with pytest.raises(SetupError) as excinfo:
        _build(roots, **{root_key: missing})

    error = excinfo.value
    assert error.kind is ErrorKind.PATH_NOT_FOUND
    assert error.initialization is True
    assert error.describe() == f"Initialization failed: Path '{missing}' is invalid"


def test_missing_default_cert_root(roots: dict[str, Path]) -> None:
    """The derived cert root must exist too."""
    (roots["cert_root"]).rmdir()

    with pytest.raises(SetupError) as excinfo:
        _build(roots)

    assert excinfo.value.path == roots["vhosts_root"] / "default" / "public"


def test_template_variables_cover_every_placeholder(roots: dict[str, Path]) -> None:
    """The shared map carries every documented placeholder."""
    params = _build(roots, nginx_user="www-data")
    variables = params.template_variables()

    assert tuple(variables) == TEMPLATE_VARIABLE_NAMES
    assert variables["APP_NAME"] == "acme"
    assert variables["APP_DIR"] == str(roots["vhosts_root"] / "acme" / "app")
    assert variables["FPM_SOCK"] == "/var/run/php-fpm/acme.sock"
    assert variables["PRIMARY_DOMAIN"] == "acme.example.com"
    assert variables["NGINX_USER"] == "www-data"


def test_from_config_uses_configured_values(roots: dict[str, Path]) -> None:
    """Configuration values feed the parameters."""
    config = load_config(
        env={},
        config_file=roots["vhosts_root"] / "no-config.yml",
        overrides={
            "app_name": "shop",
            "vhosts_root": roots["vhosts_root"],
            "nginx_conf_dir": roots["nginx_conf_dir"],
            "fpm_conf_dir": roots["fpm_conf_dir"],
            "fpm_socket_dir": "/run/php",
            "nginx_user": "www-data",
        },
    )

    params = DeploymentParameters.from_config(config, "shop.example.org")

    assert params.app_name == "shop"
    assert params.domain_name == "shop.example.org"
    assert params.nginx_user == "www-data"
    assert params.fpm_socket == Path("/run/php/shop.sock")
    assert params.logrotate_dir == Path("/etc/logrotate.d")


@pytest.mark.parametrize(
    "name",
    [
        "example.com",
        "a",
        "acme",
        "sub-domain.Example.COM",
        "x1.y2.z3",
        "a" * 63 + ".com",
    ],
)
def test_valid_domain_names(name: str) -> None:
    """Names made of valid labels are accepted unchanged."""
    assert validate_domain_name(name) == name


@pytest.mark.parametrize(
    "name",
    [
        "",
        "-acme.com",
        "acme-.com",
        "acme..com",
        ".acme.com",
        "acme.com.",
        "under_score.com",
        "a" * 64 + ".com",
        "space here.com",
    ],
)
def test_invalid_domain_names(name: str) -> None:
    """Malformed names are input validation errors."""
    with pytest.raises(SetupError) as excinfo:
        validate_domain_name(name)

    assert excinfo.value.kind is ErrorKind.INVALID_INPUT
    assert excinfo.value.category is ErrorCategory.INPUT_VALIDATION
    assert f"'{name}' is not a valid DNS name" == excinfo.value.message


def test_invalid_domain_during_build_is_initialisation_failure(roots: dict[str, Path]) -> None:
    """Validation failures while building carry the initialisation prefix."""
    with pytest.raises(SetupError) as excinfo:
        _build(roots, domain_name="bad_domain")

    assert excinfo.value.describe() == "Initialization failed: 'bad_domain' is not a valid DNS name"


@pytest.mark.parametrize("name", ["", ".", "..", "../etc", "a/b", "-lead", "with space"])
def test_invalid_app_names(name: str) -> None:
    """App names must be safe single path segments."""
    with pytest.raises(SetupError) as excinfo:
        validate_app_name(name)

    assert excinfo.value.kind is ErrorKind.INVALID_INPUT


def test_assert_running_as_root(monkeypatch: pytest.MonkeyPatch) -> None:
    """Only uid 0 passes the privilege check."""
    monkeypatch.setattr(os, "geteuid", lambda: 0)
    assert_running_as_root()

    monkeypatch.setattr(os, "geteuid", lambda: 1000)
    with pytest.raises(SetupError) as excinfo:
        assert_running_as_root()

    assert excinfo.value.kind is ErrorKind.NOT_ROOT
    assert excinfo.value.describe() == "Initialization failed: This script must be run as root"
