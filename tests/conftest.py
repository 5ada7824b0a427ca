"""Shared fixtures for the webhost test suite."""

from __future__ import annotations

import grp
import os
from pathlib import Path

import pytest

from webhost.params import DeploymentParameters


@pytest.fixture
def current_group() -> str:
    """Return the name of the primary group of the test process."""
    return grp.getgrgid(os.getegid()).gr_name


@pytest.fixture
def roots(tmp_path: Path) -> dict[str, Path]:
    """Create the pre-existing system directories a deployment expects."""
    layout = {
        "vhosts_root": tmp_path / "srv" / "www",
        "cert_root": tmp_path / "srv" / "www" / "default" / "public",
        "nginx_conf_dir": tmp_path / "etc" / "nginx" / "conf.d",
        "fpm_conf_dir": tmp_path / "etc" / "php-fpm.d",
        "logrotate_dir": tmp_path / "etc" / "logrotate.d",
    }
    for path in layout.values():
        path.mkdir(parents=True, exist_ok=True)
    return {key: path.resolve() for key, path in layout.items()}


@pytest.fixture
def params(roots: dict[str, Path], current_group: str) -> DeploymentParameters:
    """Return deployment parameters for ``acme`` rooted in the temp directory."""
    return DeploymentParameters.build(
        app_name="acme",
        domain_name="acme.example.com",
        nginx_user=current_group,
        vhosts_root=roots["vhosts_root"],
        cert_root=None,
        nginx_conf_dir=roots["nginx_conf_dir"],
        fpm_conf_dir=roots["fpm_conf_dir"],
        logrotate_dir=roots["logrotate_dir"],
    )
