"""Typer-powered command line for ``webhost-setup``.

The command provisions one vhost per invocation and must run as root.
Progress is printed to stdout; any failure is reported as a single line on
stderr and the process exits with status 1.
"""
from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape

from . import get_version
from .config import ConfigError, load_config
from .errors import SetupError
from .exit_codes import ExitCode
from .logging import StructuredLogger
from .params import DeploymentParameters, assert_running_as_root
from .provisioner import Provisioner

console = Console()
err_console = Console(stderr=True)


def _click_exception_type() -> type[Exception]:
    """Return the ClickException base class of the click that typer runs on.

    Newer typer releases bundle their own click, so the class is taken from
    the hierarchy of an exception typer exports rather than imported.
    """
    for cls in typer.BadParameter.__mro__:
        if cls.__name__ == "ClickException":
            return cls
    raise RuntimeError("typer.BadParameter does not derive from ClickException")


CLICK_EXCEPTION = _click_exception_type()

app = typer.Typer(
    add_completion=False,
    help="Provision an nginx/php-fpm virtual host on this server.",
)

DOMAIN_ARGUMENT = typer.Argument(
    None,
    metavar="[DOMAIN]",
    help="Primary domain name for the certificate (defaults to the app name).",
    show_default=False,
)
APP_NAME_OPTION = typer.Option(
    None,
    "--appname",
    show_default="webhost",
    help="Project name used for directories, config links and the cert name.",
)
VHOSTS_ROOT_OPTION = typer.Option(
    None,
    "--vhosts",
    show_default="/srv/www",
    help="Directory holding all vhost projects.",
)
CERT_ROOT_OPTION = typer.Option(
    None,
    "--cert",
    show_default="<vhosts>/default/public",
    help="Webroot used for the certificate challenge.",
)
NGINX_USER_OPTION = typer.Option(
    None,
    "--nginx-user",
    show_default="nginx",
    help="Group granted write access to the logs directory.",
)
NGINX_CONF_OPTION = typer.Option(
    None,
    "--nginx-conf",
    show_default="/etc/nginx/conf.d",
    help="Directory nginx loads site configs from.",
)
FPM_CONF_OPTION = typer.Option(
    None,
    "--fpm-conf",
    show_default="/etc/php-fpm.d",
    help="Directory php-fpm loads pool configs from.",
)
CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to webhost's YAML config file.",
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"webhost-setup {get_version()}")
        raise typer.Exit(code=ExitCode.OK)


VERSION_OPTION = typer.Option(
    False,
    "--version",
    "-V",
    callback=_version_callback,
    is_eager=True,
    help="Show the webhost-setup version and exit.",
)


def _fail(message: str) -> NoReturn:
    """Print *message* as one line on stderr and exit with a failure code."""
    err_console.print(message, markup=False, highlight=False, soft_wrap=True)
    raise typer.Exit(code=ExitCode.FAILURE)


@app.command()
def setup(
    domain_name: str | None = DOMAIN_ARGUMENT,
    app_name: str | None = APP_NAME_OPTION,
    vhosts_root: Path | None = VHOSTS_ROOT_OPTION,
    cert_root: Path | None = CERT_ROOT_OPTION,
    nginx_user: str | None = NGINX_USER_OPTION,
    nginx_conf_dir: Path | None = NGINX_CONF_OPTION,
    fpm_conf_dir: Path | None = FPM_CONF_OPTION,
    config_file: Path | None = CONFIG_FILE_OPTION,
    version: bool = VERSION_OPTION,  # noqa: ARG001 - handled by the eager callback
) -> None:
    """Issue a certificate, build the project tree, clone the app and install its configs."""
    try:
        assert_running_as_root()
    except SetupError as exc:
        _fail(exc.describe())

    overrides: dict[str, object] = {
        "app_name": app_name,
        "vhosts_root": vhosts_root,
        "cert_root": cert_root,
        "nginx_user": nginx_user,
        "nginx_conf_dir": nginx_conf_dir,
        "fpm_conf_dir": fpm_conf_dir,
    }
    try:
        config = load_config(config_file=config_file, overrides=overrides)
    except ConfigError as exc:
        _fail(f"Initialization failed: {exc}")

    try:
        params = DeploymentParameters.from_config(config, domain_name)
    except SetupError as exc:
        _fail(exc.describe())

    logger = StructuredLogger(config.logs_dir)
    with logger.operation(
        "setup",
        args={"domain": domain_name, "config": config.to_dict()},
        target={"kind": "vhost", "app": params.app_name, "domain": params.domain_name},
    ) as op:
        provisioner = Provisioner.from_config(params, config, console=console, scope=op)
        try:
            result = provisioner.run()
        except SetupError as exc:
            op.error(exc.describe(), rc=ExitCode.FAILURE, context=exc.to_dict())
            _fail(exc.describe())

        op.success(
            f"Provisioned {params.app_name} for {params.domain_name}.",
            changed=len(result.directories) + len(result.artifacts),
            context={"parameters": params.to_dict()},
        )
    console.print(
        f"[green]Provisioned[/green] {params.app_name} ({params.domain_name}) "
        f"in {escape(str(params.project_root))}"
    )


def main() -> None:
    """Console script entry point.

    Option parsing errors are reported like every other failure: one line
    on stderr and exit status 1.
    """
    try:
        rc = app(standalone_mode=False)
    except CLICK_EXCEPTION as exc:
        message = " ".join(exc.format_message().split())  # type: ignore[attr-defined]
        err_console.print(
            f"Initialization failed: {message}",
            markup=False,
            highlight=False,
            soft_wrap=True,
        )
        raise SystemExit(ExitCode.FAILURE) from exc
    except typer.Abort as exc:
        err_console.print("Initialization failed: aborted", markup=False, highlight=False)
        raise SystemExit(ExitCode.FAILURE) from exc
    raise SystemExit(rc if isinstance(rc, int) else ExitCode.OK)


__all__ = ["app", "main"]
