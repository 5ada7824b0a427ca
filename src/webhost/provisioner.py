"""Provision a vhost: certificate, directories, app checkout, configs, reloads.

The steps run strictly in order and the first failure aborts the run.
Nothing already done is rolled back; re-running is safe for the directory
steps but the clone and the symlinks expect a fresh project.
"""
from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console
from rich.text import Text

from .commands import CommandRunner
from .config import GIT_URL, AppConfig
from .errors import ErrorKind, SetupError
from .filesystem import DirectorySpec, apply_directories, create_symlink
from .logging import OperationScope
from .params import DeploymentParameters
from .templates import Template
from .tls import (
    CertificateInspectionError,
    CertificateSummary,
    inspect_certificate,
    locate_certificate,
)

CONFIG_KINDS = ("nginx", "fpm", "logrotate")
TEMPLATE_DIR = Path("resources") / "conf"


@dataclass(frozen=True, slots=True)
class ConfigArtifact:
    """A config template, where it is rendered, and where it is linked."""

    kind: str
    source: Path
    destination: Path
    link: Path


@dataclass(slots=True)
class ProvisionResult:
    """What a completed run produced."""

    certificate_tool: str
    directories: list[Path] = field(default_factory=list)
    artifacts: list[ConfigArtifact] = field(default_factory=list)
    certificate: CertificateSummary | None = None


def directory_layout(params: DeploymentParameters) -> list[DirectorySpec]:
    """Return the project directories in creation order."""
    return [
        DirectorySpec(params.conf_dir, 0o755),
        DirectorySpec(params.logs_dir, 0o775, group=params.nginx_user),
        DirectorySpec(params.logs_archive_dir, 0o755),
        DirectorySpec(params.tmp_dir, 0o755),
        DirectorySpec(params.tmp_dir / "sessions", 0o755),
        DirectorySpec(params.tmp_dir / "wsdlcache", 0o755),
        DirectorySpec(params.tmp_dir / "opcache", 0o755),
    ]


def config_artifacts(params: DeploymentParameters) -> list[ConfigArtifact]:
    """Return the nginx, php-fpm and logrotate artifacts for *params*."""
    link_dirs = {
        "nginx": params.nginx_conf_dir,
        "fpm": params.fpm_conf_dir,
        "logrotate": params.logrotate_dir,
    }
    return [
        ConfigArtifact(
            kind=kind,
            source=params.app_dir / TEMPLATE_DIR / f"{kind}.conf",
            destination=params.conf_dir / f"{kind}.conf",
            link=link_dirs[kind] / f"{params.app_name}.conf",
        )
        for kind in CONFIG_KINDS
    ]


@dataclass(slots=True)
class Provisioner:
    """Run the provisioning sequence for one deployment."""

    params: DeploymentParameters
    runner: CommandRunner = field(default_factory=CommandRunner)
    git_url: str = GIT_URL
    git_bin: str = "git"
    service_bin: str = "service"
    services: tuple[str, ...] = ("nginx", "php-fpm")
    certificate_tools: tuple[str, ...] = ("certbot", "certbot-auto")
    live_dir: Path = Path("/etc/letsencrypt/live")
    console: Console | None = None
    scope: OperationScope | None = None

    @classmethod
    def from_config(
        cls,
        params: DeploymentParameters,
        config: AppConfig,
        *,
        runner: CommandRunner | None = None,
        console: Console | None = None,
        scope: OperationScope | None = None,
    ) -> Provisioner:
        """Create a provisioner using the collaborators named in *config*."""
        return cls(
            params=params,
            git_url=config.git_url,
            git_bin=config.commands.git,
            service_bin=config.commands.service,
            services=config.services,
            certificate_tools=config.commands.certificate_tools,
            live_dir=config.tls.live_dir,
            runner=runner or CommandRunner(),
            console=console,
            scope=scope,
        )

    def run(self) -> ProvisionResult:
        """Execute every step in order; the first failure propagates."""
        with self._step("certificate-tool"):
            tool = self.resolve_certificate_tool()
        result = ProvisionResult(certificate_tool=tool)

        with self._step("certificate", tool=tool, domain=self.params.domain_name):
            self.issue_certificate(tool)
        result.certificate = self.describe_certificate()

        with self._step("directories", root=self.params.project_root):
            result.directories = self.create_directories()

        with self._step("clone", url=self.git_url, destination=self.params.app_dir):
            self.clone_application()

        variables = self.params.template_variables()
        with self._step("render", variables=variables):
            result.artifacts = self.render_configs(variables)

        with self._step("install"):
            self.install_configs(result.artifacts)

        with self._step("reload", services=self.services):
            self.reload_services()

        return result

    # Individual steps -------------------------------------------------
    def resolve_certificate_tool(self) -> str:
        """Return the first certificate tool that answers ``--version``."""
        for candidate in self.certificate_tools:
            try:
                self.runner.run_captured([candidate, "--version"])
            except SetupError as exc:
                if exc.kind is not ErrorKind.COMMAND_FAILED:
                    raise
                continue
            return candidate
        raise SetupError(
            ErrorKind.NO_CERTIFICATE_TOOL,
            "Cannot locate a usable certbot command",
            initialization=True,
        )

    def issue_certificate(self, tool: str) -> None:
        """Obtain or renew the certificate using the webroot challenge."""
        self._say(f"Requesting certificate for {self.params.domain_name}")
        self.runner.run_inherit_io(
            [
                tool,
                "certonly",
                "--webroot",
                "--cert-name",
                self.params.app_name,
                "-w",
                str(self.params.cert_root),
                "-d",
                self.params.domain_name,
            ]
        )

    def describe_certificate(self) -> CertificateSummary | None:
        """Summarise the issued certificate; problems are only reported."""
        path = locate_certificate(self.live_dir, self.params.app_name)
        if path is None:
            self._record(
                "certificate-summary",
                "warning",
                reason="not found",
                live_dir=self.live_dir,
            )
            return None
        try:
            summary = inspect_certificate(path)
        except CertificateInspectionError as exc:
            self._record("certificate-summary", "warning", reason=str(exc))
            return None
        self._record("certificate-summary", **summary.to_dict())
        self._say(
            f"Certificate for {summary.subject} valid until "
            f"{summary.not_valid_after:%Y-%m-%d} ({summary.days_remaining()} days)"
        )
        return summary

    def create_directories(self) -> list[Path]:
        """Create the project directory tree with its modes and ownership."""
        self._say(f"Creating directories under {self.params.project_root}")
        return apply_directories(directory_layout(self.params))

    def clone_application(self) -> None:
        """Clone the application repository into the app directory."""
        self._say(f"Cloning {self.git_url}")
        self.runner.run_inherit_io([self.git_bin, "clone", self.git_url, str(self.params.app_dir)])

    def render_configs(self, variables: Mapping[str, str]) -> list[ConfigArtifact]:
        """Render each shipped template into the project conf directory."""
        artifacts = config_artifacts(self.params)
        for artifact in artifacts:
            self._say(f"Rendering {artifact.destination}")
            Template.load(artifact.source).render_to_file(artifact.destination, variables)
        return artifacts

    def install_configs(self, artifacts: list[ConfigArtifact]) -> None:
        """Link each rendered config into its system directory."""
        for artifact in artifacts:
            self._say(f"Linking {artifact.link} -> {artifact.destination}")
            create_symlink(artifact.destination, artifact.link)

    def reload_services(self) -> None:
        """Reload each configured service."""
        for service in self.services:
            self._say(f"Reloading {service}")
            self.runner.run_inherit_io([self.service_bin, service, "reload"])

    # ------------------------------------------------------------------
    @contextmanager
    def _step(self, name: str, **context: object) -> Iterator[None]:
        """Record *name* as ok, or as an error with the failure details."""
        try:
            yield
        except SetupError as exc:
            self._record(name, "error", **exc.to_dict())
            raise
        self._record(name, **context)

    def _record(self, name: str, status: str = "ok", **context: object) -> None:
        if self.scope is not None:
            self.scope.step(name, status, **context)

    def _say(self, message: str) -> None:
        if self.console is not None:
            self.console.print(Text.assemble(("==> ", "cyan"), message))


__all__ = [
    "CONFIG_KINDS",
    "ConfigArtifact",
    "ProvisionResult",
    "Provisioner",
    "config_artifacts",
    "directory_layout",
]
