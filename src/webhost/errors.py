"""Error taxonomy for the provisioning run.

Every failure surfaces as a :class:`SetupError` tagged with an
:class:`ErrorKind`. The structured fields (path, mode, owner, group,
command, exit code, variable) travel with the exception so callers can
diagnose without parsing messages.
"""
from __future__ import annotations

import shlex
from collections.abc import Sequence
from enum import Enum
from pathlib import Path


class ErrorCategory(Enum):
    """Coarse error categories reported to operators."""

    INPUT_VALIDATION = "input-validation"
    PATH_RESOLUTION = "path-resolution"
    FILESYSTEM = "filesystem"
    COMMAND = "command"
    TEMPLATE = "template"


class ErrorKind(Enum):
    """Individual failure kinds raised by the provisioning helpers."""

    INVALID_INPUT = "invalid-input"
    NOT_ROOT = "not-root"
    PATH_NOT_FOUND = "path-not-found"
    DIRECTORY_CONFLICT = "directory-conflict"
    MKDIR_FAILED = "mkdir-failed"
    CHMOD_FAILED = "chmod-failed"
    CHOWN_FAILED = "chown-failed"
    CHGRP_FAILED = "chgrp-failed"
    LINK_FAILED = "link-failed"
    READ_FAILED = "read-failed"
    WRITE_FAILED = "write-failed"
    COMMAND_FAILED = "command-failed"
    NO_CERTIFICATE_TOOL = "no-certificate-tool"
    UNDEFINED_VARIABLE = "undefined-variable"

    @property
    def category(self) -> ErrorCategory:
        """Return the category this kind belongs to."""
        return _CATEGORIES[self]


_CATEGORIES: dict[ErrorKind, ErrorCategory] = {
    ErrorKind.INVALID_INPUT: ErrorCategory.INPUT_VALIDATION,
    ErrorKind.NOT_ROOT: ErrorCategory.INPUT_VALIDATION,
    ErrorKind.PATH_NOT_FOUND: ErrorCategory.PATH_RESOLUTION,
    ErrorKind.DIRECTORY_CONFLICT: ErrorCategory.FILESYSTEM,
    ErrorKind.MKDIR_FAILED: ErrorCategory.FILESYSTEM,
    ErrorKind.CHMOD_FAILED: ErrorCategory.FILESYSTEM,
    ErrorKind.CHOWN_FAILED: ErrorCategory.FILESYSTEM,
    ErrorKind.CHGRP_FAILED: ErrorCategory.FILESYSTEM,
    ErrorKind.LINK_FAILED: ErrorCategory.FILESYSTEM,
    ErrorKind.READ_FAILED: ErrorCategory.FILESYSTEM,
    ErrorKind.WRITE_FAILED: ErrorCategory.FILESYSTEM,
    ErrorKind.COMMAND_FAILED: ErrorCategory.COMMAND,
    ErrorKind.NO_CERTIFICATE_TOOL: ErrorCategory.COMMAND,
    ErrorKind.UNDEFINED_VARIABLE: ErrorCategory.TEMPLATE,
}


class SetupError(RuntimeError):
    """Raised when any provisioning step fails."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        path: Path | str | None = None,
        mode: int | None = None,
        owner: str | None = None,
        group: str | None = None,
        command: Sequence[str] | None = None,
        exit_code: int | None = None,
        variable: str | None = None,
        initialization: bool = False,
    ) -> None:
        """Capture the error kind, message, and structured context."""
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.path = Path(path) if path is not None else None
        self.mode = mode
        self.owner = owner
        self.group = group
        self.command = tuple(command) if command is not None else None
        self.exit_code = exit_code
        self.variable = variable
        self.initialization = initialization

    @property
    def category(self) -> ErrorCategory:
        """Return the category of the underlying kind."""
        return self.kind.category

    def as_initialization(self) -> SetupError:
        """Return a copy of this error flagged as an initialisation failure."""
        return SetupError(
            self.kind,
            self.message,
            path=self.path,
            mode=self.mode,
            owner=self.owner,
            group=self.group,
            command=self.command,
            exit_code=self.exit_code,
            variable=self.variable,
            initialization=True,
        )

    def describe(self) -> str:
        """Return the single-line message printed to operators."""
        if self.initialization:
            return f"Initialization failed: {self.message}"
        return self.message

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly representation for the operation log."""
        payload: dict[str, object] = {
            "kind": self.kind.value,
            "category": self.category.value,
            "message": self.message,
        }
        if self.path is not None:
            payload["path"] = str(self.path)
        if self.mode is not None:
            payload["mode"] = f"{self.mode:04o}"
        if self.owner is not None:
            payload["owner"] = self.owner
        if self.group is not None:
            payload["group"] = self.group
        if self.command is not None:
            payload["command"] = list(self.command)
        if self.exit_code is not None:
            payload["exit_code"] = self.exit_code
        if self.variable is not None:
            payload["variable"] = self.variable
        return payload


def format_mode(mode: int) -> str:
    """Render the permission bits of *mode* as ``rwxr-xr-x``."""
    result = ""
    for bit in range(8, -1, -1):
        if mode & (1 << bit):
            result += "rwx"[(8 - bit) % 3]
        else:
            result += "-"
    return result


def format_command(argv: Sequence[str]) -> str:
    """Return *argv* as a shell-quoted string for display only."""
    return shlex.join(argv)


__all__ = [
    "ErrorCategory",
    "ErrorKind",
    "SetupError",
    "format_command",
    "format_mode",
]
