"""Filesystem helpers used while building the vhost directory tree."""
from __future__ import annotations

import os
import shutil
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from .errors import ErrorKind, SetupError, format_mode


@dataclass(frozen=True, slots=True)
class DirectorySpec:
    """Desired mode and ownership for a directory."""

    path: Path
    mode: int = 0o755
    owner: str | None = None
    group: str | None = None


def ensure_directory(
    path: str | os.PathLike[str],
    mode: int = 0o755,
    owner: str | None = None,
    group: str | None = None,
) -> Path:
    """Create *path* if needed and enforce *mode*, *owner* and *group*.

    Missing ancestors are created as well. The mode is re-applied even when
    the directory already exists so repeated runs converge on the same
    permissions. A path that exists but is not a directory is left untouched
    and reported as a conflict.
    """
    target = Path(path)
    if not os.path.lexists(target):
        try:
            target.mkdir(mode=mode, parents=True)
        except OSError as exc:
            raise SetupError(
                ErrorKind.MKDIR_FAILED,
                f"Failed to create directory {target} with mode {format_mode(mode)}: "
                f"{exc.strerror or exc}",
                path=target,
                mode=mode,
            ) from exc

    if not target.is_dir():
        raise SetupError(
            ErrorKind.DIRECTORY_CONFLICT,
            f"Path {target} exists and is not a directory",
            path=target,
        )

    change_mode(target, mode)
    if owner is not None:
        change_owner(target, owner)
    if group is not None:
        change_group(target, group)
    return target


def apply_directories(specs: Iterable[DirectorySpec]) -> list[Path]:
    """Ensure every directory in *specs*, in order, stopping at the first failure."""
    return [
        ensure_directory(spec.path, spec.mode, spec.owner, spec.group)
        for spec in specs
    ]


def change_mode(path: Path, mode: int) -> None:
    """Apply *mode* to *path*."""
    try:
        os.chmod(path, mode)
    except OSError as exc:
        raise SetupError(
            ErrorKind.CHMOD_FAILED,
            f"Failed to set {path} to mode {format_mode(mode)}: {exc.strerror or exc}",
            path=path,
            mode=mode,
        ) from exc


def change_owner(path: Path, owner: str) -> None:
    """Change the owning user of *path* to *owner*."""
    try:
        shutil.chown(path, user=owner)
    except (OSError, LookupError) as exc:
        raise SetupError(
            ErrorKind.CHOWN_FAILED,
            f"Failed to change ownership of {path} to {owner}: {_reason(exc)}",
            path=path,
            owner=owner,
        ) from exc


def change_group(path: Path, group: str) -> None:
    """Change the owning group of *path* to *group*."""
    try:
        shutil.chown(path, group=group)
    except (OSError, LookupError) as exc:
        raise SetupError(
            ErrorKind.CHGRP_FAILED,
            f"Failed to change group of {path} to {group}: {_reason(exc)}",
            path=path,
            group=group,
        ) from exc


def canonicalize(path: str | os.PathLike[str]) -> Path:
    """Return the absolute, symlink-free form of *path*, which must exist."""
    try:
        return Path(path).resolve(strict=True)
    except (OSError, RuntimeError) as exc:
        raise SetupError(
            ErrorKind.PATH_NOT_FOUND,
            f"Path '{path}' is invalid",
            path=Path(path),
        ) from exc


def create_symlink(target: str | os.PathLike[str], link_path: str | os.PathLike[str]) -> Path:
    """Create *link_path* pointing at *target*.

    Existing entries at *link_path* are never replaced.
    """
    link = Path(link_path)
    try:
        link.symlink_to(target)
    except OSError as exc:
        raise SetupError(
            ErrorKind.LINK_FAILED,
            f"Creating link to {target} at {link} failed: {exc.strerror or exc}",
            path=link,
        ) from exc
    return link


def _reason(exc: BaseException) -> str:
    if isinstance(exc, OSError) and exc.strerror:
        return exc.strerror
    if isinstance(exc, LookupError) and exc.args:
        return str(exc.args[0])
    return str(exc)


__all__ = [
    "DirectorySpec",
    "apply_directories",
    "canonicalize",
    "change_group",
    "change_mode",
    "change_owner",
    "create_symlink",
    "ensure_directory",
]
