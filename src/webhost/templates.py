"""Minimal ``%NAME%`` placeholder templates for the shipped config files.

Placeholders are identifiers wrapped in percent signs (``%APP_DIR%``).
Names are matched case-insensitively against the supplied variables and a
placeholder without a value aborts the render; there are no defaults and
substituted values are never scanned again. Any other use of ``%`` (for
example ``50%`` in an nginx directive) is left alone.
"""
from __future__ import annotations

import os
import re
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .errors import ErrorKind, SetupError

PLACEHOLDER_PATTERN = re.compile(r"%([A-Za-z_][A-Za-z0-9_]*)%")

# Templates are copied byte-for-byte apart from the placeholders.
_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


@dataclass(frozen=True, slots=True)
class Template:
    """A template loaded fully into memory."""

    source: Path
    text: str

    @classmethod
    def load(cls, path: str | os.PathLike[str]) -> Template:
        """Read the template at *path*; a missing file is a read failure."""
        source = Path(path)
        try:
            resolved = source.resolve(strict=True)
        except (OSError, RuntimeError) as exc:
            raise SetupError(
                ErrorKind.READ_FAILED,
                f"Template {source} not found: {getattr(exc, 'strerror', None) or exc}",
                path=source,
            ) from exc
        try:
            text = resolved.read_text(encoding=_ENCODING, errors=_ERRORS)
        except OSError as exc:
            raise SetupError(
                ErrorKind.READ_FAILED,
                f"Failed to read contents of {resolved}: {exc.strerror or exc}",
                path=resolved,
            ) from exc
        return cls(source=resolved, text=text)

    def placeholders(self) -> list[str]:
        """Return the placeholder names referenced by the template, in order."""
        return [match.group(1) for match in PLACEHOLDER_PATTERN.finditer(self.text)]

    def render(self, variables: Mapping[str, str]) -> str:
        """Return the template text with every placeholder substituted."""
        return render_text(self.text, variables, source=self.source)

    def render_to_file(
        self,
        path: str | os.PathLike[str],
        variables: Mapping[str, str],
        *,
        mode: int = 0o644,
    ) -> Path:
        """Render and write the result to *path* with permissions *mode*."""
        rendered = self.render(variables)
        destination = Path(path)
        _write_replace(destination, rendered, mode)
        return destination


def render_text(
    text: str,
    variables: Mapping[str, str],
    *,
    source: Path | None = None,
) -> str:
    """Substitute ``%NAME%`` placeholders in *text* from *variables*."""
    lookup = {name.upper(): str(value) for name, value in variables.items()}

    def _substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        try:
            return lookup[name.upper()]
        except KeyError:
            location = f" in {source}" if source is not None else ""
            raise SetupError(
                ErrorKind.UNDEFINED_VARIABLE,
                f"Template variable '{name}' not defined{location}",
                path=source,
                variable=name,
            ) from None

    return PLACEHOLDER_PATTERN.sub(_substitute, text)


def _write_replace(destination: Path, content: str, mode: int) -> None:
    data = content.encode(_ENCODING, errors=_ERRORS)
    temp_name: str | None = None
    try:
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{destination.name}.",
            suffix=".tmp",
            dir=destination.parent,
        )
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.chmod(temp_name, mode)
        os.replace(temp_name, destination)
    except OSError as exc:
        if temp_name is not None:
            Path(temp_name).unlink(missing_ok=True)
        raise SetupError(
            ErrorKind.WRITE_FAILED,
            f"Failed to write {len(data)} bytes to {destination}: {exc.strerror or exc}",
            path=destination,
            mode=mode,
        ) from exc


__all__ = ["PLACEHOLDER_PATTERN", "Template", "render_text"]
