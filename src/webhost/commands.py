"""External command execution without an intermediate shell."""
from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

from .errors import ErrorKind, SetupError, format_command

# Exit status reported when the executable cannot be spawned at all.
COMMAND_NOT_FOUND = 127


@dataclass(slots=True)
class CommandRunner:
    """Run external programs from an argument vector.

    Arguments are handed to the operating system unchanged; no shell ever
    parses them, so quoting and injection are not a concern.
    """

    def run_inherit_io(self, argv: Sequence[str]) -> None:
        """Run *argv* attached to the current stdin/stdout/stderr."""
        self._run(argv, capture_output=False)

    def run_captured(self, argv: Sequence[str]) -> None:
        """Run *argv* with its output suppressed, surfacing only success or failure."""
        self._run(argv, capture_output=True)

    # ------------------------------------------------------------------
    def _run(self, argv: Sequence[str], *, capture_output: bool) -> None:
        args = [str(arg) for arg in argv]
        if not args:
            raise ValueError("Command must contain at least one argument.")
        try:
            if capture_output:
                result = subprocess.run(  # noqa: S603
                    args,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    check=False,
                )
            else:
                result = subprocess.run(args, check=False)  # noqa: S603
        except OSError as exc:
            raise SetupError(
                ErrorKind.COMMAND_FAILED,
                f'Command "{format_command(args)}" could not be started: '
                f"{exc.strerror or exc}",
                command=args,
                exit_code=COMMAND_NOT_FOUND,
            ) from exc
        if result.returncode != 0:
            raise SetupError(
                ErrorKind.COMMAND_FAILED,
                f'Command "{format_command(args)}" exited with code {result.returncode}',
                command=args,
                exit_code=result.returncode,
            )


__all__ = ["COMMAND_NOT_FOUND", "CommandRunner"]
