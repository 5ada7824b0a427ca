"""Enumerations for CLI exit codes."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Exit codes used by ``webhost-setup``; every failure maps to ``FAILURE``."""

    OK = 0
    FAILURE = 1
