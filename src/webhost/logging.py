"""Structured operation log for provisioning runs.

Each run appends one JSON object to ``operations.jsonl`` inside the log
directory. The record lists the steps in the order they ran together with
the final result. Logging is best effort: if the directory cannot be
created or a write fails, the logger disables itself and provisioning
carries on.
"""
from __future__ import annotations

import json
import secrets
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

OPERATIONS_LOG = "operations.jsonl"


def _timestamp() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _sanitize(value: object) -> object:
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_sanitize(item) for item in value]
    return str(value)


@dataclass(slots=True)
class OperationScope:
    """Collects steps and the outcome of a single logged operation."""

    command: str
    args: dict[str, object] = field(default_factory=dict)
    target: dict[str, object] = field(default_factory=dict)
    op_id: str = field(default_factory=lambda: secrets.token_hex(8))
    started_at: str = field(default_factory=_timestamp)
    steps: list[dict[str, object]] = field(default_factory=list)
    result: dict[str, object] | None = None

    def step(self, name: str, status: str = "ok", **context: object) -> None:
        """Record that step *name* finished with *status*."""
        entry: dict[str, object] = {"step": name, "status": status, "at": _timestamp()}
        if context:
            entry["context"] = _sanitize(context)
        self.steps.append(entry)

    def success(
        self,
        message: str,
        *,
        changed: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation successful."""
        self.result = {"status": "success", "message": message, "rc": 0}
        if changed is not None:
            self.result["changed"] = changed
        if context:
            self.result["context"] = _sanitize(context)

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation finished with warnings."""
        self.result = {
            "status": "warning",
            "message": message,
            "warnings": list(warnings or [message]),
            "rc": 0,
        }
        if context:
            self.result["context"] = _sanitize(context)

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        rc: int = 1,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation failed."""
        self.result = {
            "status": "error",
            "message": message,
            "errors": list(errors or [message]),
            "rc": rc,
        }
        if context:
            self.result["context"] = _sanitize(context)

    def to_record(self, finished_at: str, duration_ms: int) -> dict[str, object]:
        """Return the JSON record written for this operation."""
        return {
            "id": self.op_id,
            "command": self.command,
            "args": _sanitize(self.args),
            "target": _sanitize(self.target),
            "started_at": self.started_at,
            "finished_at": finished_at,
            "duration_ms": duration_ms,
            "steps": self.steps,
            "result": self.result,
        }


class StructuredLogger:
    """Append-only JSON lines logger keyed by operation."""

    def __init__(self, logs_dir: Path) -> None:
        """Prepare *logs_dir*; disable logging when it is unusable."""
        self._logs_dir = Path(logs_dir)
        self._operations_log_path = self._logs_dir / OPERATIONS_LOG
        self._enabled = True
        try:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            self._enabled = False

    @property
    def enabled(self) -> bool:
        """Whether records are still being written."""
        return self._enabled

    @property
    def operations_log_path(self) -> Path:
        """Path of the JSON lines file."""
        return self._operations_log_path

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield a scope for *command* and write its record on exit.

        An exception escaping the block is recorded as the error result
        (unless the block already recorded one) and re-raised.
        """
        scope = OperationScope(command=command, args=dict(args or {}), target=dict(target or {}))
        started = time.monotonic()
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None or scope.result.get("status") != "error":
                scope.error(str(exc) or type(exc).__name__)
            raise
        finally:
            if scope.result is None:
                scope.success("Completed.")
            duration_ms = int((time.monotonic() - started) * 1000)
            self._write(scope.to_record(_timestamp(), duration_ms))

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
        except OSError:
            self._enabled = False


__all__ = ["OperationScope", "StructuredLogger"]
