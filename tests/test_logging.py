"""Failure-mode tests for the structured operation log."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from webhost.logging import StructuredLogger


def _records(logger: StructuredLogger) -> list[dict[str, object]]:
    lines = logger.operations_log_path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_operation_writes_one_record_with_steps(tmp_path: Path) -> None:
    """Steps are recorded in order with sanitised context."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("setup", args={"domain": "acme.example.com"}) as op:
        op.step("directories", root=Path("/srv/www/acme"))
        op.step("clone", "ok", url="https://git.example.com/acme.git")
        op.success("Provisioned.", changed=10)

    (record,) = _records(logger)
    assert record["command"] == "setup"
    assert record["args"] == {"domain": "acme.example.com"}
    assert [step["step"] for step in record["steps"]] == ["directories", "clone"]
    assert record["steps"][0]["context"] == {"root": "/srv/www/acme"}
    assert record["result"]["status"] == "success"
    assert record["result"]["changed"] == 10


def test_operation_defaults_to_success(tmp_path: Path) -> None:
    """A block that records nothing is logged as completed."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("noop"):
        pass

    (record,) = _records(logger)
    assert record["result"]["status"] == "success"


def test_exception_recorded_and_reraised(tmp_path: Path) -> None:
    """Escaping exceptions become the error result."""
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(RuntimeError, match="boom"):
        with logger.operation("setup"):
            raise RuntimeError("boom")

    (record,) = _records(logger)
    assert record["result"]["status"] == "error"
    assert record["result"]["errors"] == ["boom"]


def test_explicit_error_not_overwritten(tmp_path: Path) -> None:
    """An error recorded before raising is kept as-is."""
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(SystemExit):
        with logger.operation("setup") as op:
            op.error("Initialization failed: nope", rc=1, context={"kind": "not-root"})
            raise SystemExit(1)

    (record,) = _records(logger)
    assert record["result"]["message"] == "Initialization failed: nope"
    assert record["result"]["context"] == {"kind": "not-root"}


def test_structured_logger_disables_when_directory_unavailable(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Logger gracefully disables itself when log directory cannot be created."""
    log_dir = tmp_path / "logs"

    original_mkdir = Path.mkdir

    def fail_mkdir(self: Path, *args: object, **kwargs: object) -> None:
        if self == log_dir:
            raise PermissionError("no access")
        original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fail_mkdir)

    logger = StructuredLogger(log_dir)
    assert logger.enabled is False

    with logger.operation("demo", args={"foo": "bar"}) as op:
        op.success("done", changed=0)


def test_structured_logger_disables_after_write_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Write failures mark the logger disabled so subsequent writes are skipped."""
    logger = StructuredLogger(tmp_path / "logs")
    operations_path = logger.operations_log_path

    original_open = Path.open

    def fail_once(self: Path, *args: object, **kwargs: object) -> object:
        if self == operations_path:
            raise OSError("disk full")
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", fail_once)

    with logger.operation("demo") as op:
        op.success("done", changed=0)

    assert logger.enabled is False

    with logger.operation("demo-2") as op:
        op.success("done", changed=0)


def test_operation_scope_warning_sanitises_context(tmp_path: Path) -> None:
    """Warnings should be recorded with JSON-safe context values."""
    logger = StructuredLogger(tmp_path / "logs")

    class Custom:
        def __str__(self) -> str:
            return "<custom>"

    with logger.operation("demo", args={"path": Path("foo")}) as op:
        op.warning(
            "warned",
            warnings=("note",),
            context={"path": Path("/var/lib"), "obj": Custom(), "values": (1, 2)},
        )

    (record,) = _records(logger)
    assert record["args"] == {"path": "foo"}
    result = record["result"]
    assert result["status"] == "warning"
    assert result["warnings"] == ["note"]
    assert result["context"] == {"path": "/var/lib", "obj": "<custom>", "values": [1, 2]}
