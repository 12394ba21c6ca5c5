"""
sf_field_audit/errors.py — Exception hierarchy.

Every failure the audit knows how to describe derives from AuditError. The
CLI is the only place that turns one into an exit status.
"""

from typing import Optional


class AuditError(Exception):
    """Base class for all audit failures."""


class ToolUnavailableError(AuditError):
    """The sf CLI is missing or cannot report its version."""


class QueryError(AuditError):
    """An sf command exited non-zero or timed out.

    Attributes:
        command: Argument vector that was executed.
        output:  Raw combined stdout/stderr, kept for manual reproduction.
    """

    def __init__(self, message: str, command: list[str], output: str = "") -> None:
        self.command = command
        self.output = output
        super().__init__(f"{message}: {' '.join(command)}\nOUTPUT: {output}")


class DecodeError(AuditError):
    """Query output could not be decoded into the expected shape."""

    def __init__(self, message: str, output: Optional[str] = None) -> None:
        self.output = output
        if output is not None:
            message = f"{message}\nOUTPUT: {output}"
        super().__init__(message)


class StateCorruptionError(AuditError):
    """An existing export file is present but cannot be decoded."""


class ExportError(AuditError):
    """The export file could not be written."""


class PipelineError(AuditError):
    """One or more pipeline branches failed under the ``defer`` policy.

    Attributes:
        errors:  One dict per failed branch (stage, subject, error).
        records: DeleteCountRecords produced by the branches that succeeded.
    """

    def __init__(self, errors: list[dict], records: list) -> None:
        self.errors = errors
        self.records = records
        first = errors[0] if errors else {}
        super().__init__(
            f"{len(errors)} pipeline branch(es) failed; first: "
            f"stage {first.get('stage')} [{first.get('subject')}] {first.get('error')}"
        )
