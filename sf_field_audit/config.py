"""
sf_field_audit/config.py — All tunable parameters for the deleted-field audit.

Markers, header titles, concurrency limits and the error policy live here so
that adapting the audit to another org layout is a single-file diff.
"""

from dataclasses import dataclass
from typing import Optional

FAIL_FAST = "fail-fast"
DEFER = "defer"
WARN = "warn"
ERROR_POLICIES = (FAIL_FAST, DEFER, WARN)


@dataclass(frozen=True)
class AuditConfig:
    """
    Immutable configuration for one audit run.

    Override by constructing a new AuditConfig (or ``dataclasses.replace``)
    with the desired values.
    """

    # ── Deleted-field detection ───────────────────────────────────────────────
    deletion_suffix: str = "_del"
    # Salesforce renames a deleted custom field to <Name>_del until it is
    # erased for good. Only rows whose DeveloperName ends with this are audited.

    custom_object_prefix: str = "01I"
    # Key prefix of CustomObject record Ids. A TableEnumOrId starting with it
    # points at a custom object and needs an extra lookup to reach its
    # DeveloperName; anything else (e.g. "Account") is used as-is.

    # ── Column titles (header rows are skipped by comparing against these) ───
    developer_name_header: str = "DeveloperName"
    qualified_name_header: str = "QualifiedApiName"

    # ── Concurrency ───────────────────────────────────────────────────────────
    max_workers: int = 8
    # Upper bound on concurrent `sf` processes. Every lookup and count query
    # is a separate process, so a large org can otherwise spawn hundreds.

    error_policy: str = FAIL_FAST
    # fail-fast: first query/decode failure cancels the run and is re-raised.
    # defer:     every branch runs to completion, then all failures are raised
    #            together with the partial records.
    # warn:      failures are logged and skipped; the partial result is kept.

    # ── sf CLI ────────────────────────────────────────────────────────────────
    sf_binary: str = "sf"

    query_timeout_sec: Optional[float] = None
    # Per-process timeout. None waits indefinitely.

    banner_markers: tuple[str, ...] = ("»", "update available")
    # The sf CLI prints an update advisory ahead of JSON output. Text up to the
    # first line break after any of these markers is dropped before parsing.

    # ── Export ────────────────────────────────────────────────────────────────
    default_export_path: str = "deleted_fields.json"

    def __post_init__(self) -> None:
        if self.error_policy not in ERROR_POLICIES:
            raise ValueError(
                f"error_policy must be one of {ERROR_POLICIES}, got {self.error_policy!r}"
            )
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")


# Singleton default — import this everywhere instead of constructing anew.
DEFAULT_CONFIG = AuditConfig()
