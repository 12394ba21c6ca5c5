"""
sf_field_audit/pipeline.py — Three-stage concurrent resolution pipeline.

Turns the deleted-fields query output into DeleteCountRecords:

    Stage A  deleted-field row   → developer name(s)
             (CustomObject Id lookup, or the raw name itself)
    Stage B  developer name      → (ApiName, QualifiedApiName) pair(s)
    Stage C  qualified API name  → SELECT Count() → DeleteCountRecord

Every lookup and count is an independent task. The nested fan-out is
flattened into one ThreadPoolExecutor: a task returns the child tasks it
discovered and a single driver loop submits them, so ``max_workers`` caps the
number of concurrent `sf` processes at every depth. The loop exits when no
future is pending, i.e. when every branch of the tree has joined.

Usage:
    from sf_field_audit.pipeline import ResolutionPipeline
    result = ResolutionPipeline(cli).run(raw_deleted_fields_output)
"""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from sf_field_audit.config import DEFAULT_CONFIG, DEFER, FAIL_FAST, AuditConfig
from sf_field_audit.errors import AuditError, DecodeError, PipelineError
from sf_field_audit.query.decoder import decode_rows
from sf_field_audit.records import DeleteCountRecord, DeletedFieldRow, ResultAccumulator

logger = logging.getLogger(__name__)

DELETED_FIELDS_QUERY = "deleted_fields"
ENUM_TO_DEVELOPER_NAME_QUERY = "enum_to_developer_name"
DEVELOPER_NAME_TO_API_NAME_QUERY = "developer_name_to_api_name"

STAGE_A = "A"
STAGE_B = "B"
STAGE_C = "C"


@dataclass
class PipelineResult:
    """Outcome of one pipeline run.

    Attributes:
        records:        DeleteCountRecords in completion order (not issue order).
        errors:         One dict per failed branch (stage, subject, error).
                        Always empty under the fail-fast policy.
        deleted_fields: Number of rows that passed the Stage-A gate.
        queries_issued: Lookup and count queries actually started.
    """

    records: list[DeleteCountRecord] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)
    deleted_fields: int = 0
    queries_issued: int = 0


@dataclass(frozen=True)
class _Task:
    stage: str
    subject: str
    fn: Callable
    args: tuple
    key: Optional[tuple] = None     # de-duplication key for Stage C


def select_deleted_fields(
    rows: Iterable[list[str]],
    config: AuditConfig = DEFAULT_CONFIG,
) -> list[DeletedFieldRow]:
    """Stage-A gate: keep rows whose DeveloperName carries the deletion suffix.

    Blank rows and the header row are skipped. Rows without the suffix are
    logged at DEBUG and dropped.

    Raises:
        DecodeError: if an eligible row has no TableEnumOrId column.
    """
    selected: list[DeletedFieldRow] = []
    for row in rows:
        if not row or not row[0] or row[0] == config.developer_name_header:
            logger.debug("Skipping line: %s", row)
            continue
        if not row[0].endswith(config.deletion_suffix):
            logger.debug(
                "Skipping non-deleted field: DeveloperName=%s, TableEnumOrId=%s",
                row[0], row[1] if len(row) > 1 else "",
            )
            continue
        if len(row) < 2:
            raise DecodeError(f"Deleted field row has no TableEnumOrId: {row!r}")
        selected.append(DeletedFieldRow(developer_name_raw=row[0], table_enum_or_id=row[1]))
    return selected


class ResolutionPipeline:
    """Resolves deleted fields to record counts.

    One instance performs one run; records land in ``accumulator``.

    Args:
        executor:    Object with ``query(name, param, use_tooling_api=...) -> str``
                     and ``count(qualified_api_name) -> int`` (a SalesforceCLI).
        config:      AuditConfig with markers, worker cap and error policy.
        accumulator: Shared sink for records; a fresh one when omitted.
        clock:       Returns Unix seconds; stamps each record.
    """

    def __init__(
        self,
        executor,
        config: AuditConfig = DEFAULT_CONFIG,
        accumulator: Optional[ResultAccumulator] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.executor = executor
        self.config = config
        self.accumulator = accumulator if accumulator is not None else ResultAccumulator()
        self._clock = clock
        self._cancel = threading.Event()
        self._queries_issued = 0
        self._counter_lock = threading.Lock()
        self._started = False

    # ── Public entry point ────────────────────────────────────────────────────

    def run(self, deleted_fields_output: str) -> PipelineResult:
        """Resolve every eligible row of the raw deleted-fields query output.

        Raises:
            AuditError:    first branch failure under ``fail-fast``.
            PipelineError: all branch failures under ``defer``.
            RuntimeError:  the instance has already run.
        """
        if self._started:
            raise RuntimeError("ResolutionPipeline instances are single-use; create a new one per run")
        self._started = True

        rows = select_deleted_fields(decode_rows(deleted_fields_output), self.config)
        logger.info("Processing %d deleted field(s)", len(rows))

        seeds = [
            _Task(
                STAGE_A,
                f"{row.developer_name_raw},{row.table_enum_or_id}",
                self._resolve_deleted_field,
                (row,),
            )
            for row in rows
        ]
        errors = self._drain(seeds)

        records = self.accumulator.records()
        logger.info(
            "Resolved %d delete count record(s) from %d deleted field(s) with %d queries",
            len(records), len(rows), self._queries_issued,
        )
        if errors and self.config.error_policy == DEFER:
            raise PipelineError(errors, records)

        return PipelineResult(
            records=records,
            errors=errors,
            deleted_fields=len(rows),
            queries_issued=self._queries_issued,
        )

    # ── Driver loop ───────────────────────────────────────────────────────────

    def _drain(self, seeds: list[_Task]) -> list[dict]:
        """Run seed tasks and every task they spawn until none is pending."""
        self._cancel.clear()
        errors: list[dict] = []
        counted: set[tuple] = set()
        pending: dict[Future, _Task] = {}

        with ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="sf-resolve"
        ) as pool:

            def submit(task: _Task) -> None:
                if task.key is not None:
                    if task.key in counted:
                        logger.debug("Already counted %s; skipping", task.key)
                        return
                    counted.add(task.key)
                pending[pool.submit(self._execute, task)] = task

            for task in seeds:
                submit(task)

            try:
                while pending:
                    done, _ = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        task = pending.pop(future)
                        try:
                            children = future.result()
                        except AuditError as exc:
                            if self.config.error_policy == FAIL_FAST:
                                raise
                            logger.warning(
                                "Stage %s failed for %s: %s", task.stage, task.subject, exc
                            )
                            errors.append(
                                {"stage": task.stage, "subject": task.subject, "error": str(exc)}
                            )
                            continue
                        for child in children:
                            submit(child)
            except BaseException:
                self._cancel.set()
                for future in pending:
                    future.cancel()
                raise

        return errors

    def _execute(self, task: _Task) -> list[_Task]:
        if self._cancel.is_set():
            return []
        try:
            return task.fn(*task.args)
        except AuditError:
            # Set before this worker can pick up another queued task.
            if self.config.error_policy == FAIL_FAST:
                self._cancel.set()
            raise

    def _note_query(self) -> None:
        with self._counter_lock:
            self._queries_issued += 1

    def _lookup(self, name: str, param: str, use_tooling_api: bool) -> list[list[str]]:
        self._note_query()
        output = self.executor.query(name, param, use_tooling_api=use_tooling_api)
        return decode_rows(output)

    # ── Stages ────────────────────────────────────────────────────────────────

    def _resolve_deleted_field(self, row: DeletedFieldRow) -> list[_Task]:
        """Stage A: deleted-field row → developer name tasks."""
        logger.debug(
            "Processing deleted field: DeveloperName=%s, TableEnumOrId=%s",
            row.developer_name_raw, row.table_enum_or_id,
        )
        header = self.config.developer_name_header
        if row.is_custom_object_reference(self.config.custom_object_prefix):
            name_rows = self._lookup(
                ENUM_TO_DEVELOPER_NAME_QUERY, row.table_enum_or_id, use_tooling_api=True
            )
        else:
            # The raw name already is the developer name; mimic the lookup's shape.
            name_rows = [
                [row.developer_name_raw, header],
                [row.developer_name_raw, row.developer_name_raw],
            ]

        children: list[_Task] = []
        for name_row in name_rows:
            if len(name_row) < 2:
                raise DecodeError(f"Developer name row has fewer than 2 fields: {name_row!r}")
            developer_name = name_row[1]
            if developer_name == header:
                continue
            children.append(
                _Task(STAGE_B, developer_name, self._resolve_developer_name, (row, developer_name))
            )
        return children

    def _resolve_developer_name(self, row: DeletedFieldRow, developer_name: str) -> list[_Task]:
        """Stage B: developer name → count tasks, one per qualified API name."""
        logger.debug(
            "Processing developer name: DeveloperName=%s, API Name=%s",
            row.developer_name_raw, developer_name,
        )
        api_rows = self._lookup(
            DEVELOPER_NAME_TO_API_NAME_QUERY, developer_name, use_tooling_api=False
        )

        children: list[_Task] = []
        for api_row in api_rows:
            if len(api_row) < 3:
                raise DecodeError(f"API name row has fewer than 3 fields: {api_row!r}")
            api_name, qualified_api_name = api_row[1], api_row[2]
            if qualified_api_name == self.config.qualified_name_header:
                continue
            children.append(
                _Task(
                    STAGE_C,
                    qualified_api_name,
                    self._count_records,
                    (row, api_name, qualified_api_name),
                    key=(row.developer_name_raw, qualified_api_name),
                )
            )
        if not children:
            logger.debug("No QualifiedApiName found for developer name %s", developer_name)
        return children

    def _count_records(
        self, row: DeletedFieldRow, api_name: str, qualified_api_name: str
    ) -> list[_Task]:
        """Stage C: count records and hand the result to the accumulator."""
        logger.debug("Processing API name: QualifiedApiName=%s", qualified_api_name)
        self._note_query()
        count = self.executor.count(qualified_api_name)
        self.accumulator.append(
            DeleteCountRecord(
                developer_name=row.developer_name_raw,
                table_enum_or_id=row.table_enum_or_id,
                qualified_api_name=qualified_api_name,
                api_name=api_name,
                count=count,
                timestamp=int(self._clock()),
            )
        )
        return []
