"""
sf_field_audit/storage/export.py — Cumulative JSON export of delete counts.

The export file holds two keys:

    results       every DeleteCountRecord ever observed, append-only
    lastRunCount  per-date totals, recomputed from the whole of ``results``
                  on every run (a derived view, never edited in place)

Within one date each qualified object counts once: the first record seen for a
(date, QualifiedApiName) pair wins, so re-running the audit on the same day
does not inflate that day's total.

Writes go to ``<path>.tmp`` and are renamed over the target, so a reader never
sees a half-written file. An existing file that cannot be decoded is a hard
error and is left untouched.
"""

import hashlib
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

import pandas as pd

from sf_field_audit.errors import ExportError, StateCorruptionError
from sf_field_audit.records import DATE_FORMAT, DeleteCountRecord

logger = logging.getLogger(__name__)


@dataclass
class ExportData:
    """In-memory form of the export file."""

    results: list[DeleteCountRecord] = field(default_factory=list)
    last_run_count: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "results": [r.to_dict() for r in self.results],
            "lastRunCount": [dict(entry) for entry in self.last_run_count],
        }

    @classmethod
    def from_dict(cls, data) -> "ExportData":
        """Validate and convert a decoded export document.

        Missing keys decode as empty lists; present keys with the wrong shape
        raise StateCorruptionError.
        """
        if not isinstance(data, dict):
            raise StateCorruptionError(
                f"Export document is not an object (got {type(data).__name__})"
            )
        raw_results = data.get("results")
        if raw_results is None:
            raw_results = []
        if not isinstance(raw_results, list):
            raise StateCorruptionError("'results' is not a list")
        raw_counts = data.get("lastRunCount")
        if raw_counts is None:
            raw_counts = []
        if not isinstance(raw_counts, list):
            raise StateCorruptionError("'lastRunCount' is not a list")
        for entry in raw_counts:
            if not isinstance(entry, dict) or "date" not in entry or "count" not in entry:
                raise StateCorruptionError(f"Malformed lastRunCount entry: {entry!r}")

        return cls(
            results=[DeleteCountRecord.from_dict(item) for item in raw_results],
            last_run_count=[{"date": e["date"], "count": e["count"]} for e in raw_counts],
        )


def load_export(path: str) -> ExportData:
    """Read the export file at *path*; an absent file yields empty state.

    Raises:
        StateCorruptionError: the file exists but is not a valid export.
    """
    if not os.path.exists(path):
        logger.debug("No existing export at %s; starting from empty state", path)
        return ExportData()

    logger.debug("Reading existing data from file: %s", path)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        raise StateCorruptionError(f"Failed to decode existing JSON data in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise StateCorruptionError(f"Failed to open existing file {path}: {exc}") from exc

    try:
        return ExportData.from_dict(data)
    except StateCorruptionError as exc:
        raise StateCorruptionError(f"{path}: {exc}") from exc


def current_counts(
    records: list[DeleteCountRecord],
    today: Optional[date] = None,
) -> list[dict]:
    """Date-bucketed totals over *records*, de-duplicated per qualified object.

    Algorithm:
        1. Bucket every record by its local calendar date.
        2. Keep only the first record for each (date, QualifiedApiName).
        3. Sum the surviving counts per date, dates ascending.

    An empty input yields a single zero entry stamped with *today* so the
    export always carries at least one current count.

    Returns:
        List of ``{"date": "YYYY-MM-DD", "count": int}`` dicts.
    """
    if not records:
        stamp = (today or date.today()).strftime(DATE_FORMAT)
        logger.info("No records found, setting count to 0 and date to %s", stamp)
        return [{"date": stamp, "count": 0}]

    df = pd.DataFrame(
        {
            "date": [r.date() for r in records],
            "qualified_api_name": [r.qualified_api_name for r in records],
            "count": [r.count for r in records],
        }
    )
    first_seen = df.drop_duplicates(subset=["date", "qualified_api_name"], keep="first")
    totals = first_seen.groupby("date", sort=True)["count"].sum()

    counts = [{"date": str(day), "count": int(total)} for day, total in totals.items()]
    for entry in counts:
        logger.info("Count for date %s: %d", entry["date"], entry["count"])
    return counts


def merge_results(
    existing: ExportData,
    new_records: Iterable[DeleteCountRecord],
    today: Optional[date] = None,
) -> ExportData:
    """Append *new_records* to *existing* and recompute the current counts.

    *existing* is not modified.
    """
    results = list(existing.results)
    results.extend(new_records)
    return ExportData(results=results, last_run_count=current_counts(results, today))


def file_md5(path: str) -> str:
    """Hex MD5 digest of the file at *path*."""
    hasher = hashlib.md5()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def write_export(path: str, data: ExportData) -> str:
    """Atomically replace *path* with *data*; return the MD5 of the bytes written.

    Raises:
        ExportError: encoding or any filesystem step failed. The previous file,
                     if any, is left as it was.
    """
    tmp = path + ".tmp"
    try:
        payload = json.dumps(data.to_dict(), indent=2, ensure_ascii=False) + "\n"
        encoded = payload.encode("utf-8")
        with open(tmp, "wb") as fh:
            fh.write(encoded)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except (OSError, TypeError, ValueError) as exc:
        if os.path.exists(tmp):
            os.remove(tmp)
        raise ExportError(f"Failed to write export file {path}: {exc}") from exc

    return hashlib.md5(encoded).hexdigest()


def export_results(
    path: str,
    new_records: Iterable[DeleteCountRecord],
    today: Optional[date] = None,
) -> ExportData:
    """Load → merge → write. Returns the state that was persisted."""
    logger.debug("Exporting results to JSON file: %s", path)
    existing = load_export(path)
    merged = merge_results(existing, new_records, today)
    md5_hash = write_export(path, merged)
    logger.info(
        "Successfully exported results to JSON file: %s with MD5 hash: %s", path, md5_hash
    )
    return merged
