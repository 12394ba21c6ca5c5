"""
sf_field_audit/records.py — Record types and the shared result accumulator.

DeletedFieldRow is what the Stage-A gate lets through. DeleteCountRecord is
the unit of output: one per (deleted field, qualified object name) pair, with
the record count observed at a point in time. ResultAccumulator is the only
state shared between pipeline workers.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime

from sf_field_audit.errors import StateCorruptionError

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"


@dataclass(frozen=True)
class DeletedFieldRow:
    """One decoded row of the deleted-fields query."""

    developer_name_raw: str     # e.g. "Legacy_Score_del"
    table_enum_or_id: str       # "01I..." custom object Id, or a standard object name

    def is_custom_object_reference(self, prefix: str) -> bool:
        """True when the owning table is referenced by CustomObject Id."""
        return self.table_enum_or_id.startswith(prefix)


# Persisted JSON key → (attribute name, expected type)
_RECORD_FIELDS = {
    "DeveloperName": ("developer_name", str),
    "TableEnumOrId": ("table_enum_or_id", str),
    "QualifiedApiName": ("qualified_api_name", str),
    "ApiName": ("api_name", str),
    "Count": ("count", int),
    "Timestamp": ("timestamp", int),
}


@dataclass(frozen=True)
class DeleteCountRecord:
    """Record count for one deleted field on one queryable object."""

    developer_name: str
    table_enum_or_id: str
    qualified_api_name: str
    api_name: str
    count: int
    timestamp: int              # Unix seconds

    def date(self) -> str:
        """Local calendar date of the observation, YYYY-MM-DD."""
        return datetime.fromtimestamp(self.timestamp).strftime(DATE_FORMAT)

    def to_dict(self) -> dict:
        return {key: getattr(self, attr) for key, (attr, _) in _RECORD_FIELDS.items()}

    @classmethod
    def from_dict(cls, data: dict) -> "DeleteCountRecord":
        """Build a record from its persisted form.

        Raises:
            StateCorruptionError: if a key is missing or holds the wrong type.
        """
        if not isinstance(data, dict):
            raise StateCorruptionError(f"Result entry is not an object: {data!r}")
        kwargs = {}
        for key, (attr, expected) in _RECORD_FIELDS.items():
            if key not in data:
                raise StateCorruptionError(f"Result entry missing {key!r}: {data!r}")
            value = data[key]
            # bool is an int subclass; reject it explicitly
            if not isinstance(value, expected) or isinstance(value, bool):
                raise StateCorruptionError(
                    f"Result entry field {key!r} is not {expected.__name__}: {data!r}"
                )
            kwargs[attr] = value
        return cls(**kwargs)


class ResultAccumulator:
    """Append-only, thread-safe collection of DeleteCountRecords.

    No ordering is implied by insertion and nothing is de-duplicated here;
    the export step owns de-duplication.
    """

    def __init__(self) -> None:
        self._records: list[DeleteCountRecord] = []
        self._lock = threading.Lock()

    def append(self, record: DeleteCountRecord) -> None:
        logger.debug("Appending delete count record: %s", record)
        with self._lock:
            self._records.append(record)

    def records(self) -> list[DeleteCountRecord]:
        """Copy of everything appended so far."""
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
