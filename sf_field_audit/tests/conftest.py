"""
sf_field_audit/tests/conftest.py — Shared pytest fixtures for the audit test suite.

Fixtures:
    fake_cli        — Offline stand-in for SalesforceCLI with canned outputs.
    make_record     — Factory for DeleteCountRecords stamped on a given local date.
    sf_org          — Org alias from SF_TARGET_ORG or .env (or None), for integration tests.
"""

import os
import threading
import time
from datetime import datetime

import pytest

from sf_field_audit.errors import QueryError
from sf_field_audit.records import DeleteCountRecord


# ── Pytest configuration hooks ────────────────────────────────────────────────

INTEGRATION_HINT = "needs a real sf CLI and org; enable with --run-integration or -m integration"


def pytest_addoption(parser):
    parser.addoption("--run-integration", action="store_true", help="Run tests against a real Salesforce org.")


def pytest_configure(config):
    config.addinivalue_line("markers", f"integration: {INTEGRATION_HINT}")


def pytest_collection_modifyitems(config, items):
    """Integration tests are skipped unless selected by flag or marker expression."""
    if config.getoption("--run-integration") or "integration" in (config.getoption("-m") or ""):
        return
    skip = pytest.mark.skip(reason=INTEGRATION_HINT)
    for item in items:
        if item.get_closest_marker("integration") is not None:
            item.add_marker(skip)


# ── Fake sf CLI ───────────────────────────────────────────────────────────────

NO_RESULTS = "Querying Data... done\nYour query returned no results.\n"


class FakeSalesforceCLI:
    """Canned-output replacement for SalesforceCLI.

    Args:
        lookups:      {(query_name, param): raw CSV output}
        counts:       {qualified_api_name: int}
        fail_queries: (query_name, param) pairs that raise QueryError.
        fail_counts:  qualified names whose count raises QueryError.
        delay:        Seconds each call sleeps, to force overlap between threads.
    """

    def __init__(
        self,
        lookups=None,
        counts=None,
        fail_queries=(),
        fail_counts=(),
        delay=0.0,
    ):
        self.lookups = dict(lookups or {})
        self.counts = dict(counts or {})
        self.fail_queries = set(fail_queries)
        self.fail_counts = set(fail_counts)
        self.delay = delay
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def _enter(self, call):
        with self._lock:
            self.calls.append(call)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        if self.delay:
            time.sleep(self.delay)

    def _exit(self):
        with self._lock:
            self.active -= 1

    def query(self, name, param=None, use_tooling_api=False):
        self._enter(("query", name, param, use_tooling_api))
        try:
            if (name, param) in self.fail_queries:
                raise QueryError("Command exited with status 1", ["sf", "data", "query", name], "boom")
            return self.lookups.get((name, param), NO_RESULTS)
        finally:
            self._exit()

    def count(self, qualified_api_name):
        self._enter(("count", qualified_api_name))
        try:
            if qualified_api_name in self.fail_counts:
                raise QueryError(
                    "Command exited with status 1",
                    ["sf", "data", "query", "-q", f"SELECT Count() FROM {qualified_api_name}"],
                    "INVALID_TYPE",
                )
            return self.counts.get(qualified_api_name, 0)
        finally:
            self._exit()

    def count_calls(self):
        return [c[1] for c in self.calls if c[0] == "count"]


@pytest.fixture
def fake_cli():
    """Factory fixture: ``fake_cli(lookups=..., counts=...)``."""
    return FakeSalesforceCLI


@pytest.fixture
def make_record():
    """Factory for DeleteCountRecords on a local calendar date.

    ``make_record("2026-03-01", "Foo__c", 5)`` stamps noon local time on that
    date so the record's date() is stable whatever the machine's timezone.
    """

    def _make(day, qualified_api_name, count, developer_name="Legacy_del", hour=12):
        stamp = datetime.strptime(day, "%Y-%m-%d").replace(hour=hour)
        return DeleteCountRecord(
            developer_name=developer_name,
            table_enum_or_id="01I000000000001",
            qualified_api_name=qualified_api_name,
            api_name=qualified_api_name.replace("__c", ""),
            count=count,
            timestamp=int(stamp.timestamp()),
        )

    return _make


@pytest.fixture(scope="session")
def sf_org():
    """Org alias from SF_TARGET_ORG or a .env file, or None if neither sets it."""
    from sf_field_audit.cli import ORG_ENV_VAR, _org_from_env_file

    return os.environ.get(ORG_ENV_VAR) or _org_from_env_file()
