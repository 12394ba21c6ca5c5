"""
sf_field_audit/query/executor.py — Thin wrapper around the Salesforce `sf` CLI.

Each call spawns one `sf` process and returns its raw combined output. Query
text comes from the named ``.soql`` templates next to this module; a ``#`` in
a template is replaced by the caller's parameter.

Usage:
    from sf_field_audit.query.executor import SalesforceCLI
    cli = SalesforceCLI("my-sandbox")
    cli.check_installed()
    raw = cli.query("deleted_fields", use_tooling_api=True)
"""

import logging
import os
import subprocess
from typing import Optional

from sf_field_audit.config import DEFAULT_CONFIG, AuditConfig
from sf_field_audit.errors import QueryError, ToolUnavailableError
from sf_field_audit.query.decoder import parse_count

logger = logging.getLogger(__name__)

_THIS_DIR = os.path.dirname(os.path.abspath(__file__))
QUERY_DIR = os.path.join(_THIS_DIR, "soql")
PARAM_PLACEHOLDER = "#"


class SalesforceCLI:
    """Runs SOQL queries against one org through the `sf` executable.

    Safe to share between threads: it holds no mutable state.

    Args:
        org:       Org alias or username passed to ``-o``.
        config:    AuditConfig supplying the binary name, timeout and banner markers.
        query_dir: Directory holding the ``<name>.soql`` templates.
    """

    def __init__(
        self,
        org: str,
        config: AuditConfig = DEFAULT_CONFIG,
        query_dir: str = QUERY_DIR,
    ) -> None:
        self.org = org
        self.config = config
        self.query_dir = query_dir

    # ── Templates ─────────────────────────────────────────────────────────────

    def load_query(self, name: str) -> str:
        """Read the named template with newlines collapsed to spaces."""
        path = os.path.join(self.query_dir, f"{name}.soql")
        logger.debug("Reading query file: %s", path)
        try:
            with open(path, encoding="utf-8") as fh:
                text = fh.read()
        except OSError as exc:
            raise QueryError(f"Query file read failed ({exc})", [path]) from exc
        return " ".join(text.split())

    def render_query(self, name: str, param: Optional[str] = None) -> str:
        text = self.load_query(name)
        if param:
            text = text.replace(PARAM_PLACEHOLDER, param)
        return text

    # ── Process execution ─────────────────────────────────────────────────────

    def _run(self, args: list[str]) -> str:
        cmd = [self.config.sf_binary, *args]
        try:
            proc = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.config.query_timeout_sec,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ToolUnavailableError(f"{self.config.sf_binary} is not installed: {exc}") from exc
        except subprocess.TimeoutExpired as exc:
            output = exc.output or ""
            if isinstance(output, bytes):
                output = output.decode("utf-8", errors="replace")
            raise QueryError(
                f"Command timed out after {self.config.query_timeout_sec}s", cmd, output
            ) from exc

        if proc.returncode != 0:
            raise QueryError(f"Command exited with status {proc.returncode}", cmd, proc.stdout)
        return proc.stdout

    def check_installed(self) -> list[str]:
        """Verify that the sf CLI runs; return its version lines.

        Raises:
            ToolUnavailableError: if the binary is missing or exits non-zero.
        """
        logger.debug("Checking Salesforce CLI installation")
        try:
            output = self._run(["version"])
        except QueryError as exc:
            raise ToolUnavailableError(f"{self.config.sf_binary} is not usable: {exc}") from exc

        lines = [ln for ln in output.splitlines() if ln and "Warning:" not in ln]
        for line in lines:
            logger.debug("Salesforce CLI version: %s", line)
        return lines

    def query(
        self,
        name: str,
        param: Optional[str] = None,
        use_tooling_api: bool = False,
    ) -> str:
        """Run the named template as a CSV query and return the raw output."""
        soql = self.render_query(name, param)
        args = ["data", "query", "-o", self.org, "-r", "csv", "-q", soql]
        if use_tooling_api:
            args.append("-t")
        logger.debug("Executing query [Tooling API: %s]: %s", use_tooling_api, args)
        return self._run(args)

    def count(self, qualified_api_name: str) -> int:
        """Return the number of records stored in *qualified_api_name*."""
        args = [
            "data", "query",
            "-q", f"SELECT Count() FROM {qualified_api_name}",
            "-o", self.org,
            "-r", "json",
        ]
        logger.debug("Querying count with args: %s", args)
        output = self._run(args)
        return parse_count(output, self.config.banner_markers)
