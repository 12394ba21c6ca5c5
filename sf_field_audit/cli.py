"""
sf_field_audit/cli.py — Command-line interface for the deleted-field audit.

Provides a single entry point that:
  1. Resolves the org from --org, SF_TARGET_ORG or a .env file
  2. Checks that the sf CLI is installed
  3. Queries deleted fields and resolves their record counts concurrently
  4. Merges the counts into the cumulative JSON export

Usage:
    python -m sf_field_audit run --org my-sandbox     # audit + export
    python -m sf_field_audit run --export ""          # audit only, no export
    python -m sf_field_audit status                   # show export state

The org comes from --org, then the SF_TARGET_ORG environment variable, then
an SF_TARGET_ORG line in .env (nearest one from the working directory up, or
the file given by --env-file).
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import sys
import time
from pathlib import Path

from sf_field_audit.config import DEFAULT_CONFIG, ERROR_POLICIES
from sf_field_audit.errors import AuditError


ORG_ENV_VAR = "SF_TARGET_ORG"


def _find_env_file(start: Path) -> Path | None:
    """Nearest .env walking up from *start*."""
    for directory in [start, *start.parents]:
        if (directory / ".env").is_file():
            return directory / ".env"
    return None


def _org_from_env_file(env_file: str | None = None) -> str | None:
    """Return the SF_TARGET_ORG value a .env file defines, or None.

    Only that key is read; the process environment is left alone.
    """
    path = Path(env_file) if env_file else _find_env_file(Path.cwd())
    if path is None or not path.is_file():
        return None

    with open(path, encoding="utf-8") as fh:
        for line in fh:
            key, sep, value = line.strip().partition("=")
            if sep and key.removeprefix("export ").strip() == ORG_ENV_VAR:
                return value.strip().strip("\"'") or None
    return None


# ── Logging setup ─────────────────────────────────────────────────────────────

def _setup_logging(level: str = "INFO") -> None:
    """Configure root logger with timestamps and level names."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    fmt = "%(asctime)s  %(levelname)-8s  %(name)s — %(message)s"
    datefmt = "%H:%M:%S"
    logging.basicConfig(level=numeric, format=fmt, datefmt=datefmt, stream=sys.stderr)


logger = logging.getLogger("sf_field_audit.cli")


# ── Subcommand: run ───────────────────────────────────────────────────────────

def cmd_run(args: argparse.Namespace) -> int:
    """Full audit: preflight → deleted fields → pipeline → export."""
    _setup_logging(args.log_level)

    org = args.org or os.environ.get(ORG_ENV_VAR) or _org_from_env_file(args.env_file)
    if not org:
        logger.error("Please provide a Salesforce organization alias; use --org or SF_TARGET_ORG")
        return 1

    from sf_field_audit.pipeline import DELETED_FIELDS_QUERY, ResolutionPipeline
    from sf_field_audit.query.executor import SalesforceCLI
    from sf_field_audit.storage.export import export_results

    try:
        config = dataclasses.replace(
            DEFAULT_CONFIG,
            max_workers=args.workers,
            error_policy=args.error_policy,
            query_timeout_sec=args.query_timeout,
        )
    except ValueError as exc:
        logger.error("%s", exc)
        return 1

    logger.info("=" * 60)
    logger.info("Deleted Field Audit")
    logger.info("  Org          : %s", org)
    logger.info("  Workers      : %d", config.max_workers)
    logger.info("  Error policy : %s", config.error_policy)
    logger.info("  Export path  : %s", args.export or "disabled")
    logger.info("=" * 60)

    t0 = time.monotonic()
    cli = SalesforceCLI(org, config)
    try:
        cli.check_installed()

        logger.debug("Querying deleted fields data")
        raw = cli.query(DELETED_FIELDS_QUERY, use_tooling_api=True)
        logger.debug("Deleted fields data:\n\t%s", raw.replace("\n", "\n\t"))

        result = ResolutionPipeline(cli, config).run(raw)

        exported = None
        if args.export:
            exported = export_results(args.export, result.records)
    except AuditError as exc:
        logger.error("%s", exc)
        return 1
    elapsed = time.monotonic() - t0

    # ── Summary ───────────────────────────────────────────────────────────────
    print()
    print("=" * 60)
    print("  DELETED FIELD AUDIT — RUN COMPLETE")
    print("=" * 60)
    print(f"  Elapsed          : {elapsed:.1f}s")
    print(f"  Deleted fields   : {result.deleted_fields}")
    print(f"  Queries issued   : {result.queries_issued}")
    print(f"  Records counted  : {len(result.records)}")
    print(f"  Orphaned records : {sum(r.count for r in result.records)}")
    if result.errors:
        print(f"  Failed branches  : {len(result.errors)}")
    if exported is not None:
        print(f"  Stored results   : {len(exported.results)}")
        for entry in exported.last_run_count:
            print(f"    {entry['date']} : {entry['count']}")
        print(f"  Export saved to  : {args.export}")
    else:
        print("  Export           : disabled")
    print("=" * 60)

    return 0


# ── Subcommand: status ────────────────────────────────────────────────────────

def cmd_status(args: argparse.Namespace) -> int:
    """Show the stored export without querying the org."""
    _setup_logging(args.log_level)

    from sf_field_audit.storage.export import current_counts, file_md5, load_export

    path = args.export or DEFAULT_CONFIG.default_export_path
    if not os.path.exists(path):
        print(f"No export found at {path}")
        return 0

    try:
        data = load_export(path)
    except AuditError as exc:
        logger.error("%s", exc)
        return 1

    print()
    print("=" * 60)
    print("  DELETED FIELD AUDIT — STATUS")
    print("=" * 60)
    print(f"  Export file      : {path}")
    print(f"  MD5              : {file_md5(path)}")
    print(f"  Stored results   : {len(data.results)}")
    print("  Current counts   :")
    for entry in current_counts(data.results):
        print(f"    {entry['date']} : {entry['count']}")
    print("=" * 60)
    return 0


# ── Argument parser ───────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sf-field-audit",
        description=(
            "Count the records still held by deleted Salesforce custom fields.\n"
            "Reads SF_TARGET_ORG from .env automatically."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Audit an org and merge the counts into deleted_fields.json
  python -m sf_field_audit run --org my-sandbox

  # Audit without writing anything
  python -m sf_field_audit run --org my-sandbox --export ""

  # Keep going past failing branches, report them at the end
  python -m sf_field_audit run --org my-sandbox --error-policy defer

  # Show stored results and current counts
  python -m sf_field_audit status
        """,
    )

    # Global flags
    parser.add_argument(
        "--env-file",
        default=None,
        metavar="PATH",
        help="Path to .env file (default: auto-detect .env from the working directory up)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    # run
    p_run = subparsers.add_parser(
        "run",
        help="Query deleted fields, count their records, export the results",
    )
    p_run.add_argument(
        "--org",
        default=None,
        metavar="ALIAS",
        help="Salesforce org alias or username (default: SF_TARGET_ORG)",
    )
    p_run.add_argument(
        "--export",
        default=DEFAULT_CONFIG.default_export_path,
        metavar="PATH",
        help=f'JSON export path (default: {DEFAULT_CONFIG.default_export_path}; "" disables export)',
    )
    p_run.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_CONFIG.max_workers,
        metavar="N",
        help=f"Concurrent sf processes (default: {DEFAULT_CONFIG.max_workers})",
    )
    p_run.add_argument(
        "--error-policy",
        default=DEFAULT_CONFIG.error_policy,
        choices=ERROR_POLICIES,
        help=f"How query failures are handled (default: {DEFAULT_CONFIG.error_policy})",
    )
    p_run.add_argument(
        "--query-timeout",
        type=float,
        default=DEFAULT_CONFIG.query_timeout_sec,
        metavar="SEC",
        help="Per-query timeout in seconds (default: none)",
    )
    p_run.set_defaults(func=cmd_run)

    # status
    p_status = subparsers.add_parser(
        "status",
        help="Show stored results and current counts without querying",
    )
    p_status.add_argument(
        "--export",
        default=DEFAULT_CONFIG.default_export_path,
        metavar="PATH",
        help=f"JSON export path (default: {DEFAULT_CONFIG.default_export_path})",
    )
    p_status.set_defaults(func=cmd_status)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
