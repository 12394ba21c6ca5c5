"""
sf_field_audit/query/decoder.py — Decoding of raw sf CLI output.

`sf data query -r csv` mixes human-readable lines (progress spinners,
"Querying Data... done", warnings) with the CSV payload, and `-r json` may be
preceded by an update advisory. These helpers recover the payload.
"""

import csv
import io
import json
import logging
import math
from typing import Iterable

from sf_field_audit.errors import DecodeError

logger = logging.getLogger(__name__)

DEFAULT_BANNER_MARKERS = ("»", "update available")


def extract_csv(output: str) -> str:
    """Return the CSV part of *output*.

    Everything before the first line containing a comma is treated as noise.
    Blank lines after that point are dropped.

    Examples:
        >>> extract_csv("Querying Data... done\\nId,Name\\n1,A\\n\\n")
        'Id,Name\\n1,A\\n'
    """
    lines: list[str] = []
    in_csv = False
    for line in output.splitlines():
        if in_csv:
            if line:
                lines.append(line)
        elif "," in line:
            in_csv = True
            lines.append(line)
    return "".join(line + "\n" for line in lines)


def decode_rows(output: str) -> list[list[str]]:
    """Decode raw CSV query output into rows of ordered fields.

    The header row is kept as the first row; callers skip it by comparing a
    field against its column title. Output without any CSV (e.g. "Your query
    returned no results.") decodes to an empty list.
    """
    payload = extract_csv(output)
    rows = [row for row in csv.reader(io.StringIO(payload)) if row]
    logger.debug("Decoded %d CSV row(s)", len(rows))
    return rows


def strip_banner(output: str, markers: Iterable[str] = DEFAULT_BANNER_MARKERS) -> str:
    """Drop an advisory banner that precedes JSON output.

    If any marker occurs, everything up to and including the first line break
    after the earliest marker is removed. Output without a marker is returned
    unchanged.
    """
    positions = [output.find(m) for m in markers if m and m in output]
    if not positions:
        return output
    newline = output.find("\n", min(positions))
    if newline == -1:
        return output
    return output[newline + 1:]


def parse_count(output: str, markers: Iterable[str] = DEFAULT_BANNER_MARKERS) -> int:
    """Extract ``result.totalSize`` from `sf data query -r json` output.

    Raises:
        DecodeError: if the output is not JSON or the field is missing,
                     non-numeric, non-finite, fractional or negative.
    """
    body = strip_banner(output, markers)
    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Count output is not valid JSON: {exc}", output) from exc

    result = data.get("result") if isinstance(data, dict) else None
    if not isinstance(result, dict):
        raise DecodeError("'result' field is not an object", output)

    total = result.get("totalSize")
    if isinstance(total, bool) or not isinstance(total, (int, float)):
        raise DecodeError("'totalSize' field is not a number", output)
    # json accepts NaN and overflows like 1e400 to inf
    if isinstance(total, float) and not math.isfinite(total):
        raise DecodeError(f"'totalSize' is not a finite number: {total}", output)
    if total != int(total) or total < 0:
        raise DecodeError(f"'totalSize' is not a non-negative integer: {total}", output)
    return int(total)
