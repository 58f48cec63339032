"""
Aggregate report of one reconciliation pass.

Every execution result becomes one entry, in match order::

    @@ entry 1/2 status=succeeded length=33 @@
    Container: web-1/web
    output: hi

    @@ entry 2/2 status=timed_out length=74 @@
    Container: web-2/web
    error: command timed out after 30.0s
    output: partial

The body keeps the ``Container: ...`` / ``output: ...`` layout used by
earlier controller versions. The header carries the body length in UTF-8
bytes, so ``split_report`` (or a consumer written in any other language) can
cut the report back into entries no matter what the captured output contains,
including text that looks like another header.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from kubexec.models import ExecutionResult, ExecutionStatus

NO_MATCH_REPORT = "No containers matched.\n"

ENTRY_HEADER = "@@ entry {index}/{total} status={status} length={length} @@\n"
ENTRY_HEADER_RE = re.compile(
    rb"@@ entry (?P<index>\d+)/(?P<total>\d+) status=(?P<status>[a-z_]+) length=(?P<length>\d+) @@\n"
)

CONTAINER_PREFIX = "Container: "
ERROR_PREFIX = "error: "
OUTPUT_PREFIX = "output: "


@dataclass(frozen=True)
class ReportEntry:
    """One container's entry, as recovered from a report."""

    index: int
    status: ExecutionStatus
    container: str
    output: str
    error: Optional[str] = None


def _single_line(text: str) -> str:
    return " ".join(text.split())


def format_entry_body(result: ExecutionResult) -> str:
    body = f"{CONTAINER_PREFIX}{result.container.label}\n"
    if result.error is not None:
        body += f"{ERROR_PREFIX}{_single_line(result.error)}\n"
    body += f"{OUTPUT_PREFIX}{result.stdout}\n"
    return body


def aggregate(results: Sequence[ExecutionResult]) -> str:
    """
    Render the per-container results of a pass as one report.

    The output depends only on ``results`` and their order, so the same list
    always produces the same text.

    Args:
        results: Execution results in match order.

    Returns:
        The report, or NO_MATCH_REPORT when there are no results.
    """
    if not results:
        return NO_MATCH_REPORT

    total = len(results)
    parts = []
    for index, result in enumerate(results, start=1):
        body = format_entry_body(result)
        parts.append(
            ENTRY_HEADER.format(
                index=index,
                total=total,
                status=result.status.value,
                length=len(body.encode("utf-8")),
            )
        )
        parts.append(body)
    return "".join(parts)


def _parse_body(body: str) -> tuple:
    if not body.startswith(CONTAINER_PREFIX) or not body.endswith("\n"):
        raise ValueError("Malformed report entry body")
    container, _, rest = body[len(CONTAINER_PREFIX):].partition("\n")

    error = None
    if rest.startswith(ERROR_PREFIX):
        error, _, rest = rest[len(ERROR_PREFIX):].partition("\n")

    if not rest.startswith(OUTPUT_PREFIX):
        raise ValueError("Report entry has no output line")
    return container, error, rest[len(OUTPUT_PREFIX):-1]


def split_report(report: str) -> List[ReportEntry]:
    """
    Cut a report produced by ``aggregate`` back into its entries.

    Raises:
        ValueError: If the report is not in the expected format.
    """
    if report in ("", NO_MATCH_REPORT):
        return []

    data = report.encode("utf-8")
    entries = []
    position = 0
    while position < len(data):
        header = ENTRY_HEADER_RE.match(data, position)
        if header is None:
            raise ValueError(f"Expected an entry header at offset {position}")
        start = header.end()
        end = start + int(header.group("length"))
        if end > len(data):
            raise ValueError(f"Entry {int(header.group('index'))} is truncated")

        # UnicodeDecodeError is a ValueError, as for any other malformed entry
        container, error, output = _parse_body(data[start:end].decode("utf-8"))
        entries.append(
            ReportEntry(
                index=int(header.group("index")),
                status=ExecutionStatus(header.group("status").decode("ascii")),
                container=container,
                output=output,
                error=error,
            )
        )
        position = end
    return entries
