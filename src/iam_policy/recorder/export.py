# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Export helpers: serialise execution logs to JSON or CSV.

- JSON: array of camelCase objects, 2-space indentation.
- CSV:  header row plus one row per log; nested values are JSON-encoded.
"""

from __future__ import annotations

import csv
import io
import json
from typing import Literal

from iam_policy.recorder.models import ExecutionLog

ExportFormat = Literal["json", "csv"]

CSV_COLUMNS: list[str] = [
    "id",
    "sequence",
    "timestamp",
    "agentId",
    "policyId",
    "policyVersion",
    "keyId",
    "actionType",
    "result",
    "denialReason",
    "inputCID",
    "outputCID",
    "policyCID",
    "logCID",
    "txHash",
    "durationMs",
    "policyEvaluation",
    "replayOf",
    "previousHash",
    "recordHash",
]


def export_json(logs: list[ExecutionLog]) -> str:
    """Serialise logs to a JSON array string."""
    return json.dumps(
        [log.model_dump(mode="json", by_alias=True) for log in logs],
        indent=2,
        ensure_ascii=False,
    )


def _log_to_csv_row(log: ExecutionLog) -> list[str]:
    raw = log.model_dump(mode="json", by_alias=True)
    row: list[str] = []
    for column in CSV_COLUMNS:
        value = raw.get(column)
        if value is None:
            row.append("")
        elif isinstance(value, (dict, list)):
            row.append(json.dumps(value, ensure_ascii=False, sort_keys=True))
        else:
            row.append(str(value))
    return row


def export_csv(logs: list[ExecutionLog]) -> str:
    """Serialise logs to CSV; absent optional fields are left empty."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for log in logs:
        writer.writerow(_log_to_csv_row(log))
    return buffer.getvalue()


def export_logs(logs: list[ExecutionLog], export_format: str) -> str:
    """
    Route export to the matching format handler.

    Raises:
        ValueError: When ``export_format`` is not ``"json"`` or ``"csv"``.
    """
    if export_format == "json":
        return export_json(logs)
    if export_format == "csv":
        return export_csv(logs)
    raise ValueError(f"Unsupported export format: {export_format!r}")
