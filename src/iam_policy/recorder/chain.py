# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
SHA-256 hash chain over execution logs.

Each log is linked to its predecessor, so altering any stored log
invalidates its own ``record_hash`` and every later ``previous_hash`` link.
"""

from __future__ import annotations

from typing import Any

from iam_policy.cid import canonical_json, sha256_hex
from iam_policy.recorder.models import (
    ChainVerificationFailure,
    ChainVerificationResult,
    ChainVerificationSuccess,
    ExecutionLog,
)

# Precedes the first record of every chain.
GENESIS_HASH: str = "0" * 64


def compute_record_hash(pending: dict[str, Any], previous_hash: str) -> str:
    """Digest of ``<canonical JSON>\\n<previous_hash>``."""
    return sha256_hex(canonical_json(pending) + "\n" + previous_hash)


def pending_content(log: ExecutionLog) -> dict[str, Any]:
    """The hashed content of a log: every field except ``record_hash``."""
    return log.model_dump(mode="json", exclude={"record_hash"})


def verify_chain(logs: list[ExecutionLog]) -> ChainVerificationResult:
    """
    Walk ``logs`` in sequence order and re-derive every hash.

    Returns:
        ChainVerificationSuccess when every link is intact, otherwise a
        ChainVerificationFailure naming the first broken index.
    """
    expected_previous = GENESIS_HASH
    for index, log in enumerate(logs):
        if log.previous_hash != expected_previous:
            return ChainVerificationFailure(
                record_count=len(logs),
                broken_at=index,
                reason=(
                    f"Log at index {index} (id={log.id!r}) has previous_hash "
                    f"{log.previous_hash!r} but expected {expected_previous!r}."
                ),
            )
        expected = compute_record_hash(pending_content(log), expected_previous)
        if log.record_hash != expected:
            return ChainVerificationFailure(
                record_count=len(logs),
                broken_at=index,
                reason=(
                    f"Log at index {index} (id={log.id!r}) has record_hash "
                    f"{log.record_hash!r} but recomputed hash is {expected!r}. "
                    "Log content may have been altered."
                ),
            )
        expected_previous = log.record_hash
    return ChainVerificationSuccess(record_count=len(logs))
