# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from iam_policy.recorder.chain import GENESIS_HASH, verify_chain
from iam_policy.recorder.export import export_logs
from iam_policy.recorder.models import (
    ChainVerificationFailure,
    ChainVerificationResult,
    ChainVerificationSuccess,
    ExecutionFilter,
    ExecutionLog,
    ExecutionLogDraft,
)
from iam_policy.recorder.recorder import ExecutionRecorder

__all__ = [
    "GENESIS_HASH",
    "ChainVerificationFailure",
    "ChainVerificationResult",
    "ChainVerificationSuccess",
    "ExecutionFilter",
    "ExecutionLog",
    "ExecutionLogDraft",
    "ExecutionRecorder",
    "export_logs",
    "verify_chain",
]
