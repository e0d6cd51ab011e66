# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from iam_policy.base import UTCDateTime, WireModel
from iam_policy.evaluator.action import ProposedAction
from iam_policy.evaluator.decision import CheckBreakdown
from iam_policy.types import ActionType, ExecutionResult


class ExecutionLogDraft(WireModel):
    """
    Everything the caller knows about one evaluation before it is recorded.

    ``log_cid`` may be left empty; the recorder derives it from the rest of
    the draft.
    """

    agent_id: str
    policy_id: str
    policy_version: int = Field(..., ge=1)
    key_id: str
    action_type: ActionType
    input_cid: str = Field(..., alias="inputCID")
    output_cid: str | None = Field(default=None, alias="outputCID")
    policy_cid: str = Field(..., alias="policyCID")
    log_cid: str | None = Field(default=None, alias="logCID")
    result: ExecutionResult
    denial_reason: str | None = None
    tx_hash: str | None = None
    timestamp: UTCDateTime
    duration_ms: float | None = Field(default=None, ge=0)
    inputs: dict[str, Any] = Field(default_factory=dict)
    outputs: dict[str, Any] | None = None
    policy_evaluation: CheckBreakdown = Field(default_factory=CheckBreakdown)
    proposed_action: ProposedAction | None = None
    replay_of: str | None = None


class ExecutionLog(ExecutionLogDraft):
    """
    An immutable, hash-chained execution record.

    Attributes:
        sequence: Position in the chain, starting at 0.
        previous_hash: ``record_hash`` of the preceding record, or the
            genesis hash for the first one.
        record_hash: SHA-256 over this record's content and
            ``previous_hash``.
    """

    id: str
    log_cid: str = Field(..., alias="logCID")
    sequence: int = Field(..., ge=0)
    previous_hash: str
    record_hash: str


class ExecutionFilter(BaseModel):
    """
    Query parameters for :meth:`ExecutionRecorder.query`.

    All fields are optional; omitted fields do not restrict the result.
    ``search`` is a case-insensitive substring matched against ``input_cid``,
    ``log_cid`` and ``tx_hash``.
    """

    model_config = ConfigDict(frozen=True)

    agent_id: str | None = None
    policy_id: str | None = None
    result: ExecutionResult | None = None
    action_type: ActionType | None = None
    since: datetime | None = None
    until: datetime | None = None
    search: str | None = None
    limit: int = Field(default=100, ge=1)
    offset: int = Field(default=0, ge=0)


class ChainVerificationSuccess(BaseModel):
    """Returned by :meth:`ExecutionRecorder.verify` when every link is intact."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    valid: bool = True
    record_count: int


class ChainVerificationFailure(BaseModel):
    """Returned by :meth:`ExecutionRecorder.verify` at the first broken link."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    valid: bool = False
    record_count: int
    broken_at: int
    reason: str


ChainVerificationResult = ChainVerificationSuccess | ChainVerificationFailure
