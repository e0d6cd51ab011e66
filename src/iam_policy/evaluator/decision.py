# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from decimal import Decimal
from typing import Literal

from iam_policy.base import UTCDateTime, WireModel
from iam_policy.types import DenialTrigger


class CheckBreakdown(WireModel):
    """
    Outcome of each evaluator check.

    ``None`` means the check was not reached because an earlier check
    short-circuited the evaluation.
    """

    spend_check: bool | None = None
    contract_check: bool | None = None
    condition_check: bool | None = None
    time_check: bool | None = None


class Decision(WireModel):
    """
    Result of evaluating one proposed action against one policy version.

    Attributes:
        result: ``success`` or ``denied``.
        reason: Human-readable denial reason; None on success.
        trigger: Which check denied the action; None on success and when
            the policy was already revoked or violated.
        checks: Per-check breakdown.
        failed_condition: Index of the first failing condition, if any.
        evaluated_at: The ``now`` the evaluation ran at.
        spent_in_window: Spend already inside the window, in the limit
            currency, when a spend check ran.
    """

    result: Literal["success", "denied"]
    reason: str | None = None
    trigger: DenialTrigger | None = None
    checks: CheckBreakdown
    failed_condition: int | None = None
    evaluated_at: UTCDateTime
    spent_in_window: Decimal | None = None

    @property
    def allowed(self) -> bool:
        return self.result == "success"
