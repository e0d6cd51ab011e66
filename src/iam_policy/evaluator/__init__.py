# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from iam_policy.evaluator.action import Observations, ProposedAction, validate_action
from iam_policy.evaluator.decision import CheckBreakdown, Decision
from iam_policy.evaluator.evaluate import evaluate, inactive_policy_decision

__all__ = [
    "CheckBreakdown",
    "Decision",
    "Observations",
    "ProposedAction",
    "evaluate",
    "inactive_policy_decision",
    "validate_action",
]
