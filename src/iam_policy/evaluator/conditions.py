# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from iam_policy.evaluator.action import Observations
from iam_policy.policy.models import PolicyCondition, condition_operand


def compare(observed: Decimal, operator: str, lower: Decimal, upper: Decimal | None = None) -> bool:
    """Apply ``observed <operator> lower``; ``between`` is inclusive on both ends."""
    if operator == "lt":
        return observed < lower
    if operator == "lte":
        return observed <= lower
    if operator == "gt":
        return observed > lower
    if operator == "gte":
        return observed >= lower
    if operator == "eq":
        return observed == lower
    if operator == "between":
        return upper is not None and lower <= observed <= upper
    raise ValueError(f"Unknown comparison operator: {operator!r}")


def observation_for(
    condition: PolicyCondition,
    observations: Observations,
    now: datetime,
) -> Decimal | None:
    """Pick the observed value a condition reads, or None if it was not supplied."""
    if condition.type == "time":
        return Decimal(str(now.timestamp()))
    if condition.type == "block":
        if observations.block_number is None:
            return None
        return Decimal(observations.block_number)
    if condition.type == "balance":
        return observations.balance
    if condition.oracle is None:
        return None
    return observations.oracle_prices.get(condition.oracle)


def condition_holds(condition: PolicyCondition, observations: Observations, now: datetime) -> bool:
    """
    Return True if ``condition`` is satisfied.

    A missing observation never satisfies a condition.
    """
    observed = observation_for(condition, observations, now)
    if observed is None:
        return False
    lower = condition_operand(condition.type, condition.value)
    upper = (
        condition_operand(condition.type, condition.second_value)
        if condition.second_value is not None
        else None
    )
    return compare(observed, condition.operator, lower, upper)
