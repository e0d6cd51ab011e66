# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
The policy evaluator.

:func:`evaluate` is a pure function of its arguments: it reads the policy,
the proposed action, the spend history and the clock, and returns a
:class:`Decision`. It never fetches observations, writes records or changes
statuses; the engine and revocation controller do that with its output.

Checks run in a fixed order and stop at the first failure:

1. time      -- the policy has not expired
2. contract  -- target and selector are on the allowlist
3. spend     -- the rolling-window total stays within the limit
4. condition -- every condition holds against the supplied observations
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal

from iam_policy.base import ensure_utc
from iam_policy.evaluator.action import ProposedAction
from iam_policy.evaluator.conditions import condition_holds
from iam_policy.evaluator.decision import CheckBreakdown, Decision
from iam_policy.ledger.conversion import CurrencyConverter, FixedRateConverter
from iam_policy.ledger.records import SpendRecord
from iam_policy.ledger.windows import in_closed_window, window_start
from iam_policy.policy.models import Policy

REASON_EXPIRED = "policy expired"
REASON_CONTRACT = "contract/function not permitted"
REASON_SPEND = "spend limit exceeded"


def contract_permitted(policy: Policy, action: ProposedAction) -> bool:
    """An empty allowlist permits every target."""
    if not policy.contracts:
        return True
    return any(entry.permits(action.target, action.selector) for entry in policy.contracts)


def spent_in_window(
    policy: Policy,
    spend_history: Iterable[SpendRecord],
    now: datetime,
    converter: CurrencyConverter,
) -> Decimal:
    """
    Sum the policy's recorded spend with ``now - window <= timestamp <= now``,
    converted to the limit currency.
    """
    if policy.spend is None:
        return Decimal("0")
    start = window_start(policy.spend.window, now)
    total = Decimal("0")
    for record in spend_history:
        if record.policy_id != policy.id or not in_closed_window(record.timestamp, start, now):
            continue
        total += converter.convert(record.amount, record.currency, policy.spend.currency)
    return total


def evaluate(
    policy: Policy,
    action: ProposedAction,
    spend_history: Iterable[SpendRecord],
    now: datetime,
    converter: CurrencyConverter | None = None,
) -> Decision:
    """
    Decide whether ``action`` is permitted by ``policy`` at ``now``.

    Args:
        policy: The policy version to evaluate against. Its status is not
            consulted; see :func:`inactive_policy_decision` for terminal
            policies.
        action: The validated proposed action.
        spend_history: Prior spend records of this policy.
        now: Evaluation time.
        converter: Converts recorded and proposed amounts into the limit
            currency. Defaults to stablecoin-only fixed rates.

    Returns:
        A :class:`Decision`. Checks that were not reached are ``None`` in
        its breakdown.

    Raises:
        CurrencyConversionError: If spend has to be compared across
            currencies the converter has no rate for.
    """
    now = ensure_utc(now)
    converter = converter or FixedRateConverter()
    checks: dict[str, bool | None] = {}

    def denied(reason: str, trigger: str, **extra: object) -> Decision:
        return Decision(
            result="denied",
            reason=reason,
            trigger=trigger,
            checks=CheckBreakdown(**checks),
            evaluated_at=now,
            **extra,
        )

    # 1. Expiry
    expired = policy.expires_at is not None and now >= policy.expires_at
    checks["time_check"] = not expired
    if expired:
        return denied(REASON_EXPIRED, "expiry")

    # 2. Contract allowlist
    checks["contract_check"] = contract_permitted(policy, action)
    if not checks["contract_check"]:
        return denied(REASON_CONTRACT, "contract")

    # 3. Spend limit
    already_spent: Decimal | None = None
    if policy.spend is not None and action.amount > 0:
        already_spent = spent_in_window(policy, spend_history, now, converter)
        proposed = converter.convert(action.amount, action.currency, policy.spend.currency)
        checks["spend_check"] = already_spent + proposed <= policy.spend.max
        if not checks["spend_check"]:
            return denied(REASON_SPEND, "spend", spent_in_window=already_spent)
    else:
        checks["spend_check"] = True

    # 4. Conditions
    for index, condition in enumerate(policy.conditions):
        if not condition_holds(condition, action.observations, now):
            checks["condition_check"] = False
            return denied(
                f"condition {index} ({condition.type}) not satisfied",
                "condition",
                failed_condition=index,
                spent_in_window=already_spent,
            )
    checks["condition_check"] = True

    return Decision(
        result="success",
        checks=CheckBreakdown(**checks),
        evaluated_at=now,
        spent_in_window=already_spent,
    )


def inactive_policy_decision(policy: Policy, now: datetime) -> Decision:
    """
    The denial recorded for a proposal against a policy that is no longer
    active. No check runs except the time check of an expired policy.
    """
    now = ensure_utc(now)
    if policy.status == "expired":
        return Decision(
            result="denied",
            reason=REASON_EXPIRED,
            trigger="expiry",
            checks=CheckBreakdown(time_check=False),
            evaluated_at=now,
        )
    return Decision(
        result="denied",
        reason=f"policy {policy.status}",
        checks=CheckBreakdown(),
        evaluated_at=now,
    )
