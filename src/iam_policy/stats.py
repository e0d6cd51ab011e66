# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from pydantic import Field

from iam_policy.base import WireModel
from iam_policy.entities.models import Agent, PolicyBoundKey
from iam_policy.policy.models import Policy
from iam_policy.recorder.models import ExecutionLog


class DashboardStats(WireModel):
    active_policies: int
    active_agents: int
    active_keys: int
    today_executions: int
    success_rate: float
    total_spend_today: str
    violations_24h: int = Field(alias="violations24h")


def format_usd(amount: Decimal) -> str:
    """``Decimal("1234.5")`` -> ``"$1,234.50"``."""
    return f"${amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):,}"


def build_dashboard_stats(
    policies: list[Policy],
    agents: list[Agent],
    keys: list[PolicyBoundKey],
    recent_logs: list[ExecutionLog],
    recent_spend_usd: Decimal,
) -> DashboardStats:
    """
    Aggregate dashboard figures.

    Args:
        policies: Latest version of every policy.
        agents: Every agent.
        keys: Every key.
        recent_logs: Execution logs inside the stats window.
        recent_spend_usd: USD spend inside the stats window.
    """
    succeeded = sum(1 for log in recent_logs if log.result == "success")
    success_rate = succeeded * 100.0 / len(recent_logs) if recent_logs else 100.0
    return DashboardStats(
        active_policies=sum(1 for p in policies if p.status == "active"),
        active_agents=sum(1 for a in agents if a.status == "active"),
        active_keys=sum(1 for k in keys if k.status == "active"),
        today_executions=len(recent_logs),
        success_rate=success_rate,
        total_spend_today=format_usd(recent_spend_usd),
        violations_24h=sum(1 for log in recent_logs if log.result == "denied"),
    )
