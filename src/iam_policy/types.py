# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from typing import Literal

# ─── Policy ──────────────────────────────────────────────────────────────────

PolicyStatus = Literal["active", "expired", "violated", "revoked"]

TERMINAL_POLICY_STATUSES: frozenset[str] = frozenset({"expired", "violated", "revoked"})

RevocationTrigger = Literal["violation", "manual", "expiry", "spend_exceeded"]

Currency = Literal["USD", "ETH", "USDC", "USDT", "DAI"]

CURRENCY_VALUES: frozenset[str] = frozenset({"USD", "ETH", "USDC", "USDT", "DAI"})

SpendWindow = Literal["1h", "24h", "7d", "30d", "lifetime"]

WINDOW_SECONDS: dict[str, int] = {
    "1h": 3_600,
    "24h": 86_400,
    "7d": 604_800,
    "30d": 2_592_000,
}

ConditionType = Literal["oracle", "time", "block", "balance"]

ComparisonOperator = Literal["lt", "lte", "gt", "gte", "eq", "between"]

# ─── Keys and agents ─────────────────────────────────────────────────────────

KeyType = Literal["root", "child", "agent"]

KeyStatus = Literal["active", "revoked", "expired"]

AgentStatus = Literal["active", "idle", "paused", "revoked"]

CapabilityType = Literal["trade", "transfer", "stake", "governance", "custom"]

# ─── Executions ──────────────────────────────────────────────────────────────

ActionType = Literal["swap", "transfer", "approve", "stake", "unstake", "vote", "custom"]

ExecutionResult = Literal["success", "denied", "pending", "failed", "replayed"]

# Capability an agent must have enabled to propose each action type.
ACTION_CAPABILITY: dict[str, str] = {
    "swap": "trade",
    "approve": "trade",
    "transfer": "transfer",
    "stake": "stake",
    "unstake": "stake",
    "vote": "governance",
    "custom": "custom",
}

# Which evaluator check produced a denial.
DenialTrigger = Literal["expiry", "contract", "spend", "condition"]
