# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
"""Shared fixtures for iam-policy tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable

import pytest

from iam_policy.config import ConversionConfig, EngineConfig
from iam_policy.engine import ActionProposal, PolicyEngine, ProposalResult
from iam_policy.entities.models import Agent, AgentCapability, AgentDraft, KeyDraft, PolicyBoundKey
from iam_policy.evaluator.action import ProposedAction
from iam_policy.policy.models import Policy, PolicyDraft
from iam_policy.storage.bundle import Storage

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

ALL_CAPABILITIES = ("trade", "transfer", "stake", "governance", "custom")

TEST_RATES = {
    "USD": Decimal("1"),
    "USDC": Decimal("1"),
    "USDT": Decimal("1"),
    "DAI": Decimal("1"),
    "ETH": Decimal("2000"),
}


class FixedClock:
    """Deterministic clock; tests move it forward explicitly."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig(conversion=ConversionConfig(usd_rates=TEST_RATES))


@pytest.fixture
def engine(clock: FixedClock, config: EngineConfig) -> PolicyEngine:
    """A PolicyEngine on in-memory storage with a fixed clock."""
    return PolicyEngine(Storage.memory(), config=config, clock=clock)


@pytest.fixture
def seed(engine: PolicyEngine) -> Callable[..., tuple[Policy, PolicyBoundKey, Agent]]:
    """Create a policy, a key bound to it and an agent holding that key."""

    def _seed(
        draft: PolicyDraft | None = None,
        capabilities: tuple[str, ...] = ALL_CAPABILITIES,
    ) -> tuple[Policy, PolicyBoundKey, Agent]:
        async def run() -> tuple[Policy, PolicyBoundKey, Agent]:
            policy = await engine.create_policy(draft or PolicyDraft(name="test-policy"))
            key = await engine.create_key(
                KeyDraft(
                    type="agent",
                    address="0xAA01",
                    public_key="0x04a1b2c3d4e5f60718293a4b",
                    policy_id=policy.id,
                )
            )
            agent = await engine.create_agent(
                AgentDraft(
                    name="test-agent",
                    policy_id=policy.id,
                    key_id=key.id,
                    capabilities=[AgentCapability(type=c) for c in capabilities],
                )
            )
            return policy, key, agent

        return asyncio.run(run())

    return _seed


@pytest.fixture
def propose(engine: PolicyEngine) -> Callable[..., ProposalResult]:
    """Submit one proposal for an agent. Action fields default to a transfer to 0xCAFE."""

    def _propose(agent_id: str, action_type: str = "transfer", **action: Any) -> ProposalResult:
        action.setdefault("target", "0xCAFE")
        action.setdefault("selector", "transfer")
        action.setdefault("currency", "USD")
        proposal = ActionProposal(
            agent_id=agent_id,
            action_type=action_type,
            action=ProposedAction(**action),
        )
        return asyncio.run(engine.propose(proposal))

    return _propose
