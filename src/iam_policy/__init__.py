# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
"""
iam-policy: policy enforcement for policy-bound keys and autonomous agents.

Quick start::

    import asyncio
    from decimal import Decimal

    from iam_policy import (
        ActionProposal, AgentCapability, AgentDraft, KeyDraft, PolicyDraft,
        PolicyEngine, ProposedAction, SpendLimit,
    )

    async def main() -> None:
        engine = PolicyEngine()
        policy = await engine.create_policy(PolicyDraft(
            name="daily-transfers",
            spend=SpendLimit(max=Decimal("100"), currency="USDC", window="24h"),
        ))
        key = await engine.create_key(
            KeyDraft(type="root", address="0xabc0", public_key="0x04abcdef")
        )
        agent = await engine.create_agent(AgentDraft(
            name="payer",
            policy_id=policy.id,
            key_id=key.id,
            capabilities=[AgentCapability(type="transfer")],
        ))
        result = await engine.propose(ActionProposal(
            agent_id=agent.id,
            action_type="transfer",
            action=ProposedAction(
                target="0xCAFE", selector="transfer", amount=Decimal("40"), currency="USDC"
            ),
        ))
        print(result.decision.result)  # success

    asyncio.run(main())
"""
from __future__ import annotations

from iam_policy.config import ConversionConfig, EngineConfig, LockConfig, RecorderConfig
from iam_policy.engine import ActionProposal, PolicyEngine, ProposalResult, ReplayResult
from iam_policy.entities.models import (
    Agent,
    AgentCapability,
    AgentDraft,
    AgentPatch,
    KeyDraft,
    KeyPatch,
    PolicyBoundKey,
)
from iam_policy.errors import (
    AgentNotFoundError,
    CapabilityDisabledError,
    ConcurrencyConflictError,
    ConfigurationError,
    CurrencyConversionError,
    EntityNotFoundError,
    ExecutionNotFoundError,
    IAMPolicyError,
    InactiveEntityError,
    KeyNotFoundError,
    ObservationTimeoutError,
    PolicyNotFoundError,
    PolicyValidationError,
    TerminalStateError,
)
from iam_policy.evaluator import (
    CheckBreakdown,
    Decision,
    Observations,
    ProposedAction,
    evaluate,
    validate_action,
)
from iam_policy.ledger import CurrencyConverter, FixedRateConverter, SpendLedger, SpendRecord
from iam_policy.policy import (
    ContractAllowlistEntry,
    Policy,
    PolicyCondition,
    PolicyDraft,
    PolicyPatch,
    PolicyStore,
    SpendLimit,
)
from iam_policy.recorder import ExecutionFilter, ExecutionLog, ExecutionRecorder
from iam_policy.revocation import RevocationController
from iam_policy.storage.bundle import Storage

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "EngineConfig",
    "LockConfig",
    "ConversionConfig",
    "RecorderConfig",
    # Engine
    "PolicyEngine",
    "ActionProposal",
    "ProposalResult",
    "ReplayResult",
    "Storage",
    # Policies
    "Policy",
    "PolicyDraft",
    "PolicyPatch",
    "PolicyCondition",
    "ContractAllowlistEntry",
    "SpendLimit",
    "PolicyStore",
    # Keys and agents
    "Agent",
    "AgentCapability",
    "AgentDraft",
    "AgentPatch",
    "KeyDraft",
    "KeyPatch",
    "PolicyBoundKey",
    # Evaluation
    "evaluate",
    "validate_action",
    "ProposedAction",
    "Observations",
    "Decision",
    "CheckBreakdown",
    # Ledger, recorder, revocation
    "SpendLedger",
    "SpendRecord",
    "CurrencyConverter",
    "FixedRateConverter",
    "ExecutionRecorder",
    "ExecutionLog",
    "ExecutionFilter",
    "RevocationController",
    # Errors
    "IAMPolicyError",
    "PolicyValidationError",
    "EntityNotFoundError",
    "PolicyNotFoundError",
    "KeyNotFoundError",
    "AgentNotFoundError",
    "ExecutionNotFoundError",
    "TerminalStateError",
    "InactiveEntityError",
    "CapabilityDisabledError",
    "CurrencyConversionError",
    "ConcurrencyConflictError",
    "ObservationTimeoutError",
    "ConfigurationError",
]
