# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable

from pydantic import Field

from iam_policy.base import WireModel, utc_now
from iam_policy.cid import compute_cid
from iam_policy.config import EngineConfig
from iam_policy.entities.models import (
    Agent,
    AgentDraft,
    AgentPatch,
    KeyDraft,
    KeyPatch,
    PolicyBoundKey,
)
from iam_policy.entities.registry import AgentRegistry, KeyRegistry
from iam_policy.errors import (
    CapabilityDisabledError,
    CurrencyConversionError,
    InactiveEntityError,
    PolicyValidationError,
)
from iam_policy.evaluator.action import Observations, ProposedAction
from iam_policy.evaluator.decision import Decision
from iam_policy.evaluator.evaluate import evaluate, inactive_policy_decision
from iam_policy.ledger.conversion import CurrencyConverter, FixedRateConverter
from iam_policy.ledger.ledger import SpendLedger
from iam_policy.ledger.records import SpendRecord
from iam_policy.locks import PolicyLockRegistry
from iam_policy.observations import ObservationProvider, collect_observations
from iam_policy.policy.models import Policy, PolicyDraft, PolicyPatch
from iam_policy.policy.store import PolicyStore
from iam_policy.recorder.models import (
    ChainVerificationResult,
    ExecutionFilter,
    ExecutionLog,
    ExecutionLogDraft,
)
from iam_policy.recorder.recorder import ExecutionRecorder
from iam_policy.revocation import RevocationController
from iam_policy.stats import DashboardStats, build_dashboard_stats
from iam_policy.storage.bundle import Storage
from iam_policy.types import ACTION_CAPABILITY, ActionType, PolicyStatus

logger = logging.getLogger("iam_policy.engine")


class ActionProposal(WireModel):
    """
    An agent's request to perform one action.

    Attributes:
        agent_id: The proposing agent. Its bound policy and key are used.
        action_type: Action family; decides which capability is required.
        action: The on-chain call, with any observations already fetched.
        inputs: Free-form caller context stored with the log.
        outputs: Free-form result data stored with the log.
        tx_hash: Transaction hash, when the caller already has one.
    """

    agent_id: str
    action_type: ActionType
    action: ProposedAction
    inputs: dict[str, Any] = Field(default_factory=dict)
    outputs: dict[str, Any] | None = None
    tx_hash: str | None = None


class ProposalResult(WireModel):
    """
    Outcome of :meth:`PolicyEngine.propose`.

    Attributes:
        log: The execution log written for the proposal.
        decision: The evaluator's decision.
        spend_record: The debit written on success, if the action spent.
        policy_status: The policy's status after revocation side effects.
    """

    log: ExecutionLog
    decision: Decision
    spend_record: SpendRecord | None = None
    policy_status: PolicyStatus


class ReplayResult(WireModel):
    """
    Outcome of :meth:`PolicyEngine.replay`.

    Attributes:
        original: The log that was replayed.
        log: The ``replayed`` log written for this replay.
        decision: The decision reached on replay.
        matches: True when the replayed result and check breakdown equal the
            original's.
    """

    original: ExecutionLog
    log: ExecutionLog
    decision: Decision
    matches: bool


class PolicyEngine:
    """
    Composes the policy store, key and agent registries, spend ledger,
    evaluator, revocation controller and execution recorder into a single
    enforcement pipeline.

    For each proposal:

    1. Resolve the agent, check its status and capability, check its key
    2. Take the policy's lock
    3. Evaluate against the current policy version and spend history
    4. Write the spend record (success only) and the execution log together
    5. Apply revocation side effects (denial only) and update agent counters

    Example::

        engine = PolicyEngine(Storage.memory())
        policy = await engine.create_policy(PolicyDraft(
            name="treasury",
            spend=SpendLimit(max=Decimal("100"), currency="USDC", window="24h"),
        ))
        key = await engine.create_key(KeyDraft(type="root", address="0xabc", public_key="0x04ab"))
        agent = await engine.create_agent(AgentDraft(
            name="trader",
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
        assert result.decision.allowed
    """

    def __init__(
        self,
        storage: Storage | None = None,
        config: EngineConfig | None = None,
        converter: CurrencyConverter | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        cfg = config or EngineConfig()
        self._config = cfg
        self._storage = storage or Storage.memory()
        self._clock = clock or utc_now
        self.converter: CurrencyConverter = converter or FixedRateConverter(cfg.conversion)
        self.policies = PolicyStore(self._storage.policies)
        self.keys = KeyRegistry(self._storage.keys, self.policies)
        self.agents = AgentRegistry(self._storage.agents, self.policies, self.keys)
        self.ledger = SpendLedger(self._storage.spend)
        self.recorder = ExecutionRecorder(self._storage.executions, cfg.recorder)
        self.revocation = RevocationController(self.policies, self.keys, self.agents)
        self.locks = PolicyLockRegistry(cfg.lock)

    @property
    def config(self) -> EngineConfig:
        return self._config

    # ------------------------------------------------------------------
    # Policies
    # ------------------------------------------------------------------

    async def create_policy(self, draft: PolicyDraft) -> Policy:
        policy = await self.policies.create(draft, self._clock())
        logger.info("Policy created", extra={"policy_id": policy.id})
        return policy

    async def edit_policy(self, policy_id: str, patch: PolicyPatch) -> Policy:
        async with self.locks.hold(policy_id):
            return await self.policies.edit(policy_id, patch, self._clock())

    async def revoke_policy(self, policy_id: str, reason: str = "manual revocation") -> Policy:
        async with self.locks.hold(policy_id):
            return await self.revocation.revoke(policy_id, reason, self._clock())

    async def delete_policy(self, policy_id: str) -> bool:
        async with self.locks.hold(policy_id):
            deleted = await self.policies.delete(policy_id)
        if deleted:
            self.locks.discard(policy_id)
        return deleted

    # ------------------------------------------------------------------
    # Keys and agents
    # ------------------------------------------------------------------

    async def create_key(self, draft: KeyDraft) -> PolicyBoundKey:
        return await self.keys.create(draft, self._clock())

    async def update_key(self, key_id: str, patch: KeyPatch) -> PolicyBoundKey:
        """
        Update a key. Setting status to ``revoked`` goes through the
        revocation controller so derived keys and holding agents follow.
        """
        changes = patch.changes()
        affected = await self._key_policy_ids(key_id)
        if changes.get("policy_id") is not None:
            affected.add(changes["policy_id"])
        async with self.locks.hold_many(affected):
            if changes.get("status") != "revoked":
                return await self.keys.update(key_id, patch)
            remaining = {k: v for k, v in changes.items() if k != "status"}
            if remaining:
                await self.keys.update(key_id, KeyPatch(**remaining))
            return await self.revocation.revoke_key(key_id)

    async def revoke_key(self, key_id: str, reason: str = "manual revocation") -> PolicyBoundKey:
        """
        Revoke a key, its derived keys and their agents while holding the
        locks of every policy they are bound to.
        """
        async with self.locks.hold_many(await self._key_policy_ids(key_id)):
            return await self.revocation.revoke_key(key_id, reason)

    async def create_agent(self, draft: AgentDraft) -> Agent:
        return await self.agents.create(draft, self._clock())

    async def update_agent(self, agent_id: str, patch: AgentPatch) -> Agent:
        return await self.agents.update(agent_id, patch)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def propose(self, proposal: ActionProposal) -> ProposalResult:
        """
        Evaluate an agent's proposed action and record the outcome.

        A denial is a normal result, not an exception; it is always recorded.
        A policy that is no longer active denies every proposal without
        running the checks; see :func:`inactive_policy_decision`.

        Raises:
            AgentNotFoundError: If the agent does not exist.
            InactiveEntityError: If the agent is paused or revoked, or its
                key is not active.
            CapabilityDisabledError: If the action type's capability is not
                enabled on the agent.
            ConcurrencyConflictError: If the policy lock could not be taken.
            CurrencyConversionError: If spend must be compared across
                currencies without a known rate.
        """
        agent = await self.agents.get(proposal.agent_id)
        if agent.status in ("paused", "revoked"):
            raise InactiveEntityError("Agent", agent.id, agent.status)
        capability = ACTION_CAPABILITY[proposal.action_type]
        if not agent.capability_enabled(capability):
            raise CapabilityDisabledError(agent.id, proposal.action_type, capability)
        key = await self._active_key(agent.key_id)

        async with self.locks.hold(agent.policy_id):
            policy = await self.policies.get(agent.policy_id)
            now = self._clock()
            history = await self.ledger.history(policy.id)
            started = time.perf_counter()
            decision = self._decide(policy, proposal.action, history, now)
            duration_ms = (time.perf_counter() - started) * 1000.0

            execution_id = str(uuid.uuid4())
            draft = self._log_draft(
                proposal, agent, key, policy, decision, now, duration_ms
            )
            spend_record = None
            if decision.allowed and proposal.action.amount > 0:
                spend_record = await self.ledger.record(
                    policy.id,
                    proposal.action.amount,
                    proposal.action.currency,
                    self._usd_value(proposal.action.amount, proposal.action.currency),
                    execution_id,
                    now,
                )
            try:
                log = await self.recorder.append(draft, execution_id=execution_id)
            except BaseException:
                if spend_record is not None:
                    await self.ledger.retract(spend_record)
                raise

            policy_status = policy.status
            if not decision.allowed and not policy.is_terminal:
                policy_status = await self.revocation.apply(policy, decision, now)
            await self.agents.record_activity(agent.id, decision.allowed, now)

        logger.info(
            "Policy decision: %s",
            decision.result,
            extra={
                "policy_id": policy.id,
                "agent_id": agent.id,
                "execution_id": log.id,
                "result": decision.result,
                "reason": decision.reason,
            },
        )
        return ProposalResult(
            log=log,
            decision=decision,
            spend_record=spend_record,
            policy_status=policy_status,
        )

    async def replay(self, execution_id: str) -> ReplayResult:
        """
        Re-evaluate a logged proposal against the policy version and spend
        history it originally saw, and record the replay.

        Replays never write spend or change statuses. Replaying a replay
        replays the log it was made from.

        Raises:
            ExecutionNotFoundError: If the log does not exist.
            PolicyNotFoundError: If the policy version no longer exists.
            PolicyValidationError: If the log carries no recorded action.
        """
        original = await self.recorder.get(execution_id)
        if original.replay_of is not None:
            original = await self.recorder.get(original.replay_of)
        if original.proposed_action is None:
            raise PolicyValidationError(
                f"Execution log '{original.id}' has no recorded action to replay."
            )
        policy = await self.policies.get_version(original.policy_id, original.policy_version)
        earlier = {log.id for log in await self.recorder.chain() if log.sequence < original.sequence}
        history = [
            record
            for record in await self.ledger.history(policy.id)
            if record.execution_id in earlier
        ]
        decision = self._decide(policy, original.proposed_action, history, original.timestamp)
        matches = (
            decision.result == original.result
            and decision.checks == original.policy_evaluation
        )
        draft = ExecutionLogDraft(
            agent_id=original.agent_id,
            policy_id=original.policy_id,
            policy_version=original.policy_version,
            key_id=original.key_id,
            action_type=original.action_type,
            input_cid=original.input_cid,
            policy_cid=original.policy_cid,
            result="replayed",
            denial_reason=decision.reason,
            timestamp=self._clock(),
            inputs=original.inputs,
            outputs={"decision": decision.result, "matches": matches},
            policy_evaluation=decision.checks,
            proposed_action=original.proposed_action,
            replay_of=original.id,
        )
        log = await self.recorder.append(draft)
        logger.info(
            "Execution replayed",
            extra={"execution_id": original.id, "replay_id": log.id, "matches": matches},
        )
        return ReplayResult(original=original, log=log, decision=decision, matches=matches)

    async def observe(
        self,
        policy_id: str,
        provider: ObservationProvider,
        address: str,
    ) -> Observations:
        """
        Fetch the observations a policy's conditions need. Call before
        :meth:`propose`; nothing here runs under the policy lock.
        """
        policy = await self.policies.get(policy_id)
        return await collect_observations(
            policy, provider, address, self._config.observation_timeout_seconds
        )

    # ------------------------------------------------------------------
    # Executions and dashboard
    # ------------------------------------------------------------------

    async def list_executions(
        self, execution_filter: ExecutionFilter | None = None
    ) -> list[ExecutionLog]:
        return await self.recorder.query(execution_filter)

    async def verify_executions(self) -> ChainVerificationResult:
        return await self.recorder.verify()

    async def stats(self, now: datetime | None = None) -> DashboardStats:
        """Dashboard aggregates over the last ``stats_window_hours``."""
        moment = now or self._clock()
        since = moment - timedelta(hours=self._config.stats_window_hours)
        recent = [log for log in await self.recorder.chain() if since < log.timestamp <= moment]
        return build_dashboard_stats(
            policies=await self.policies.list(),
            agents=await self.agents.list(),
            keys=await self.keys.list(),
            recent_logs=recent,
            recent_spend_usd=await self.ledger.total_usd_since(since, moment),
        )

    async def sweep_expired(self, now: datetime | None = None) -> list[str]:
        """Expire policies and keys past their expiry, holding every policy's lock."""
        policy_ids = [policy.id for policy in await self.policies.list()]
        async with self.locks.hold_many(policy_ids):
            return await self.revocation.sweep_expired(now or self._clock())

    async def close(self) -> None:
        await self._storage.close()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _active_key(self, key_id: str) -> PolicyBoundKey:
        key = await self.keys.get(key_id)
        if key.is_active and key.expires_at is not None and self._clock() >= key.expires_at:
            key = await self.keys.set_status(key.id, "expired")
        if not key.is_active:
            raise InactiveEntityError("Key", key.id, key.status)
        return key

    async def _key_policy_ids(self, key_id: str) -> set[str]:
        """Policies bound to the key, its derived keys, and agents holding any of them."""
        keys = [await self.keys.get(key_id), *await self.keys.descendants(key_id)]
        policy_ids = {key.policy_id for key in keys if key.policy_id is not None}
        for agent in await self.agents.holding_keys({key.id for key in keys}):
            policy_ids.add(agent.policy_id)
        return policy_ids

    def _decide(
        self,
        policy: Policy,
        action: ProposedAction,
        history: list[SpendRecord],
        now: datetime,
    ) -> Decision:
        if policy.is_terminal:
            return inactive_policy_decision(policy, now)
        return evaluate(policy, action, history, now, self.converter)

    def _usd_value(self, amount: Decimal, currency: str) -> Decimal | None:
        try:
            return self.converter.convert(amount, currency, "USD")
        except CurrencyConversionError:
            return None

    @staticmethod
    def _log_draft(
        proposal: ActionProposal,
        agent: Agent,
        key: PolicyBoundKey,
        policy: Policy,
        decision: Decision,
        now: datetime,
        duration_ms: float,
    ) -> ExecutionLogDraft:
        action_json = proposal.action.model_dump(mode="json", by_alias=True)
        return ExecutionLogDraft(
            agent_id=agent.id,
            policy_id=policy.id,
            policy_version=policy.version,
            key_id=key.id,
            action_type=proposal.action_type,
            input_cid=compute_cid(
                {
                    "actionType": proposal.action_type,
                    "action": action_json,
                    "inputs": proposal.inputs,
                }
            ),
            output_cid=compute_cid(proposal.outputs) if proposal.outputs is not None else None,
            policy_cid=compute_cid(policy),
            result=decision.result,
            denial_reason=decision.reason,
            tx_hash=proposal.tx_hash,
            timestamp=now,
            duration_ms=duration_ms,
            inputs=proposal.inputs,
            outputs=proposal.outputs,
            policy_evaluation=decision.checks,
            proposed_action=proposal.action,
        )
