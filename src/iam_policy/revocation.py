# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

import logging
from datetime import datetime

from iam_policy.base import ensure_utc, utc_now
from iam_policy.entities.models import PolicyBoundKey
from iam_policy.entities.registry import AgentRegistry, KeyRegistry
from iam_policy.evaluator.decision import Decision
from iam_policy.policy.models import Policy
from iam_policy.policy.store import PolicyStore
from iam_policy.types import PolicyStatus

logger = logging.getLogger("iam_policy.revocation")


class RevocationController:
    """
    Applies status changes that follow from decisions, expiry and manual
    revocation, and cascades them to bound keys and agents.

    Every operation is idempotent: an entity already in a terminal status is
    left as it is, so repeating a revocation changes nothing.

    Example::

        controller = RevocationController(policies, keys, agents)
        status = await controller.apply(policy, decision)
        if status != "active":
            ...  # keys and agents bound to the policy are now revoked
    """

    def __init__(
        self,
        policies: PolicyStore,
        keys: KeyRegistry,
        agents: AgentRegistry,
    ) -> None:
        self._policies = policies
        self._keys = keys
        self._agents = agents

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def apply(
        self,
        policy: Policy,
        decision: Decision,
        now: datetime | None = None,
    ) -> PolicyStatus:
        """
        React to one decision. Returns the policy's resulting status.

        * contract or condition denial with ``violation`` enabled -> ``violated``
        * spend denial with ``violation`` or ``spend_exceeded`` enabled -> ``violated``
        * expiry denial with ``expiry`` enabled -> ``expired``

        ``policy`` may be the snapshot the decision was made against; the
        stored policy is re-read so a repeated call changes nothing.
        """
        current = await self._policies.get(policy.id)
        if current.is_terminal:
            return current.status
        target = self._status_for(current, decision)
        if target is None:
            return current.status
        return await self._terminate(current.id, target, decision.reason or target, now)

    async def revoke(
        self,
        policy_id: str,
        reason: str = "manual revocation",
        now: datetime | None = None,
    ) -> Policy:
        """
        Manually revoke a policy. Always enabled regardless of ``revoke_on``.

        Raises:
            PolicyNotFoundError: If ``policy_id`` does not exist.
        """
        current = await self._policies.get(policy_id)
        if current.is_terminal:
            return current
        await self._terminate(policy_id, "revoked", reason, now)
        return await self._policies.get(policy_id)

    async def revoke_key(self, key_id: str, reason: str = "manual revocation") -> PolicyBoundKey:
        """
        Revoke a key, every key derived from it, and every agent holding one
        of those keys.

        Raises:
            KeyNotFoundError: If ``key_id`` does not exist.
        """
        key = await self._keys.get(key_id)
        affected = [key, *await self._keys.descendants(key_id)]
        revoked_ids: set[str] = set()
        for candidate in affected:
            if candidate.is_active:
                await self._keys.set_status(candidate.id, "revoked")
                revoked_ids.add(candidate.id)
        for agent in await self._agents.holding_keys({k.id for k in affected}):
            if agent.status != "revoked":
                await self._agents.set_status(agent.id, "revoked")
        if revoked_ids:
            logger.warning(
                "Key revoked",
                extra={"key_id": key_id, "keys_revoked": len(revoked_ids), "reason": reason},
            )
        return await self._keys.get(key_id)

    async def sweep_expired(self, now: datetime | None = None) -> list[str]:
        """
        Expire every active policy past ``expires_at`` that has ``expiry`` in
        ``revoke_on``, and every active key past its own ``expires_at``.

        Returns:
            Ids of the policies that were expired by this sweep.
        """
        moment = ensure_utc(now) if now is not None else utc_now()
        expired: list[str] = []
        for policy in await self._policies.list():
            if policy.is_terminal or policy.expires_at is None or moment < policy.expires_at:
                continue
            if policy.revokes_on("expiry"):
                await self._terminate(policy.id, "expired", "policy expired", moment)
                expired.append(policy.id)
        for key in await self._keys.list():
            if key.is_active and key.expires_at is not None and moment >= key.expires_at:
                await self._keys.set_status(key.id, "expired")
                logger.warning("Key expired", extra={"key_id": key.id})
        return expired

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _status_for(policy: Policy, decision: Decision) -> PolicyStatus | None:
        if decision.allowed:
            return None
        if decision.trigger in ("contract", "condition") and policy.revokes_on("violation"):
            return "violated"
        if decision.trigger == "spend" and (
            policy.revokes_on("violation") or policy.revokes_on("spend_exceeded")
        ):
            return "violated"
        if decision.trigger == "expiry" and policy.revokes_on("expiry"):
            return "expired"
        return None

    async def _terminate(
        self,
        policy_id: str,
        status: PolicyStatus,
        reason: str,
        now: datetime | None,
    ) -> PolicyStatus:
        updated = await self._policies.transition(policy_id, status, now)
        keys = await self._keys.bound_to_policy(policy_id)
        for key in keys:
            await self._keys.set_status(key.id, "revoked")
        agents = await self._agents.bound_to_policy(policy_id)
        for agent in agents:
            await self._agents.set_status(agent.id, "revoked")
        logger.warning(
            "Policy %s",
            updated.status,
            extra={
                "policy_id": policy_id,
                "status": updated.status,
                "reason": reason,
                "keys_revoked": len(keys),
                "agents_revoked": len(agents),
            },
        )
        return updated.status
