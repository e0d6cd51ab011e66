# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

import asyncio
import uuid
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from iam_policy.base import ensure_utc, utc_now
from iam_policy.entities.models import (
    Agent,
    AgentDraft,
    AgentPatch,
    KeyDraft,
    KeyPatch,
    PolicyBoundKey,
    key_fingerprint,
)
from iam_policy.errors import (
    AgentNotFoundError,
    KeyNotFoundError,
    PolicyValidationError,
    TerminalStateError,
)
from iam_policy.policy.store import PolicyStore
from iam_policy.storage.interface import Repository
from iam_policy.types import AgentStatus, KeyStatus


def _validation_details(exc: ValidationError) -> list[dict[str, Any]]:
    return exc.errors(include_url=False, include_context=False, include_input=False)


class KeyRegistry:
    """
    CRUD over policy-bound keys with derivation-tree and status rules.

    A key whose status is no longer ``active`` is terminal: further status
    changes are refused (or ignored by :meth:`set_status`).
    """

    def __init__(self, repository: Repository[PolicyBoundKey], policies: PolicyStore) -> None:
        self._repository = repository
        self._policies = policies
        self._write_lock = asyncio.Lock()

    async def find(self, key_id: str) -> PolicyBoundKey | None:
        return await self._repository.get(key_id)

    async def get(self, key_id: str) -> PolicyBoundKey:
        key = await self._repository.get(key_id)
        if key is None:
            raise KeyNotFoundError(key_id)
        return key

    async def list(self) -> list[PolicyBoundKey]:
        keys = await self._repository.list()
        return sorted(keys, key=lambda key: key.created_at, reverse=True)

    async def bound_to_policy(self, policy_id: str) -> list[PolicyBoundKey]:
        return [key for key in await self._repository.list() if key.policy_id == policy_id]

    async def descendants(self, key_id: str) -> list[PolicyBoundKey]:
        """Return every key derived (directly or transitively) from ``key_id``."""
        keys = await self._repository.list()
        children: dict[str, list[PolicyBoundKey]] = {}
        for key in keys:
            if key.parent_key_id is not None:
                children.setdefault(key.parent_key_id, []).append(key)

        found: list[PolicyBoundKey] = []
        pending = [key_id]
        seen = {key_id}
        while pending:
            for child in children.get(pending.pop(), []):
                if child.id not in seen:
                    seen.add(child.id)
                    found.append(child)
                    pending.append(child.id)
        return found

    async def create(self, draft: KeyDraft, now: datetime | None = None) -> PolicyBoundKey:
        """
        Register a key.

        Raises:
            KeyNotFoundError: If ``parent_key_id`` does not exist.
            PolicyNotFoundError: If ``policy_id`` does not exist.
        """
        if draft.parent_key_id is not None:
            await self.get(draft.parent_key_id)
        if draft.policy_id is not None:
            await self._policies.get(draft.policy_id)

        key = PolicyBoundKey(
            **draft.model_dump(exclude={"fingerprint"}),
            id=str(uuid.uuid4()),
            fingerprint=draft.fingerprint or key_fingerprint(draft.public_key),
            created_at=ensure_utc(now) if now is not None else utc_now(),
        )
        return await self._repository.create(key)

    async def update(self, key_id: str, patch: KeyPatch) -> PolicyBoundKey:
        """
        Apply a partial update.

        Raises:
            KeyNotFoundError: If ``key_id`` does not exist.
            TerminalStateError: If the key is revoked or expired.
            PolicyNotFoundError: If the patch binds an unknown policy.
        """
        await self.get(key_id)
        changes = patch.changes()
        if changes.get("policy_id") is not None:
            await self._policies.get(changes["policy_id"])
        async with self._write_lock:
            current = await self.get(key_id)
            if not current.is_active:
                raise TerminalStateError("Key", key_id, current.status)
            try:
                updated = PolicyBoundKey.model_validate({**current.model_dump(), **changes})
            except ValidationError as exc:
                raise PolicyValidationError(
                    f"Updated key '{key_id}' is invalid.", details=_validation_details(exc)
                ) from exc
            return await self._repository.update(updated)

    async def set_status(self, key_id: str, status: KeyStatus) -> PolicyBoundKey:
        """Move an active key to ``status``. Terminal keys are left untouched."""
        async with self._write_lock:
            current = await self.get(key_id)
            if not current.is_active or current.status == status:
                return current
            return await self._repository.update(current.model_copy(update={"status": status}))

    async def delete(self, key_id: str) -> bool:
        return await self._repository.delete(key_id)


class AgentRegistry:
    """
    CRUD over agents. An agent always references an existing policy and key;
    once ``revoked`` it is terminal.
    """

    def __init__(
        self,
        repository: Repository[Agent],
        policies: PolicyStore,
        keys: KeyRegistry,
    ) -> None:
        self._repository = repository
        self._policies = policies
        self._keys = keys
        self._write_lock = asyncio.Lock()

    async def get(self, agent_id: str) -> Agent:
        agent = await self._repository.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    async def list(self) -> list[Agent]:
        agents = await self._repository.list()
        return sorted(agents, key=lambda agent: agent.created_at, reverse=True)

    async def bound_to_policy(self, policy_id: str) -> list[Agent]:
        return [a for a in await self._repository.list() if a.policy_id == policy_id]

    async def holding_keys(self, key_ids: set[str]) -> list[Agent]:
        return [a for a in await self._repository.list() if a.key_id in key_ids]

    async def create(self, draft: AgentDraft, now: datetime | None = None) -> Agent:
        """
        Register an agent.

        Raises:
            PolicyNotFoundError: If ``policy_id`` does not exist.
            KeyNotFoundError: If ``key_id`` does not exist.
        """
        await self._policies.get(draft.policy_id)
        await self._keys.get(draft.key_id)
        agent = Agent(
            **draft.model_dump(),
            id=str(uuid.uuid4()),
            created_at=ensure_utc(now) if now is not None else utc_now(),
        )
        return await self._repository.create(agent)

    async def update(self, agent_id: str, patch: AgentPatch) -> Agent:
        """
        Apply a partial update; rebinding checks the new policy/key exist.

        Raises:
            AgentNotFoundError: If ``agent_id`` does not exist.
            TerminalStateError: If the agent is revoked.
        """
        await self.get(agent_id)
        changes = patch.changes()
        if changes.get("policy_id") is not None:
            await self._policies.get(changes["policy_id"])
        if changes.get("key_id") is not None:
            await self._keys.get(changes["key_id"])
        async with self._write_lock:
            current = await self.get(agent_id)
            if current.status == "revoked":
                raise TerminalStateError("Agent", agent_id, current.status)
            try:
                updated = Agent.model_validate({**current.model_dump(), **changes})
            except ValidationError as exc:
                raise PolicyValidationError(
                    f"Updated agent '{agent_id}' is invalid.", details=_validation_details(exc)
                ) from exc
            return await self._repository.update(updated)

    async def set_status(self, agent_id: str, status: AgentStatus) -> Agent:
        """Change status unless the agent is already revoked."""
        async with self._write_lock:
            current = await self.get(agent_id)
            if current.status == "revoked" or current.status == status:
                return current
            return await self._repository.update(current.model_copy(update={"status": status}))

    async def record_activity(self, agent_id: str, succeeded: bool, now: datetime) -> Agent:
        """
        Fold one evaluated action into the agent's counters.

        An ``idle`` agent becomes ``active``; other statuses are kept. The
        agent is re-read under the write lock, so a revocation that landed
        while the action was being evaluated is never overwritten.
        """
        async with self._write_lock:
            current = await self.get(agent_id)
            successes = round(current.success_rate * current.total_actions / 100.0)
            total = current.total_actions + 1
            successes += 1 if succeeded else 0
            update: dict[str, Any] = {
                "total_actions": total,
                "success_rate": successes * 100.0 / total,
                "last_active_at": ensure_utc(now),
            }
            if current.status == "idle":
                update["status"] = "active"
            return await self._repository.update(current.model_copy(update=update))

    async def delete(self, agent_id: str) -> bool:
        return await self._repository.delete(agent_id)
