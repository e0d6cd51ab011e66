# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from iam_policy.base import ensure_utc, utc_now
from iam_policy.errors import PolicyNotFoundError, PolicyValidationError, TerminalStateError
from iam_policy.policy.models import Policy, PolicyDraft, PolicyPatch
from iam_policy.storage.interface import Repository
from iam_policy.types import PolicyStatus


class PolicyStore:
    """
    Versioned, append-only store of policy documents.

    Each write produces a new :class:`Policy` version; earlier versions stay
    readable through :meth:`get_version` and :meth:`history`. Reads need no
    locking because a fetched version is never mutated.

    Example::

        store = PolicyStore(MemoryRepository(key=version_key))
        policy = await store.create(PolicyDraft(name="treasury"))
        edited = await store.edit(policy.id, PolicyPatch(description="ops"))
        assert edited.version == 2
        assert (await store.get_version(policy.id, 1)).description is None
    """

    def __init__(self, repository: Repository[Policy]) -> None:
        self._repository = repository
        self._heads: dict[str, int] | None = None  # policy id -> latest version

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find(self, policy_id: str) -> Policy | None:
        """Return the latest version of ``policy_id``, or None."""
        heads = await self._load_heads()
        version = heads.get(policy_id)
        if version is None:
            return None
        return await self._repository.get(f"{policy_id}@{version}")

    async def get(self, policy_id: str) -> Policy:
        """
        Return the latest version of a policy.

        Raises:
            PolicyNotFoundError: If ``policy_id`` does not exist.
        """
        policy = await self.find(policy_id)
        if policy is None:
            raise PolicyNotFoundError(policy_id)
        return policy

    async def get_version(self, policy_id: str, version: int) -> Policy:
        """
        Return one specific version of a policy.

        Raises:
            PolicyNotFoundError: If the policy or that version does not exist.
        """
        policy = await self._repository.get(f"{policy_id}@{version}")
        if policy is None:
            raise PolicyNotFoundError(f"{policy_id} (version {version})")
        return policy

    async def history(self, policy_id: str) -> list[Policy]:
        """Return every version of a policy, oldest first."""
        versions = [p for p in await self._repository.list() if p.id == policy_id]
        if not versions:
            raise PolicyNotFoundError(policy_id)
        return sorted(versions, key=lambda policy: policy.version)

    async def list(self) -> list[Policy]:
        """Return the latest version of every policy, newest created first."""
        heads = await self._load_heads()
        latest = [
            policy
            for policy in await self._repository.list()
            if heads.get(policy.id) == policy.version
        ]
        return sorted(latest, key=lambda policy: policy.created_at, reverse=True)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, draft: PolicyDraft, now: datetime | None = None) -> Policy:
        """Store version 1 of a new policy with status ``active``."""
        timestamp = ensure_utc(now) if now is not None else utc_now()
        policy = Policy(
            **draft.model_dump(),
            id=str(uuid.uuid4()),
            version=1,
            status="active",
            created_at=timestamp,
            updated_at=timestamp,
        )
        await self._write(policy)
        return policy

    async def edit(
        self,
        policy_id: str,
        patch: PolicyPatch,
        now: datetime | None = None,
    ) -> Policy:
        """
        Apply a partial edit as a new version.

        Raises:
            PolicyNotFoundError: If ``policy_id`` does not exist.
            TerminalStateError: If the policy is expired, violated or revoked.
            PolicyValidationError: If the edited document is invalid.
        """
        current = await self.get(policy_id)
        if current.is_terminal:
            raise TerminalStateError("Policy", policy_id, current.status)
        return await self._next_version(current, patch.changes(), now)

    async def transition(
        self,
        policy_id: str,
        status: PolicyStatus,
        now: datetime | None = None,
    ) -> Policy:
        """
        Move an active policy to a terminal status as a new version.

        A policy that is already terminal is returned unchanged, which makes
        repeated revocation a no-op.

        Raises:
            PolicyNotFoundError: If ``policy_id`` does not exist.
        """
        current = await self.get(policy_id)
        if current.is_terminal or current.status == status:
            return current
        return await self._next_version(current, {"status": status}, now)

    async def delete(self, policy_id: str) -> bool:
        """Remove a policy and all of its versions."""
        heads = await self._load_heads()
        latest = heads.pop(policy_id, None)
        if latest is None:
            return False
        for version in range(1, latest + 1):
            await self._repository.delete(f"{policy_id}@{version}")
        return True

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _next_version(
        self,
        current: Policy,
        changes: dict[str, Any],
        now: datetime | None,
    ) -> Policy:
        timestamp = ensure_utc(now) if now is not None else utc_now()
        document = {
            **current.model_dump(),
            **changes,
            "version": current.version + 1,
            "updated_at": timestamp,
        }
        try:
            policy = Policy.model_validate(document)
        except ValidationError as exc:
            raise PolicyValidationError(
                f"Edited policy '{current.id}' is invalid.",
                details=exc.errors(include_url=False, include_context=False, include_input=False),
            ) from exc
        await self._write(policy)
        return policy

    async def _write(self, policy: Policy) -> None:
        heads = await self._load_heads()
        await self._repository.create(policy)
        heads[policy.id] = policy.version

    async def _load_heads(self) -> dict[str, int]:
        if self._heads is None:
            heads: dict[str, int] = {}
            for policy in await self._repository.list():
                heads[policy.id] = max(heads.get(policy.id, 0), policy.version)
            self._heads = heads
        return self._heads
