# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

import re

from pydantic import Field, model_validator

from iam_policy.base import PatchModel, UTCDateTime, WireModel
from iam_policy.policy.models import Address
from iam_policy.types import AgentStatus, CapabilityType, KeyStatus, KeyType

_HEX_BODY = re.compile(r"^(0x)?[0-9a-fA-F]+$")


def key_fingerprint(public_key: str) -> str:
    """
    Short display fingerprint of a public key: 16 hex characters after the
    prefix, grouped by four and upper-cased (``AB12:CD34:EF56:7890``).
    """
    body = public_key[2:18]
    groups = [body[i : i + 4] for i in range(0, len(body), 4)]
    return ":".join(groups).upper() or public_key[:16]


# ─── Keys ─────────────────────────────────────────────────────────────────────


class KeyDraft(WireModel):
    """
    Caller-supplied fields of a policy-bound key.

    Keys form a derivation tree: a ``root`` key has no parent, ``child`` and
    ``agent`` keys may reference the key they were derived from.
    """

    type: KeyType
    address: Address
    public_key: str = Field(..., min_length=4)
    fingerprint: str | None = None
    policy_id: str | None = None
    agent_id: str | None = None
    status: KeyStatus = "active"
    expires_at: UTCDateTime | None = None
    parent_key_id: str | None = None
    derivation_path: str | None = None

    @model_validator(mode="after")
    def _check_tree_shape(self) -> KeyDraft:
        if not _HEX_BODY.match(self.public_key):
            raise ValueError("publicKey must be hex encoded")
        if self.type == "root" and self.parent_key_id is not None:
            raise ValueError("root keys cannot have a parent key")
        if self.type == "child" and self.parent_key_id is None:
            raise ValueError("child keys require parentKeyId")
        return self


class PolicyBoundKey(KeyDraft):
    id: str
    fingerprint: str
    created_at: UTCDateTime

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class KeyPatch(PatchModel):
    policy_id: str | None = None
    agent_id: str | None = None
    status: KeyStatus | None = None
    expires_at: UTCDateTime | None = None
    derivation_path: str | None = None


# ─── Agents ───────────────────────────────────────────────────────────────────


class AgentCapability(WireModel):
    """One named action family an agent may be allowed to perform."""

    type: CapabilityType
    description: str = ""
    enabled: bool = True


class AgentDraft(WireModel):
    """Caller-supplied fields of an agent. Bound to exactly one policy and one key."""

    name: str = Field(..., min_length=1)
    description: str | None = None
    policy_id: str
    key_id: str
    status: AgentStatus = "active"
    capabilities: list[AgentCapability] = Field(default_factory=list)
    task_scope: str = ""


class Agent(AgentDraft):
    """
    A registered autonomous agent.

    Attributes:
        success_rate: Percentage of the agent's evaluated actions that
            succeeded (100.0 before its first action).
        total_actions: Number of evaluated actions.
        last_active_at: Time of the most recent evaluated action.
    """

    id: str
    success_rate: float = 100.0
    total_actions: int = 0
    created_at: UTCDateTime
    last_active_at: UTCDateTime | None = None

    def capability_enabled(self, capability: str) -> bool:
        return any(c.type == capability and c.enabled for c in self.capabilities)


class AgentPatch(PatchModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    policy_id: str | None = None
    key_id: str | None = None
    status: AgentStatus | None = None
    capabilities: list[AgentCapability] | None = None
    task_scope: str | None = None
