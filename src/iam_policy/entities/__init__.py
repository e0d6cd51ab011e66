# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from iam_policy.entities.models import (
    Agent,
    AgentCapability,
    AgentDraft,
    AgentPatch,
    KeyDraft,
    KeyPatch,
    PolicyBoundKey,
)
from iam_policy.entities.registry import AgentRegistry, KeyRegistry

__all__ = [
    "Agent",
    "AgentCapability",
    "AgentDraft",
    "AgentPatch",
    "AgentRegistry",
    "KeyDraft",
    "KeyPatch",
    "KeyRegistry",
    "PolicyBoundKey",
]
