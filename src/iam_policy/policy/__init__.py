# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from iam_policy.policy.models import (
    ContractAllowlistEntry,
    Policy,
    PolicyCondition,
    PolicyDraft,
    PolicyPatch,
    SpendLimit,
    version_key,
)
from iam_policy.policy.store import PolicyStore

__all__ = [
    "ContractAllowlistEntry",
    "Policy",
    "PolicyCondition",
    "PolicyDraft",
    "PolicyPatch",
    "PolicyStore",
    "SpendLimit",
    "version_key",
]
