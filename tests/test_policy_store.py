# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
"""Tests for policy documents and the versioned PolicyStore."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from iam_policy.errors import PolicyNotFoundError, TerminalStateError
from iam_policy.policy.models import (
    ContractAllowlistEntry,
    PolicyCondition,
    PolicyDraft,
    PolicyPatch,
    SpendLimit,
    version_key,
)
from iam_policy.policy.store import PolicyStore
from iam_policy.storage.memory import MemoryRepository

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store() -> PolicyStore:
    return PolicyStore(MemoryRepository(key=version_key))


# ---------------------------------------------------------------------------
# TestPolicyDocument
# ---------------------------------------------------------------------------


class TestPolicyDocument:
    def test_manual_revocation_is_always_enabled(self) -> None:
        draft = PolicyDraft(name="p", revoke_on=["violation", "violation"])
        assert draft.revoke_on == ["manual", "violation"]

    def test_accepts_camel_case_wire_format(self) -> None:
        draft = PolicyDraft.model_validate(
            {
                "name": "wire",
                "spend": {"max": "250", "currency": "USDC", "window": "7d"},
                "contracts": [{"address": "0xCAFE", "functions": ["swap"]}],
                "expiresAt": "2026-04-01T00:00:00Z",
                "revokeOn": ["expiry"],
            }
        )
        assert draft.spend is not None and draft.spend.max == Decimal("250")
        assert draft.expires_at == datetime(2026, 4, 1, tzinfo=timezone.utc)
        assert "expiry" in draft.revoke_on

    def test_serialises_with_camel_case_aliases(self) -> None:
        dumped = PolicyDraft(name="p", expires_at=T0).model_dump(mode="json", by_alias=True)
        assert "expiresAt" in dumped
        assert "revokeOn" in dumped

    def test_rejects_invalid_contract_address(self) -> None:
        with pytest.raises(ValidationError):
            ContractAllowlistEntry(address="CAFE", functions=["swap"])

    def test_rejects_non_positive_spend_limit(self) -> None:
        with pytest.raises(ValidationError):
            SpendLimit(max=Decimal("0"), currency="USD", window="24h")

    def test_oracle_condition_requires_oracle_id(self) -> None:
        with pytest.raises(ValidationError):
            PolicyCondition(type="oracle", operator="gt", value="1")

    def test_between_bounds_must_be_ordered(self) -> None:
        with pytest.raises(ValidationError):
            PolicyCondition(type="balance", operator="between", value="10", second_value="5")

    def test_condition_value_must_be_numeric(self) -> None:
        with pytest.raises(ValidationError):
            PolicyCondition(type="block", operator="gt", value="soon")

    def test_naive_datetimes_are_treated_as_utc(self) -> None:
        draft = PolicyDraft(name="p", expires_at=datetime(2026, 5, 1))
        assert draft.expires_at is not None
        assert draft.expires_at.tzinfo == timezone.utc


# ---------------------------------------------------------------------------
# TestPolicyStore
# ---------------------------------------------------------------------------


class TestPolicyStore:
    def test_create_stores_version_one_active(self, store: PolicyStore) -> None:
        policy = asyncio.run(store.create(PolicyDraft(name="treasury"), T0))
        assert policy.version == 1
        assert policy.status == "active"
        assert policy.created_at == T0 == policy.updated_at
        assert asyncio.run(store.get(policy.id)) == policy

    def test_edit_writes_new_version_and_keeps_old(self, store: PolicyStore) -> None:
        policy = asyncio.run(store.create(PolicyDraft(name="treasury"), T0))
        later = T0 + timedelta(minutes=5)
        edited = asyncio.run(store.edit(policy.id, PolicyPatch(description="ops"), later))

        assert edited.version == 2
        assert edited.description == "ops"
        assert edited.name == "treasury"
        assert edited.created_at == T0
        assert edited.updated_at == later
        assert asyncio.run(store.get_version(policy.id, 1)).description is None
        assert [p.version for p in asyncio.run(store.history(policy.id))] == [1, 2]

    def test_edit_can_clear_optional_field(self, store: PolicyStore) -> None:
        policy = asyncio.run(store.create(PolicyDraft(name="p", expires_at=T0), T0))
        edited = asyncio.run(store.edit(policy.id, PolicyPatch(expires_at=None)))
        assert edited.expires_at is None

    def test_list_returns_latest_versions_only(self, store: PolicyStore) -> None:
        first = asyncio.run(store.create(PolicyDraft(name="a"), T0))
        asyncio.run(store.create(PolicyDraft(name="b"), T0 + timedelta(seconds=1)))
        asyncio.run(store.edit(first.id, PolicyPatch(name="a2")))

        listed = asyncio.run(store.list())
        assert [p.name for p in listed] == ["b", "a2"]

    def test_get_unknown_policy_raises(self, store: PolicyStore) -> None:
        with pytest.raises(PolicyNotFoundError) as exc_info:
            asyncio.run(store.get("missing"))
        assert exc_info.value.code == "POLICY_NOT_FOUND"

    def test_get_unknown_version_raises(self, store: PolicyStore) -> None:
        policy = asyncio.run(store.create(PolicyDraft(name="p"), T0))
        with pytest.raises(PolicyNotFoundError):
            asyncio.run(store.get_version(policy.id, 7))

    def test_transition_writes_version_and_is_idempotent(self, store: PolicyStore) -> None:
        policy = asyncio.run(store.create(PolicyDraft(name="p"), T0))
        revoked = asyncio.run(store.transition(policy.id, "revoked"))
        again = asyncio.run(store.transition(policy.id, "violated"))

        assert revoked.version == 2
        assert revoked.status == "revoked"
        assert again == revoked

    def test_terminal_policy_cannot_be_edited(self, store: PolicyStore) -> None:
        policy = asyncio.run(store.create(PolicyDraft(name="p"), T0))
        asyncio.run(store.transition(policy.id, "expired"))
        with pytest.raises(TerminalStateError) as exc_info:
            asyncio.run(store.edit(policy.id, PolicyPatch(name="new")))
        assert exc_info.value.status == "expired"

    def test_delete_removes_every_version(self, store: PolicyStore) -> None:
        policy = asyncio.run(store.create(PolicyDraft(name="p"), T0))
        asyncio.run(store.edit(policy.id, PolicyPatch(name="q")))

        assert asyncio.run(store.delete(policy.id)) is True
        assert asyncio.run(store.find(policy.id)) is None
        assert asyncio.run(store.delete(policy.id)) is False
        with pytest.raises(PolicyNotFoundError):
            asyncio.run(store.history(policy.id))

    def test_heads_are_rebuilt_from_existing_repository(self) -> None:
        repository = MemoryRepository(key=version_key)
        policy = asyncio.run(PolicyStore(repository).create(PolicyDraft(name="p"), T0))
        asyncio.run(PolicyStore(repository).edit(policy.id, PolicyPatch(name="q")))

        reopened = PolicyStore(repository)
        assert asyncio.run(reopened.get(policy.id)).version == 2
