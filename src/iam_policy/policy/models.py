# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Annotated

from pydantic import AfterValidator, Field, field_validator, model_validator

from iam_policy.base import PatchModel, UTCDateTime, WireModel, ensure_utc
from iam_policy.types import (
    TERMINAL_POLICY_STATUSES,
    ComparisonOperator,
    ConditionType,
    Currency,
    PolicyStatus,
    RevocationTrigger,
    SpendWindow,
)

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]+$")


def validate_address(value: str) -> str:
    """Return ``value`` if it looks like a ``0x``-prefixed hex address."""
    if not ADDRESS_PATTERN.match(value):
        raise ValueError(f"{value!r} is not a 0x-prefixed hex address")
    return value


Address = Annotated[str, AfterValidator(validate_address)]


def condition_operand(condition_type: str, raw: str) -> Decimal:
    """
    Parse a condition value into a comparable number.

    ``time`` values may be ISO-8601 timestamps (compared as Unix seconds) or
    plain numbers; every other type takes a decimal string.

    Raises:
        ValueError: If ``raw`` cannot be parsed.
    """
    text = raw.strip()
    try:
        number = Decimal(text)
    except InvalidOperation:
        number = None
    if number is not None:
        if not number.is_finite():
            raise ValueError(f"{raw!r} is not a finite number")
        return number
    if condition_type == "time":
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(f"{raw!r} is neither a number nor an ISO-8601 timestamp") from None
        return Decimal(str(ensure_utc(parsed).timestamp()))
    raise ValueError(f"{raw!r} is not a decimal number")


class SpendLimit(WireModel):
    """Maximum spend for a policy over a rolling window."""

    max: Decimal = Field(..., gt=0)
    currency: Currency
    window: SpendWindow


class ContractAllowlistEntry(WireModel):
    """
    A contract an agent may call, and which functions on it.

    ``verified`` is informational only and never affects enforcement.
    """

    address: Address
    name: str | None = None
    functions: list[str] = Field(default_factory=list)
    verified: bool = False

    def permits(self, target: str, selector: str) -> bool:
        """Case-insensitive address match AND selector listed."""
        return self.address.lower() == target.lower() and selector in self.functions


class PolicyCondition(WireModel):
    """
    A comparison that must hold against a caller-supplied observation.

    Attributes:
        type: Which observation the condition reads.
        operator: Comparison applied as ``observation <operator> value``.
        value: Right-hand operand (lower bound for ``between``).
        second_value: Upper bound, required for ``between`` and ignored
            otherwise.
        oracle: Oracle feed identifier (e.g. ``'ETH/USD'``), required for
            ``oracle`` conditions.
    """

    type: ConditionType
    operator: ComparisonOperator
    value: str
    second_value: str | None = None
    oracle: str | None = None

    @model_validator(mode="after")
    def _check_operands(self) -> PolicyCondition:
        if self.type == "oracle" and not self.oracle:
            raise ValueError("oracle conditions require an oracle identifier")
        lower = condition_operand(self.type, self.value)
        if self.operator == "between":
            if self.second_value is None:
                raise ValueError("the 'between' operator requires secondValue")
            upper = condition_operand(self.type, self.second_value)
            if upper < lower:
                raise ValueError("secondValue must not be less than value")
        return self


class PolicyDraft(WireModel):
    """Caller-supplied content of a policy (everything except identity and status)."""

    name: str = Field(..., min_length=1)
    description: str | None = None
    spend: SpendLimit | None = None
    contracts: list[ContractAllowlistEntry] = Field(default_factory=list)
    conditions: list[PolicyCondition] = Field(default_factory=list)
    expires_at: UTCDateTime | None = None
    revoke_on: list[RevocationTrigger] = Field(default_factory=lambda: ["manual"])

    @field_validator("revoke_on")
    @classmethod
    def _normalise_triggers(cls, value: list[str]) -> list[str]:
        # Manual revocation is always enabled.
        ordered = ["manual"] + [trigger for trigger in value if trigger != "manual"]
        return list(dict.fromkeys(ordered))


class Policy(PolicyDraft):
    """
    One immutable version of a policy document.

    Edits and status transitions never mutate a Policy; the store writes
    version N+1 and keeps N.
    """

    id: str
    version: int = Field(..., ge=1)
    status: PolicyStatus = "active"
    created_at: UTCDateTime
    updated_at: UTCDateTime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_POLICY_STATUSES

    @property
    def is_unconstrained(self) -> bool:
        return not self.contracts and not self.conditions and self.spend is None

    def revokes_on(self, trigger: str) -> bool:
        return trigger == "manual" or trigger in self.revoke_on


class PolicyPatch(PatchModel):
    """Partial edit of a policy's content. Status changes go through revocation."""

    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    spend: SpendLimit | None = None
    contracts: list[ContractAllowlistEntry] | None = None
    conditions: list[PolicyCondition] | None = None
    expires_at: UTCDateTime | None = None
    revoke_on: list[RevocationTrigger] | None = None


def version_key(policy: Policy) -> str:
    """Storage id of one policy version."""
    return f"{policy.id}@{policy.version}"
