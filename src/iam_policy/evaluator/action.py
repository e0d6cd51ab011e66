# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import Field, ValidationError

from iam_policy.base import WireModel
from iam_policy.errors import PolicyValidationError
from iam_policy.policy.models import Address
from iam_policy.types import Currency


class Observations(WireModel):
    """
    External facts a caller fetched before proposing an action.

    Attributes:
        oracle_prices: Latest price per oracle feed id (e.g. ``'ETH/USD'``).
        block_number: Current chain height.
        balance: Balance of the acting key, in the action currency.
    """

    oracle_prices: dict[str, Decimal] = Field(default_factory=dict)
    block_number: int | None = Field(default=None, ge=0)
    balance: Decimal | None = None


class ProposedAction(WireModel):
    """
    The on-chain call an agent wants to make.

    ``selector`` is the 4-byte function selector (``0xa9059cbb``) or a
    function name; it is compared verbatim against allowlist entries.
    """

    target: Address
    selector: str = Field(..., min_length=1)
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    currency: Currency
    observations: Observations = Field(default_factory=Observations)


def validate_action(data: Any) -> ProposedAction:
    """
    Build a ProposedAction from untrusted input.

    Raises:
        PolicyValidationError: If ``data`` is not a valid action.
    """
    if isinstance(data, ProposedAction):
        return data
    try:
        return ProposedAction.model_validate(data)
    except ValidationError as exc:
        raise PolicyValidationError(
            "Proposed action is invalid.",
            details=exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc
