# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Caller-side observation fetching.

The evaluator never performs I/O. Callers gather the oracle prices, block
number and balance a policy's conditions need through an
:class:`ObservationProvider`, before the policy lock is taken, and pass the
result in the proposed action.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from decimal import Decimal
from typing import Protocol, TypeVar

from iam_policy.errors import ObservationTimeoutError
from iam_policy.evaluator.action import Observations
from iam_policy.policy.models import Policy

T = TypeVar("T")


class ObservationProvider(Protocol):
    """Source of external facts (an oracle client, an RPC node, ...)."""

    async def oracle_price(self, oracle: str) -> Decimal: ...

    async def block_number(self) -> int: ...

    async def balance(self, address: str) -> Decimal: ...


async def _bounded(source: str, awaitable: Awaitable[T], timeout: float) -> T:
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        raise ObservationTimeoutError(source, timeout) from None


async def collect_observations(
    policy: Policy,
    provider: ObservationProvider,
    address: str,
    timeout: float = 2.0,
) -> Observations:
    """
    Fetch exactly the observations ``policy``'s conditions read.

    Args:
        policy: Policy whose conditions decide what is fetched.
        provider: Where to fetch from.
        address: Address whose balance ``balance`` conditions compare.
        timeout: Per-fetch timeout in seconds.

    Raises:
        ObservationTimeoutError: If any single fetch exceeds ``timeout``.
    """
    oracles = sorted({c.oracle for c in policy.conditions if c.type == "oracle" and c.oracle})
    wants_block = any(c.type == "block" for c in policy.conditions)
    wants_balance = any(c.type == "balance" for c in policy.conditions)

    prices = {
        oracle: await _bounded(f"oracle:{oracle}", provider.oracle_price(oracle), timeout)
        for oracle in oracles
    }
    block = await _bounded("block", provider.block_number(), timeout) if wants_block else None
    balance = (
        await _bounded(f"balance:{address}", provider.balance(address), timeout)
        if wants_balance
        else None
    )
    return Observations(oracle_prices=prices, block_number=block, balance=balance)
