# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, Field

from iam_policy.types import Currency


def _default_usd_rates() -> dict[str, Decimal]:
    return {
        "USD": Decimal("1"),
        "USDC": Decimal("1"),
        "USDT": Decimal("1"),
        "DAI": Decimal("1"),
    }


class LockConfig(BaseModel, frozen=True):
    """
    Configuration for per-policy serialisation.

    Attributes:
        timeout_seconds: How long a single acquisition attempt waits for the
            policy lock before giving up.
        max_retries: Additional attempts after the first one fails. Once
            exhausted a ConcurrencyConflictError is raised.
        backoff_seconds: Base delay between attempts. Doubles after each
            failed attempt.
    """

    timeout_seconds: Annotated[float, Field(gt=0)] = 5.0
    max_retries: Annotated[int, Field(ge=0)] = 3
    backoff_seconds: Annotated[float, Field(gt=0)] = 0.05


class ConversionConfig(BaseModel, frozen=True):
    """
    Configuration for the fixed-rate currency converter.

    Attributes:
        usd_rates: USD value of one unit of each currency. Stablecoins default
            to 1. ETH has no default; supply a rate (or inject an
            oracle-backed converter) before evaluating ETH-denominated spend
            against a non-ETH limit.
    """

    usd_rates: dict[Currency, Annotated[Decimal, Field(gt=0)]] = Field(
        default_factory=_default_usd_rates
    )


class RecorderConfig(BaseModel, frozen=True):
    """
    Configuration for the ExecutionRecorder.

    Attributes:
        max_query_limit: Upper bound applied to the ``limit`` of any query.
    """

    max_query_limit: Annotated[int, Field(gt=0)] = 500


class EngineConfig(BaseModel, frozen=True):
    """
    Top-level configuration for the PolicyEngine.

    All fields are optional; every one has a default.

    Example::

        config = EngineConfig(
            lock=LockConfig(timeout_seconds=1.0, max_retries=5),
            conversion=ConversionConfig(usd_rates={"USD": 1, "ETH": 3200}),
        )
        engine = PolicyEngine(storage=Storage.memory(), config=config)
    """

    lock: LockConfig = Field(default_factory=LockConfig)
    conversion: ConversionConfig = Field(default_factory=ConversionConfig)
    recorder: RecorderConfig = Field(default_factory=RecorderConfig)
    observation_timeout_seconds: Annotated[float, Field(gt=0)] = 2.0
    stats_window_hours: Annotated[int, Field(gt=0)] = 24
