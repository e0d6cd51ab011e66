# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Currency conversion for spend aggregation.

The evaluator and ledger only see the :class:`CurrencyConverter` protocol,
so a deployment can swap the fixed-rate table for an oracle-backed converter
without touching enforcement code.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol, runtime_checkable

from iam_policy.config import ConversionConfig
from iam_policy.errors import CurrencyConversionError


@runtime_checkable
class CurrencyConverter(Protocol):
    """Anything that can express an amount of one currency in another."""

    def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
        """
        Raises:
            CurrencyConversionError: If no rate is known for the pair.
        """
        ...


class FixedRateConverter:
    """
    Converts through a static table of USD rates.

    Same-currency conversion is always the identity, even for currencies
    without a configured rate.

    Example::

        converter = FixedRateConverter(ConversionConfig(usd_rates={"USD": 1, "ETH": 2000}))
        converter.convert(Decimal("0.5"), "ETH", "USD")   # Decimal("1000")
    """

    def __init__(self, config: ConversionConfig | None = None) -> None:
        self._rates: dict[str, Decimal] = dict((config or ConversionConfig()).usd_rates)

    def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
        if from_currency == to_currency:
            return amount
        from_rate = self._rates.get(from_currency)
        to_rate = self._rates.get(to_currency)
        if from_rate is None or to_rate is None:
            raise CurrencyConversionError(from_currency, to_currency)
        return amount * from_rate / to_rate

