# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from decimal import Decimal

from pydantic import Field

from iam_policy.base import UTCDateTime, WireModel
from iam_policy.types import Currency


class SpendRecord(WireModel):
    """
    One debit against a policy.

    Written together with the ``success`` execution log that consumed the
    spend. ``usd_value`` is None when no USD rate was known at record time.
    """

    id: str
    policy_id: str
    amount: Decimal = Field(..., gt=0)
    currency: Currency
    usd_value: Decimal | None = None
    execution_id: str
    timestamp: UTCDateTime
