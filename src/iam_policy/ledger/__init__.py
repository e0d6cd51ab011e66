# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from iam_policy.ledger.conversion import CurrencyConverter, FixedRateConverter
from iam_policy.ledger.ledger import SpendLedger
from iam_policy.ledger.records import SpendRecord

__all__ = ["CurrencyConverter", "FixedRateConverter", "SpendLedger", "SpendRecord"]
