# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal

from iam_policy.base import ensure_utc
from iam_policy.ledger.records import SpendRecord
from iam_policy.storage.interface import Repository

logger = logging.getLogger("iam_policy.ledger")


class SpendLedger:
    """
    Append-only record of every debit attributed to a policy.

    The ledger never deletes history. :meth:`retract` exists only so the
    engine can undo a record written inside an evaluation that then failed
    before it completed.

    Example::

        ledger = SpendLedger(MemoryRepository())
        await ledger.record("pol-1", Decimal("50"), "USDC", Decimal("50"), "exec-1", now)
        spent = await ledger.sum_in_window("pol-1", "USDC", now - timedelta(hours=24), now)
    """

    def __init__(self, repository: Repository[SpendRecord]) -> None:
        self._repository = repository

    async def record(
        self,
        policy_id: str,
        amount: Decimal,
        currency: str,
        usd_value: Decimal | None,
        execution_id: str,
        timestamp: datetime,
    ) -> SpendRecord:
        """Append one spend record and return it."""
        record = SpendRecord(
            id=str(uuid.uuid4()),
            policy_id=policy_id,
            amount=amount,
            currency=currency,
            usd_value=usd_value,
            execution_id=execution_id,
            timestamp=ensure_utc(timestamp),
        )
        await self._repository.create(record)
        logger.debug(
            "Spend recorded",
            extra={"policy_id": policy_id, "amount": str(amount), "currency": currency},
        )
        return record

    async def history(self, policy_id: str, until: datetime | None = None) -> list[SpendRecord]:
        """
        Return the policy's records in timestamp order.

        Args:
            policy_id: Policy whose spend to return.
            until: When given, only records with ``timestamp <= until``.
        """
        bound = ensure_utc(until) if until is not None else None
        records = [
            record
            for record in await self._repository.list()
            if record.policy_id == policy_id and (bound is None or record.timestamp <= bound)
        ]
        return sorted(records, key=lambda record: record.timestamp)

    async def sum_in_window(
        self,
        policy_id: str,
        currency: str,
        window_start: datetime | None,
        window_end: datetime,
    ) -> Decimal:
        """
        Sum amounts of ``currency`` recorded for the policy in
        ``[window_start, window_end)``. A None start means no lower bound.
        """
        end = ensure_utc(window_end)
        start = ensure_utc(window_start) if window_start is not None else None
        total = Decimal("0")
        for record in await self._repository.list():
            if record.policy_id != policy_id or record.currency != currency:
                continue
            if record.timestamp >= end:
                continue
            if start is not None and record.timestamp < start:
                continue
            total += record.amount
        return total

    async def total_usd_since(self, since: datetime, until: datetime | None = None) -> Decimal:
        """
        USD value of spend with ``since < timestamp <= until``, skipping
        records without a USD value. A None ``until`` means no upper bound.
        """
        lower = ensure_utc(since)
        upper = ensure_utc(until) if until is not None else None
        return sum(
            (
                record.usd_value
                for record in await self._repository.list()
                if record.usd_value is not None
                and lower < record.timestamp
                and (upper is None or record.timestamp <= upper)
            ),
            Decimal("0"),
        )

    async def retract(self, record: SpendRecord) -> None:
        """Remove a record written by an evaluation that did not complete."""
        await self._repository.delete(record.id)
        logger.warning(
            "Spend record rolled back",
            extra={"policy_id": record.policy_id, "spend_record_id": record.id},
        )
