# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

import asyncio
import logging
import uuid

from iam_policy.base import ensure_utc
from iam_policy.cid import compute_cid
from iam_policy.config import RecorderConfig
from iam_policy.errors import ExecutionNotFoundError
from iam_policy.recorder.chain import GENESIS_HASH, compute_record_hash, pending_content, verify_chain
from iam_policy.recorder.export import export_logs
from iam_policy.recorder.models import (
    ChainVerificationResult,
    ExecutionFilter,
    ExecutionLog,
    ExecutionLogDraft,
)
from iam_policy.storage.interface import Repository

logger = logging.getLogger("iam_policy.recorder")


class ExecutionRecorder:
    """
    Append-only, hash-chained audit log of every evaluation.

    Logs are never updated or deleted. Appends are serialised internally so
    that concurrent evaluations on different policies still produce one
    linear chain.

    Example::

        recorder = ExecutionRecorder(MemoryRepository())
        log = await recorder.append(draft)
        result = await recorder.verify()
        assert result.valid
    """

    def __init__(
        self,
        repository: Repository[ExecutionLog],
        config: RecorderConfig | None = None,
    ) -> None:
        self._repository = repository
        self._config = config or RecorderConfig()
        self._append_lock = asyncio.Lock()
        self._tip: tuple[int, str] | None = None  # (last sequence, last record hash)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def append(
        self,
        draft: ExecutionLogDraft,
        execution_id: str | None = None,
    ) -> ExecutionLog:
        """
        Link ``draft`` into the chain and persist it.

        Args:
            draft: The log content.
            execution_id: Id to store the log under. A fresh UUID is
                assigned when omitted; callers pass one when other records
                must reference the log before it is written.
        """
        async with self._append_lock:
            last_sequence, previous_hash = await self._load_tip()
            content = draft.model_dump()
            if draft.log_cid is None:
                content["log_cid"] = compute_cid(
                    draft.model_dump(mode="json", exclude={"log_cid"})
                )
            provisional = ExecutionLog.model_validate(
                {
                    **content,
                    "id": execution_id or str(uuid.uuid4()),
                    "sequence": last_sequence + 1,
                    "previous_hash": previous_hash,
                    "record_hash": "",
                }
            )
            record_hash = compute_record_hash(pending_content(provisional), previous_hash)
            log = provisional.model_copy(update={"record_hash": record_hash})
            await self._repository.create(log)
            self._tip = (log.sequence, record_hash)
        logger.debug(
            "Execution recorded",
            extra={"execution_id": log.id, "policy_id": log.policy_id, "result": log.result},
        )
        return log

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, execution_id: str) -> ExecutionLog:
        """
        Raises:
            ExecutionNotFoundError: If no log has ``execution_id``.
        """
        log = await self._repository.get(execution_id)
        if log is None:
            raise ExecutionNotFoundError(execution_id)
        return log

    async def query(self, execution_filter: ExecutionFilter | None = None) -> list[ExecutionLog]:
        """
        Return logs matching every supplied filter field, newest first.

        ``limit`` is capped at ``RecorderConfig.max_query_limit``.
        """
        flt = execution_filter or ExecutionFilter()
        since = ensure_utc(flt.since) if flt.since is not None else None
        until = ensure_utc(flt.until) if flt.until is not None else None
        needle = flt.search.lower() if flt.search else None

        matches: list[ExecutionLog] = []
        for log in await self._repository.list():
            if flt.agent_id is not None and log.agent_id != flt.agent_id:
                continue
            if flt.policy_id is not None and log.policy_id != flt.policy_id:
                continue
            if flt.result is not None and log.result != flt.result:
                continue
            if flt.action_type is not None and log.action_type != flt.action_type:
                continue
            if since is not None and log.timestamp < since:
                continue
            if until is not None and log.timestamp > until:
                continue
            if needle is not None and not _matches_search(log, needle):
                continue
            matches.append(log)

        matches.sort(key=lambda log: (log.timestamp, log.sequence), reverse=True)
        limit = min(flt.limit, self._config.max_query_limit)
        return matches[flt.offset : flt.offset + limit]

    async def count(self) -> int:
        return len(await self._repository.list())

    async def chain(self) -> list[ExecutionLog]:
        """Every log in append order."""
        return sorted(await self._repository.list(), key=lambda log: log.sequence)

    async def verify(self) -> ChainVerificationResult:
        """Re-derive the hash chain and report the first broken link."""
        result = verify_chain(await self.chain())
        if not result.valid:
            logger.error("Execution log chain is broken: %s", result.reason)
        return result

    async def export(self, export_format: str = "json") -> str:
        """Export every log in append order as ``json`` or ``csv``."""
        return export_logs(await self.chain(), export_format)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _load_tip(self) -> tuple[int, str]:
        if self._tip is None:
            logs = await self.chain()
            self._tip = (logs[-1].sequence, logs[-1].record_hash) if logs else (-1, GENESIS_HASH)
        return self._tip


def _matches_search(log: ExecutionLog, needle: str) -> bool:
    haystacks = (log.input_cid, log.log_cid, log.tx_hash or "")
    return any(needle in value.lower() for value in haystacks)
