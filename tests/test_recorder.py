# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
"""Tests for the hash-chained ExecutionRecorder."""

from __future__ import annotations

import asyncio
import csv
import io
import json
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from iam_policy.cid import CID_PREFIX, compute_cid
from iam_policy.config import RecorderConfig
from iam_policy.errors import ExecutionNotFoundError
from iam_policy.evaluator.decision import CheckBreakdown
from iam_policy.recorder.chain import GENESIS_HASH
from iam_policy.recorder.export import CSV_COLUMNS
from iam_policy.recorder.models import ExecutionFilter, ExecutionLog, ExecutionLogDraft
from iam_policy.recorder.recorder import ExecutionRecorder
from iam_policy.storage.memory import MemoryRepository

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def draft(minutes: int = 0, **fields: Any) -> ExecutionLogDraft:
    values: dict[str, Any] = {
        "agent_id": "agent-1",
        "policy_id": "pol-1",
        "policy_version": 1,
        "key_id": "key-1",
        "action_type": "transfer",
        "input_cid": compute_cid({"n": minutes}),
        "policy_cid": compute_cid({"policy": 1}),
        "result": "success",
        "timestamp": T0 + timedelta(minutes=minutes),
        "policy_evaluation": CheckBreakdown(
            spend_check=True, contract_check=True, condition_check=True, time_check=True
        ),
    }
    values.update(fields)
    return ExecutionLogDraft(**values)


@pytest.fixture
def repository() -> MemoryRepository[ExecutionLog]:
    return MemoryRepository()


@pytest.fixture
def recorder(repository: MemoryRepository[ExecutionLog]) -> ExecutionRecorder:
    return ExecutionRecorder(repository)


def append_all(recorder: ExecutionRecorder, drafts: list[ExecutionLogDraft]) -> list[ExecutionLog]:
    async def run() -> list[ExecutionLog]:
        return [await recorder.append(d) for d in drafts]

    return asyncio.run(run())


# ---------------------------------------------------------------------------
# TestContentIdentifiers
# ---------------------------------------------------------------------------


class TestContentIdentifiers:
    def test_cid_shape(self) -> None:
        cid = compute_cid({"a": 1})
        assert cid.startswith(CID_PREFIX)
        assert len(cid) == len(CID_PREFIX) + 56

    def test_cid_ignores_key_order(self) -> None:
        assert compute_cid({"a": 1, "b": 2}) == compute_cid({"b": 2, "a": 1})

    def test_cid_changes_with_content(self) -> None:
        assert compute_cid({"a": 1}) != compute_cid({"a": 2})


# ---------------------------------------------------------------------------
# TestAppend
# ---------------------------------------------------------------------------


class TestAppend:
    def test_first_log_links_to_genesis(self, recorder: ExecutionRecorder) -> None:
        (log,) = append_all(recorder, [draft()])
        assert log.sequence == 0
        assert log.previous_hash == GENESIS_HASH
        assert len(log.record_hash) == 64

    def test_logs_are_chained_in_append_order(self, recorder: ExecutionRecorder) -> None:
        first, second, third = append_all(recorder, [draft(0), draft(1), draft(2)])
        assert second.previous_hash == first.record_hash
        assert third.previous_hash == second.record_hash
        assert [first.sequence, second.sequence, third.sequence] == [0, 1, 2]

    def test_log_cid_is_derived_when_missing(self, recorder: ExecutionRecorder) -> None:
        (log,) = append_all(recorder, [draft()])
        assert log.log_cid.startswith(CID_PREFIX)

    def test_supplied_log_cid_and_id_are_kept(self, recorder: ExecutionRecorder) -> None:
        log = asyncio.run(recorder.append(draft(log_cid="bafcustom"), execution_id="exec-1"))
        assert log.id == "exec-1"
        assert log.log_cid == "bafcustom"
        assert asyncio.run(recorder.get("exec-1")) == log

    def test_get_unknown_raises(self, recorder: ExecutionRecorder) -> None:
        with pytest.raises(ExecutionNotFoundError) as exc_info:
            asyncio.run(recorder.get("missing"))
        assert exc_info.value.code == "EXECUTION_LOG_NOT_FOUND"

    def test_new_recorder_resumes_chain_from_storage(
        self, repository: MemoryRepository[ExecutionLog], recorder: ExecutionRecorder
    ) -> None:
        (first,) = append_all(recorder, [draft(0)])
        resumed = ExecutionRecorder(repository)
        (second,) = append_all(resumed, [draft(1)])
        assert second.previous_hash == first.record_hash
        assert asyncio.run(resumed.verify()).valid


# ---------------------------------------------------------------------------
# TestVerify
# ---------------------------------------------------------------------------


class TestVerify:
    def test_intact_chain_verifies(self, recorder: ExecutionRecorder) -> None:
        append_all(recorder, [draft(i) for i in range(4)])
        result = asyncio.run(recorder.verify())
        assert result.valid is True
        assert result.record_count == 4

    def test_empty_chain_verifies(self, recorder: ExecutionRecorder) -> None:
        assert asyncio.run(recorder.verify()).valid

    def test_altered_log_is_detected(
        self, repository: MemoryRepository[ExecutionLog], recorder: ExecutionRecorder
    ) -> None:
        logs = append_all(recorder, [draft(i) for i in range(3)])
        tampered = logs[1].model_copy(update={"result": "denied"})
        asyncio.run(repository.update(tampered))

        result = asyncio.run(recorder.verify())
        assert result.valid is False
        assert result.broken_at == 1
        assert "altered" in result.reason

    def test_removed_log_breaks_next_link(
        self, repository: MemoryRepository[ExecutionLog], recorder: ExecutionRecorder
    ) -> None:
        logs = append_all(recorder, [draft(i) for i in range(3)])
        asyncio.run(repository.delete(logs[1].id))

        result = asyncio.run(recorder.verify())
        assert result.valid is False
        assert result.broken_at == 1
        assert "previous_hash" in result.reason


# ---------------------------------------------------------------------------
# TestQuery
# ---------------------------------------------------------------------------


class TestQuery:
    def test_newest_first(self, recorder: ExecutionRecorder) -> None:
        append_all(recorder, [draft(0), draft(5), draft(2)])
        logs = asyncio.run(recorder.query())
        assert [log.timestamp.minute for log in logs] == [5, 2, 0]

    def test_filters_combine(self, recorder: ExecutionRecorder) -> None:
        append_all(
            recorder,
            [
                draft(0),
                draft(1, result="denied", denial_reason="spend limit exceeded"),
                draft(2, agent_id="agent-2", result="denied"),
                draft(3, action_type="swap"),
            ],
        )
        denied = asyncio.run(recorder.query(ExecutionFilter(agent_id="agent-1", result="denied")))
        swaps = asyncio.run(recorder.query(ExecutionFilter(action_type="swap")))
        assert [log.denial_reason for log in denied] == ["spend limit exceeded"]
        assert len(swaps) == 1

    def test_time_bounds_are_inclusive(self, recorder: ExecutionRecorder) -> None:
        append_all(recorder, [draft(i) for i in range(5)])
        logs = asyncio.run(
            recorder.query(
                ExecutionFilter(since=T0 + timedelta(minutes=1), until=T0 + timedelta(minutes=3))
            )
        )
        assert len(logs) == 3

    def test_search_matches_cids_and_tx_hash_case_insensitively(
        self, recorder: ExecutionRecorder
    ) -> None:
        logs = append_all(recorder, [draft(0, tx_hash="0xABCDEF"), draft(1), draft(2)])
        by_tx = asyncio.run(recorder.query(ExecutionFilter(search="abcdef")))
        by_input = asyncio.run(recorder.query(ExecutionFilter(search=logs[1].input_cid.upper())))
        by_log = asyncio.run(recorder.query(ExecutionFilter(search=logs[2].log_cid[:20])))
        assert [log.id for log in by_tx] == [logs[0].id]
        assert [log.id for log in by_input] == [logs[1].id]
        assert [log.id for log in by_log] == [logs[2].id]

    def test_limit_and_offset(self, recorder: ExecutionRecorder) -> None:
        append_all(recorder, [draft(i) for i in range(6)])
        page = asyncio.run(recorder.query(ExecutionFilter(limit=2, offset=1)))
        assert [log.timestamp.minute for log in page] == [4, 3]

    def test_limit_is_capped_by_config(self, repository: MemoryRepository[ExecutionLog]) -> None:
        recorder = ExecutionRecorder(repository, RecorderConfig(max_query_limit=3))
        append_all(recorder, [draft(i) for i in range(5)])
        assert len(asyncio.run(recorder.query(ExecutionFilter(limit=100)))) == 3


# ---------------------------------------------------------------------------
# TestExport
# ---------------------------------------------------------------------------


class TestExport:
    def test_json_export_uses_wire_names(self, recorder: ExecutionRecorder) -> None:
        append_all(recorder, [draft(0), draft(1)])
        exported = json.loads(asyncio.run(recorder.export("json")))
        assert len(exported) == 2
        assert "inputCID" in exported[0]
        assert exported[0]["policyEvaluation"]["spendCheck"] is True
        assert exported[0]["sequence"] == 0

    def test_csv_export_has_header_and_rows(self, recorder: ExecutionRecorder) -> None:
        append_all(recorder, [draft(0), draft(1, result="denied")])
        rows = list(csv.reader(io.StringIO(asyncio.run(recorder.export("csv")))))
        assert rows[0] == CSV_COLUMNS
        assert len(rows) == 3
        assert rows[2][CSV_COLUMNS.index("result")] == "denied"
        assert rows[1][CSV_COLUMNS.index("txHash")] == ""

    def test_unsupported_format_raises(self, recorder: ExecutionRecorder) -> None:
        with pytest.raises(ValueError):
            asyncio.run(recorder.export("xml"))
