# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
"""Tests for the memory and NDJSON journal repositories."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from iam_policy.config import ConversionConfig, EngineConfig
from iam_policy.engine import ActionProposal, PolicyEngine
from iam_policy.entities.models import AgentCapability, AgentDraft, KeyDraft
from iam_policy.evaluator.action import ProposedAction
from iam_policy.ledger.records import SpendRecord
from iam_policy.policy.models import PolicyDraft, SpendLimit
from iam_policy.storage.bundle import Storage
from iam_policy.storage.file import FileRepository
from iam_policy.storage.memory import MemoryRepository

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def spend(record_id: str, amount: str = "10") -> SpendRecord:
    return SpendRecord(
        id=record_id,
        policy_id="pol-1",
        amount=Decimal(amount),
        currency="USDC",
        usd_value=Decimal(amount),
        execution_id=f"exec-{record_id}",
        timestamp=T0,
    )


# ---------------------------------------------------------------------------
# TestMemoryRepository
# ---------------------------------------------------------------------------


class TestMemoryRepository:
    def test_crud(self) -> None:
        repository: MemoryRepository[SpendRecord] = MemoryRepository()

        async def run() -> None:
            await repository.create(spend("a"))
            await repository.create(spend("b"))
            assert [r.id for r in await repository.list()] == ["a", "b"]
            await repository.update(spend("a", "20"))
            assert (await repository.get("a")).amount == Decimal("20")
            assert await repository.delete("a") is True
            assert await repository.delete("a") is False
            assert await repository.get("a") is None

        asyncio.run(run())

    def test_duplicate_create_and_missing_update_raise(self) -> None:
        repository: MemoryRepository[SpendRecord] = MemoryRepository()
        asyncio.run(repository.create(spend("a")))
        with pytest.raises(ValueError):
            asyncio.run(repository.create(spend("a")))
        with pytest.raises(KeyError):
            asyncio.run(repository.update(spend("z")))


# ---------------------------------------------------------------------------
# TestFileRepository
# ---------------------------------------------------------------------------


class TestFileRepository:
    def test_writes_survive_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "spend.ndjson"

        async def run() -> list[SpendRecord]:
            first = FileRepository(path, SpendRecord)
            await first.open()
            await first.create(spend("a"))
            await first.create(spend("b"))
            await first.update(spend("a", "25"))
            await first.delete("b")
            await first.close()

            second = FileRepository(path, SpendRecord)
            await second.open()
            try:
                return await second.list()
            finally:
                await second.close()

        (record,) = asyncio.run(run())
        assert record.id == "a"
        assert record.amount == Decimal("25")

    def test_journal_is_append_only(self, tmp_path: Path) -> None:
        path = tmp_path / "spend.ndjson"

        async def run() -> None:
            repository = FileRepository(path, SpendRecord)
            await repository.open()
            await repository.create(spend("a"))
            await repository.delete("a")
            await repository.close()

        asyncio.run(run())
        operations = [json.loads(line)["op"] for line in path.read_text().splitlines()]
        assert operations == ["put", "delete"]

    def test_malformed_lines_are_skipped(self, tmp_path: Path) -> None:
        path = tmp_path / "spend.ndjson"
        good = json.dumps({"op": "put", "id": "a", "data": spend("a").model_dump(mode="json")})
        path.write_text(good + "\n{not json\n" + json.dumps({"op": "put", "id": "b"}) + "\n")

        async def run() -> list[SpendRecord]:
            repository = FileRepository(path, SpendRecord)
            await repository.open()
            try:
                return await repository.list()
            finally:
                await repository.close()

        assert [r.id for r in asyncio.run(run())] == ["a"]

    def test_write_before_open_raises(self, tmp_path: Path) -> None:
        repository = FileRepository(tmp_path / "spend.ndjson", SpendRecord)
        with pytest.raises(RuntimeError):
            asyncio.run(repository.create(spend("a")))


# ---------------------------------------------------------------------------
# TestDurableEngine
# ---------------------------------------------------------------------------


class TestDurableEngine:
    def test_engine_state_survives_restart(self, tmp_path: Path) -> None:
        config = EngineConfig(conversion=ConversionConfig(usd_rates={"USD": 1, "USDC": 1}))

        def clock() -> datetime:
            return T0

        async def first_run() -> tuple[str, str]:
            storage = await Storage.open_directory(tmp_path)
            engine = PolicyEngine(storage, config=config, clock=clock)
            policy = await engine.create_policy(
                PolicyDraft(
                    name="durable",
                    spend=SpendLimit(max=Decimal("100"), currency="USDC", window="24h"),
                )
            )
            key = await engine.create_key(
                KeyDraft(type="root", address="0xAA", public_key="0x04ab", policy_id=policy.id)
            )
            agent = await engine.create_agent(
                AgentDraft(
                    name="a",
                    policy_id=policy.id,
                    key_id=key.id,
                    capabilities=[AgentCapability(type="transfer")],
                )
            )
            await engine.propose(
                ActionProposal(
                    agent_id=agent.id,
                    action_type="transfer",
                    action=ProposedAction(
                        target="0xCAFE", selector="transfer", amount=Decimal("70"), currency="USDC"
                    ),
                )
            )
            await engine.close()
            return policy.id, agent.id

        async def second_run(agent_id: str) -> tuple[str, bool, int]:
            storage = await Storage.open_directory(tmp_path)
            engine = PolicyEngine(storage, config=config, clock=clock)
            try:
                result = await engine.propose(
                    ActionProposal(
                        agent_id=agent_id,
                        action_type="transfer",
                        action=ProposedAction(
                            target="0xCAFE",
                            selector="transfer",
                            amount=Decimal("40"),
                            currency="USDC",
                        ),
                    )
                )
                verification = await engine.verify_executions()
                return result.decision.result, verification.valid, verification.record_count
            finally:
                await engine.close()

        _, agent_id = asyncio.run(first_run())
        assert asyncio.run(second_run(agent_id)) == ("denied", True, 2)
        assert (tmp_path / "executions.ndjson").exists()
