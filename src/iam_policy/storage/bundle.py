# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from iam_policy.entities.models import Agent, PolicyBoundKey
from iam_policy.ledger.records import SpendRecord
from iam_policy.policy.models import Policy, version_key
from iam_policy.recorder.models import ExecutionLog
from iam_policy.storage.file import FileRepository
from iam_policy.storage.interface import Repository
from iam_policy.storage.memory import MemoryRepository


@dataclass
class Storage:
    """
    Every collection the engine persists.

    Created once at startup and passed to the engine; there is no global
    instance. Call :meth:`close` on shutdown.

    Example::

        storage = await Storage.open_directory("/var/lib/iam-policy")
        engine = PolicyEngine(storage)
        ...
        await storage.close()
    """

    policies: Repository[Policy]
    keys: Repository[PolicyBoundKey]
    agents: Repository[Agent]
    executions: Repository[ExecutionLog]
    spend: Repository[SpendRecord]

    @classmethod
    def memory(cls) -> Storage:
        """Volatile storage for tests and single-process use."""
        return cls(
            policies=MemoryRepository(key=version_key),
            keys=MemoryRepository(),
            agents=MemoryRepository(),
            executions=MemoryRepository(),
            spend=MemoryRepository(),
        )

    @classmethod
    async def open_directory(cls, directory: str | Path) -> Storage:
        """Open (or create) one NDJSON journal per collection under ``directory``."""
        root = Path(directory)
        repositories = {
            "policies": FileRepository(root / "policies.ndjson", Policy, key=version_key),
            "keys": FileRepository(root / "keys.ndjson", PolicyBoundKey),
            "agents": FileRepository(root / "agents.ndjson", Agent),
            "executions": FileRepository(root / "executions.ndjson", ExecutionLog),
            "spend": FileRepository(root / "spend.ndjson", SpendRecord),
        }
        for repository in repositories.values():
            await repository.open()
        return cls(**repositories)

    async def close(self) -> None:
        for repository in (self.policies, self.keys, self.agents, self.executions, self.spend):
            await repository.close()
