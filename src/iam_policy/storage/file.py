# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Durable, journal-backed repository.

Every write is appended to an NDJSON journal, one operation per line::

    {"op": "put", "id": "...", "data": {...}}
    {"op": "delete", "id": "..."}

The journal is never truncated or rewritten. ``open()`` replays it to
rebuild the in-process index; ``close()`` releases the append handle and
must be called on shutdown.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import aiofiles
from pydantic import ValidationError

from iam_policy.storage.interface import KeyFunc, ModelT, Repository, default_key

logger = logging.getLogger("iam_policy.storage")


class FileRepository(Repository[ModelT]):
    """
    Persistent NDJSON journal repository.

    Parameters
    ----------
    file_path:
        Path to the journal. Created on first write if it does not exist.
    model_type:
        The pydantic model stored in this collection.
    key:
        Function returning an entity's id. Defaults to ``entity.id``.
    """

    def __init__(
        self,
        file_path: str | Path,
        model_type: type[ModelT],
        key: KeyFunc = default_key,
    ) -> None:
        self._file_path = Path(file_path)
        self._model_type = model_type
        self._key = key
        self._entities: dict[str, ModelT] = {}
        self._handle: Any = None

    @property
    def file_path(self) -> Path:
        return self._file_path

    async def open(self) -> None:
        """Replay the journal and open it for appending."""
        self._entities = await self._replay()
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = await aiofiles.open(self._file_path, mode="a", encoding="utf-8")

    async def close(self) -> None:
        if self._handle is not None:
            await self._handle.close()
            self._handle = None

    # ─── Repository API ───────────────────────────────────────────────────────

    async def get(self, entity_id: str) -> ModelT | None:
        return self._entities.get(entity_id)

    async def list(self) -> list[ModelT]:
        return list(self._entities.values())

    async def create(self, entity: ModelT) -> ModelT:
        entity_id = self._key(entity)
        if entity_id in self._entities:
            raise ValueError(f"Entity {entity_id!r} already exists.")
        await self._append({"op": "put", "id": entity_id, "data": entity.model_dump(mode="json")})
        self._entities[entity_id] = entity
        return entity

    async def update(self, entity: ModelT) -> ModelT:
        entity_id = self._key(entity)
        if entity_id not in self._entities:
            raise KeyError(entity_id)
        await self._append({"op": "put", "id": entity_id, "data": entity.model_dump(mode="json")})
        self._entities[entity_id] = entity
        return entity

    async def delete(self, entity_id: str) -> bool:
        if entity_id not in self._entities:
            return False
        await self._append({"op": "delete", "id": entity_id})
        del self._entities[entity_id]
        return True

    # ─── Private helpers ──────────────────────────────────────────────────────

    async def _append(self, operation: dict[str, Any]) -> None:
        if self._handle is None:
            raise RuntimeError(
                f"Repository at {self._file_path} is not open. Call open() first."
            )
        await self._handle.write(json.dumps(operation, ensure_ascii=False) + "\n")
        await self._handle.flush()

    async def _replay(self) -> dict[str, ModelT]:
        entities: dict[str, ModelT] = {}
        if not self._file_path.exists():
            return entities

        async with aiofiles.open(self._file_path, mode="r", encoding="utf-8") as file_handle:
            line_number = 0
            async for line in file_handle:
                line_number += 1
                stripped = line.strip()
                if not stripped:
                    continue
                try:
                    operation = json.loads(stripped)
                    if operation["op"] == "delete":
                        entities.pop(operation["id"], None)
                    else:
                        entities[operation["id"]] = self._model_type.model_validate(
                            operation["data"]
                        )
                except (json.JSONDecodeError, KeyError, ValidationError) as exc:
                    # A torn final write leaves one bad line; keep the rest.
                    logger.warning(
                        "Skipping malformed journal line %d in %s: %s",
                        line_number,
                        self._file_path,
                        exc,
                    )
        return entities
