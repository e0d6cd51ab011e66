# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Volatile in-memory repository.

Entities are held in a plain dict in insertion order. Data is lost when the
process exits.
"""

from __future__ import annotations

from iam_policy.storage.interface import KeyFunc, ModelT, Repository, default_key


class MemoryRepository(Repository[ModelT]):
    """In-memory, non-persistent Repository implementation."""

    def __init__(self, key: KeyFunc = default_key) -> None:
        self._key = key
        self._entities: dict[str, ModelT] = {}

    async def get(self, entity_id: str) -> ModelT | None:
        return self._entities.get(entity_id)

    async def list(self) -> list[ModelT]:
        return list(self._entities.values())

    async def create(self, entity: ModelT) -> ModelT:
        entity_id = self._key(entity)
        if entity_id in self._entities:
            raise ValueError(f"Entity {entity_id!r} already exists.")
        self._entities[entity_id] = entity.model_copy(deep=True)
        return entity

    async def update(self, entity: ModelT) -> ModelT:
        entity_id = self._key(entity)
        if entity_id not in self._entities:
            raise KeyError(entity_id)
        self._entities[entity_id] = entity.model_copy(deep=True)
        return entity

    async def delete(self, entity_id: str) -> bool:
        return self._entities.pop(entity_id, None) is not None
