# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Abstract persistence contract shared by every collection.

The engine depends only on this interface, never on a storage technology.
Implementors may back it with Redis, SQLite, Postgres, or any key-value
store. ``MemoryRepository`` is suitable for single-process use and testing;
``FileRepository`` survives restarts.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from operator import attrgetter
from typing import Callable, Generic, TypeVar

from pydantic import BaseModel

ModelT = TypeVar("ModelT", bound=BaseModel)

KeyFunc = Callable[[BaseModel], str]

default_key: KeyFunc = attrgetter("id")


class Repository(ABC, Generic[ModelT]):
    """
    get / list / create / update / delete by id for one collection.

    ``list`` returns entities in insertion order. ``create`` refuses an id
    that already exists; ``update`` refuses one that does not.
    """

    @abstractmethod
    async def get(self, entity_id: str) -> ModelT | None:
        ...

    @abstractmethod
    async def list(self) -> list[ModelT]:
        ...

    @abstractmethod
    async def create(self, entity: ModelT) -> ModelT:
        """
        Persist a new entity.

        Raises:
            ValueError: If an entity with the same id already exists.
        """
        ...

    @abstractmethod
    async def update(self, entity: ModelT) -> ModelT:
        """
        Replace an existing entity.

        Raises:
            KeyError: If no entity with this id exists.
        """
        ...

    @abstractmethod
    async def delete(self, entity_id: str) -> bool:
        """Remove an entity. Returns False when the id was unknown."""
        ...

    async def close(self) -> None:
        """Release backend resources. In-memory backends need nothing."""
        return None
