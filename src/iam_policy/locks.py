# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import AsyncExitStack, asynccontextmanager

from iam_policy.config import LockConfig
from iam_policy.errors import ConcurrencyConflictError

logger = logging.getLogger("iam_policy.locks")


class PolicyLockRegistry:
    """
    One exclusive lock per policy id.

    Evaluations on the same policy are serialised in arrival order;
    evaluations on different policies run in parallel.

    Example::

        locks = PolicyLockRegistry(LockConfig(timeout_seconds=1.0))
        async with locks.hold(policy_id):
            ...  # evaluate, record, append spend
    """

    def __init__(self, config: LockConfig | None = None) -> None:
        self._config = config or LockConfig()
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, policy_id: str) -> asyncio.Lock:
        lock = self._locks.get(policy_id)
        if lock is None:
            lock = self._locks[policy_id] = asyncio.Lock()
        return lock

    def is_locked(self, policy_id: str) -> bool:
        lock = self._locks.get(policy_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, policy_id: str) -> AsyncIterator[None]:
        """
        Hold the policy's lock for the duration of the block.

        Each attempt waits up to ``timeout_seconds``; after a failed attempt
        the registry sleeps ``backoff_seconds * 2**attempt`` and tries again,
        up to ``max_retries`` more times.

        Raises:
            ConcurrencyConflictError: If every attempt timed out.
        """
        lock = self.lock_for(policy_id)
        attempts = self._config.max_retries + 1
        for attempt in range(attempts):
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self._config.timeout_seconds)
            except asyncio.TimeoutError:
                if attempt + 1 == attempts:
                    raise ConcurrencyConflictError(policy_id, attempts) from None
                delay = self._config.backoff_seconds * (2**attempt)
                logger.debug(
                    "Policy lock busy, retrying",
                    extra={"policy_id": policy_id, "attempt": attempt + 1, "delay": delay},
                )
                await asyncio.sleep(delay)
            else:
                break
        try:
            yield
        finally:
            lock.release()

    @asynccontextmanager
    async def hold_many(self, policy_ids: Iterable[str]) -> AsyncIterator[None]:
        """
        Hold several policies' locks at once.

        Locks are taken in sorted id order so two callers holding
        overlapping sets cannot deadlock.
        """
        async with AsyncExitStack() as stack:
            for policy_id in sorted(set(policy_ids)):
                await stack.enter_async_context(self.hold(policy_id))
            yield

    def discard(self, policy_id: str) -> None:
        """Forget the lock of a deleted policy. A held lock is kept."""
        lock = self._locks.get(policy_id)
        if lock is not None and not lock.locked():
            del self._locks[policy_id]
