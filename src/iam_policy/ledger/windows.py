# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from datetime import datetime, timedelta

from iam_policy.base import ensure_utc
from iam_policy.types import WINDOW_SECONDS, SpendWindow


def window_duration(window: SpendWindow) -> timedelta | None:
    """Return how long ``window`` spans, or None for ``lifetime``."""
    if window == "lifetime":
        return None
    return timedelta(seconds=WINDOW_SECONDS[window])


def window_start(window: SpendWindow, now: datetime) -> datetime | None:
    """
    Return the earliest timestamp that still counts toward ``window`` at
    ``now``. ``lifetime`` has no lower bound and returns None.
    """
    duration = window_duration(window)
    if duration is None:
        return None
    return ensure_utc(now) - duration


def in_closed_window(timestamp: datetime, start: datetime | None, end: datetime) -> bool:
    """``start <= timestamp <= end``; a None start is unbounded."""
    if timestamp > end:
        return False
    return start is None or timestamp >= start
