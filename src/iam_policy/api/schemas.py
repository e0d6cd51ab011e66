# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from typing import Any

from iam_policy.base import WireModel


class RevokeRequest(WireModel):
    reason: str = "manual revocation"


class ErrorResponse(WireModel):
    """Body of every non-2xx response."""

    error: str | list[dict[str, Any]]
    code: str | None = None
