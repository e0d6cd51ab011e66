# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Content identifiers for execution payloads.

A CID is the SHA-256 digest of a payload's canonical JSON form, rendered as
``"baf"`` followed by the first 56 hex characters. Identical payloads always
produce identical CIDs regardless of key order.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

from pydantic import BaseModel

CID_PREFIX = "baf"


def canonical_json(payload: Any) -> str:
    """
    Serialise ``payload`` deterministically.

    Pydantic models are dumped in JSON mode first, so Decimal and datetime
    values become strings.
    """
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json")
    return json.dumps(
        payload,
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        default=str,
    )


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def compute_cid(payload: Any) -> str:
    """Return the content identifier of ``payload``."""
    return CID_PREFIX + sha256_hex(canonical_json(payload))[:56]
