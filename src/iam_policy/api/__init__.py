# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from iam_policy.api.app import create_app

__all__ = ["create_app"]
