# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from iam_policy.storage.interface import Repository
from iam_policy.storage.memory import MemoryRepository
from iam_policy.storage.file import FileRepository

__all__ = ["Repository", "MemoryRepository", "FileRepository"]
