# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

from credits_engine.storage.interface import CreditsStorage
from credits_engine.storage.memory import MemoryStorage

__all__ = ["CreditsStorage", "MemoryStorage"]
