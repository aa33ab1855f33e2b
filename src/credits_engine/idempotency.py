# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from datetime import timedelta
from typing import Any

from credits_engine.config import IdempotencyConfig
from credits_engine.storage.interface import CreditsStorage
from credits_engine.types import IdempotencyRecord, IdempotencyRecordInput, utc_now


class IdempotencyGuard:
    """
    Caches and replays results of operations keyed by an idempotency key.

    The key space is global: keys are not scoped by user or action, so
    callers must compose keys that are unique across both.

    Only fully successful operations are saved. A failed operation leaves no
    record, so a retry with the same key runs the operation again.
    """

    def __init__(self, storage: CreditsStorage, config: IdempotencyConfig | None = None) -> None:
        self._storage = storage
        self._config = config or IdempotencyConfig()

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def ttl(self) -> float:
        return self._config.ttl

    async def get(self, key: str, txn: Any = None) -> dict[str, Any] | None:
        """
        Return the cached result for ``key``.

        Returns None when idempotency is disabled, or the record is absent or
        has expired. Expiry is judged at read time; nothing is deleted.
        """
        record = await self.get_record(key, txn)
        return dict(record.result) if record is not None else None

    async def get_record(self, key: str, txn: Any = None) -> IdempotencyRecord | None:
        if not self._config.enabled:
            return None
        record = await self._storage.get_idempotency_record(key, txn)
        if record is None or record.is_expired():
            return None
        return record

    async def save(
        self, key: str, result: dict[str, Any], txn: Any = None
    ) -> IdempotencyRecord | None:
        """Persist ``result`` under ``key`` for ``ttl`` seconds. No-op when disabled."""
        if not self._config.enabled:
            return None
        expires_at = utc_now() + timedelta(seconds=self._config.ttl)
        return await self._storage.create_idempotency_record(
            IdempotencyRecordInput(key=key, result=result, expires_at=expires_at),
            txn,
        )
