# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from typing import Any

from credits_engine.config import AuditConfig
from credits_engine.storage.interface import CreditsStorage
from credits_engine.types import AuditLog, AuditLogInput, AuditStatus


class AuditRecorder:
    """
    Writes one immutable audit entry per operation outcome.

    Audit logging is RECORDING ONLY. Ids and timestamps are assigned by the
    storage backend. When :attr:`~AuditConfig.enabled` is False nothing is
    written and :meth:`log` returns None.
    """

    def __init__(self, storage: CreditsStorage, config: AuditConfig | None = None) -> None:
        self._storage = storage
        self._config = config or AuditConfig()

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    async def log(
        self,
        user_id: str,
        action: str,
        status: AuditStatus,
        metadata: dict[str, Any] | None = None,
        error_message: str | None = None,
        txn: Any = None,
    ) -> AuditLog | None:
        """
        Persist an audit entry.

        Args:
            user_id: The user the operation concerned.
            action: The operation kind (``'charge'``, ``'upgradeTier'``, ...).
            status: ``'success'`` or ``'failed'``.
            metadata: Operation details stored with the entry.
            error_message: The failure message, for failed operations.
            txn: Opaque transaction handle forwarded to storage.

        Returns:
            The stored :class:`~credits_engine.types.AuditLog`, or None when
            auditing is disabled.
        """
        if not self._config.enabled:
            return None
        entry = AuditLogInput(
            user_id=user_id,
            action=action,
            status=status,
            metadata=metadata or {},
            error_message=error_message,
        )
        return await self._storage.create_audit_log(entry, txn)
