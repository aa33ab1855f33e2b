# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Abstract base class that every storage backend must implement.

Every method takes an optional ``txn`` argument: an opaque transaction or
session handle supplied by the caller. The engine never creates, commits or
rolls it back; it passes the same handle to every call made during one
operation so a transactional backend can group them atomically.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from credits_engine.types import (
    AuditLog,
    AuditLogInput,
    HistoryOptions,
    IdempotencyRecord,
    IdempotencyRecordInput,
    Transaction,
    TransactionInput,
    User,
)


class CreditsStorage(ABC):
    """
    Persistence contract for the credits engine.

    Implementors may back this with Postgres, SQLite, Redis or any other
    store. Serialising concurrent writes to the same user and enforcing
    uniqueness of idempotency keys are the backend's responsibility.
    """

    # ─── Users ────────────────────────────────────────────────────────────────

    @abstractmethod
    async def get_user_by_id(self, user_id: str, txn: Any = None) -> User | None:
        ...

    @abstractmethod
    async def update_user_credits(self, user_id: str, amount: float, txn: Any = None) -> User:
        """Add ``amount`` (which may be negative) to the user's balance."""
        ...

    @abstractmethod
    async def update_user_membership(
        self,
        user_id: str,
        membership_tier: str,
        credits: float,
        membership_expires_at: datetime | None,
        txn: Any = None,
    ) -> User:
        """Set the user's tier, expiry and balance. ``credits`` replaces the balance."""
        ...

    # ─── Transactions ─────────────────────────────────────────────────────────

    @abstractmethod
    async def create_transaction(
        self, transaction: TransactionInput, txn: Any = None
    ) -> Transaction:
        ...

    @abstractmethod
    async def get_transactions(
        self,
        user_id: str,
        options: HistoryOptions | None = None,
        txn: Any = None,
    ) -> list[Transaction]:
        """
        Return the user's transactions matching ``options``, newest first.

        Ordering must be total so that pages at offsets ``0, L, 2L, ...``
        concatenate without gaps or duplicates.
        """
        ...

    # ─── Audit ────────────────────────────────────────────────────────────────

    @abstractmethod
    async def create_audit_log(self, log: AuditLogInput, txn: Any = None) -> AuditLog:
        ...

    # ─── Idempotency ──────────────────────────────────────────────────────────

    @abstractmethod
    async def get_idempotency_record(
        self, key: str, txn: Any = None
    ) -> IdempotencyRecord | None:
        """Return the record for ``key``, or None when absent or expired."""
        ...

    @abstractmethod
    async def create_idempotency_record(
        self, record: IdempotencyRecordInput, txn: Any = None
    ) -> IdempotencyRecord:
        ...
