# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Volatile in-memory storage backend.

Suitable for tests, examples and single-process use. Data is lost when the
process exits. The ``txn`` handle is accepted and ignored. No method awaits
while mutating state, so calls interleaved on one event loop never observe
partial writes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from credits_engine.errors import IdempotencyKeyConflictError, UserNotFoundError
from credits_engine.history import filter_transactions
from credits_engine.storage.interface import CreditsStorage
from credits_engine.types import (
    AuditLog,
    AuditLogInput,
    HistoryOptions,
    IdempotencyRecord,
    IdempotencyRecordInput,
    Transaction,
    TransactionInput,
    User,
    utc_now,
)


class MemoryStorage(CreditsStorage):
    """In-memory, non-persistent CreditsStorage implementation."""

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._transactions: list[Transaction] = []
        self._audit_logs: list[AuditLog] = []
        self._idempotency: dict[str, IdempotencyRecord] = {}

    # ─── Users ────────────────────────────────────────────────────────────────

    async def get_user_by_id(self, user_id: str, txn: Any = None) -> User | None:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user is not None else None

    async def update_user_credits(self, user_id: str, amount: float, txn: Any = None) -> User:
        user = self._require_user(user_id)
        user.credits += amount
        user.updated_at = utc_now()
        return user.model_copy(deep=True)

    async def update_user_membership(
        self,
        user_id: str,
        membership_tier: str,
        credits: float,
        membership_expires_at: datetime | None,
        txn: Any = None,
    ) -> User:
        user = self._require_user(user_id)
        user.membership_tier = membership_tier
        user.membership_expires_at = membership_expires_at
        user.credits = credits
        user.updated_at = utc_now()
        return user.model_copy(deep=True)

    # ─── Transactions ─────────────────────────────────────────────────────────

    async def create_transaction(
        self, transaction: TransactionInput, txn: Any = None
    ) -> Transaction:
        created = Transaction(id=str(uuid4()), **transaction.model_dump())
        self._transactions.append(created)
        return created.model_copy(deep=True)

    async def get_transactions(
        self,
        user_id: str,
        options: HistoryOptions | None = None,
        txn: Any = None,
    ) -> list[Transaction]:
        return [
            transaction.model_copy(deep=True)
            for transaction in filter_transactions(self._transactions, user_id, options)
        ]

    # ─── Audit ────────────────────────────────────────────────────────────────

    async def create_audit_log(self, log: AuditLogInput, txn: Any = None) -> AuditLog:
        created = AuditLog(id=str(uuid4()), **log.model_dump())
        self._audit_logs.append(created)
        return created.model_copy(deep=True)

    # ─── Idempotency ──────────────────────────────────────────────────────────

    async def get_idempotency_record(
        self, key: str, txn: Any = None
    ) -> IdempotencyRecord | None:
        record = self._idempotency.get(key)
        if record is None or record.is_expired():
            return None
        return record.model_copy(deep=True)

    async def create_idempotency_record(
        self, record: IdempotencyRecordInput, txn: Any = None
    ) -> IdempotencyRecord:
        existing = self._idempotency.get(record.key)
        if existing is not None and not existing.is_expired():
            raise IdempotencyKeyConflictError(record.key)
        created = IdempotencyRecord(**record.model_dump())
        self._idempotency[record.key] = created
        return created.model_copy(deep=True)

    # ─── Test helpers ─────────────────────────────────────────────────────────

    def add_user(self, user: User) -> User:
        """Insert or replace a user. Users are created outside the engine."""
        self._users[user.id] = user.model_copy(deep=True)
        return user.model_copy(deep=True)

    def create_user(
        self,
        user_id: str,
        credits: float = 0.0,
        membership_tier: str | None = None,
        membership_expires_at: datetime | None = None,
    ) -> User:
        return self.add_user(
            User(
                id=user_id,
                credits=credits,
                membership_tier=membership_tier,
                membership_expires_at=membership_expires_at,
            )
        )

    def add_transaction(self, transaction: Transaction) -> Transaction:
        """Append a fully formed transaction, keeping its id and created_at."""
        self._transactions.append(transaction.model_copy(deep=True))
        return transaction.model_copy(deep=True)

    def list_users(self) -> list[User]:
        return [user.model_copy(deep=True) for user in self._users.values()]

    def list_transactions(self) -> list[Transaction]:
        return [transaction.model_copy(deep=True) for transaction in self._transactions]

    def list_audit_logs(self) -> list[AuditLog]:
        return [log.model_copy(deep=True) for log in self._audit_logs]

    def list_idempotency_records(self) -> list[IdempotencyRecord]:
        return [record.model_copy(deep=True) for record in self._idempotency.values()]

    def reset(self) -> None:
        self._users.clear()
        self._transactions.clear()
        self._audit_logs.clear()
        self._idempotency.clear()

    def _require_user(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user
