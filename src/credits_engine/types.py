# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


# ─── User ─────────────────────────────────────────────────────────────────────


class User(BaseModel):
    """A credit holder. Created by the host application, mutated by the engine."""

    id: str
    credits: float = 0.0
    membership_tier: Optional[str] = None
    membership_expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# ─── Transaction ──────────────────────────────────────────────────────────────


class TransactionInput(BaseModel, frozen=True):
    """Input for :meth:`CreditsStorage.create_transaction`."""

    user_id: str
    action: str
    amount: float
    balance_before: float
    balance_after: float
    metadata: dict[str, Any] = Field(default_factory=dict)


class Transaction(BaseModel, frozen=True):
    """
    An append-only record of a balance change.

    ``amount`` is signed: negative for debits, positive for credits, and
    ``balance_after == balance_before + amount`` always holds.
    """

    id: str
    user_id: str
    action: str
    amount: float
    balance_before: float
    balance_after: float
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)


class HistoryOptions(BaseModel, frozen=True):
    """Filters for transaction history queries. All fields are AND-ed."""

    limit: Optional[int] = Field(default=None, ge=0)
    offset: int = Field(default=0, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    action: Optional[str] = None


# ─── Audit ────────────────────────────────────────────────────────────────────

AuditStatus = Literal["success", "failed"]


class AuditLogInput(BaseModel, frozen=True):
    """Input for :meth:`CreditsStorage.create_audit_log`."""

    user_id: str
    action: str
    status: AuditStatus
    metadata: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None


class AuditLog(BaseModel, frozen=True):
    """An immutable record of one operation attempt and its outcome."""

    id: str
    user_id: str
    action: str
    status: AuditStatus
    metadata: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


# ─── Idempotency ──────────────────────────────────────────────────────────────


class IdempotencyRecordInput(BaseModel, frozen=True):
    """Input for :meth:`CreditsStorage.create_idempotency_record`."""

    key: str
    result: dict[str, Any]
    expires_at: datetime


class IdempotencyRecord(BaseModel, frozen=True):
    """A cached operation result, replayed for repeated idempotency keys."""

    key: str
    result: dict[str, Any]
    created_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        current = now or utc_now()
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return current >= expires_at


# ─── Operation results ────────────────────────────────────────────────────────


class ChargeResult(BaseModel, frozen=True):
    """Result of :meth:`CreditsEngine.charge`."""

    success: Literal[True] = True
    transaction_id: str
    cost: float
    balance_before: float
    balance_after: float


class RefundResult(BaseModel, frozen=True):
    """Result of :meth:`CreditsEngine.refund`."""

    success: Literal[True] = True
    transaction_id: str
    amount: float
    balance_before: float
    balance_after: float


class GrantResult(BaseModel, frozen=True):
    """Result of :meth:`CreditsEngine.grant`."""

    success: Literal[True] = True
    transaction_id: str
    amount: float
    balance_before: float
    balance_after: float


class TierChangeResult(BaseModel, frozen=True):
    """Result of :meth:`CreditsEngine.upgrade_tier` and ``downgrade_tier``."""

    success: Literal[True] = True
    transaction_id: str
    old_tier: Optional[str]
    new_tier: str
    old_credits: float
    new_credits: float
    credits_delta: float


# ─── Pricing ──────────────────────────────────────────────────────────────────


class CalculationDetails(BaseModel, frozen=True):
    """
    How a cost was derived. Stored on charge transactions priced by a formula.

    ``formula`` and ``variables`` are only populated for dynamic pricing.
    """

    formula: Optional[str] = None
    variables: Optional[dict[str, float]] = None
    raw_cost: float
    final_cost: float
    is_dynamic: bool
