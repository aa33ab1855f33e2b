# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Awaitable, Callable, Mapping, TypeVar

from pydantic import BaseModel, ValidationError

from credits_engine.audit import AuditRecorder
from credits_engine.config import CreditsConfig, load_config
from credits_engine.cost import CostCalculator
from credits_engine.errors import (
    ConfigurationError,
    IdempotencyKeyConflictError,
    InsufficientCreditsError,
    InvalidTierChangeError,
    MembershipRequiredError,
    UserNotFoundError,
)
from credits_engine.history import as_history_options
from credits_engine.idempotency import IdempotencyGuard
from credits_engine.log import GuardedLogger, LogAdapter, StandardLogger
from credits_engine.membership import MembershipValidator, effective_tier
from credits_engine.retry import RetryPolicy, SleepFn
from credits_engine.storage.interface import CreditsStorage
from credits_engine.types import (
    ChargeResult,
    GrantResult,
    HistoryOptions,
    RefundResult,
    TierChangeResult,
    Transaction,
    TransactionInput,
    User,
)

T = TypeVar("T")
R = TypeVar("R", bound=BaseModel)

TIER_UPGRADE_ACTION = "tier-upgrade"
TIER_DOWNGRADE_ACTION = "tier-downgrade"


class CreditsEngine:
    """
    Charges, refunds and grants credits, and changes membership tiers.

    Composes CostCalculator, MembershipValidator, IdempotencyGuard,
    AuditRecorder and RetryPolicy over a pluggable
    :class:`~credits_engine.storage.interface.CreditsStorage`.

    Every balance-changing call runs the same pipeline:

    1. Idempotency short-circuit (cached result returned as-is, no audit)
    2. Fetch the user
    3. Operation-specific validation and pricing
    4. Persist the new balance
    5. Create the transaction record
    6. Write the success audit entry
    7. Save the idempotency record (when a key was given)

    Any failure from step 2 on writes one failed audit entry and re-raises.
    The engine never opens, commits or rolls back transactions: the optional
    ``txn`` handle is forwarded untouched to every storage call of the
    operation. Storage reads go through the RetryPolicy. Writes run exactly
    once, so a write that committed before a transient error is never
    applied twice. Log adapter failures never reach the caller.

    Example::

        storage = MemoryStorage()
        storage.create_user("user-1", credits=100)
        engine = CreditsEngine(storage, {"costs": {"generate-post": {"default": 10}}})

        result = await engine.charge("user-1", "generate-post", idempotency_key="req-42")
        assert result.balance_after == 90
    """

    def __init__(
        self,
        storage: CreditsStorage,
        config: CreditsConfig | Mapping[str, Any],
        logger: LogAdapter | None = None,
        retry_sleep: SleepFn | None = None,
    ) -> None:
        if storage is None:
            raise ConfigurationError("Storage adapter is required.", field="storage")
        if config is None:
            raise ConfigurationError("Configuration is required.", field="config")

        self._config = load_config(config)
        self._storage = storage
        self._logger = GuardedLogger(logger or StandardLogger())

        self.costs = CostCalculator(self._config.costs)
        self.membership = MembershipValidator(self._config.membership)
        self.idempotency = IdempotencyGuard(storage, self._config.idempotency)
        self.audit = AuditRecorder(storage, self._config.audit)
        self.retry = RetryPolicy(self._config.retry, self._logger, sleep=retry_sleep)

        self._logger.info(
            "CreditsEngine initialized",
            {
                "actions": len(self._config.costs),
                "tiers": len(self._config.membership.tiers),
                "retry_enabled": self._config.retry.enabled,
                "idempotency_enabled": self._config.idempotency.enabled,
                "audit_enabled": self._config.audit.enabled,
            },
        )

    @property
    def config(self) -> CreditsConfig:
        return self._config

    # ------------------------------------------------------------------
    # Balance operations
    # ------------------------------------------------------------------

    async def charge(
        self,
        user_id: str,
        action: str,
        *,
        variables: Mapping[str, float] | None = None,
        idempotency_key: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        txn: Any = None,
    ) -> ChargeResult:
        """
        Deduct the cost of ``action`` from the user's balance.

        The cost depends on the user's effective tier and, for formula-priced
        actions, on ``variables``.

        Raises:
            UserNotFoundError: If the user does not exist.
            MembershipRequiredError: If the action requires a higher tier.
            UndefinedActionError: If ``action`` has no configured cost.
            MissingVariableError: If a formula needs variables not supplied.
            InsufficientCreditsError: If the balance is below the cost.
        """
        extra = dict(metadata or {})
        context: dict[str, Any] = {"operation": action}

        async def run() -> ChargeResult:
            user = await self._fetch_user(user_id, txn)

            required_tier = self._config.required_tier(action)
            if required_tier is not None:
                check = self.membership.check(user, required_tier)
                if not check.allowed:
                    self._logger.warn(
                        "Membership validation failed",
                        {
                            "user_id": user_id,
                            "required_tier": required_tier,
                            "reason": check.reason,
                        },
                    )
                    raise MembershipRequiredError(user_id, required_tier, check.current_tier)

            tier = effective_tier(user.membership_tier, user.membership_expires_at)
            details = self.costs.get_calculation_details(action, tier, variables)
            cost = details.final_cost
            balance_before = user.credits
            context.update(cost=cost, balance_before=balance_before)

            if balance_before < cost:
                self._logger.warn(
                    "Insufficient credits",
                    {"user_id": user_id, "required": cost, "available": balance_before},
                )
                raise InsufficientCreditsError(user_id, cost, balance_before)

            balance_after = balance_before - cost
            transaction_metadata = dict(extra)
            if details.is_dynamic:
                transaction_metadata["dynamic_cost"] = details.model_dump()

            await self._storage.update_user_credits(user_id, -cost, txn)
            transaction = await self._record_transaction(
                TransactionInput(
                    user_id=user_id,
                    action=action,
                    amount=-cost,
                    balance_before=balance_before,
                    balance_after=balance_after,
                    metadata=transaction_metadata,
                ),
                txn,
            )
            await self._audit_success(
                user_id,
                "charge",
                {
                    **extra,
                    "operation": action,
                    "cost": cost,
                    "balance_before": balance_before,
                    "balance_after": balance_after,
                    "transaction_id": transaction.id,
                },
                txn,
            )
            return ChargeResult(
                transaction_id=transaction.id,
                cost=cost,
                balance_before=balance_before,
                balance_after=balance_after,
            )

        return await self._run(
            "charge", user_id, ChargeResult, run, idempotency_key, txn, extra, context
        )

    async def refund(
        self,
        user_id: str,
        amount: float,
        action: str,
        *,
        idempotency_key: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        txn: Any = None,
    ) -> RefundResult:
        """
        Credit ``amount`` back to the user, recorded under ``action``.

        Raises:
            ConfigurationError: If ``amount`` is not a positive number.
            UserNotFoundError: If the user does not exist.
        """
        extra = dict(metadata or {})
        context: dict[str, Any] = {"operation": action, "amount": amount}

        async def run() -> RefundResult:
            _require_positive("Refund", amount)
            user = await self._fetch_user(user_id, txn)
            balance_before, balance_after, transaction_id = await self._credit(
                user, "refund", action, amount, extra, context, txn
            )
            return RefundResult(
                transaction_id=transaction_id,
                amount=amount,
                balance_before=balance_before,
                balance_after=balance_after,
            )

        return await self._run(
            "refund", user_id, RefundResult, run, idempotency_key, txn, extra, context
        )

    async def grant(
        self,
        user_id: str,
        amount: float,
        action: str,
        *,
        idempotency_key: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        txn: Any = None,
    ) -> GrantResult:
        """
        Give the user ``amount`` new credits, recorded under ``action``.

        Raises:
            ConfigurationError: If ``amount`` is not strictly positive.
            UserNotFoundError: If the user does not exist.
        """
        extra = dict(metadata or {})
        context: dict[str, Any] = {"operation": action, "amount": amount}

        async def run() -> GrantResult:
            _require_positive("Grant", amount)
            user = await self._fetch_user(user_id, txn)
            balance_before, balance_after, transaction_id = await self._credit(
                user, "grant", action, amount, extra, context, txn
            )
            return GrantResult(
                transaction_id=transaction_id,
                amount=amount,
                balance_before=balance_before,
                balance_after=balance_after,
            )

        return await self._run(
            "grant", user_id, GrantResult, run, idempotency_key, txn, extra, context
        )

    # ------------------------------------------------------------------
    # Tier changes
    # ------------------------------------------------------------------

    async def upgrade_tier(
        self,
        user_id: str,
        target_tier: str,
        *,
        membership_expires_at: datetime | None = None,
        idempotency_key: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        txn: Any = None,
    ) -> TierChangeResult:
        """
        Move the user to a strictly higher tier and set their balance to
        that tier's credits cap.

        ``membership_expires_at`` replaces the current expiry when given;
        None keeps the existing one.

        Raises:
            UserNotFoundError: If the user does not exist.
            UndefinedTierError: If ``target_tier`` is not configured.
            InvalidTierChangeError: If ``target_tier`` is not higher.
        """
        return await self._change_tier(
            "upgradeTier",
            user_id,
            target_tier,
            lambda user: membership_expires_at
            if membership_expires_at is not None
            else user.membership_expires_at,
            idempotency_key,
            metadata,
            txn,
        )

    async def downgrade_tier(
        self,
        user_id: str,
        target_tier: str,
        *,
        clear_expiration: bool = False,
        idempotency_key: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        txn: Any = None,
    ) -> TierChangeResult:
        """
        Move the user to a strictly lower tier and set their balance to
        that tier's credits cap (this usually reduces it).

        Raises:
            UserNotFoundError: If the user does not exist.
            UndefinedTierError: If ``target_tier`` is not configured.
            InvalidTierChangeError: If ``target_tier`` is not lower.
        """
        return await self._change_tier(
            "downgradeTier",
            user_id,
            target_tier,
            lambda user: None if clear_expiration else user.membership_expires_at,
            idempotency_key,
            metadata,
            txn,
        )

    # ------------------------------------------------------------------
    # Read-only operations
    # ------------------------------------------------------------------

    async def query_balance(self, user_id: str, txn: Any = None) -> float:
        """
        Return the user's current balance.

        Raises:
            UserNotFoundError: If the user does not exist.
        """
        try:
            user = await self._fetch_user(user_id, txn)
        except Exception as error:
            self._logger.error(
                "query_balance operation failed", {"user_id": user_id, "error": str(error)}
            )
            raise
        return user.credits

    async def get_history(
        self,
        user_id: str,
        options: HistoryOptions | Mapping[str, Any] | None = None,
        *,
        txn: Any = None,
    ) -> list[Transaction]:
        """
        Return the user's transactions, newest first.

        ``options`` accepts ``limit``, ``offset``, ``start_date``,
        ``end_date`` (both inclusive) and ``action`` (exact match).
        """
        filters = as_history_options(options)
        self._logger.debug(
            "Fetching transaction history",
            {"user_id": user_id, **filters.model_dump(exclude_none=True)},
        )
        try:
            transactions = await self._read(
                "get_transactions",
                lambda: self._storage.get_transactions(user_id, filters, txn),
            )
        except Exception as error:
            self._logger.error(
                "get_history operation failed", {"user_id": user_id, "error": str(error)}
            )
            raise
        return transactions

    async def validate_access(self, user_id: str, action: str, txn: Any = None) -> bool:
        """
        Return True if the user may perform ``action``.

        Raises:
            UserNotFoundError: If the user does not exist.
            MembershipRequiredError: If the user's effective tier is too low.
        """
        try:
            user = await self._fetch_user(user_id, txn)
            required_tier = self._config.required_tier(action)
            result = self.membership.require(user, required_tier)
        except Exception as error:
            self._logger.warn(
                "Access denied",
                {"user_id": user_id, "action": action, "error": str(error)},
            )
            await self._audit_failure(
                user_id, "validateAccess", error, {"target_action": action}, txn
            )
            raise
        self._logger.info(
            "Access granted",
            {"user_id": user_id, "action": action, "current_tier": result.current_tier},
        )
        return True

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _run(
        self,
        kind: str,
        user_id: str,
        result_type: type[R],
        operation: Callable[[], Awaitable[R]],
        idempotency_key: str | None,
        txn: Any,
        metadata: dict[str, Any],
        context: dict[str, Any],
    ) -> R:
        """Idempotency short-circuit, then ``operation`` with failure auditing."""
        self._logger.info(
            f"Starting {kind} operation",
            {
                "user_id": user_id,
                **context,
                "has_idempotency_key": idempotency_key is not None,
                "has_transaction": txn is not None,
            },
        )

        if idempotency_key is not None and self.idempotency.enabled:
            cached = await self._read(
                "get_idempotency_record",
                lambda: self.idempotency.get(idempotency_key, txn),
            )
            if cached is not None:
                self._logger.info(
                    "Idempotency key found, returning cached result",
                    {"user_id": user_id, "idempotency_key": idempotency_key},
                )
                try:
                    return result_type.model_validate(cached)
                except ValidationError as exc:
                    raise IdempotencyKeyConflictError(idempotency_key) from exc

        try:
            result = await operation()
            if idempotency_key is not None and self.idempotency.enabled:
                await self.idempotency.save(idempotency_key, result.model_dump(), txn)
        except Exception as error:
            await self._audit_failure(user_id, kind, error, {**metadata, **context}, txn)
            self._logger.error(
                f"{kind} operation failed",
                {"user_id": user_id, **context, "error": str(error)},
            )
            raise

        self._logger.info(
            f"{kind} operation completed",
            {
                "user_id": user_id,
                **context,
                "transaction_id": getattr(result, "transaction_id", None),
            },
        )
        return result

    async def _change_tier(
        self,
        kind: str,
        user_id: str,
        target_tier: str,
        next_expiry: Callable[[User], datetime | None],
        idempotency_key: str | None,
        metadata: Mapping[str, Any] | None,
        txn: Any,
    ) -> TierChangeResult:
        extra = dict(metadata or {})
        context: dict[str, Any] = {"target_tier": target_tier}
        upgrade = kind == "upgradeTier"

        async def run() -> TierChangeResult:
            user = await self._fetch_user(user_id, txn)
            old_tier = user.membership_tier
            context["old_tier"] = old_tier

            # Undefined target is reported before a wrong direction.
            target_level = self.membership.require_defined(target_tier)
            current_level = self.membership.tier_level(old_tier)
            moves_in_direction = (
                target_level > current_level if upgrade else target_level < current_level
            )
            if not moves_in_direction:
                raise InvalidTierChangeError(
                    old_tier, target_tier, "upgrade" if upgrade else "downgrade"
                )

            old_credits = user.credits
            new_credits = self.membership.credits_cap(target_tier)
            credits_delta = new_credits - old_credits
            context.update(old_credits=old_credits, new_credits=new_credits)

            await self._storage.update_user_membership(
                user_id, target_tier, new_credits, next_expiry(user), txn
            )
            transaction = await self._record_transaction(
                TransactionInput(
                    user_id=user_id,
                    action=TIER_UPGRADE_ACTION if upgrade else TIER_DOWNGRADE_ACTION,
                    amount=credits_delta,
                    balance_before=old_credits,
                    balance_after=new_credits,
                    metadata={**extra, "old_tier": old_tier, "new_tier": target_tier},
                ),
                txn,
            )
            await self._audit_success(
                user_id,
                kind,
                {
                    **extra,
                    "old_tier": old_tier,
                    "new_tier": target_tier,
                    "old_credits": old_credits,
                    "new_credits": new_credits,
                    "credits_delta": credits_delta,
                    "transaction_id": transaction.id,
                },
                txn,
            )
            return TierChangeResult(
                transaction_id=transaction.id,
                old_tier=old_tier,
                new_tier=target_tier,
                old_credits=old_credits,
                new_credits=new_credits,
                credits_delta=credits_delta,
            )

        return await self._run(
            kind, user_id, TierChangeResult, run, idempotency_key, txn, extra, context
        )

    async def _credit(
        self,
        user: User,
        kind: str,
        action: str,
        amount: float,
        metadata: dict[str, Any],
        context: dict[str, Any],
        txn: Any,
    ) -> tuple[float, float, str]:
        """Add ``amount`` to the balance; shared by refund and grant."""
        balance_before = user.credits
        balance_after = balance_before + amount
        context["balance_before"] = balance_before

        await self._storage.update_user_credits(user.id, amount, txn)
        transaction = await self._record_transaction(
            TransactionInput(
                user_id=user.id,
                action=action,
                amount=amount,
                balance_before=balance_before,
                balance_after=balance_after,
                metadata=metadata,
            ),
            txn,
        )
        await self._audit_success(
            user.id,
            kind,
            {
                **metadata,
                "operation": action,
                "amount": amount,
                "balance_before": balance_before,
                "balance_after": balance_after,
                "transaction_id": transaction.id,
            },
            txn,
        )
        return balance_before, balance_after, transaction.id

    async def _fetch_user(self, user_id: str, txn: Any) -> User:
        user = await self._read(
            "get_user_by_id", lambda: self._storage.get_user_by_id(user_id, txn)
        )
        if user is None:
            self._logger.warn("User not found", {"user_id": user_id})
            raise UserNotFoundError(user_id)
        return user

    async def _record_transaction(self, transaction: TransactionInput, txn: Any) -> Transaction:
        return await self._storage.create_transaction(transaction, txn)

    async def _audit_success(
        self, user_id: str, kind: str, metadata: dict[str, Any], txn: Any
    ) -> None:
        await self.audit.log(user_id, kind, "success", metadata=metadata, txn=txn)

    async def _audit_failure(
        self,
        user_id: str,
        kind: str,
        error: BaseException,
        metadata: dict[str, Any],
        txn: Any,
    ) -> None:
        """Best effort: a failing audit write never masks ``error``."""
        message = str(error)
        try:
            await self.audit.log(
                user_id,
                kind,
                "failed",
                metadata={**metadata, "error": message},
                error_message=message,
                txn=txn,
            )
        except Exception as audit_error:
            self._logger.warn(
                "Failed to write audit log for failed operation",
                {"user_id": user_id, "action": kind, "error": str(audit_error)},
            )

    async def _read(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run a storage read through the RetryPolicy. Writes never come here."""
        return await self.retry.execute(operation, name=name)


def _require_positive(label: str, amount: float) -> None:
    if (
        isinstance(amount, bool)
        or not isinstance(amount, (int, float))
        or not math.isfinite(amount)
        or amount <= 0
    ):
        raise ConfigurationError(
            f"{label} amount must be positive, got {amount!r}.", field="amount"
        )
