# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
"""
credits-engine: usage-based credits accounting with pluggable storage.

Quick start::

    import asyncio

    from credits_engine import CreditsEngine, MemoryStorage

    storage = MemoryStorage()
    storage.create_user("user-1", credits=1000, membership_tier="premium")

    engine = CreditsEngine(storage, {
        "costs": {
            "generate-post": {"default": 10, "premium": 8},
            "ai-completion": {"default": "{token} * 0.001 + 10"},
        },
        "membership": {
            "tiers": {"free": 0, "premium": 2},
            "requirements": {"ai-completion": "premium"},
            "credits_caps": {"free": 100, "premium": 2000},
        },
    })

    result = asyncio.run(engine.charge(
        "user-1", "ai-completion", variables={"token": 3500}, idempotency_key="req-1"
    ))
    print(result.cost)  # 13.5
"""
from __future__ import annotations

from credits_engine.audit import AuditRecorder
from credits_engine.config import (
    DEFAULT_RETRYABLE_ERRORS,
    AuditConfig,
    CreditsConfig,
    IdempotencyConfig,
    MembershipConfig,
    RetryConfig,
    load_config,
)
from credits_engine.cost import CostCalculator, round_cost
from credits_engine.engine import CreditsEngine
from credits_engine.errors import (
    ConfigurationError,
    CreditsError,
    FormulaEvaluationError,
    IdempotencyKeyConflictError,
    InsufficientCreditsError,
    InvalidTierChangeError,
    MembershipRequiredError,
    MissingVariableError,
    UndefinedActionError,
    UndefinedTierError,
    UserNotFoundError,
)
from credits_engine.formula import FormulaParser, ParsedFormula
from credits_engine.idempotency import IdempotencyGuard
from credits_engine.log import GuardedLogger, LogAdapter, StandardLogger
from credits_engine.membership import (
    MembershipCheckResult,
    MembershipValidator,
    check_access,
    validate_access,
)
from credits_engine.retry import RetryOptions, RetryPolicy, is_retryable
from credits_engine.storage import CreditsStorage, MemoryStorage
from credits_engine.types import (
    AuditLog,
    AuditLogInput,
    CalculationDetails,
    ChargeResult,
    GrantResult,
    HistoryOptions,
    IdempotencyRecord,
    IdempotencyRecordInput,
    RefundResult,
    TierChangeResult,
    Transaction,
    TransactionInput,
    User,
)

__version__ = "0.1.0"

__all__ = [
    # Engine
    "CreditsEngine",
    # Configuration
    "CreditsConfig",
    "MembershipConfig",
    "RetryConfig",
    "IdempotencyConfig",
    "AuditConfig",
    "DEFAULT_RETRYABLE_ERRORS",
    "load_config",
    # Data model
    "User",
    "Transaction",
    "TransactionInput",
    "HistoryOptions",
    "AuditLog",
    "AuditLogInput",
    "IdempotencyRecord",
    "IdempotencyRecordInput",
    "ChargeResult",
    "RefundResult",
    "GrantResult",
    "TierChangeResult",
    "CalculationDetails",
    # Pricing
    "FormulaParser",
    "ParsedFormula",
    "CostCalculator",
    "round_cost",
    # Membership
    "MembershipValidator",
    "MembershipCheckResult",
    "check_access",
    "validate_access",
    # Reliability
    "RetryPolicy",
    "RetryOptions",
    "is_retryable",
    "IdempotencyGuard",
    "AuditRecorder",
    # Storage
    "CreditsStorage",
    "MemoryStorage",
    # Logging
    "LogAdapter",
    "StandardLogger",
    "GuardedLogger",
    # Errors
    "CreditsError",
    "ConfigurationError",
    "UndefinedActionError",
    "UndefinedTierError",
    "UserNotFoundError",
    "InsufficientCreditsError",
    "MembershipRequiredError",
    "InvalidTierChangeError",
    "MissingVariableError",
    "FormulaEvaluationError",
    "IdempotencyKeyConflictError",
    "__version__",
]
