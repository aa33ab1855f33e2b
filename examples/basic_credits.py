# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
"""
Basic credits example.

Builds a CreditsEngine over in-memory storage and walks one user through
a grant, fixed and formula-priced charges, an idempotent retry, a refused
charge, a tier upgrade and a history query.

Run with:
    python examples/basic_credits.py
"""
from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from credits_engine import (
    CreditsConfig,
    CreditsEngine,
    InsufficientCreditsError,
    MembershipConfig,
    MemoryStorage,
    MembershipRequiredError,
    RetryConfig,
)
from credits_engine.types import utc_now


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    # ------------------------------------------------------------------ #
    # 1. Configure and build the engine
    # ------------------------------------------------------------------ #
    config = CreditsConfig(
        costs={
            "generate-post": {"default": 10, "premium": 8},
            "ai-completion": {
                "default": "{token} * 0.001 + 10",
                "premium": "{token} > 10000 ? {token} * 0.0005 + 5 : {token} * 0.0008 + 8",
            },
            "premium-report": {"default": 50},
        },
        membership=MembershipConfig(
            tiers={"free": 0, "basic": 1, "premium": 2},
            requirements={"premium-report": "premium"},
            credits_caps={"free": 100, "basic": 500, "premium": 2000},
        ),
        retry=RetryConfig(max_attempts=3, initial_delay=0.05, max_delay=1.0),
    )
    storage = MemoryStorage()
    engine = CreditsEngine(storage, config)

    storage.create_user("alice", credits=20, membership_tier="free")

    # ------------------------------------------------------------------ #
    # 2. Grant, then charge a fixed and a formula-priced action
    # ------------------------------------------------------------------ #
    grant = await engine.grant("alice", 80, "welcome-bonus")
    print(f"Granted {grant.amount}: balance {grant.balance_before} -> {grant.balance_after}")

    post = await engine.charge("alice", "generate-post", idempotency_key="alice-post-1")
    print(f"generate-post cost {post.cost}, balance {post.balance_after}")

    replay = await engine.charge("alice", "generate-post", idempotency_key="alice-post-1")
    same = replay.transaction_id == post.transaction_id
    print(f"Replayed with same key: same transaction? {same}")

    completion = await engine.charge(
        "alice", "ai-completion", variables={"token": 3500}, metadata={"model": "small"}
    )
    print(f"ai-completion (3500 tokens) cost {completion.cost}, balance {completion.balance_after}")

    # ------------------------------------------------------------------ #
    # 3. Refused operations leave the balance alone
    # ------------------------------------------------------------------ #
    try:
        await engine.charge("alice", "premium-report")
    except MembershipRequiredError as exc:
        print(f"Refused: {exc}")

    try:
        await engine.charge("alice", "ai-completion", variables={"token": 500_000})
    except InsufficientCreditsError as exc:
        print(f"Refused: needs {exc.required}, has {exc.available}")

    # ------------------------------------------------------------------ #
    # 4. Upgrade and use the premium-only action
    # ------------------------------------------------------------------ #
    upgrade = await engine.upgrade_tier(
        "alice", "premium", membership_expires_at=utc_now() + timedelta(days=30)
    )
    print(
        f"Upgraded {upgrade.old_tier} -> {upgrade.new_tier}: "
        f"credits {upgrade.old_credits} -> {upgrade.new_credits} ({upgrade.credits_delta:+})"
    )
    report = await engine.charge("alice", "premium-report")
    print(f"premium-report cost {report.cost}, balance {report.balance_after}")

    # ------------------------------------------------------------------ #
    # 5. History and audit trail
    # ------------------------------------------------------------------ #
    print("\nHistory (newest first):")
    for transaction in await engine.get_history("alice", {"limit": 10}):
        print(
            f"  {transaction.action:<15} {transaction.amount:>+9.2f}"
            f" -> {transaction.balance_after:.2f}"
        )

    audit = storage.list_audit_logs()
    failed = sum(1 for entry in audit if entry.status == "failed")
    print(f"\nAudit entries: {len(audit)} ({failed} failed)")


if __name__ == "__main__":
    asyncio.run(main())
