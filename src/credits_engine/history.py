# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from credits_engine.types import HistoryOptions, Transaction


def as_history_options(options: HistoryOptions | Mapping[str, Any] | None) -> HistoryOptions:
    if options is None:
        return HistoryOptions()
    if isinstance(options, HistoryOptions):
        return options
    return HistoryOptions.model_validate(dict(options))


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def filter_transactions(
    transactions: Sequence[Transaction],
    user_id: str,
    options: HistoryOptions | None = None,
) -> list[Transaction]:
    """
    Select one user's transactions, newest first, then page them.

    Date bounds are inclusive and ``action`` is an exact match. Transactions
    sharing a timestamp keep reverse insertion order, so the ordering is
    total and pagination is stable.
    Returns a new list; the input is not modified.
    """
    opts = options or HistoryOptions()
    start = _utc(opts.start_date) if opts.start_date is not None else None
    end = _utc(opts.end_date) if opts.end_date is not None else None

    selected: list[tuple[int, Transaction]] = []
    for position, transaction in enumerate(transactions):
        if transaction.user_id != user_id:
            continue
        if opts.action is not None and transaction.action != opts.action:
            continue

        created_at = _utc(transaction.created_at)
        if start is not None and created_at < start:
            continue
        if end is not None and created_at > end:
            continue

        selected.append((position, transaction))

    selected.sort(key=lambda item: (_utc(item[1].created_at), item[0]), reverse=True)
    ordered = [transaction for _, transaction in selected]

    if opts.limit is None:
        return ordered[opts.offset :]
    return ordered[opts.offset : opts.offset + opts.limit]
