"""Ledger computations over already-fetched transactions.

Everything here is synchronous and pure: the same input sequence always gives
the same output. Entries are any objects exposing the attributes a function
reads (ORM rows, projected rows or plain namespaces).
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, time, tzinfo
from typing import Any, Iterable, Mapping

from errors import MissingClosingBalance
from waterfall import (
    ESSENTIALS,
    EXPECTED_ALLOCATION,
    IGNORABLE,
    INVESTMENTS,
    LUXURY,
    SAVINGS,
)

logger = logging.getLogger(__name__)


def closing_balances(entries: Iterable[Any]) -> dict[Any, float]:
    """Map each transaction id to its account's running total.

    ``entries`` must be the unfiltered ledger sorted ascending by
    (timestamp, id); any gap in an account's history skews every later
    balance of that account.
    """
    per_account: dict[str, float] = {}
    balances: dict[Any, float] = {}
    for entry in entries:
        running = per_account.get(entry.account_id, 0.0) + entry.amount
        per_account[entry.account_id] = running
        balances[entry.id] = running
    return balances


def attach_closing_balances(
    page: Iterable[Any], balances: Mapping[Any, float]
) -> list[dict[str, object]]:
    items: list[dict[str, object]] = []
    for txn in page:
        if txn.id not in balances:
            logger.error(f"closing_balance_missing: transaction_id={txn.id}")
            raise MissingClosingBalance(txn.id)
        item = txn.as_dict()
        item["closing_bal"] = balances[txn.id]
        items.append(item)
    return items


@dataclass
class Budget:
    total_income: float = 0.0
    essentials_expected: float = 0.0
    essentials_actual: float = 0.0
    investments_expected: float = 0.0
    investments_actual: float = 0.0
    savings_expected: float = 0.0
    savings_actual: float = 0.0
    luxury_expected: float = 0.0
    luxury_actual: float = 0.0
    ignorable_expected: float = 0.0
    ignorable_actual: float = 0.0

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


# Buckets whose actual spend is observed directly. Savings is the unspent
# remainder of income, so it is derived after the pass.
_SPEND_BUCKETS = (ESSENTIALS, INVESTMENTS, LUXURY, IGNORABLE)


def compute_budget(entries: Iterable[Any]) -> Budget:
    total_income = 0.0
    actual = {bucket: 0.0 for bucket in _SPEND_BUCKETS}
    for entry in entries:
        category = entry.category
        if entry.amount > 0 and category != IGNORABLE:
            total_income += entry.amount
        if category in actual:
            actual[category] += -entry.amount

    savings_actual = total_income - sum(actual[bucket] for bucket in _SPEND_BUCKETS)

    expected = {
        bucket: total_income * share for bucket, share in EXPECTED_ALLOCATION.items()
    }
    return Budget(
        total_income=total_income,
        essentials_expected=expected[ESSENTIALS],
        essentials_actual=actual[ESSENTIALS],
        investments_expected=expected[INVESTMENTS],
        investments_actual=actual[INVESTMENTS],
        savings_expected=expected[SAVINGS],
        savings_actual=savings_actual,
        luxury_expected=expected[LUXURY],
        luxury_actual=actual[LUXURY],
        ignorable_expected=expected[IGNORABLE],
        ignorable_actual=actual[IGNORABLE],
    )


def _month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year, 12, 31)
    return date(year, month + 1, 1) - date.resolution


def month_end_key(timestamp: int, tz: tzinfo) -> int:
    """Epoch of midnight starting the last day of the timestamp's month in ``tz``."""
    moment = datetime.fromtimestamp(timestamp, tz)
    last_day = _month_end(moment.year, moment.month)
    return int(datetime.combine(last_day, time.min, tzinfo=tz).timestamp())


def balance_over_time(entries: Iterable[Any], tz: tzinfo) -> dict[int, float]:
    """Cumulative balance across all accounts, bucketed by month end.

    Months without transactions are left out rather than interpolated.
    """
    series: dict[int, float] = {}
    previous_key = None
    for entry in entries:
        key = month_end_key(entry.timestamp, tz)
        if previous_key is not None and key != previous_key:
            series[key] = series[previous_key]
        series[key] = series.get(key, 0.0) + entry.amount
        previous_key = key
    return series
