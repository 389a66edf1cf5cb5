"""Concurrent store reads feeding the ledger computations.

Every store call runs as its own branch in a worker thread, bounded by the
per-operation timeout. All branches of a request are awaited together; the
first failure cancels the rest and is the only error surfaced. Branches do not
share state: each returns its own result, and results are merged only after
the join.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import tzinfo
from typing import Any, Callable, Optional

from errors import BranchFailed, BranchTimeout, LedgerError
from filters import TransactionQuery, full_ledger_query
from ledger import (
    Budget,
    attach_closing_balances,
    balance_over_time,
    closing_balances,
    compute_budget,
)
from periods import Window
from store import LedgerStore, Projection

logger = logging.getLogger(__name__)


class LedgerQueries:
    def __init__(self, store: LedgerStore, timeout: float, tz: tzinfo) -> None:
        self.store = store
        self.timeout = timeout
        self.tz = tz

    async def _branch(self, name: str, call: Callable[[], Any]) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(call), self.timeout)
        except LedgerError:
            raise
        except asyncio.TimeoutError as exc:
            logger.error(f"query_branch_timeout: branch={name} timeout={self.timeout}")
            raise BranchTimeout(name, self.timeout) from exc
        except Exception as exc:
            logger.error(f"query_branch_failed: branch={name} error={exc!r}")
            raise BranchFailed(name) from exc

    async def run_concurrently(self, **branches: Callable[[], Any]) -> dict[str, Any]:
        names = list(branches)
        tasks = [
            asyncio.create_task(self._branch(name, branches[name]), name=name)
            for name in names
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return dict(zip(names, results))

    async def list_page(
        self, query: TransactionQuery, *, include_count: bool = True
    ) -> tuple[list[dict[str, object]], Optional[int]]:
        branches: dict[str, Callable[[], Any]] = {
            "page": lambda: self.store.list_transactions(query),
        }
        if include_count:
            branches["count"] = lambda: self.store.count_transactions(query.filter)
        results = await self.run_concurrently(**branches)
        items = [txn.as_dict() for txn in results["page"]]
        return items, results.get("count")

    async def list_with_closing_balances(
        self, query: TransactionQuery
    ) -> tuple[list[dict[str, object]], int]:
        results = await self.run_concurrently(
            page=lambda: self.store.list_transactions(query),
            count=lambda: self.store.count_transactions(query.filter),
            ledger=lambda: self.store.list_transactions(
                full_ledger_query(), Projection.CLOSING_BALANCE
            ),
        )
        balances = closing_balances(results["ledger"])
        items = attach_closing_balances(results["page"], balances)
        return items, results["count"]

    async def budget(self, window: Window) -> Budget:
        results = await self.run_concurrently(
            ledger=lambda: self.store.list_transactions(
                full_ledger_query(window.as_filter()), Projection.BUDGET
            ),
        )
        return compute_budget(results["ledger"])

    async def balances_over_time(self) -> dict[int, float]:
        results = await self.run_concurrently(
            ledger=lambda: self.store.list_transactions(
                full_ledger_query(), Projection.TIME_SERIES
            ),
        )
        return balance_over_time(results["ledger"], self.tz)

    async def accounts_with_balances(self) -> list[dict[str, object]]:
        results = await self.run_concurrently(
            accounts=self.store.list_accounts,
            balances=self.store.account_balances,
        )
        balances = results["balances"]
        return [
            {"id": account.id, "name": account.name, "balance": balances.get(account.id, 0.0)}
            for account in results["accounts"]
        ]
