import asyncio
import time
from datetime import datetime, timezone

import pytest

from config import Settings
from database import build_engine, build_session_factory
from errors import BranchFailed, BranchTimeout, MissingClosingBalance, TransactionNotFound
from filters import parse_list_params
from orchestrator import LedgerQueries
from periods import Window
from store import LedgerStore, Projection, init_schema


def make_store(tmp_path, store_cls=LedgerStore) -> LedgerStore:
    engine = build_engine(
        Settings(
            database_url=f"sqlite:///{tmp_path / 'ledger.db'}",
            timezone="UTC",
            operation_timeout_secs=5,
        )
    )
    init_schema(engine)
    return store_cls(build_session_factory(engine))


def _epoch(*args) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp())


def seed(store: LedgerStore) -> list[int]:
    store.insert_account("A", "Alpha")
    store.insert_account("B", "Beta")
    rows = [
        ("A", 100.0, _epoch(2024, 1, 1), "earnings"),
        ("A", -30.0, _epoch(2024, 1, 2), "luxury"),
        ("B", 50.0, _epoch(2024, 1, 1), "earnings"),
        ("A", -20.0, _epoch(2024, 3, 1), "essentials"),
    ]
    return [
        store.insert_transaction(
            account_id=account, amount=amount, timestamp=ts, category=category
        )
        for account, amount, ts, category in rows
    ]


def test_filtered_page_keeps_full_ledger_balances(tmp_path) -> None:
    store = make_store(tmp_path)
    ids = seed(store)
    queries = LedgerQueries(store, 5, timezone.utc)

    query = parse_list_params(category="luxury")
    items, count = asyncio.run(queries.list_with_closing_balances(query))

    assert count == 1
    assert [item["id"] for item in items] == [ids[1]]
    assert items[0]["closing_bal"] == 70.0


def test_page_and_count_are_independent(tmp_path) -> None:
    store = make_store(tmp_path)
    ids = seed(store)
    queries = LedgerQueries(store, 5, timezone.utc)

    query = parse_list_params(account_id="A", limit="2")
    items, count = asyncio.run(queries.list_with_closing_balances(query))
    assert count == 3
    assert [item["id"] for item in items] == [ids[3], ids[1]]
    assert [item["closing_bal"] for item in items] == [50.0, 70.0]

    items, count = asyncio.run(queries.list_page(query, include_count=False))
    assert count is None
    assert len(items) == 2


def test_budget_and_balances_over_time(tmp_path) -> None:
    store = make_store(tmp_path)
    seed(store)
    queries = LedgerQueries(store, 5, timezone.utc)

    budget = asyncio.run(queries.budget(Window(0, _epoch(2024, 1, 31))))
    assert budget.total_income == 150.0
    assert budget.luxury_actual == 30.0
    assert budget.essentials_actual == 0.0
    assert budget.savings_actual == 120.0

    series = asyncio.run(queries.balances_over_time())
    assert series == {_epoch(2024, 1, 31): 120.0, _epoch(2024, 3, 31): 100.0}


def test_accounts_with_balances(tmp_path) -> None:
    store = make_store(tmp_path)
    seed(store)
    store.insert_account("C", "Unused")
    queries = LedgerQueries(store, 5, timezone.utc)

    accounts = asyncio.run(queries.accounts_with_balances())
    assert accounts == [
        {"id": "A", "name": "Alpha", "balance": 50.0},
        {"id": "B", "name": "Beta", "balance": 50.0},
        {"id": "C", "name": "Unused", "balance": 0.0},
    ]


class FailingCountStore(LedgerStore):
    def count_transactions(self, filter):
        raise RuntimeError("connection reset")


class SlowLedgerStore(LedgerStore):
    def list_transactions(self, query, projection=Projection.FULL):
        if projection is Projection.CLOSING_BALANCE:
            time.sleep(0.5)
        return super().list_transactions(query, projection)


class ShortLedgerStore(LedgerStore):
    def list_transactions(self, query, projection=Projection.FULL):
        if projection is Projection.CLOSING_BALANCE:
            return []
        return super().list_transactions(query, projection)


def test_branch_failure_aborts_the_operation(tmp_path) -> None:
    store = make_store(tmp_path, FailingCountStore)
    seed(store)
    queries = LedgerQueries(store, 5, timezone.utc)

    with pytest.raises(BranchFailed) as excinfo:
        asyncio.run(queries.list_with_closing_balances(parse_list_params()))
    assert excinfo.value.branch == "count"
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert excinfo.value.public_message == "internal server error"


def test_branch_timeout_aborts_the_operation(tmp_path) -> None:
    store = make_store(tmp_path, SlowLedgerStore)
    seed(store)
    queries = LedgerQueries(store, 0.05, timezone.utc)

    with pytest.raises(BranchTimeout) as excinfo:
        asyncio.run(queries.list_with_closing_balances(parse_list_params()))
    assert excinfo.value.branch == "ledger"


def test_missing_balance_is_surfaced(tmp_path) -> None:
    store = make_store(tmp_path, ShortLedgerStore)
    seed(store)
    queries = LedgerQueries(store, 5, timezone.utc)

    with pytest.raises(MissingClosingBalance):
        asyncio.run(queries.list_with_closing_balances(parse_list_params()))


def test_domain_errors_pass_through_unwrapped(tmp_path) -> None:
    store = make_store(tmp_path)
    queries = LedgerQueries(store, 5, timezone.utc)

    def lookup():
        return store.get_transaction(404)

    with pytest.raises(TransactionNotFound):
        asyncio.run(queries.run_concurrently(lookup=lookup, count=store.list_accounts))
