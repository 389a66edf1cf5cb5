import pytest

from config import Settings
from database import build_engine, build_session_factory
from errors import AccountAlreadyExists, AccountNotFound, TransactionNotFound
from filters import (
    Equals,
    FullText,
    Range,
    SortField,
    SortOrder,
    TagMembership,
    TransactionFilter,
    TransactionQuery,
    full_ledger_query,
)
from store import LedgerStore, Projection, init_schema


def make_store(tmp_path) -> LedgerStore:
    engine = build_engine(
        Settings(
            database_url=f"sqlite:///{tmp_path / 'ledger.db'}",
            timezone="UTC",
            operation_timeout_secs=5,
        )
    )
    init_schema(engine)
    return LedgerStore(build_session_factory(engine))


def seed(store: LedgerStore) -> dict[str, int]:
    store.insert_account("checking", "Checking")
    store.insert_account("cash", "Cash")
    ids = {}
    ids["salary"] = store.insert_transaction(
        account_id="checking",
        amount=1000.0,
        timestamp=100,
        category="earnings",
        notes="March salary",
        tags=["Work"],
    )
    ids["rent"] = store.insert_transaction(
        account_id="checking",
        amount=-400.0,
        timestamp=200,
        category="essentials",
        notes="Rent for flat",
        tags=["home", "Monthly"],
    )
    ids["coffee"] = store.insert_transaction(
        account_id="cash",
        amount=-4.5,
        timestamp=200,
        category="luxury",
        notes="Coffee beans 100%",
        tags=["monthly"],
    )
    return ids


def _ids(rows) -> list[int]:
    return [row.id for row in rows]


def test_list_sorts_with_id_as_secondary_key(tmp_path) -> None:
    store = make_store(tmp_path)
    ids = seed(store)

    ascending = store.list_transactions(full_ledger_query())
    assert _ids(ascending) == [ids["salary"], ids["rent"], ids["coffee"]]

    descending = store.list_transactions(TransactionQuery())
    assert _ids(descending) == [ids["coffee"], ids["rent"], ids["salary"]]

    by_amount = store.list_transactions(
        TransactionQuery(sort_field=SortField.amount, sort_order=SortOrder.asc)
    )
    assert _ids(by_amount) == [ids["rent"], ids["coffee"], ids["salary"]]


def test_limit_skip_and_count(tmp_path) -> None:
    store = make_store(tmp_path)
    ids = seed(store)

    page = store.list_transactions(TransactionQuery(limit=1, skip=1))
    assert _ids(page) == [ids["rent"]]
    assert store.count_transactions(TransactionFilter()) == 3


def test_projection_returns_only_requested_columns(tmp_path) -> None:
    store = make_store(tmp_path)
    seed(store)

    rows = store.list_transactions(full_ledger_query(), Projection.TIME_SERIES)
    assert [tuple(row) for row in rows] == [(1000.0, 100), (-400.0, 200), (-4.5, 200)]
    assert rows[0]._fields == ("amount", "timestamp")


@pytest.mark.parametrize(
    "predicate, expected",
    [
        (Range("amount", None, 0), ["rent", "coffee"]),
        (Range("amount", -10, 2000), ["salary", "coffee"]),
        (Range("timestamp", 150, None), ["rent", "coffee"]),
        (Equals("account_id", "cash"), ["coffee"]),
        (Equals("category", "essentials"), ["rent"]),
        (TagMembership(("monthly",)), ["rent", "coffee"]),
        (TagMembership(("home", "work")), ["salary", "rent"]),
        (TagMembership(("home", "monthly"), match_all=True), ["rent"]),
        (FullText("SALARY"), ["salary"]),
        (FullText("flat beans"), ["rent", "coffee"]),
        (FullText("100%"), ["coffee"]),
    ],
)
def test_filter_predicates(tmp_path, predicate, expected) -> None:
    store = make_store(tmp_path)
    ids = seed(store)
    query = full_ledger_query(TransactionFilter((predicate,)))

    assert _ids(store.list_transactions(query)) == [ids[name] for name in expected]
    assert store.count_transactions(query.filter) == len(expected)


def test_tags_are_deduplicated_case_insensitive(tmp_path) -> None:
    store = make_store(tmp_path)
    store.insert_account("checking", "Checking")
    txn_id = store.insert_transaction(
        account_id="checking",
        amount=-1.0,
        timestamp=1,
        category="luxury",
        tags=["Dining", "dining", " DINING "],
    )
    assert store.get_transaction(txn_id).tag_names == ["Dining"]


def test_update_and_delete_signal_not_found(tmp_path) -> None:
    store = make_store(tmp_path)
    ids = seed(store)

    store.update_transaction(ids["rent"], {"amount": -450.0, "tags": ["home"]})
    rent = store.get_transaction(ids["rent"])
    assert rent.amount == -450.0
    assert rent.tag_names == ["home"]

    store.delete_transaction(ids["rent"])
    with pytest.raises(TransactionNotFound):
        store.get_transaction(ids["rent"])
    with pytest.raises(TransactionNotFound):
        store.update_transaction(ids["rent"], {"notes": "gone"})
    with pytest.raises(TransactionNotFound):
        store.delete_transaction(ids["rent"])


def test_account_operations(tmp_path) -> None:
    store = make_store(tmp_path)
    seed(store)

    with pytest.raises(AccountAlreadyExists):
        store.insert_account("cash", "Another")
    assert store.account_exists("cash")
    assert not store.account_exists("savings")
    assert store.account_in_use("cash")

    store.insert_account("spare", "Spare")
    assert not store.account_in_use("spare")
    store.update_account("spare", "Spare Pot")
    assert [a.name for a in store.list_accounts()] == ["Cash", "Checking", "Spare Pot"]

    assert store.account_balances() == {"checking": 600.0, "cash": -4.5}

    store.delete_account("spare")
    with pytest.raises(AccountNotFound):
        store.delete_account("spare")
    with pytest.raises(AccountNotFound):
        store.update_account("spare", "x")
