"""SQLAlchemy-backed transaction store.

Each call opens its own short-lived session so that concurrent query branches
never share one. Typed filters from ``filters`` are translated into SQL clauses
here and nowhere else.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Iterable, Optional

from sqlalchemy import and_, func, or_, select, text, true
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from database import Base, session_scope
from errors import AccountAlreadyExists, AccountNotFound, TransactionNotFound
from filters import (
    Equals,
    FullText,
    Predicate,
    Range,
    SortOrder,
    TagMembership,
    TransactionFilter,
    TransactionQuery,
)
from models import Account, Tag, Transaction

logger = logging.getLogger(__name__)


class Projection(Enum):
    FULL = ()
    CLOSING_BALANCE = ("id", "amount", "account_id", "timestamp")
    TIME_SERIES = ("amount", "timestamp")
    BUDGET = ("amount", "category")


_RANGE_COLUMNS = {
    "amount": Transaction.amount,
    "timestamp": Transaction.timestamp,
}

_EQUALS_COLUMNS = {
    "account_id": Transaction.account_id,
    "category": Transaction.category,
}

_SORT_COLUMNS = {
    "amount": Transaction.amount,
    "timestamp": Transaction.timestamp,
    "category": Transaction.category,
}


def _predicate_clause(predicate: Predicate):
    if isinstance(predicate, Range):
        column = _RANGE_COLUMNS[predicate.field]
        bounds = []
        if predicate.low is not None:
            bounds.append(column >= predicate.low)
        if predicate.high is not None:
            bounds.append(column <= predicate.high)
        return and_(*bounds) if bounds else true()
    if isinstance(predicate, Equals):
        return _EQUALS_COLUMNS[predicate.field] == predicate.value
    if isinstance(predicate, TagMembership):
        if predicate.match_all:
            return and_(
                *[
                    Transaction.tags.any(func.lower(Tag.name) == tag)
                    for tag in predicate.tags
                ]
            )
        return Transaction.tags.any(func.lower(Tag.name).in_(predicate.tags))
    if isinstance(predicate, FullText):
        return or_(
            *[
                Transaction.notes.icontains(term, autoescape=True)
                for term in predicate.terms
            ]
        )
    raise TypeError(f"Unsupported predicate: {predicate!r}")


def filter_clauses(filter: TransactionFilter) -> list:
    return [_predicate_clause(predicate) for predicate in filter.predicates]


def init_schema(engine: Engine) -> None:
    Base.metadata.create_all(engine)
    logger.info("store_schema: ready")


class LedgerStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def ping(self) -> None:
        with self.session_factory() as session:
            session.execute(text("SELECT 1"))

    # Transactions

    def list_transactions(
        self,
        query: TransactionQuery,
        projection: Projection = Projection.FULL,
    ) -> list[Any]:
        column = _SORT_COLUMNS[query.sort_field.value]
        if query.sort_order == SortOrder.asc:
            ordering = (column.asc(), Transaction.id.asc())
        else:
            ordering = (column.desc(), Transaction.id.desc())

        if projection is Projection.FULL:
            stmt = select(Transaction).options(selectinload(Transaction.tags))
        else:
            stmt = select(*[getattr(Transaction, name) for name in projection.value])
        stmt = stmt.where(*filter_clauses(query.filter)).order_by(*ordering)
        if query.skip:
            stmt = stmt.offset(query.skip)
        if query.limit is not None:
            stmt = stmt.limit(query.limit)

        with self.session_factory() as session:
            if projection is Projection.FULL:
                return list(session.scalars(stmt).all())
            return list(session.execute(stmt).all())

    def count_transactions(self, filter: TransactionFilter) -> int:
        stmt = select(func.count(Transaction.id)).where(*filter_clauses(filter))
        with self.session_factory() as session:
            return int(session.execute(stmt).scalar_one() or 0)

    def get_transaction(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(selectinload(Transaction.tags))
            .where(Transaction.id == transaction_id)
        )
        with self.session_factory() as session:
            txn = session.scalar(stmt)
        if not txn:
            raise TransactionNotFound()
        return txn

    def insert_transaction(
        self,
        *,
        account_id: str,
        amount: float,
        timestamp: int,
        category: str,
        notes: str = "",
        tags: Iterable[str] = (),
    ) -> int:
        with session_scope(self.session_factory) as session:
            txn = Transaction(
                account_id=account_id,
                amount=amount,
                timestamp=timestamp,
                category=category,
                notes=notes,
            )
            txn.tags = _resolve_tags(session, tags)
            session.add(txn)
            session.flush()
            return txn.id

    def update_transaction(self, transaction_id: int, updates: dict[str, Any]) -> None:
        with session_scope(self.session_factory) as session:
            txn = session.get(Transaction, transaction_id)
            if not txn:
                raise TransactionNotFound()
            for key, value in updates.items():
                if key == "tags":
                    txn.tags = _resolve_tags(session, value)
                else:
                    setattr(txn, key, value)

    def delete_transaction(self, transaction_id: int) -> None:
        with session_scope(self.session_factory) as session:
            txn = session.get(Transaction, transaction_id)
            if not txn:
                raise TransactionNotFound()
            session.delete(txn)

    # Accounts

    def account_exists(self, account_id: str) -> bool:
        with self.session_factory() as session:
            return session.get(Account, account_id) is not None

    def account_in_use(self, account_id: str) -> bool:
        stmt = select(Transaction.id).where(Transaction.account_id == account_id).limit(1)
        with self.session_factory() as session:
            return session.scalar(stmt) is not None

    def insert_account(self, account_id: str, name: str) -> Account:
        try:
            with session_scope(self.session_factory) as session:
                if session.get(Account, account_id) is not None:
                    raise AccountAlreadyExists()
                account = Account(id=account_id, name=name)
                session.add(account)
        except IntegrityError as exc:
            raise AccountAlreadyExists() from exc
        return account

    def update_account(self, account_id: str, name: str) -> None:
        with session_scope(self.session_factory) as session:
            account = session.get(Account, account_id)
            if not account:
                raise AccountNotFound()
            account.name = name

    def delete_account(self, account_id: str) -> None:
        with session_scope(self.session_factory) as session:
            account = session.get(Account, account_id)
            if not account:
                raise AccountNotFound()
            session.delete(account)

    def list_accounts(self) -> list[Account]:
        with self.session_factory() as session:
            return list(session.scalars(select(Account).order_by(Account.id)).all())

    def account_balances(self) -> dict[str, float]:
        stmt = select(Transaction.account_id, func.sum(Transaction.amount)).group_by(
            Transaction.account_id
        )
        with self.session_factory() as session:
            return {account_id: float(total or 0) for account_id, total in session.execute(stmt)}


def _resolve_tags(session: Session, names: Iterable[str]) -> list[Tag]:
    tags: list[Tag] = []
    seen: set[str] = set()
    for name in names:
        clean_name = name.strip()
        if not clean_name or clean_name.lower() in seen:
            continue
        seen.add(clean_name.lower())
        existing: Optional[Tag] = session.scalar(
            select(Tag).where(func.lower(Tag.name) == clean_name.lower())
        )
        if existing is None:
            existing = Tag(name=clean_name)
            session.add(existing)
            session.flush()
        tags.append(existing)
    return tags
