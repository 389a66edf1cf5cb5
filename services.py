from __future__ import annotations

import logging
import re
import time
from typing import Any

from errors import (
    AccountIsInUse,
    AccountNotFound,
    AmountCategoryMismatch,
    EmptyUpdate,
    InvalidAccountId,
    InvalidAccountName,
)
from filters import check_timestamp
from models import Account, Transaction
from schemas import AccountIn, TransactionIn, TransactionUpdateIn
from store import LedgerStore
from waterfall import check_amount, check_category, compatible

logger = logging.getLogger(__name__)

ACCOUNT_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
ACCOUNT_NAME_RE = re.compile(r"^[A-Za-z0-9_\- ]+$")


def check_account_id(account_id: str) -> str:
    if not ACCOUNT_ID_RE.fullmatch(account_id or ""):
        raise InvalidAccountId()
    return account_id


def check_account_name(name: str) -> str:
    if not ACCOUNT_NAME_RE.fullmatch(name or ""):
        raise InvalidAccountName()
    return name


class AccountService:
    def __init__(self, store: LedgerStore) -> None:
        self.store = store

    def create(self, data: AccountIn) -> Account:
        check_account_id(data.id)
        check_account_name(data.name)
        account = self.store.insert_account(data.id, data.name)
        logger.info(f"account_created: id={account.id}")
        return account

    def rename(self, account_id: str, name: str) -> None:
        check_account_id(account_id)
        check_account_name(name)
        self.store.update_account(account_id, name)

    def delete(self, account_id: str) -> None:
        check_account_id(account_id)
        if self.store.account_in_use(account_id):
            raise AccountIsInUse()
        self.store.delete_account(account_id)
        logger.info(f"account_deleted: id={account_id}")


class TransactionService:
    def __init__(self, store: LedgerStore) -> None:
        self.store = store

    def create(self, data: TransactionIn) -> int:
        amount = check_amount(data.amount)
        check_account_id(data.account_id)
        category = check_category(data.category, amount)
        if not self.store.account_exists(data.account_id):
            raise AccountNotFound()

        if data.timestamp is not None:
            timestamp = check_timestamp(data.timestamp)
        else:
            timestamp = int(time.time())
        transaction_id = self.store.insert_transaction(
            account_id=data.account_id,
            amount=amount,
            timestamp=timestamp,
            category=category,
            notes=data.notes,
            tags=data.tags,
        )
        logger.info(
            f"transaction_created: id={transaction_id} account_id={data.account_id}"
        )
        return transaction_id

    def get(self, transaction_id: int) -> Transaction:
        return self.store.get_transaction(transaction_id)

    def update(self, transaction_id: int, data: TransactionUpdateIn) -> None:
        # The current category and amount decide what the partial update may change.
        current = self.store.get_transaction(transaction_id)
        updates = prepare_update(data, current)
        if not updates:
            raise EmptyUpdate()

        new_account = updates.get("account_id")
        if new_account is not None and new_account != current.account_id:
            if not self.store.account_exists(new_account):
                raise AccountNotFound()

        self.store.update_transaction(transaction_id, updates)

    def delete(self, transaction_id: int) -> None:
        self.store.delete_transaction(transaction_id)
        logger.info(f"transaction_deleted: id={transaction_id}")


def prepare_update(data: TransactionUpdateIn, current: Transaction) -> dict[str, Any]:
    updates: dict[str, Any] = {}

    if data.amount is not None:
        check_amount(data.amount)
        if data.category is None and not compatible(current.category, data.amount):
            raise AmountCategoryMismatch()
        updates["amount"] = data.amount

    if data.timestamp is not None:
        updates["timestamp"] = check_timestamp(data.timestamp)

    if data.account_id is not None:
        updates["account_id"] = check_account_id(data.account_id)

    if data.category is not None:
        amount = data.amount if data.amount is not None else current.amount
        updates["category"] = check_category(data.category, amount)

    if data.notes is not None:
        updates["notes"] = data.notes

    if data.tags is not None:
        updates["tags"] = data.tags

    return updates
