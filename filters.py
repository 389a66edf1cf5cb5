from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional, Union

from errors import (
    InvalidAmountBound,
    InvalidLimit,
    InvalidSkip,
    InvalidSortField,
    InvalidSortOrder,
    InvalidTagMatch,
    InvalidTimestamp,
)

DEFAULT_LIMIT = 100
MAX_LIMIT = 100
DEFAULT_SKIP = 0
MAX_SKIP = 2**63 - 1

# Every stored timestamp must map to a calendar month in any configured zone.
MIN_TIMESTAMP = int(datetime(1, 2, 1, tzinfo=timezone.utc).timestamp())
MAX_TIMESTAMP = int(datetime(9999, 11, 1, tzinfo=timezone.utc).timestamp())


class SortField(str, Enum):
    amount = "amount"
    timestamp = "timestamp"
    category = "category"


class SortOrder(str, Enum):
    asc = "asc"
    desc = "desc"


@dataclass(frozen=True)
class Range:
    field: Literal["amount", "timestamp"]
    low: Optional[float] = None
    high: Optional[float] = None


@dataclass(frozen=True)
class Equals:
    field: Literal["account_id", "category"]
    value: str


@dataclass(frozen=True)
class TagMembership:
    tags: tuple[str, ...]
    match_all: bool = False


@dataclass(frozen=True)
class FullText:
    text: str

    @property
    def terms(self) -> list[str]:
        return [term for term in self.text.split() if term]


Predicate = Union[Range, Equals, TagMembership, FullText]


@dataclass(frozen=True)
class TransactionFilter:
    predicates: tuple[Predicate, ...] = ()

    def and_(self, predicate: Predicate) -> "TransactionFilter":
        return TransactionFilter(self.predicates + (predicate,))

    @property
    def is_empty(self) -> bool:
        return not self.predicates


@dataclass(frozen=True)
class TransactionQuery:
    filter: TransactionFilter = field(default_factory=TransactionFilter)
    limit: Optional[int] = DEFAULT_LIMIT
    skip: int = DEFAULT_SKIP
    sort_field: SortField = SortField.timestamp
    sort_order: SortOrder = SortOrder.desc


def full_ledger_query(filter: Optional[TransactionFilter] = None) -> TransactionQuery:
    """Every matching transaction in canonical (timestamp, id) ascending order."""
    return TransactionQuery(
        filter=filter or TransactionFilter(),
        limit=None,
        skip=0,
        sort_field=SortField.timestamp,
        sort_order=SortOrder.asc,
    )


def _blank(value: Optional[str]) -> bool:
    return value is None or value.strip() == ""


def parse_amount_bound(value: Optional[str]) -> Optional[float]:
    if _blank(value):
        return None
    try:
        bound = float(value)
    except ValueError as exc:
        raise InvalidAmountBound() from exc
    if not math.isfinite(bound):
        raise InvalidAmountBound()
    return bound


def check_timestamp(value: int) -> int:
    if value < MIN_TIMESTAMP or value > MAX_TIMESTAMP:
        raise InvalidTimestamp()
    return value


def parse_timestamp(value: Optional[str], *, default: Optional[int] = None) -> Optional[int]:
    if _blank(value):
        return default
    try:
        parsed = int(value)
    except ValueError as exc:
        raise InvalidTimestamp() from exc
    return check_timestamp(parsed)


def parse_limit_skip(limit: Optional[str], skip: Optional[str]) -> tuple[int, int]:
    parsed_limit = DEFAULT_LIMIT
    if not _blank(limit):
        try:
            parsed_limit = int(limit)
        except ValueError as exc:
            raise InvalidLimit(
                f"limit should be a positive int and at most {MAX_LIMIT}"
            ) from exc
        if parsed_limit < 1 or parsed_limit > MAX_LIMIT:
            raise InvalidLimit(f"limit should be a positive int and at most {MAX_LIMIT}")

    parsed_skip = DEFAULT_SKIP
    if not _blank(skip):
        try:
            parsed_skip = int(skip)
        except ValueError as exc:
            raise InvalidSkip() from exc
        if parsed_skip < 0 or parsed_skip > MAX_SKIP:
            raise InvalidSkip()
    return parsed_limit, parsed_skip


def parse_sort(
    sort_field: Optional[str], sort_order: Optional[str]
) -> tuple[SortField, SortOrder]:
    parsed_field = SortField.timestamp
    if not _blank(sort_field):
        try:
            parsed_field = SortField(sort_field.strip().lower())
        except ValueError as exc:
            allowed = ", ".join(member.value for member in SortField)
            raise InvalidSortField(f"sort_field should be one of: {allowed}") from exc

    parsed_order = SortOrder.desc
    if not _blank(sort_order):
        try:
            parsed_order = SortOrder(sort_order.strip().lower())
        except ValueError as exc:
            raise InvalidSortOrder() from exc
    return parsed_field, parsed_order


def parse_list_params(
    *,
    start_amount: Optional[str] = None,
    end_amount: Optional[str] = None,
    start_time: Optional[str] = None,
    end_time: Optional[str] = None,
    account_id: Optional[str] = None,
    category: Optional[str] = None,
    notes_hint: Optional[str] = None,
    tags: Optional[list[str]] = None,
    tags_match: Optional[str] = None,
    limit: Optional[str] = None,
    skip: Optional[str] = None,
    sort_field: Optional[str] = None,
    sort_order: Optional[str] = None,
) -> TransactionQuery:
    filter = TransactionFilter()

    low_amount = parse_amount_bound(start_amount)
    high_amount = parse_amount_bound(end_amount)
    if low_amount is not None or high_amount is not None:
        filter = filter.and_(Range("amount", low_amount, high_amount))

    low_time = parse_timestamp(start_time)
    high_time = parse_timestamp(end_time)
    if low_time is not None or high_time is not None:
        filter = filter.and_(Range("timestamp", low_time, high_time))

    if not _blank(account_id):
        filter = filter.and_(Equals("account_id", account_id.strip()))

    if not _blank(category):
        filter = filter.and_(Equals("category", category.strip().lower()))

    clean_tags = tuple(
        dict.fromkeys(tag.strip().lower() for tag in (tags or []) if tag.strip())
    )
    if clean_tags:
        match = (tags_match or "any").strip().lower()
        if match not in ("all", "any"):
            raise InvalidTagMatch()
        filter = filter.and_(TagMembership(clean_tags, match_all=match == "all"))

    if not _blank(notes_hint):
        filter = filter.and_(FullText(notes_hint.strip()))

    parsed_limit, parsed_skip = parse_limit_skip(limit, skip)
    parsed_field, parsed_order = parse_sort(sort_field, sort_order)
    return TransactionQuery(
        filter=filter,
        limit=parsed_limit,
        skip=parsed_skip,
        sort_field=parsed_field,
        sort_order=parsed_order,
    )


def now_epoch() -> int:
    return int(time.time())
