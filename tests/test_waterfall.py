import math

import pytest

from errors import InvalidAmount, InvalidCategory
from waterfall import (
    CREDIT_CATEGORIES,
    DEBIT_CATEGORIES,
    EXPECTED_ALLOCATION,
    IGNORABLE,
    check_amount,
    check_category,
    compatible,
    legal_categories,
    validate,
)


def test_expected_allocations_sum_to_one() -> None:
    assert math.fsum(EXPECTED_ALLOCATION.values()) == 1.0
    assert set(EXPECTED_ALLOCATION) == {
        "essentials",
        "investments",
        "savings",
        "luxury",
        "ignorable",
    }


def test_legal_categories_follow_sign() -> None:
    assert legal_categories(10.0) == CREDIT_CATEGORIES
    assert legal_categories(-10.0) == DEBIT_CATEGORIES
    assert CREDIT_CATEGORIES & DEBIT_CATEGORIES == {IGNORABLE}


def test_validate_is_case_insensitive() -> None:
    assert validate("Essentials", -5)
    assert validate("EARNINGS", 5)
    assert validate(" ignorable ", 5)
    assert validate("ignorable", -5)


def test_validate_rejects_wrong_sign_and_unknown() -> None:
    assert not validate("earnings", -5)
    assert not validate("luxury", 5)
    assert not validate("groceries", -5)


def test_zero_amount_is_always_invalid() -> None:
    with pytest.raises(InvalidAmount):
        check_amount(0)
    with pytest.raises(InvalidAmount):
        check_amount(-0.0)
    assert not compatible("ignorable", 0)


def test_non_finite_amounts_are_invalid() -> None:
    for amount in (float("inf"), float("-inf"), float("nan")):
        with pytest.raises(InvalidAmount):
            check_amount(amount)


def test_check_category_normalizes_to_lower_case() -> None:
    assert check_category("LuXuRy", -20) == "luxury"
    with pytest.raises(InvalidCategory):
        check_category("refunds", -20)
