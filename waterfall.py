import math

from errors import InvalidAmount, InvalidCategory

ESSENTIALS = "essentials"
INVESTMENTS = "investments"
SAVINGS = "savings"
LUXURY = "luxury"

EARNINGS = "earnings"
REFUNDS = "refunds"
RETURNS = "returns"
PETTY = "petty"

# Legal for both signs; expected to net to zero (e.g. transfers between accounts).
IGNORABLE = "ignorable"

DEBIT_CATEGORIES = frozenset({ESSENTIALS, INVESTMENTS, SAVINGS, LUXURY, IGNORABLE})
CREDIT_CATEGORIES = frozenset({EARNINGS, REFUNDS, RETURNS, PETTY, IGNORABLE})

# Share of total income each budget bucket is expected to receive.
EXPECTED_ALLOCATION: dict[str, float] = {
    ESSENTIALS: 0.4,
    INVESTMENTS: 0.2,
    SAVINGS: 0.2,
    LUXURY: 0.2,
    IGNORABLE: 0.0,
}

if not math.isclose(math.fsum(EXPECTED_ALLOCATION.values()), 1.0):
    raise RuntimeError("Expected allocations must sum to 1.0")


def normalize(category: str) -> str:
    return category.strip().lower()


def legal_categories(amount: float) -> frozenset[str]:
    if amount > 0:
        return CREDIT_CATEGORIES
    return DEBIT_CATEGORIES


def validate(category: str, amount: float) -> bool:
    return normalize(category) in legal_categories(amount)


def compatible(category: str, amount: float) -> bool:
    """Whether an existing category may stay on a transaction whose amount changes."""
    clean = normalize(category)
    if amount > 0:
        return clean in CREDIT_CATEGORIES
    if amount < 0:
        return clean in DEBIT_CATEGORIES
    return False


def check_amount(amount: float) -> float:
    if amount == 0 or not math.isfinite(amount):
        raise InvalidAmount()
    return amount


def check_category(category: str, amount: float) -> str:
    if not validate(category, amount):
        raise InvalidCategory(
            "allowed categories for debits: "
            f"{', '.join(sorted(DEBIT_CATEGORIES))}, and for credits: "
            f"{', '.join(sorted(CREDIT_CATEGORIES))}"
        )
    return normalize(category)
