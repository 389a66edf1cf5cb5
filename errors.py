from typing import Optional


class LedgerError(Exception):
    status_code = 500
    code = "INTERNAL_SERVER_ERROR"
    reason: Optional[str] = None
    default_message = "internal error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def public_message(self) -> str:
        return self.message


class ValidationError(LedgerError, ValueError):
    status_code = 400
    code = "BAD_REQUEST"
    reason = "INVALID_INPUT"
    default_message = "invalid input"


class InvalidAmount(ValidationError):
    reason = "INVALID_AMOUNT"
    default_message = "amount should be a non-zero finite number"


class InvalidCategory(ValidationError):
    reason = "INVALID_CATEGORY"
    default_message = "category is not allowed for the amount's sign"


class AmountCategoryMismatch(ValidationError):
    reason = "AMOUNT_CATEGORY_MISMATCH"
    default_message = "amount not compatible with current category"


class InvalidAccountId(ValidationError):
    reason = "INVALID_ACCOUNT_ID"
    default_message = "account id should satisfy regex: ^[A-Za-z0-9_-]+$"


class InvalidAccountName(ValidationError):
    reason = "INVALID_ACCOUNT_NAME"
    default_message = "account name should satisfy regex: ^[A-Za-z0-9_\\- ]+$"


class InvalidTimestamp(ValidationError):
    reason = "INVALID_TIMESTAMP"
    default_message = "timestamp must be valid epoch seconds"


class InvalidAmountBound(ValidationError):
    reason = "INVALID_AMOUNT_BOUND"
    default_message = "start_amount and end_amount should be finite floats"


class InvalidLimit(ValidationError):
    reason = "INVALID_LIMIT"


class InvalidSkip(ValidationError):
    reason = "INVALID_SKIP"
    default_message = "skip should be a non-negative int"


class InvalidSortField(ValidationError):
    reason = "INVALID_SORT_FIELD"


class InvalidSortOrder(ValidationError):
    reason = "INVALID_SORT_ORDER"
    default_message = "sort_order should be one of: asc, desc"


class InvalidTagMatch(ValidationError):
    reason = "INVALID_TAG_MATCH"
    default_message = "tags_match should be one of: all, any"


class EmptyUpdate(ValidationError):
    reason = "EMPTY_UPDATE"
    default_message = "no updates provided"


class NotFoundError(LedgerError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "not found"


class AccountNotFound(NotFoundError):
    code = "ACCOUNT_NOT_FOUND"
    default_message = "account not found"


class TransactionNotFound(NotFoundError):
    code = "TRANSACTION_NOT_FOUND"
    default_message = "transaction not found"


class ConflictError(LedgerError):
    status_code = 409
    code = "CONFLICT"
    default_message = "conflict"


class AccountAlreadyExists(ConflictError):
    code = "ACCOUNT_ALREADY_EXISTS"
    default_message = "account already exists"


class AccountIsInUse(ConflictError):
    code = "ACCOUNT_IS_IN_USE"
    default_message = "account is referenced by transactions"


class Unauthorized(LedgerError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "invalid credentials"


class InternalComputationError(LedgerError):
    """A defect signal; the detail is logged, never sent to the caller."""

    @property
    def public_message(self) -> str:
        return "internal server error"


class MissingClosingBalance(InternalComputationError):
    def __init__(self, transaction_id: object) -> None:
        super().__init__(f"closing balance not found for transaction {transaction_id}")
        self.transaction_id = transaction_id


class BranchFailed(InternalComputationError):
    def __init__(self, branch: str) -> None:
        super().__init__(f"query branch failed: {branch}")
        self.branch = branch


class BranchTimeout(InternalComputationError):
    def __init__(self, branch: str, timeout: float) -> None:
        super().__init__(f"query branch timed out after {timeout}s: {branch}")
        self.branch = branch
        self.timeout = timeout
