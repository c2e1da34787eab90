"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger (the HTTP layer, import tooling, reporting jobs) must
tell "fix your input" apart from "try again" without parsing message strings.
Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE attribute (machine-readable, API-safe)
  3. A CATEGORY attribute: "input" or "retry"
  4. Structured DATA attributes (not just a message string)

Example - WRONG way to handle errors:
    try:
        engine.record_transaction(...)
    except Exception as e:
        if "not balanced" in str(e):  # FRAGILE - message might change
            ...

Example - RIGHT way:
    try:
        engine.record_transaction(...)
    except UnbalancedEntryError as e:
        api_response(code=e.code, debits=e.debits, credits=e.credits)
    except LedgerKernelError as e:
        if e.category == RETRY:
            schedule_retry()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- PostingError
    |   +-- MalformedTransactionError
    |   +-- UnbalancedEntryError
    |   +-- UnknownOrInactiveAccountError
    |
    +-- ReferenceExhaustedError
    +-- StorageUnavailableError
    |
    +-- AccountError
    |   +-- AccountNotFoundError
    |   +-- InvalidAccountCodeError
    |   +-- AccountTypeMismatchError
    |   +-- AccountCodeExistsError
    |   +-- AccountHierarchyError
    |   +-- AccountReferencedError
    |   +-- AccountHasChildrenError
    |
    +-- TransactionError
        +-- TransactionNotFoundError
        +-- TransactionAlreadyReversedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category | Code                          | When Raised
---------|-------------------------------|--------------------------------------
input    | MALFORMED_TRANSACTION         | < 2 lines, bad amounts, blank text
input    | UNBALANCED_ENTRY              | Debits != Credits
input    | UNKNOWN_OR_INACTIVE_ACCOUNT   | Line targets missing/inactive account
retry    | REFERENCE_EXHAUSTED           | Reference allocation kept colliding
retry    | STORAGE_UNAVAILABLE           | Timeout / lost connection / lock wait
input    | ACCOUNT_NOT_FOUND             | Account ID doesn't exist
input    | INVALID_ACCOUNT_CODE          | Code is not 1xx(x)-5xx(x)
input    | ACCOUNT_TYPE_MISMATCH         | Stored type disagrees with code
input    | ACCOUNT_CODE_EXISTS           | Duplicate account code
input    | ACCOUNT_HIERARCHY_INVALID     | Parent missing / prefix / type rule
input    | ACCOUNT_REFERENCED            | Delete of an account with entries
input    | ACCOUNT_HAS_CHILDREN          | Delete of an account with children
input    | TRANSACTION_NOT_FOUND         | Transaction ID doesn't exist
input    | TRANSACTION_ALREADY_REVERSED  | Second reversal of one transaction

===============================================================================
"""

INPUT = "input"
RETRY = "retry"


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification and a `category` telling the caller whether the
    request itself is wrong or the same request may succeed later.
    """

    code: str = "LEDGER_KERNEL_ERROR"
    category: str = INPUT

    @property
    def is_retryable(self) -> bool:
        return self.category == RETRY


# Posting-related exceptions


class PostingError(LedgerKernelError):
    """Base exception for transaction recording errors."""

    code: str = "POSTING_ERROR"


class MalformedTransactionError(PostingError):
    """Transaction request is structurally invalid."""

    code: str = "MALFORMED_TRANSACTION"

    def __init__(self, reason: str, line_index: int | None = None):
        self.reason = reason
        self.line_index = line_index
        if line_index is None:
            super().__init__(f"Malformed transaction: {reason}")
        else:
            super().__init__(f"Malformed transaction (line {line_index}): {reason}")


class UnbalancedEntryError(PostingError):
    """Transaction debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: str, credits: str):
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Unbalanced transaction: debits={debits}, credits={credits}"
        )


class UnknownOrInactiveAccountError(PostingError):
    """A line references an account that does not exist or is inactive.

    ``account_id`` is the first offending id in line order; ``account_ids``
    lists every offending id so import tooling can report them in one pass.
    """

    code: str = "UNKNOWN_OR_INACTIVE_ACCOUNT"

    def __init__(self, account_id: str, account_ids: list[str] | None = None):
        self.account_id = account_id
        self.account_ids = account_ids or [account_id]
        super().__init__(f"Account {account_id} not found or is inactive")


# Infrastructure exceptions


class ReferenceExhaustedError(LedgerKernelError):
    """Every reference candidate collided with an existing transaction."""

    code: str = "REFERENCE_EXHAUSTED"
    category: str = RETRY

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Failed to allocate a unique transaction reference after "
            f"{attempts} attempts"
        )


class StorageUnavailableError(LedgerKernelError):
    """The store timed out or dropped the connection; nothing was committed."""

    code: str = "STORAGE_UNAVAILABLE"
    category: str = RETRY

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage unavailable during {operation}: {detail}")


# Account-related exceptions


class AccountError(LedgerKernelError):
    """Base exception for chart-of-accounts errors."""

    code: str = "ACCOUNT_ERROR"


class AccountNotFoundError(AccountError):
    """Account was not found."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class InvalidAccountCodeError(AccountError):
    """Account code does not follow the 1xx(x)-5xx(x) format."""

    code: str = "INVALID_ACCOUNT_CODE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(
            f"Invalid account code format: {account_code}. "
            "Expected three or four digits starting with 1-5"
        )


class AccountTypeMismatchError(AccountError):
    """Account type does not agree with the type implied by its code."""

    code: str = "ACCOUNT_TYPE_MISMATCH"

    def __init__(self, account_code: str, account_type: str, expected_type: str):
        self.account_code = account_code
        self.account_type = account_type
        self.expected_type = expected_type
        super().__init__(
            f"Account type {account_type} does not match code {account_code}. "
            f"Expected: {expected_type}"
        )


class AccountCodeExistsError(AccountError):
    """Account code is already taken."""

    code: str = "ACCOUNT_CODE_EXISTS"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account code {account_code} already exists")


class AccountHierarchyError(AccountError):
    """Parent/child relationship violates the chart-of-accounts rules."""

    code: str = "ACCOUNT_HIERARCHY_INVALID"

    def __init__(self, account_code: str, reason: str):
        self.account_code = account_code
        self.reason = reason
        super().__init__(f"Invalid hierarchy for account {account_code}: {reason}")


class AccountReferencedError(AccountError):
    """Account cannot be deleted because journal entries reference it."""

    code: str = "ACCOUNT_REFERENCED"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(
            f"Account {account_id} cannot be deleted: referenced by journal "
            "entries. Deactivate it instead"
        )


class AccountHasChildrenError(AccountError):
    """Account cannot be deleted because other accounts hang below it."""

    code: str = "ACCOUNT_HAS_CHILDREN"

    def __init__(self, account_id: str, child_count: int):
        self.account_id = account_id
        self.child_count = child_count
        super().__init__(
            f"Account {account_id} cannot be deleted: it has "
            f"{child_count} child account(s)"
        )


# Transaction-related exceptions


class TransactionError(LedgerKernelError):
    """Base exception for errors about an existing transaction."""

    code: str = "TRANSACTION_ERROR"


class TransactionNotFoundError(TransactionError):
    """Transaction was not found."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


class TransactionAlreadyReversedError(TransactionError):
    """Transaction already has a reversal."""

    code: str = "TRANSACTION_ALREADY_REVERSED"

    def __init__(self, transaction_id: str, reversal_id: str):
        self.transaction_id = transaction_id
        self.reversal_id = reversal_id
        super().__init__(
            f"Transaction {transaction_id} was already reversed by {reversal_id}"
        )
