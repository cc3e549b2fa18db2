"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the kernel (HTTP handlers, schedulers, scripts) must map every
failure to a transport-level response without parsing message strings.
Every error therefore:
  1. Has its own exception CLASS (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)
  4. Declares whether it is RETRYABLE (same request may succeed later)

Example - WRONG way to handle errors:
    try:
        coordinator.run(...)
    except Exception as e:
        if "closed" in str(e):  # FRAGILE - message might change
            ...

Example - RIGHT way:
    try:
        coordinator.run(...)
    except ClosedPeriodError as e:
        api_response(code=e.code, period=e.period_name)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ValidationError
    |   +-- UnbalancedJournalError
    |   +-- InvalidJournalLineError
    |   +-- AccountNotFoundError
    |   +-- AccountRoleNotConfiguredError
    |   +-- InvalidQuantityError
    |   +-- ReferenceNotFoundError
    |
    +-- PeriodError
    |   +-- NoPeriodError
    |   +-- ClosedPeriodError
    |   +-- SoftClosedError
    |   +-- PeriodNotFoundError
    |   +-- PeriodOverlapError
    |   +-- PeriodCloseOrderError
    |   +-- PeriodStatusError
    |   +-- FiscalYearAlreadyClosedError
    |
    +-- JournalError
    |   +-- JournalNotFoundError
    |   +-- JournalNotActiveError
    |
    +-- InventoryError
    |   +-- InsufficientInventoryError
    |   +-- NegativeInventoryError
    |   +-- MovementNotFoundError
    |   +-- MovementAlreadyReversedError
    |   +-- LayerAlreadyConsumedError
    |   +-- ShortfallAlreadySettledError
    |
    +-- IdempotencyError
    |   +-- DuplicateIdempotencyKeyError   (advisory, resolved by the coordinator)
    |   +-- IdempotencyInProgressError     (retryable)
    |   +-- IdempotencyKeyReuseError
    |
    +-- TransactionTimeoutError            (retryable)
    |
    +-- DocumentError
    |   +-- DocumentNotFoundError
    |   +-- DocumentAlreadyVoidedError
    |   +-- DocumentHasDependentsError
    |   +-- UnsupportedDocumentTypeError
    |
    +-- ReconciliationError
    |   +-- VarianceNotFoundError
    |   +-- VarianceAlreadyResolvedError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Validation      | UNBALANCED_JOURNAL            | |debits - credits| >= epsilon
                | INVALID_JOURNAL_LINE          | Negative / two-sided / empty line
                | ACCOUNT_NOT_FOUND             | Account missing in the organization
                | ACCOUNT_ROLE_NOT_CONFIGURED   | No account for inventory/COGS/... role
                | INVALID_QUANTITY              | Zero or negative quantity / cost
                | REFERENCE_NOT_FOUND           | Item / warehouse / party missing
----------------|-------------------------------|---------------------------------------
Period          | NO_PERIOD                     | No period covers the posting date
                | CLOSED_PERIOD                 | Non-reversal posting to closed period
                | SOFT_CLOSED_PERIOD            | Non-reversal posting to soft-closed
                | PERIOD_NOT_FOUND              | Period id does not exist
                | PERIOD_OVERLAP                | Date range conflicts with another
                | PERIOD_CLOSE_ORDER            | Earlier periods still open
                | PERIOD_STATUS                 | Transition not allowed from status
                | FISCAL_YEAR_CLOSED            | Year-end close already recorded
----------------|-------------------------------|---------------------------------------
Journal         | JOURNAL_NOT_FOUND             | Journal id does not exist
                | JOURNAL_NOT_ACTIVE            | Reversing a reversed/voided journal
----------------|-------------------------------|---------------------------------------
Inventory       | INSUFFICIENT_INVENTORY        | available < requested, no override
                | NEGATIVE_INVENTORY            | On-hand below zero after unit of work
                | MOVEMENT_NOT_FOUND            | Movement id does not exist
                | MOVEMENT_ALREADY_REVERSED     | Movement already reversed
                | LAYER_ALREADY_CONSUMED        | Inbound reversal of a consumed layer
                | SHORTFALL_ALREADY_SETTLED     | Reversing an issue later receipts covered
----------------|-------------------------------|---------------------------------------
Idempotency     | DUPLICATE_IDEMPOTENCY_KEY     | Completed record exists (cached)
                | IDEMPOTENCY_IN_PROGRESS       | Pending record exists (retry later)
                | IDEMPOTENCY_KEY_REUSE         | Same key, different request payload
----------------|-------------------------------|---------------------------------------
Transaction     | TRANSACTION_TIMEOUT           | Unit of work exceeded its deadline
----------------|-------------------------------|---------------------------------------
Document        | DOCUMENT_NOT_FOUND            | Document id does not exist
                | DOCUMENT_ALREADY_VOIDED       | Voiding twice
                | DOCUMENT_HAS_DEPENDENTS       | e.g. invoice with payments
                | UNSUPPORTED_DOCUMENT_TYPE     | Unknown doc_type for voiding
----------------|-------------------------------|---------------------------------------
Reconciliation  | VARIANCE_NOT_FOUND            | Variance id does not exist
                | VARIANCE_ALREADY_RESOLVED     | Resolving twice
----------------|-------------------------------|---------------------------------------
Immutability    | IMMUTABILITY_VIOLATION        | Mutating append-only financial rows

===============================================================================
HANDLING PATTERNS
===============================================================================

1. FATAL vs RETRYABLE vs ADVISORY:

    except LedgerKernelError as e:
        if e.retryable:
            schedule_retry()          # IdempotencyInProgressError, timeout
        else:
            return error_response(e.code)

2. IDEMPOTENT REPLAY IS SUCCESS:

    DuplicateIdempotencyKeyError never reaches callers of
    TransactionCoordinator.run(); the cached result is returned with
    ``replayed=True`` instead.

3. VARIANCES ARE NOT EXCEPTIONS:

    Reconciliation mismatches are persisted as Variance rows for human
    review.  Only failures to *run* a check are logged as errors.
"""

from decimal import Decimal
from typing import Any


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification and a ``retryable`` flag.
    """

    code: str = "LEDGER_KERNEL_ERROR"
    retryable: bool = False


# Validation exceptions


class ValidationError(LedgerKernelError):
    """Base exception for input validation failures."""

    code: str = "VALIDATION_ERROR"


class UnbalancedJournalError(ValidationError):
    """Journal debits and credits differ by at least the balance epsilon."""

    code: str = "UNBALANCED_JOURNAL"

    def __init__(
        self,
        debits: Decimal,
        credits: Decimal,
        journal_id: str | None = None,
    ):
        self.debits = debits
        self.credits = credits
        self.difference = abs(debits - credits)
        self.journal_id = journal_id
        target = f" for journal {journal_id}" if journal_id else ""
        super().__init__(
            f"Journal{target} is unbalanced: debits={debits}, credits={credits}, "
            f"difference={self.difference}"
        )


class InvalidJournalLineError(ValidationError):
    """A journal line violates the per-line posting rules."""

    code: str = "INVALID_JOURNAL_LINE"

    def __init__(self, line_number: int | None, reason: str):
        self.line_number = line_number
        self.reason = reason
        where = f"Line {line_number}: " if line_number is not None else ""
        super().__init__(f"{where}{reason}")


class AccountNotFoundError(ValidationError):
    """Account does not exist in the organization."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class AccountRoleNotConfiguredError(ValidationError):
    """No account is configured for an accounting role (inventory, COGS, ...)."""

    code: str = "ACCOUNT_ROLE_NOT_CONFIGURED"

    def __init__(self, organization_id: str, role: str, account_code: str):
        self.organization_id = organization_id
        self.role = role
        self.account_code = account_code
        super().__init__(
            f"No '{role}' account (code {account_code}) configured "
            f"for organization {organization_id}"
        )


class InvalidQuantityError(ValidationError):
    """Quantity or unit cost is outside its allowed range."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = value
        super().__init__(f"Invalid {field}: {value}")


class ReferenceNotFoundError(ValidationError):
    """A master-data reference (item, warehouse, customer, vendor) is missing."""

    code: str = "REFERENCE_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


# Period exceptions


class PeriodError(LedgerKernelError):
    """Base exception for posting-period errors."""

    code: str = "PERIOD_ERROR"


class NoPeriodError(PeriodError):
    """No accounting period covers the posting date."""

    code: str = "NO_PERIOD"

    def __init__(self, posting_date: str):
        self.posting_date = posting_date
        super().__init__(f"No accounting period found for date {posting_date}")


class ClosedPeriodError(PeriodError):
    """Attempted a non-reversal posting into a closed period."""

    code: str = "CLOSED_PERIOD"

    def __init__(self, period_name: str, posting_date: str):
        self.period_name = period_name
        self.posting_date = posting_date
        super().__init__(
            f"Cannot post to closed period {period_name} (date {posting_date})"
        )


class SoftClosedError(PeriodError):
    """Attempted a new posting into a soft-closed period."""

    code: str = "SOFT_CLOSED_PERIOD"

    def __init__(self, period_name: str, posting_date: str):
        self.period_name = period_name
        self.posting_date = posting_date
        super().__init__(
            f"Period {period_name} is soft-closed; only reversals may post "
            f"(date {posting_date})"
        )


class PeriodNotFoundError(PeriodError):
    """Period id does not exist in the organization."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, period_id: str):
        self.period_id = period_id
        super().__init__(f"Accounting period not found: {period_id}")


class PeriodOverlapError(PeriodError):
    """New period's date range overlaps an existing period."""

    code: str = "PERIOD_OVERLAP"

    def __init__(self, new_period: str, existing_period: str):
        self.new_period = new_period
        self.existing_period = existing_period
        super().__init__(
            f"Period {new_period} overlaps existing period {existing_period}"
        )


class PeriodCloseOrderError(PeriodError):
    """Hard close requested while earlier periods are still open."""

    code: str = "PERIOD_CLOSE_ORDER"

    def __init__(self, period_name: str, open_prior_periods: list[str]):
        self.period_name = period_name
        self.open_prior_periods = open_prior_periods
        super().__init__(
            f"Cannot close {period_name}: earlier periods not closed: "
            f"{', '.join(open_prior_periods)}"
        )


class PeriodStatusError(PeriodError):
    """Requested lifecycle transition is not allowed from the current status."""

    code: str = "PERIOD_STATUS"

    def __init__(self, period_name: str, current_status: str, action: str):
        self.period_name = period_name
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} period {period_name} with status {current_status}"
        )


class FiscalYearAlreadyClosedError(PeriodError):
    """A year-end close was already recorded for the fiscal year."""

    code: str = "FISCAL_YEAR_CLOSED"

    def __init__(self, fiscal_year: int):
        self.fiscal_year = fiscal_year
        super().__init__(f"Fiscal year {fiscal_year} is already closed")


# Journal exceptions


class JournalError(LedgerKernelError):
    """Base exception for journal lifecycle errors."""

    code: str = "JOURNAL_ERROR"


class JournalNotFoundError(JournalError):
    """Journal id does not exist in the organization."""

    code: str = "JOURNAL_NOT_FOUND"

    def __init__(self, journal_id: str):
        self.journal_id = journal_id
        super().__init__(f"Journal not found: {journal_id}")


class JournalNotActiveError(JournalError):
    """Only active journals can be reversed or voided."""

    code: str = "JOURNAL_NOT_ACTIVE"

    def __init__(self, journal_id: str, status: str):
        self.journal_id = journal_id
        self.status = status
        super().__init__(f"Journal {journal_id} is {status}, not active")


# Inventory exceptions


class InventoryError(LedgerKernelError):
    """Base exception for inventory valuation errors."""

    code: str = "INVENTORY_ERROR"


class InsufficientInventoryError(InventoryError):
    """Eligible FIFO layers hold less than the requested quantity."""

    code: str = "INSUFFICIENT_INVENTORY"

    def __init__(
        self,
        available: Decimal,
        requested: Decimal,
        item_id: str | None = None,
        warehouse_id: str | None = None,
    ):
        self.available = available
        self.requested = requested
        self.item_id = item_id
        self.warehouse_id = warehouse_id
        super().__init__(
            f"Insufficient inventory: available {available}, requested {requested}"
        )


class NegativeInventoryError(InventoryError):
    """Quantity on hand went negative in a warehouse that forbids it."""

    code: str = "NEGATIVE_INVENTORY"

    def __init__(self, item_id: str, warehouse_id: str, quantity: Decimal):
        self.item_id = item_id
        self.warehouse_id = warehouse_id
        self.quantity = quantity
        super().__init__(
            f"Negative inventory for item {item_id} in warehouse "
            f"{warehouse_id}: {quantity}"
        )


class MovementNotFoundError(InventoryError):
    """Inventory movement id does not exist."""

    code: str = "MOVEMENT_NOT_FOUND"

    def __init__(self, movement_id: str):
        self.movement_id = movement_id
        super().__init__(f"Inventory movement not found: {movement_id}")


class MovementAlreadyReversedError(InventoryError):
    """Inventory movement was already reversed."""

    code: str = "MOVEMENT_ALREADY_REVERSED"

    def __init__(self, movement_id: str):
        self.movement_id = movement_id
        super().__init__(f"Inventory movement already reversed: {movement_id}")


class LayerAlreadyConsumedError(InventoryError):
    """An inbound movement cannot be reversed once its layer was consumed."""

    code: str = "LAYER_ALREADY_CONSUMED"

    def __init__(self, layer_id: str, remaining: Decimal, required: Decimal):
        self.layer_id = layer_id
        self.remaining = remaining
        self.required = required
        super().__init__(
            f"Layer {layer_id} has {remaining} remaining; {required} needed "
            "to reverse its receipt"
        )


class ShortfallAlreadySettledError(InventoryError):
    """A negative-inventory issue cannot be reversed once receipts covered it."""

    code: str = "SHORTFALL_ALREADY_SETTLED"

    def __init__(self, movement_id: str, settled: Decimal):
        self.movement_id = movement_id
        self.settled = settled
        super().__init__(
            f"Shortfall of movement {movement_id} already settled by {settled} "
            "received units"
        )


# Idempotency exceptions


class IdempotencyError(LedgerKernelError):
    """Base exception for idempotency-key handling."""

    code: str = "IDEMPOTENCY_ERROR"


class DuplicateIdempotencyKeyError(IdempotencyError):
    """
    A completed record exists for the key.

    Not an error to the caller: the coordinator resolves it by returning
    ``cached_result``.
    """

    code: str = "DUPLICATE_IDEMPOTENCY_KEY"

    def __init__(self, idempotency_key: str, operation: str, cached_result: dict):
        self.idempotency_key = idempotency_key
        self.operation = operation
        self.cached_result = cached_result
        super().__init__(
            f"Operation {operation} already completed for key {idempotency_key}"
        )


class IdempotencyInProgressError(IdempotencyError):
    """Another request holding the same key is still pending."""

    code: str = "IDEMPOTENCY_IN_PROGRESS"
    retryable: bool = True

    def __init__(self, idempotency_key: str, operation: str):
        self.idempotency_key = idempotency_key
        self.operation = operation
        super().__init__(
            f"Operation {operation} with key {idempotency_key} is in progress"
        )


class IdempotencyKeyReuseError(IdempotencyError):
    """The key was already used with a different request payload."""

    code: str = "IDEMPOTENCY_KEY_REUSE"

    def __init__(
        self,
        idempotency_key: str,
        expected_hash: str,
        received_hash: str,
    ):
        self.idempotency_key = idempotency_key
        self.expected_hash = expected_hash
        self.received_hash = received_hash
        super().__init__(
            f"Idempotency key {idempotency_key} reused with a different payload"
        )


class TransactionTimeoutError(LedgerKernelError):
    """The unit of work exceeded the configured transaction timeout."""

    code: str = "TRANSACTION_TIMEOUT"
    retryable: bool = True

    def __init__(self, operation: str, timeout_seconds: float, elapsed_seconds: float):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds
        super().__init__(
            f"Operation {operation} exceeded {timeout_seconds}s "
            f"(elapsed {elapsed_seconds:.2f}s)"
        )


# Document exceptions


class DocumentError(LedgerKernelError):
    """Base exception for accounting document workflows."""

    code: str = "DOCUMENT_ERROR"


class DocumentNotFoundError(DocumentError):
    """Document id does not exist in the organization."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, doc_type: str, doc_id: str):
        self.doc_type = doc_type
        self.doc_id = doc_id
        super().__init__(f"{doc_type} not found: {doc_id}")


class DocumentAlreadyVoidedError(DocumentError):
    """Document was already voided."""

    code: str = "DOCUMENT_ALREADY_VOIDED"

    def __init__(self, doc_type: str, doc_id: str):
        self.doc_type = doc_type
        self.doc_id = doc_id
        super().__init__(f"{doc_type} {doc_id} is already voided")


class DocumentHasDependentsError(DocumentError):
    """Document has irreversible dependents and cannot be voided."""

    code: str = "DOCUMENT_HAS_DEPENDENTS"

    def __init__(
        self,
        doc_type: str,
        doc_id: str,
        dependent_type: str,
        dependent_count: int,
    ):
        self.doc_type = doc_type
        self.doc_id = doc_id
        self.dependent_type = dependent_type
        self.dependent_count = dependent_count
        super().__init__(
            f"Cannot void {doc_type} {doc_id}: {dependent_count} "
            f"{dependent_type} depend on it"
        )


class UnsupportedDocumentTypeError(DocumentError):
    """Voiding is not implemented for the document type."""

    code: str = "UNSUPPORTED_DOCUMENT_TYPE"

    def __init__(self, doc_type: str):
        self.doc_type = doc_type
        super().__init__(f"Unsupported document type: {doc_type}")


# Reconciliation exceptions


class ReconciliationError(LedgerKernelError):
    """Base exception for reconciliation bookkeeping errors."""

    code: str = "RECONCILIATION_ERROR"


class VarianceNotFoundError(ReconciliationError):
    """Variance id does not exist in the organization."""

    code: str = "VARIANCE_NOT_FOUND"

    def __init__(self, variance_id: str):
        self.variance_id = variance_id
        super().__init__(f"Variance not found: {variance_id}")


class VarianceAlreadyResolvedError(ReconciliationError):
    """Variance was already resolved."""

    code: str = "VARIANCE_ALREADY_RESOLVED"

    def __init__(self, variance_id: str):
        self.variance_id = variance_id
        super().__init__(f"Variance already resolved: {variance_id}")


# Immutability exceptions


class ImmutabilityViolationError(LedgerKernelError):
    """Attempted to modify or delete an append-only financial record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
