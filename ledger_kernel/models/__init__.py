"""Domain models for the ledger kernel."""

from ledger_kernel.models.account import Account, AccountSubtype, AccountType
from ledger_kernel.models.accounting_period import (
    AccountingPeriod,
    PeriodStatus,
    YearEndClosingRun,
)
from ledger_kernel.models.audit_log import AuditAction, AuditLogEntry
from ledger_kernel.models.documents import (
    Bill,
    BillLine,
    DocumentStatus,
    Invoice,
    InvoiceLine,
    Payment,
    PaymentDirection,
)
from ledger_kernel.models.idempotency import IdempotencyRecord, IdempotencyStatus
from ledger_kernel.models.inventory import (
    InventoryLayer,
    InventoryMovement,
    LayerSourceType,
    MovementDirection,
    MovementStatus,
    MovementType,
    InventoryShortfall,
    OpeningBalance,
    ShortfallStatus,
)
from ledger_kernel.models.journal import Journal, JournalEntry, JournalStatus
from ledger_kernel.models.master_data import Customer, Item, Vendor, Warehouse
from ledger_kernel.models.reconciliation import (
    CheckStatus,
    ReconciliationRun,
    ReconciliationTrigger,
    RunStatus,
    Variance,
    VarianceSeverity,
    VarianceType,
)
from ledger_kernel.models.sequence import SequenceCounter

__all__ = [
    "Account",
    "AccountSubtype",
    "AccountType",
    "AccountingPeriod",
    "PeriodStatus",
    "YearEndClosingRun",
    "AuditAction",
    "AuditLogEntry",
    "Bill",
    "BillLine",
    "DocumentStatus",
    "Invoice",
    "InvoiceLine",
    "Payment",
    "PaymentDirection",
    "IdempotencyRecord",
    "IdempotencyStatus",
    "InventoryLayer",
    "InventoryMovement",
    "LayerSourceType",
    "MovementDirection",
    "MovementStatus",
    "MovementType",
    "InventoryShortfall",
    "OpeningBalance",
    "ShortfallStatus",
    "Journal",
    "JournalEntry",
    "JournalStatus",
    "Customer",
    "Item",
    "Vendor",
    "Warehouse",
    "CheckStatus",
    "ReconciliationRun",
    "ReconciliationTrigger",
    "RunStatus",
    "Variance",
    "VarianceSeverity",
    "VarianceType",
    "SequenceCounter",
]
