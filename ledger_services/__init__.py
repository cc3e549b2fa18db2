"""
ledger_services -- Package init and public API.

Responsibility:
    Stateful orchestration over the kernel: document workflows (invoices,
    bills, payments, opening balances, transfers, voids), the year-end close
    and the reconciliation engine.
    Wires ``ledger_config`` settings into kernel services.

Architecture position:
    Services -- the top layer.

    Dependency direction:
        ledger_services/ -> ledger_kernel/  (allowed)
        ledger_services/ -> ledger_config/  (allowed)
        ledger_kernel/   -> ledger_services/ (FORBIDDEN)

Audit relevance:
    - This package is the canonical import surface for external consumers.
"""

from ledger_kernel.logging_config import get_logger

logger = get_logger("services")

from ledger_services.document_service import (  # noqa: E402
    BillLineInput,
    DocumentService,
    DocumentType,
    InvoiceLineInput,
    OpeningBalanceIntegrity,
)
from ledger_services.fiscal_year_service import (  # noqa: E402
    FiscalYearService,
    FiscalYearSummary,
    ProfitAndLoss,
)
from ledger_services.reconciliation_service import (  # noqa: E402
    SYSTEM_ACTOR_ID,
    ReconciliationService,
)

__all__ = [
    "BillLineInput",
    "DocumentService",
    "DocumentType",
    "InvoiceLineInput",
    "OpeningBalanceIntegrity",
    "FiscalYearService",
    "FiscalYearSummary",
    "ProfitAndLoss",
    "ReconciliationService",
    "SYSTEM_ACTOR_ID",
]
