"""
Module: ledger_kernel.selectors.reconciliation_selector
Responsibility: The narrow read interface the reconciliation engine needs,
    and its implementation against the database.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Reconciliation re-derives every figure from source rows (journal
      lines, layers, documents); it never reads a stored balance.
    - Read-only: nothing here flushes or commits.

Open AR is the total of posted invoices minus posted payments received;
open AP is the total of posted bills minus posted payments made.  A voided
invoice or bill never has posted payments (voiding refuses that case).
"""

from decimal import Decimal
from typing import Protocol
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.domain.settings import BALANCE_EPSILON
from ledger_kernel.models.account import AccountSubtype
from ledger_kernel.models.documents import (
    Bill,
    DocumentStatus,
    Invoice,
    Payment,
    PaymentDirection,
)
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.inventory_selector import InventorySelector
from ledger_kernel.selectors.ledger_selector import JournalTotals, LedgerSelector

ZERO = Decimal("0")


class ReconciliationReader(Protocol):
    """Everything the reconciliation checks read."""

    def total_debits_credits(self, organization_id: UUID) -> tuple[Decimal, Decimal]: ...

    def unbalanced_journals(
        self, organization_id: UUID, epsilon: Decimal = BALANCE_EPSILON
    ) -> list[JournalTotals]: ...

    def inventory_layer_value(self, organization_id: UUID) -> Decimal: ...

    def inventory_value_by_warehouse(self, organization_id: UUID) -> dict[str, Decimal]: ...

    def control_account_balance(
        self, organization_id: UUID, subtype: AccountSubtype
    ) -> Decimal: ...

    def open_receivables(self, organization_id: UUID) -> Decimal: ...

    def open_payables(self, organization_id: UUID) -> Decimal: ...


class SqlReconciliationReader(BaseSelector):
    """ReconciliationReader over the ledger, layer and document tables."""

    def __init__(self, session):
        super().__init__(session)
        self._ledger = LedgerSelector(session)
        self._inventory = InventorySelector(session)

    def total_debits_credits(self, organization_id: UUID) -> tuple[Decimal, Decimal]:
        return self._ledger.total_debits_credits(organization_id)

    def unbalanced_journals(
        self, organization_id: UUID, epsilon: Decimal = BALANCE_EPSILON
    ) -> list[JournalTotals]:
        return self._ledger.unbalanced_journals(organization_id, epsilon)

    def inventory_layer_value(self, organization_id: UUID) -> Decimal:
        return self._inventory.total_value(organization_id)

    def inventory_value_by_warehouse(self, organization_id: UUID) -> dict[str, Decimal]:
        return self._inventory.value_by_warehouse(organization_id)

    def control_account_balance(
        self, organization_id: UUID, subtype: AccountSubtype
    ) -> Decimal:
        return self._ledger.balance_for_subtype(organization_id, subtype)

    def _sum(self, column, *criteria) -> Decimal:
        total = self.session.execute(
            select(func.sum(column)).where(*criteria)
        ).scalar_one()
        return total if total is not None else ZERO

    def open_receivables(self, organization_id: UUID) -> Decimal:
        invoiced = self._sum(
            Invoice.total_amount,
            Invoice.organization_id == organization_id,
            Invoice.status == DocumentStatus.POSTED.value,
        )
        received = self._sum(
            Payment.amount,
            Payment.organization_id == organization_id,
            Payment.direction == PaymentDirection.RECEIVED.value,
            Payment.status == DocumentStatus.POSTED.value,
        )
        return invoiced - received

    def open_payables(self, organization_id: UUID) -> Decimal:
        billed = self._sum(
            Bill.total_amount,
            Bill.organization_id == organization_id,
            Bill.status == DocumentStatus.POSTED.value,
        )
        paid = self._sum(
            Payment.amount,
            Payment.organization_id == organization_id,
            Payment.direction == PaymentDirection.MADE.value,
            Payment.status == DocumentStatus.POSTED.value,
        )
        return billed - paid
