"""
Data Transfer Objects for the ledger kernel.

Responsibility:
    Immutable values crossing service boundaries: journal line specs,
    inventory results, the unit-of-work contract of the coordinator,
    period and trial-balance snapshots.

Architecture position:
    Kernel > Domain -- pure values, zero I/O.  Never imports ORM models.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

ZERO = Decimal("0")


@dataclass(frozen=True)
class JournalLineSpec:
    """One debit or credit line to be posted."""

    account_id: UUID | None
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str | None = None

    @classmethod
    def dr(cls, account_id: UUID, amount: Decimal, description: str | None = None):
        return cls(account_id=account_id, debit=amount, description=description)

    @classmethod
    def cr(cls, account_id: UUID, amount: Decimal, description: str | None = None):
        return cls(account_id=account_id, credit=amount, description=description)


@dataclass(frozen=True)
class PeriodInfo:
    """Snapshot of an accounting period."""

    id: UUID
    organization_id: UUID
    fiscal_year: int
    period_number: int
    name: str
    start_date: date
    end_date: date
    status: str

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date


@dataclass(frozen=True)
class InventoryChange:
    """An (item, warehouse) pair whose on-hand quantity a unit of work changed."""

    item_id: UUID
    warehouse_id: UUID

    def to_dict(self) -> dict[str, str]:
        return {"item_id": str(self.item_id), "warehouse_id": str(self.warehouse_id)}


@dataclass(frozen=True)
class ConsumedLayer:
    """Portion of one FIFO layer consumed by an outbound movement."""

    layer_id: UUID | None
    movement_id: UUID
    layer_date: date | None
    quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal


@dataclass(frozen=True)
class OutboundResult:
    """
    Result of a FIFO consumption.

    Guarantees:
        - consumed_layers is in FIFO order.
        - sum(c.quantity for c in consumed_layers) == requested_quantity.
        - shortfall_quantity > 0 only when the warehouse allows negative
          inventory; the shortfall entry has layer_id None.
    """

    item_id: UUID
    warehouse_id: UUID
    requested_quantity: Decimal
    total_cost: Decimal
    average_cost: Decimal
    consumed_layers: tuple[ConsumedLayer, ...]
    shortfall_quantity: Decimal = ZERO

    @property
    def movement_ids(self) -> tuple[UUID, ...]:
        return tuple(c.movement_id for c in self.consumed_layers)

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": str(self.item_id),
            "warehouse_id": str(self.warehouse_id),
            "requested_quantity": self.requested_quantity,
            "total_cost": self.total_cost,
            "average_cost": self.average_cost,
            "shortfall_quantity": self.shortfall_quantity,
            "consumed_layers": [
                {
                    "layer_id": str(c.layer_id) if c.layer_id else None,
                    "movement_id": str(c.movement_id),
                    "quantity": c.quantity,
                    "unit_cost": c.unit_cost,
                    "total_cost": c.total_cost,
                }
                for c in self.consumed_layers
            ],
        }


@dataclass(frozen=True)
class InboundResult:
    """
    Layer and movement produced by an inbound receipt.

    ``settled_quantity`` of the receipt went to outstanding shortfalls and
    never entered the layer.  ``settlement_journal_id`` is the COGS true-up
    for those units, None when the provisional cost already matched.
    """

    layer_id: UUID
    movement_id: UUID
    quantity: Decimal
    unit_cost: Decimal
    total_value: Decimal
    settled_quantity: Decimal = ZERO
    settlement_journal_id: UUID | None = None

    @property
    def journal_ids(self) -> tuple[UUID, ...]:
        if self.settlement_journal_id is None:
            return ()
        return (self.settlement_journal_id,)


@dataclass(frozen=True)
class OpeningBalanceResult:
    opening_balance_id: UUID
    layer_id: UUID
    movement_id: UUID
    journal_id: UUID
    total_value: Decimal
    settlement_journal_id: UUID | None = None


@dataclass(frozen=True)
class InventoryLevel:
    """Quantity and value on hand for one item in one warehouse."""

    item_id: UUID
    warehouse_id: UUID
    quantity: Decimal
    total_value: Decimal
    layer_count: int

    @property
    def average_cost(self) -> Decimal:
        if self.quantity <= ZERO:
            return ZERO
        return self.total_value / self.quantity


@dataclass(frozen=True)
class AuditData:
    """Who/where metadata recorded in the audit log for a unit of work."""

    user_id: UUID | None = None
    action: str = "create"
    resource_id: str | None = None
    new_values: dict[str, Any] | None = None
    request_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class UnitOfWorkResult:
    """
    What a transaction function hands back to the coordinator.

    Contract:
        journal_ids lists every journal the work created (each is balance
        checked before commit).  inventory_changes lists every (item,
        warehouse) whose on-hand quantity changed (each is checked against
        the warehouse negative-inventory flag).  ``result`` is the
        JSON-serializable domain result returned to the caller.
    """

    journal_ids: tuple[UUID, ...] = ()
    inventory_changes: tuple[InventoryChange, ...] = ()
    movement_ids: tuple[UUID, ...] = ()
    result: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransactionResult:
    """
    Result returned by TransactionCoordinator.run (fresh or replayed).

    A replay carries the same ``to_dict()`` as the run that executed; the
    two objects still compare unequal because ``replayed`` differs.  Compare
    ``to_dict()`` when checking that a retry returned the original outcome.
    """

    operation: str
    idempotency_key: str
    result: dict[str, Any]
    journal_ids: tuple[str, ...] = ()
    movement_ids: tuple[str, ...] = ()
    inventory_changes: tuple[dict[str, str], ...] = ()
    replayed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "idempotency_key": self.idempotency_key,
            "result": self.result,
            "journal_ids": list(self.journal_ids),
            "movement_ids": list(self.movement_ids),
            "inventory_changes": list(self.inventory_changes),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], replayed: bool = False) -> "TransactionResult":
        return cls(
            operation=data["operation"],
            idempotency_key=data["idempotency_key"],
            result=data.get("result") or {},
            journal_ids=tuple(data.get("journal_ids") or ()),
            movement_ids=tuple(data.get("movement_ids") or ()),
            inventory_changes=tuple(data.get("inventory_changes") or ()),
            replayed=replayed,
        )


@dataclass(frozen=True)
class TrialBalanceRow:
    account_id: UUID
    account_code: str
    account_name: str
    debit_total: Decimal
    credit_total: Decimal

    @property
    def balance(self) -> Decimal:
        return self.debit_total - self.credit_total


@dataclass(frozen=True)
class TrialBalance:
    """Per-account totals and grand totals as of a date."""

    as_of_date: date | None
    rows: tuple[TrialBalanceRow, ...]
    total_debits: Decimal
    total_credits: Decimal
    is_balanced: bool

    @property
    def difference(self) -> Decimal:
        return abs(self.total_debits - self.total_credits)
