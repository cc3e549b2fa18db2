"""
Module: ledger_kernel.models.inventory
Responsibility: ORM persistence for FIFO cost layers, the inventory movement
    audit trail, opening-balance records, and the shortfalls a
    negative-inventory warehouse owes until stock arrives.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - quantity_remaining >= 0 on every layer (CHECK constraint).
    - A layer's cost, dates and source never change; only quantity_remaining
      moves (ORM listener in db/immutability.py).
    - Movements are append-only; the only allowed update is
      status active -> reversed.
    - FIFO order within (organization, item, warehouse) is
      (layer_date, sequence); sequence comes from the locked counter row.
    - A shortfall's quantity_outstanding stays within [0, quantity]; only
      quantity_outstanding and status ever change.

Failure modes:
    - IntegrityError if a decrement would drive quantity_remaining negative.
    - ImmutabilityViolationError on edits to frozen columns.

Audit relevance:
    Every layer touched by a consumption produces exactly one movement, so
    the cost of any outbound quantity can be traced back to its layers.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TenantMixin, TrackedBase, UUIDString


class LayerSourceType(str, Enum):
    """How a cost layer came into existence."""

    OPENING = "opening"
    PURCHASE = "purchase"
    TRANSFER_IN = "transfer_in"
    ADJUSTMENT = "adjustment"


class MovementDirection(str, Enum):
    IN = "in"
    OUT = "out"


class MovementType(str, Enum):
    """Business reason of a movement."""

    OPENING = "opening"
    PURCHASE = "purchase"
    SALE = "sale"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    ADJUSTMENT = "adjustment"
    REVERSAL = "reversal"


class MovementStatus(str, Enum):
    ACTIVE = "active"
    REVERSED = "reversed"


class InventoryLayer(TenantMixin, TrackedBase):
    """
    A FIFO cost layer: a quantity received at one unit cost.

    Contract:
        Consumed oldest-first by (layer_date, sequence).  Only layers with
        layer_date <= posting date and quantity_remaining > 0 are eligible.
    """

    __tablename__ = "inventory_layers"

    __table_args__ = (
        CheckConstraint(
            "quantity_remaining >= 0", name="ck_layer_quantity_non_negative"
        ),
        Index(
            "idx_layer_fifo",
            "organization_id",
            "item_id",
            "warehouse_id",
            "layer_date",
            "sequence",
        ),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=False,
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Business date on which the layer came into existence
    layer_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Monotonic tie-breaker within a layer_date
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    original_quantity: Mapped[Decimal] = mapped_column(nullable=False)

    quantity_remaining: Mapped[Decimal] = mapped_column(nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    source_type: Mapped[LayerSourceType] = mapped_column(String(20), nullable=False)

    source_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<InventoryLayer {self.layer_date}#{self.sequence} "
            f"{self.quantity_remaining}@{self.unit_cost}>"
        )

    @property
    def remaining_value(self) -> Decimal:
        return self.quantity_remaining * self.unit_cost


class InventoryMovement(TenantMixin, TrackedBase):
    """
    Append-only record of a quantity entering or leaving a warehouse.

    Contract:
        layer_id is NULL only for the uncovered shortfall of an outbound in a
        warehouse that allows negative inventory.
    """

    __tablename__ = "inventory_movements"

    __table_args__ = (
        Index(
            "idx_movement_item_wh",
            "organization_id",
            "item_id",
            "warehouse_id",
            "movement_date",
        ),
        Index("idx_movement_source", "organization_id", "source_type", "source_id"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=False,
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id", ondelete="RESTRICT"),
        nullable=False,
    )

    layer_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_layers.id", ondelete="RESTRICT"),
        nullable=True,
    )

    direction: Mapped[MovementDirection] = mapped_column(String(3), nullable=False)

    movement_type: Mapped[MovementType] = mapped_column(String(20), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    total_value: Mapped[Decimal] = mapped_column(nullable=False)

    movement_date: Mapped[date] = mapped_column(Date, nullable=False)

    source_type: Mapped[str] = mapped_column(String(50), nullable=False)

    source_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    status: Mapped[MovementStatus] = mapped_column(
        String(10),
        default=MovementStatus.ACTIVE,
        nullable=False,
        active_history=True,
    )

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_movements.id", ondelete="RESTRICT"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryMovement {self.direction} {self.quantity}@{self.unit_cost} "
            f"status={self.status}>"
        )

    @property
    def signed_quantity(self) -> Decimal:
        """Quantity signed by direction (in positive, out negative)."""
        if self.direction == MovementDirection.IN:
            return self.quantity
        return -self.quantity


class OpeningBalance(TenantMixin, TrackedBase):
    """Record of an opening stock balance and the layer/journal it produced."""

    __tablename__ = "inventory_opening_balances"

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=False,
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id", ondelete="RESTRICT"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    total_value: Mapped[Decimal] = mapped_column(nullable=False)

    as_of_date: Mapped[date] = mapped_column(Date, nullable=False)

    layer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_layers.id", ondelete="RESTRICT"),
        nullable=False,
    )

    journal_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journals.id", ondelete="RESTRICT"),
        nullable=False,
    )


class ShortfallStatus(str, Enum):
    OPEN = "open"
    SETTLED = "settled"
    CANCELLED = "cancelled"


class InventoryShortfall(TenantMixin, TrackedBase):
    """
    Outstanding quantity issued from a negative-inventory warehouse with no
    layer behind it.

    Contract:
        Created alongside the layer-less OUT movement.  The next receipts of
        the same item into the same warehouse settle it oldest-first:
        quantity_outstanding drops and the receiving layer keeps only what is
        left over.  unit_cost is the provisional cost booked to COGS when the
        stock was issued; settlement posts the difference to the receipt cost.
    """

    __tablename__ = "inventory_shortfalls"

    __table_args__ = (
        CheckConstraint(
            "quantity_outstanding >= 0 AND quantity_outstanding <= quantity",
            name="ck_shortfall_outstanding_range",
        ),
        Index(
            "idx_shortfall_open",
            "organization_id",
            "item_id",
            "warehouse_id",
            "status",
        ),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=False,
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id", ondelete="RESTRICT"),
        nullable=False,
    )

    movement_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_movements.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )

    shortfall_date: Mapped[date] = mapped_column(Date, nullable=False)

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    quantity_outstanding: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[ShortfallStatus] = mapped_column(
        String(10),
        default=ShortfallStatus.OPEN,
        nullable=False,
        active_history=True,
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryShortfall {self.shortfall_date}#{self.sequence} "
            f"{self.quantity_outstanding}/{self.quantity} status={self.status}>"
        )

    @property
    def outstanding_value(self) -> Decimal:
        return self.quantity_outstanding * self.unit_cost
