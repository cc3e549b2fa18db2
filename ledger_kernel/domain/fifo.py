"""
FIFO consumption planning.

Responsibility:
    Decide which cost layers an outbound quantity consumes, and how much of
    each, without touching storage.  InventoryService loads and locks the
    layers, asks for a plan, then applies it.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Only layers with layer_date <= as_of and quantity_remaining > 0 are
      eligible; a back-dated sale never consumes stock received later.
    - Eligible layers are consumed oldest first by (layer_date, sequence).
    - Each layer gives min(quantity_remaining, outstanding demand).
    - Allocated quantities sum to min(requested, available).
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

ZERO = Decimal("0")


@dataclass(frozen=True)
class LayerSnapshot:
    """The fields of a cost layer the planner needs."""

    layer_id: UUID
    layer_date: date
    sequence: int
    quantity_remaining: Decimal
    unit_cost: Decimal


@dataclass(frozen=True)
class LayerAllocation:
    layer_id: UUID
    layer_date: date
    sequence: int
    quantity: Decimal
    unit_cost: Decimal

    @property
    def total_cost(self) -> Decimal:
        return self.quantity * self.unit_cost


@dataclass(frozen=True)
class FifoPlan:
    """
    Outcome of planning a consumption.

    ``shortfall`` is the requested quantity no eligible layer could cover.
    """

    requested: Decimal
    available: Decimal
    allocations: tuple[LayerAllocation, ...]

    @property
    def allocated(self) -> Decimal:
        return sum((a.quantity for a in self.allocations), ZERO)

    @property
    def shortfall(self) -> Decimal:
        return self.requested - self.allocated

    @property
    def is_sufficient(self) -> bool:
        return self.available >= self.requested

    @property
    def total_cost(self) -> Decimal:
        return sum((a.total_cost for a in self.allocations), ZERO)

    @property
    def last_unit_cost(self) -> Decimal | None:
        return self.allocations[-1].unit_cost if self.allocations else None


def eligible_layers(
    layers: Iterable[LayerSnapshot],
    as_of: date,
) -> list[LayerSnapshot]:
    """Layers that existed on ``as_of`` and still hold stock, in FIFO order."""
    eligible = [
        layer
        for layer in layers
        if layer.layer_date <= as_of and layer.quantity_remaining > ZERO
    ]
    eligible.sort(key=lambda layer: (layer.layer_date, layer.sequence))
    return eligible


def plan_fifo_consumption(
    layers: Iterable[LayerSnapshot],
    requested: Decimal,
    as_of: date,
) -> FifoPlan:
    """
    Greedily allocate ``requested`` across eligible layers, oldest first.

    The plan never allocates more than a layer holds.  When available stock
    is short, every eligible layer is fully allocated and the remainder is
    reported as ``shortfall``; the caller decides whether that is an error.
    """
    ordered = eligible_layers(layers, as_of)
    available = sum((layer.quantity_remaining for layer in ordered), ZERO)

    outstanding = requested
    allocations: list[LayerAllocation] = []
    for layer in ordered:
        if outstanding <= ZERO:
            break
        take = min(layer.quantity_remaining, outstanding)
        allocations.append(
            LayerAllocation(
                layer_id=layer.layer_id,
                layer_date=layer.layer_date,
                sequence=layer.sequence,
                quantity=take,
                unit_cost=layer.unit_cost,
            )
        )
        outstanding -= take

    return FifoPlan(
        requested=requested,
        available=available,
        allocations=tuple(allocations),
    )
