"""
Module: ledger_kernel.selectors.inventory_selector
Responsibility: Read-only inventory queries: quantity on hand, stock levels
    and valuation from FIFO layers net of open shortfalls, movement history,
    and the per-warehouse value used by reconciliation.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Valuation is sum(quantity_remaining * unit_cost) over layers minus
      sum(quantity_outstanding * unit_cost) over open shortfalls.
    - Quantity on hand is the signed sum of the movement trail; a reversal
      movement and the original it reverses cancel out.
    - Level quantity (layers minus open shortfalls) equals quantity on hand.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select

from ledger_kernel.domain.dtos import InventoryLevel
from ledger_kernel.models.inventory import (
    InventoryLayer,
    InventoryMovement,
    InventoryShortfall,
    MovementDirection,
    ShortfallStatus,
)
from ledger_kernel.models.master_data import Warehouse
from ledger_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")


def _dec(value) -> Decimal:
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


class InventorySelector(BaseSelector[InventoryLayer]):
    """Selector for stock and valuation queries."""

    def quantity_on_hand(
        self, organization_id: UUID, item_id: UUID, warehouse_id: UUID
    ) -> Decimal:
        signed = case(
            (
                InventoryMovement.direction == MovementDirection.IN.value,
                InventoryMovement.quantity,
            ),
            else_=-InventoryMovement.quantity,
        )
        total = self.session.execute(
            select(func.sum(signed)).where(
                InventoryMovement.organization_id == organization_id,
                InventoryMovement.item_id == item_id,
                InventoryMovement.warehouse_id == warehouse_id,
            )
        ).scalar_one()
        return _dec(total)

    def outstanding_shortfall(
        self, organization_id: UUID, item_id: UUID, warehouse_id: UUID
    ) -> Decimal:
        """Units issued without stock that no receipt has covered yet."""
        total = self.session.execute(
            select(func.sum(InventoryShortfall.quantity_outstanding)).where(
                InventoryShortfall.organization_id == organization_id,
                InventoryShortfall.item_id == item_id,
                InventoryShortfall.warehouse_id == warehouse_id,
                InventoryShortfall.status == ShortfallStatus.OPEN.value,
            )
        ).scalar_one()
        return _dec(total)

    def levels(
        self,
        organization_id: UUID,
        item_id: UUID | None = None,
        warehouse_id: UUID | None = None,
    ) -> list[InventoryLevel]:
        """
        Quantity and value per (item, warehouse): open layers less open
        shortfalls.  A warehouse that issued more than it received shows a
        negative quantity and value.
        """
        layer_stmt = (
            select(
                InventoryLayer.item_id,
                InventoryLayer.warehouse_id,
                func.sum(InventoryLayer.quantity_remaining).label("quantity"),
                func.sum(
                    InventoryLayer.quantity_remaining * InventoryLayer.unit_cost
                ).label("total_value"),
                func.count(InventoryLayer.id).label("layer_count"),
            )
            .where(
                InventoryLayer.organization_id == organization_id,
                InventoryLayer.quantity_remaining > 0,
            )
            .group_by(InventoryLayer.item_id, InventoryLayer.warehouse_id)
        )
        shortfall_stmt = (
            select(
                InventoryShortfall.item_id,
                InventoryShortfall.warehouse_id,
                func.sum(InventoryShortfall.quantity_outstanding).label("quantity"),
                func.sum(
                    InventoryShortfall.quantity_outstanding * InventoryShortfall.unit_cost
                ).label("total_value"),
            )
            .where(
                InventoryShortfall.organization_id == organization_id,
                InventoryShortfall.status == ShortfallStatus.OPEN.value,
            )
            .group_by(InventoryShortfall.item_id, InventoryShortfall.warehouse_id)
        )
        if item_id is not None:
            layer_stmt = layer_stmt.where(InventoryLayer.item_id == item_id)
            shortfall_stmt = shortfall_stmt.where(InventoryShortfall.item_id == item_id)
        if warehouse_id is not None:
            layer_stmt = layer_stmt.where(InventoryLayer.warehouse_id == warehouse_id)
            shortfall_stmt = shortfall_stmt.where(
                InventoryShortfall.warehouse_id == warehouse_id
            )

        totals: dict[tuple, list] = {}
        for row in self.session.execute(layer_stmt).all():
            totals[(row.item_id, row.warehouse_id)] = [
                _dec(row.quantity), _dec(row.total_value), row.layer_count,
            ]
        for row in self.session.execute(shortfall_stmt).all():
            entry = totals.setdefault((row.item_id, row.warehouse_id), [ZERO, ZERO, 0])
            entry[0] -= _dec(row.quantity)
            entry[1] -= _dec(row.total_value)

        return [
            InventoryLevel(
                item_id=key[0],
                warehouse_id=key[1],
                quantity=quantity,
                total_value=value,
                layer_count=count,
            )
            for key, (quantity, value, count) in totals.items()
        ]

    def movement_history(
        self,
        organization_id: UUID,
        item_id: UUID,
        warehouse_id: UUID | None = None,
        limit: int = 100,
    ) -> list[InventoryMovement]:
        """Most recent movements first."""
        stmt = select(InventoryMovement).where(
            InventoryMovement.organization_id == organization_id,
            InventoryMovement.item_id == item_id,
        )
        if warehouse_id is not None:
            stmt = stmt.where(InventoryMovement.warehouse_id == warehouse_id)
        stmt = stmt.order_by(
            InventoryMovement.movement_date.desc(),
            InventoryMovement.created_at.desc(),
        ).limit(limit)
        return list(self.session.execute(stmt).scalars())

    def value_by_warehouse(self, organization_id: UUID) -> dict[str, Decimal]:
        """Layer value less open shortfall value, per warehouse code."""
        layer_stmt = (
            select(
                Warehouse.code,
                func.sum(
                    InventoryLayer.quantity_remaining * InventoryLayer.unit_cost
                ).label("value"),
            )
            .join(Warehouse, InventoryLayer.warehouse_id == Warehouse.id)
            .where(InventoryLayer.organization_id == organization_id)
            .group_by(Warehouse.code)
        )
        shortfall_stmt = (
            select(
                Warehouse.code,
                func.sum(
                    InventoryShortfall.quantity_outstanding * InventoryShortfall.unit_cost
                ).label("value"),
            )
            .join(Warehouse, InventoryShortfall.warehouse_id == Warehouse.id)
            .where(
                InventoryShortfall.organization_id == organization_id,
                InventoryShortfall.status == ShortfallStatus.OPEN.value,
            )
            .group_by(Warehouse.code)
        )
        values: dict[str, Decimal] = {}
        for row in self.session.execute(layer_stmt).all():
            values[row.code] = _dec(row.value)
        for row in self.session.execute(shortfall_stmt).all():
            values[row.code] = values.get(row.code, ZERO) - _dec(row.value)
        return dict(sorted(values.items()))

    def total_value(self, organization_id: UUID) -> Decimal:
        layers = self.session.execute(
            select(
                func.sum(InventoryLayer.quantity_remaining * InventoryLayer.unit_cost)
            ).where(InventoryLayer.organization_id == organization_id)
        ).scalar_one()
        shortfalls = self.session.execute(
            select(
                func.sum(
                    InventoryShortfall.quantity_outstanding * InventoryShortfall.unit_cost
                )
            ).where(
                InventoryShortfall.organization_id == organization_id,
                InventoryShortfall.status == ShortfallStatus.OPEN.value,
            )
        ).scalar_one()
        return _dec(layers) - _dec(shortfalls)
