"""
InventoryService -- FIFO inventory valuation engine.

Responsibility:
    Creates cost layers for stock received, consumes layers oldest-first for
    stock issued, records one movement per layer touched, tracks and settles
    negative-inventory shortfalls, posts the opening balance and COGS
    journals, and reverses movements.

Architecture position:
    Kernel > Services -- imperative shell around the pure planner in
    domain/fifo.py.  Called by DocumentService inside a
    TransactionCoordinator unit of work.  Uses PeriodService for date
    checks and JournalService for its journals.

Invariants enforced:
    - Only layers with layer_date <= posting date and quantity remaining
      are eligible; consumption order is (layer_date, sequence).
    - Layers read for consumption are locked (SELECT ... FOR UPDATE) so
      two concurrent outbounds cannot both consume the same stock.
    - A shortfall is an error unless the warehouse allows negative
      inventory; the warehouse flag is the only override.
    - A layer's quantity_remaining never drops below zero.
    - Sum of layer quantities minus open shortfalls equals the movement
      trail per (item, warehouse); valuation subtracts shortfalls at their
      provisional cost, matching the COGS already credited to inventory.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - InvalidQuantityError: Non-positive quantity or negative unit cost.
    - ReferenceNotFoundError: Unknown item or warehouse.
    - InsufficientInventoryError: Eligible layers cannot cover the request.
    - MovementNotFoundError / MovementAlreadyReversedError: Bad reversal.
    - LayerAlreadyConsumedError: Inbound reversal of stock already issued.
    - ShortfallAlreadySettledError: Reversal of an issue receipts covered.
    - PeriodError subclasses: Posting date not postable.

Audit relevance:
    ``layer_created``, ``fifo_consumed``, ``shortfall_settled`` and
    ``inventory_reversed`` carry item, warehouse, quantities and costs.
    Every consumed quantity traces to a layer or a shortfall through its
    movement.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    ConsumedLayer,
    InboundResult,
    InventoryLevel,
    JournalLineSpec,
    OpeningBalanceResult,
    OutboundResult,
)
from ledger_kernel.domain.fifo import LayerSnapshot, plan_fifo_consumption
from ledger_kernel.domain.settings import KernelSettings
from ledger_kernel.exceptions import (
    InsufficientInventoryError,
    InvalidQuantityError,
    LayerAlreadyConsumedError,
    MovementAlreadyReversedError,
    MovementNotFoundError,
    ReferenceNotFoundError,
    ShortfallAlreadySettledError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.inventory import (
    InventoryLayer,
    InventoryMovement,
    InventoryShortfall,
    LayerSourceType,
    MovementDirection,
    MovementStatus,
    MovementType,
    OpeningBalance,
    ShortfallStatus,
)
from ledger_kernel.models.journal import Journal
from ledger_kernel.models.master_data import Item, Warehouse
from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.selectors.inventory_selector import InventorySelector
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.inventory")

ZERO = Decimal("0")

_INBOUND_MOVEMENT_TYPES = {
    LayerSourceType.OPENING: MovementType.OPENING,
    LayerSourceType.PURCHASE: MovementType.PURCHASE,
    LayerSourceType.TRANSFER_IN: MovementType.TRANSFER_IN,
    LayerSourceType.ADJUSTMENT: MovementType.ADJUSTMENT,
}


class InventoryService(BaseService[InventoryLayer]):
    """
    FIFO valuation for one organization's stock.

    Contract:
        Every mutating method runs inside the caller's transaction and
        returns frozen result DTOs (or the new ORM row for reversals).

    Non-goals:
        - Does NOT decide document semantics (DocumentService does).
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        settings: KernelSettings | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._settings = settings or KernelSettings()
        self._clock = clock or SystemClock()
        self._periods = PeriodService(session, self._clock)
        self._journals = JournalService(session, self._settings, self._clock)
        self._accounts = AccountSelector(session)
        self._selector = InventorySelector(session)
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Reference checks
    # ------------------------------------------------------------------

    def _require_item(self, organization_id: UUID, item_id: UUID) -> Item:
        item = self.session.execute(
            select(Item).where(Item.organization_id == organization_id, Item.id == item_id)
        ).scalar_one_or_none()
        if item is None:
            raise ReferenceNotFoundError("Item", str(item_id))
        return item

    def _require_warehouse(self, organization_id: UUID, warehouse_id: UUID) -> Warehouse:
        warehouse = self.session.execute(
            select(Warehouse).where(
                Warehouse.organization_id == organization_id,
                Warehouse.id == warehouse_id,
            )
        ).scalar_one_or_none()
        if warehouse is None:
            raise ReferenceNotFoundError("Warehouse", str(warehouse_id))
        return warehouse

    @staticmethod
    def _require_positive(field: str, value: Decimal) -> None:
        if value is None or value <= ZERO:
            raise InvalidQuantityError(field, value)

    def _role_account(self, organization_id: UUID, role: str) -> UUID:
        return self._accounts.resolve_role(
            organization_id, role, self._settings.account_codes
        )

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def process_inbound(
        self,
        organization_id: UUID,
        item_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        unit_cost: Decimal,
        source_type: LayerSourceType,
        source_id: UUID | None,
        layer_date: date,
        actor_id: UUID,
    ) -> InboundResult:
        """
        Append one cost layer and its inbound movement.

        The receipt first settles any outstanding shortfalls of the same
        item in the same warehouse; the layer keeps only what is left, so
        layer quantity always agrees with the movement trail.  The only
        journal posted here is the true-up between the provisional cost of
        the settled units and ``unit_cost``.  The receipt itself is booked
        by the caller's document (a purchase bill debits inventory
        against AP).
        """
        self._require_positive("quantity", quantity)
        if unit_cost is None or unit_cost < ZERO:
            raise InvalidQuantityError("unit_cost", unit_cost)
        self._require_item(organization_id, item_id)
        self._require_warehouse(organization_id, warehouse_id)

        source_type = LayerSourceType(source_type)
        sequence = self._sequences.next_value(
            SequenceService.scoped(SequenceService.INVENTORY_LAYER, organization_id)
        )
        total_value = quantity * unit_cost

        settled, cost_difference = self._settle_shortfalls(
            organization_id, item_id, warehouse_id, quantity, unit_cost, actor_id
        )

        layer = InventoryLayer(
            organization_id=organization_id,
            item_id=item_id,
            warehouse_id=warehouse_id,
            layer_date=layer_date,
            sequence=sequence,
            original_quantity=quantity,
            quantity_remaining=quantity - settled,
            unit_cost=unit_cost,
            source_type=source_type.value,
            source_id=source_id,
            created_by_id=actor_id,
        )
        self.session.add(layer)
        self.session.flush()

        movement = InventoryMovement(
            organization_id=organization_id,
            item_id=item_id,
            warehouse_id=warehouse_id,
            layer_id=layer.id,
            direction=MovementDirection.IN.value,
            movement_type=_INBOUND_MOVEMENT_TYPES[source_type].value,
            quantity=quantity,
            unit_cost=unit_cost,
            total_value=total_value,
            movement_date=layer_date,
            source_type=source_type.value,
            source_id=source_id,
            status=MovementStatus.ACTIVE.value,
            created_by_id=actor_id,
        )
        self.session.add(movement)
        self.session.flush()

        logger.info(
            "layer_created",
            extra={
                "layer_id": str(layer.id),
                "item_id": str(item_id),
                "warehouse_id": str(warehouse_id),
                "quantity": str(quantity),
                "unit_cost": str(unit_cost),
                "sequence": sequence,
                "source_type": source_type.value,
                "settled_quantity": str(settled),
            },
        )

        settlement_journal = None
        if cost_difference != ZERO:
            settlement_journal = self._post_settlement_journal(
                organization_id, item_id, cost_difference, layer.id,
                layer_date, actor_id,
            )

        return InboundResult(
            layer_id=layer.id,
            movement_id=movement.id,
            quantity=quantity,
            unit_cost=unit_cost,
            total_value=total_value,
            settled_quantity=settled,
            settlement_journal_id=settlement_journal.id if settlement_journal else None,
        )

    def _settle_shortfalls(
        self,
        organization_id: UUID,
        item_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        unit_cost: Decimal,
        actor_id: UUID,
    ) -> tuple[Decimal, Decimal]:
        """
        Apply up to ``quantity`` received units to open shortfalls, oldest
        first.  Returns (units settled, receipt cost minus provisional cost).
        """
        shortfalls = self.session.execute(
            select(InventoryShortfall)
            .where(
                InventoryShortfall.organization_id == organization_id,
                InventoryShortfall.item_id == item_id,
                InventoryShortfall.warehouse_id == warehouse_id,
                InventoryShortfall.status == ShortfallStatus.OPEN.value,
            )
            .order_by(InventoryShortfall.shortfall_date, InventoryShortfall.sequence)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars()

        available = quantity
        settled = ZERO
        difference = ZERO
        for shortfall in shortfalls:
            if available <= ZERO:
                break
            take = min(shortfall.quantity_outstanding, available)
            shortfall.quantity_outstanding = shortfall.quantity_outstanding - take
            if shortfall.quantity_outstanding == ZERO:
                shortfall.status = ShortfallStatus.SETTLED.value
            shortfall.updated_by_id = actor_id
            available -= take
            settled += take
            difference += take * (unit_cost - shortfall.unit_cost)

            logger.info(
                "shortfall_settled",
                extra={
                    "shortfall_id": str(shortfall.id),
                    "item_id": str(item_id),
                    "warehouse_id": str(warehouse_id),
                    "settled": str(take),
                    "outstanding": str(shortfall.quantity_outstanding),
                    "provisional_cost": str(shortfall.unit_cost),
                    "actual_cost": str(unit_cost),
                },
            )
        return settled, difference

    def _post_settlement_journal(
        self,
        organization_id: UUID,
        item_id: UUID,
        cost_difference: Decimal,
        layer_id: UUID,
        posting_date: date,
        actor_id: UUID,
    ) -> Journal:
        """COGS true-up: Dr COGS / Cr inventory when the receipt cost more."""
        cogs = self._role_account(organization_id, "cogs")
        inventory = self._role_account(organization_id, "inventory")
        amount = abs(cost_difference)
        description = f"Shortfall cost adjustment item {item_id}"
        if cost_difference > ZERO:
            lines = [
                JournalLineSpec.dr(cogs, amount, description),
                JournalLineSpec.cr(inventory, amount, description),
            ]
        else:
            lines = [
                JournalLineSpec.dr(inventory, amount, description),
                JournalLineSpec.cr(cogs, amount, description),
            ]
        return self._journals.create_journal(
            organization_id=organization_id,
            journal_date=posting_date,
            lines=lines,
            actor_id=actor_id,
            description="Negative inventory cost settlement",
            source_type="inventory_settlement",
            source_id=layer_id,
        )

    def create_opening_balance(
        self,
        organization_id: UUID,
        item_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        unit_cost: Decimal,
        as_of_date: date,
        actor_id: UUID,
    ) -> OpeningBalanceResult:
        """
        Opening stock: one ``opening`` layer plus Dr inventory / Cr
        opening-balance equity for quantity * unit_cost.
        """
        self._require_positive("quantity", quantity)
        self._periods.validate_posting_date(organization_id, as_of_date)

        inbound = self.process_inbound(
            organization_id=organization_id,
            item_id=item_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            unit_cost=unit_cost,
            source_type=LayerSourceType.OPENING,
            source_id=None,
            layer_date=as_of_date,
            actor_id=actor_id,
        )

        journal = self._journals.create_journal(
            organization_id=organization_id,
            journal_date=as_of_date,
            lines=[
                JournalLineSpec.dr(
                    self._role_account(organization_id, "inventory"),
                    inbound.total_value,
                    "Opening inventory",
                ),
                JournalLineSpec.cr(
                    self._role_account(organization_id, "opening_balance_equity"),
                    inbound.total_value,
                    "Opening inventory",
                ),
            ],
            actor_id=actor_id,
            description="Opening inventory balance",
            source_type="opening_balance",
        )

        record = OpeningBalance(
            organization_id=organization_id,
            item_id=item_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            unit_cost=unit_cost,
            total_value=inbound.total_value,
            as_of_date=as_of_date,
            layer_id=inbound.layer_id,
            journal_id=journal.id,
            created_by_id=actor_id,
        )
        self.session.add(record)
        self.session.flush()

        logger.info(
            "opening_balance_created",
            extra={
                "item_id": str(item_id),
                "warehouse_id": str(warehouse_id),
                "total_value": str(inbound.total_value),
            },
        )
        return OpeningBalanceResult(
            opening_balance_id=record.id,
            layer_id=inbound.layer_id,
            movement_id=inbound.movement_id,
            journal_id=journal.id,
            total_value=inbound.total_value,
            settlement_journal_id=inbound.settlement_journal_id,
        )

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _lock_eligible_layers(
        self,
        organization_id: UUID,
        item_id: UUID,
        warehouse_id: UUID,
        posting_date: date,
    ) -> list[InventoryLayer]:
        return list(
            self.session.execute(
                select(InventoryLayer)
                .where(
                    InventoryLayer.organization_id == organization_id,
                    InventoryLayer.item_id == item_id,
                    InventoryLayer.warehouse_id == warehouse_id,
                    InventoryLayer.layer_date <= posting_date,
                    InventoryLayer.quantity_remaining > 0,
                )
                .order_by(InventoryLayer.layer_date, InventoryLayer.sequence)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def process_outbound(
        self,
        organization_id: UUID,
        item_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        source_type: str,
        source_id: UUID | None,
        posting_date: date,
        actor_id: UUID,
        movement_type: MovementType = MovementType.SALE,
    ) -> OutboundResult:
        """
        Consume ``quantity`` FIFO and return the cost.

        Postconditions:
            One OUT movement per layer touched, in FIFO order; when the
            warehouse allows negative inventory the uncovered remainder is
            one more movement without a layer, costed at the last consumed
            layer's unit cost (zero if none), plus an open shortfall that
            the next receipt into the warehouse settles.

        Raises:
            InsufficientInventoryError: Shortfall in a warehouse that
                forbids negative inventory.
        """
        self._require_positive("quantity", quantity)
        self._periods.validate_posting_date(organization_id, posting_date)
        self._require_item(organization_id, item_id)
        warehouse = self._require_warehouse(organization_id, warehouse_id)

        layers = self._lock_eligible_layers(
            organization_id, item_id, warehouse_id, posting_date
        )
        by_id = {layer.id: layer for layer in layers}
        plan = plan_fifo_consumption(
            [
                LayerSnapshot(
                    layer_id=layer.id,
                    layer_date=layer.layer_date,
                    sequence=layer.sequence,
                    quantity_remaining=layer.quantity_remaining,
                    unit_cost=layer.unit_cost,
                )
                for layer in layers
            ],
            quantity,
            posting_date,
        )

        if not plan.is_sufficient and not warehouse.allow_negative_inventory:
            logger.warning(
                "insufficient_inventory",
                extra={
                    "item_id": str(item_id),
                    "warehouse_id": str(warehouse_id),
                    "available": str(plan.available),
                    "requested": str(quantity),
                },
            )
            raise InsufficientInventoryError(
                plan.available, quantity, str(item_id), str(warehouse_id)
            )

        movement_type = MovementType(movement_type)
        consumed: list[ConsumedLayer] = []
        for allocation in plan.allocations:
            layer = by_id[allocation.layer_id]
            layer.quantity_remaining = layer.quantity_remaining - allocation.quantity
            layer.updated_by_id = actor_id
            movement = self._out_movement(
                organization_id, item_id, warehouse_id, layer.id,
                allocation.quantity, allocation.unit_cost, movement_type,
                posting_date, source_type, source_id, actor_id,
            )
            consumed.append(
                ConsumedLayer(
                    layer_id=layer.id,
                    movement_id=movement.id,
                    layer_date=allocation.layer_date,
                    quantity=allocation.quantity,
                    unit_cost=allocation.unit_cost,
                    total_cost=allocation.total_cost,
                )
            )

        shortfall = plan.shortfall
        if shortfall > ZERO:
            unit_cost = plan.last_unit_cost or ZERO
            movement = self._out_movement(
                organization_id, item_id, warehouse_id, None,
                shortfall, unit_cost, movement_type,
                posting_date, source_type, source_id, actor_id,
            )
            self.session.add(
                InventoryShortfall(
                    organization_id=organization_id,
                    item_id=item_id,
                    warehouse_id=warehouse_id,
                    movement_id=movement.id,
                    shortfall_date=posting_date,
                    sequence=self._sequences.next_value(
                        SequenceService.scoped(
                            SequenceService.INVENTORY_SHORTFALL, organization_id
                        )
                    ),
                    quantity=shortfall,
                    unit_cost=unit_cost,
                    quantity_outstanding=shortfall,
                    status=ShortfallStatus.OPEN.value,
                    created_by_id=actor_id,
                )
            )
            consumed.append(
                ConsumedLayer(
                    layer_id=None,
                    movement_id=movement.id,
                    layer_date=None,
                    quantity=shortfall,
                    unit_cost=unit_cost,
                    total_cost=shortfall * unit_cost,
                )
            )
            logger.warning(
                "negative_inventory_shortfall",
                extra={
                    "item_id": str(item_id),
                    "warehouse_id": str(warehouse_id),
                    "shortfall": str(shortfall),
                    "unit_cost": str(unit_cost),
                },
            )

        self.session.flush()

        total_cost = sum((c.total_cost for c in consumed), ZERO)
        result = OutboundResult(
            item_id=item_id,
            warehouse_id=warehouse_id,
            requested_quantity=quantity,
            total_cost=total_cost,
            average_cost=total_cost / quantity,
            consumed_layers=tuple(consumed),
            shortfall_quantity=shortfall if shortfall > ZERO else ZERO,
        )

        logger.info(
            "fifo_consumed",
            extra={
                "item_id": str(item_id),
                "warehouse_id": str(warehouse_id),
                "quantity": str(quantity),
                "total_cost": str(total_cost),
                "layers_touched": len(consumed),
            },
        )
        return result

    def _out_movement(
        self,
        organization_id: UUID,
        item_id: UUID,
        warehouse_id: UUID,
        layer_id: UUID | None,
        quantity: Decimal,
        unit_cost: Decimal,
        movement_type: MovementType,
        movement_date: date,
        source_type: str,
        source_id: UUID | None,
        actor_id: UUID,
    ) -> InventoryMovement:
        movement = InventoryMovement(
            organization_id=organization_id,
            item_id=item_id,
            warehouse_id=warehouse_id,
            layer_id=layer_id,
            direction=MovementDirection.OUT.value,
            movement_type=movement_type.value,
            quantity=quantity,
            unit_cost=unit_cost,
            total_value=quantity * unit_cost,
            movement_date=movement_date,
            source_type=source_type,
            source_id=source_id,
            status=MovementStatus.ACTIVE.value,
            created_by_id=actor_id,
        )
        self.session.add(movement)
        self.session.flush()
        return movement

    def create_cogs_journal(
        self,
        organization_id: UUID,
        item_id: UUID,
        total_cost: Decimal,
        source_id: UUID | None,
        posting_date: date,
        actor_id: UUID,
        source_type: str = "invoice",
    ) -> Journal | None:
        """Dr COGS / Cr inventory for ``total_cost``; None when the cost is zero."""
        if total_cost <= ZERO:
            return None
        return self._journals.create_journal(
            organization_id=organization_id,
            journal_date=posting_date,
            lines=[
                JournalLineSpec.dr(
                    self._role_account(organization_id, "cogs"),
                    total_cost,
                    f"COGS item {item_id}",
                ),
                JournalLineSpec.cr(
                    self._role_account(organization_id, "inventory"),
                    total_cost,
                    f"COGS item {item_id}",
                ),
            ],
            actor_id=actor_id,
            description="Cost of goods sold",
            source_type=source_type,
            source_id=source_id,
        )

    # ------------------------------------------------------------------
    # Reversal
    # ------------------------------------------------------------------

    def create_inventory_reversal(
        self,
        organization_id: UUID,
        movement_id: UUID,
        reversal_date: date,
        actor_id: UUID,
    ) -> InventoryMovement:
        """
        Undo one movement with a compensating movement in the other direction.

        An OUT movement gives its quantity back to its layer; an IN movement
        takes it back out, which fails once the stock has been issued.  A
        shortfall issue (no layer) cancels its open shortfall, which fails
        once any receipt settled part of it.  The original is tagged
        REVERSED.
        """
        original = self.session.execute(
            select(InventoryMovement)
            .where(
                InventoryMovement.organization_id == organization_id,
                InventoryMovement.id == movement_id,
            )
            .with_for_update()
        ).scalar_one_or_none()
        if original is None:
            raise MovementNotFoundError(str(movement_id))
        if original.status != MovementStatus.ACTIVE or original.reversal_of_id is not None:
            raise MovementAlreadyReversedError(str(movement_id))

        if original.layer_id is not None:
            layer = self.session.execute(
                select(InventoryLayer)
                .where(InventoryLayer.id == original.layer_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one()
            if original.direction == MovementDirection.OUT:
                layer.quantity_remaining = layer.quantity_remaining + original.quantity
            else:
                if layer.quantity_remaining < original.quantity:
                    raise LayerAlreadyConsumedError(
                        str(layer.id), layer.quantity_remaining, original.quantity
                    )
                layer.quantity_remaining = layer.quantity_remaining - original.quantity
            layer.updated_by_id = actor_id
        elif original.direction == MovementDirection.OUT:
            self._cancel_shortfall(original, actor_id)

        flipped = (
            MovementDirection.IN
            if original.direction == MovementDirection.OUT
            else MovementDirection.OUT
        )
        reversal = InventoryMovement(
            organization_id=organization_id,
            item_id=original.item_id,
            warehouse_id=original.warehouse_id,
            layer_id=original.layer_id,
            direction=flipped.value,
            movement_type=MovementType.REVERSAL.value,
            quantity=original.quantity,
            unit_cost=original.unit_cost,
            total_value=original.total_value,
            movement_date=reversal_date,
            source_type=original.source_type,
            source_id=original.source_id,
            status=MovementStatus.ACTIVE.value,
            reversal_of_id=original.id,
            created_by_id=actor_id,
        )
        self.session.add(reversal)

        original.status = MovementStatus.REVERSED.value
        original.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "inventory_reversed",
            extra={
                "movement_id": str(original.id),
                "reversal_id": str(reversal.id),
                "direction": flipped.value,
                "quantity": str(original.quantity),
            },
        )
        return reversal

    def _cancel_shortfall(self, movement: InventoryMovement, actor_id: UUID) -> None:
        shortfall = self.session.execute(
            select(InventoryShortfall)
            .where(InventoryShortfall.movement_id == movement.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if shortfall is None:
            return
        if shortfall.quantity_outstanding != shortfall.quantity:
            raise ShortfallAlreadySettledError(
                str(movement.id), shortfall.quantity - shortfall.quantity_outstanding
            )
        shortfall.quantity_outstanding = ZERO
        shortfall.status = ShortfallStatus.CANCELLED.value
        shortfall.updated_by_id = actor_id

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def quantity_on_hand(
        self, organization_id: UUID, item_id: UUID, warehouse_id: UUID
    ) -> Decimal:
        return self._selector.quantity_on_hand(organization_id, item_id, warehouse_id)

    def outstanding_shortfall(
        self, organization_id: UUID, item_id: UUID, warehouse_id: UUID
    ) -> Decimal:
        return self._selector.outstanding_shortfall(
            organization_id, item_id, warehouse_id
        )

    def get_inventory_levels(
        self,
        organization_id: UUID,
        item_id: UUID | None = None,
        warehouse_id: UUID | None = None,
    ) -> list[InventoryLevel]:
        return self._selector.levels(organization_id, item_id, warehouse_id)

    def get_movement_history(
        self,
        organization_id: UUID,
        item_id: UUID,
        warehouse_id: UUID | None = None,
        limit: int = 100,
    ) -> list[InventoryMovement]:
        return self._selector.movement_history(
            organization_id, item_id, warehouse_id, limit
        )
