"""
Property tests for the pure FIFO planner (ledger_kernel/domain/fifo.py).

No database: layers are plain snapshots.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from ledger_kernel.domain.fifo import (
    LayerSnapshot,
    eligible_layers,
    plan_fifo_consumption,
)

BASE_DATE = date(2024, 6, 1)

quantities = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("1000"), places=3, allow_nan=False, allow_infinity=False
)
costs = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("500"), places=2, allow_nan=False, allow_infinity=False
)


@composite
def layer_lists(draw):
    count = draw(st.integers(min_value=0, max_value=8))
    layers = []
    for sequence in range(1, count + 1):
        layers.append(
            LayerSnapshot(
                layer_id=uuid4(),
                layer_date=BASE_DATE + timedelta(days=draw(st.integers(min_value=0, max_value=10))),
                sequence=sequence,
                quantity_remaining=draw(quantities),
                unit_cost=draw(costs),
            )
        )
    # storage order is arbitrary
    return draw(st.permutations(layers))


requests = st.decimals(
    min_value=Decimal("0.001"), max_value=Decimal("5000"), places=3, allow_nan=False, allow_infinity=False
)
as_of_dates = st.integers(min_value=0, max_value=10).map(lambda d: BASE_DATE + timedelta(days=d))


class TestFifoPlanProperties:
    """Invariants of plan_fifo_consumption for arbitrary layers."""

    @given(layers=layer_lists(), requested=requests, as_of=as_of_dates)
    @settings(max_examples=200)
    def test_allocated_is_min_of_requested_and_available(self, layers, requested, as_of):
        plan = plan_fifo_consumption(layers, requested, as_of)
        assert plan.allocated == min(requested, plan.available)
        assert plan.allocated + plan.shortfall == requested
        assert plan.is_sufficient == (plan.shortfall == 0)

    @given(layers=layer_lists(), requested=requests, as_of=as_of_dates)
    @settings(max_examples=200)
    def test_never_allocates_more_than_a_layer_holds(self, layers, requested, as_of):
        by_id = {layer.layer_id: layer for layer in layers}
        plan = plan_fifo_consumption(layers, requested, as_of)
        for allocation in plan.allocations:
            layer = by_id[allocation.layer_id]
            assert Decimal("0") < allocation.quantity <= layer.quantity_remaining
            assert allocation.unit_cost == layer.unit_cost

    @given(layers=layer_lists(), requested=requests, as_of=as_of_dates)
    @settings(max_examples=200)
    def test_later_layers_never_consumed(self, layers, requested, as_of):
        plan = plan_fifo_consumption(layers, requested, as_of)
        assert all(a.layer_date <= as_of for a in plan.allocations)

    @given(layers=layer_lists(), requested=requests, as_of=as_of_dates)
    @settings(max_examples=200)
    def test_oldest_first_and_only_last_partial(self, layers, requested, as_of):
        ordered = eligible_layers(layers, as_of)
        plan = plan_fifo_consumption(layers, requested, as_of)

        # allocations are a prefix of the eligible layers in FIFO order
        assert [a.layer_id for a in plan.allocations] == [
            layer.layer_id for layer in ordered[: len(plan.allocations)]
        ]
        # every layer but the last is taken whole
        for allocation, layer in zip(plan.allocations[:-1], ordered):
            assert allocation.quantity == layer.quantity_remaining

    @given(layers=layer_lists(), requested=requests, as_of=as_of_dates)
    @settings(max_examples=200)
    def test_total_cost_is_sum_of_allocations(self, layers, requested, as_of):
        plan = plan_fifo_consumption(layers, requested, as_of)
        assert plan.total_cost == sum(
            (a.quantity * a.unit_cost for a in plan.allocations), Decimal("0")
        )


class TestFifoPlanExamples:
    """Worked examples."""

    def _layer(self, days, sequence, quantity, cost):
        return LayerSnapshot(
            layer_id=uuid4(),
            layer_date=BASE_DATE + timedelta(days=days),
            sequence=sequence,
            quantity_remaining=Decimal(quantity),
            unit_cost=Decimal(cost),
        )

    def test_three_layer_consumption(self):
        layers = [
            self._layer(2, 3, "20", "100"),
            self._layer(0, 1, "30", "80"),
            self._layer(1, 2, "40", "90"),
        ]
        plan = plan_fifo_consumption(layers, Decimal("60"), BASE_DATE + timedelta(days=2))
        assert plan.total_cost == Decimal("5100")
        assert [a.quantity for a in plan.allocations] == [Decimal("30"), Decimal("30")]
        assert plan.last_unit_cost == Decimal("90")

    def test_same_date_ordered_by_sequence(self):
        first = self._layer(0, 7, "5", "1")
        second = self._layer(0, 9, "5", "2")
        plan = plan_fifo_consumption([second, first], Decimal("6"), BASE_DATE)
        assert [a.layer_id for a in plan.allocations] == [first.layer_id, second.layer_id]

    def test_empty_layers_are_skipped(self):
        empty = self._layer(0, 1, "0", "5")
        full = self._layer(1, 2, "3", "7")
        plan = plan_fifo_consumption([empty, full], Decimal("3"), BASE_DATE + timedelta(days=1))
        assert [a.layer_id for a in plan.allocations] == [full.layer_id]

    def test_no_layers(self):
        plan = plan_fifo_consumption([], Decimal("4"), BASE_DATE)
        assert plan.available == 0
        assert plan.shortfall == Decimal("4")
        assert plan.last_unit_cost is None
