"""Application tests for wave selection and membership."""

from datetime import UTC, datetime

import pytest
from protean.exceptions import ValidationError

from warehouse.config import FulfillmentPolicy
from warehouse.errors import EmptySelectionError, StateConflictError
from warehouse.outbound.order import OrderStatus
from warehouse.outbound.wave import WaveStatus

LATER = datetime(2024, 1, 16, 17, 0, tzinfo=UTC)
MUCH_LATER = datetime(2024, 1, 20, 17, 0, tzinfo=UTC)

NEW_YORK = {"city": "New York", "state": "NY", "postal_code": "10001", "country": "US"}
ATLANTA = {"city": "Atlanta", "state": "GA", "postal_code": "30301", "country": "US"}


@pytest.fixture()
def stocked(floor, stock):
    stock("SKU-1", "A-01", 50)
    stock("SKU-2", "A-02", 50)
    return floor


class TestCreateWave:
    def test_priority_then_deadline(self, stocked, make_order):
        low = make_order({"SKU-1": 1}, allocate=True, priority=1)
        urgent_late = make_order({"SKU-1": 1}, allocate=True, priority=5, sla_deadline=MUCH_LATER)
        urgent_soon = make_order({"SKU-1": 1}, allocate=True, priority=5, sla_deadline=LATER)

        wave = stocked.create_wave()

        assert wave.member_ids == [str(urgent_soon.id), str(urgent_late.id), str(low.id)]
        assert wave.status == WaveStatus.PLANNED.value

    def test_members_are_waved(self, stocked, make_order):
        order = make_order({"SKU-1": 2, "SKU-2": 1}, allocate=True)

        wave = stocked.create_wave()

        order = stocked.get_order(str(order.id))
        assert order.status == OrderStatus.WAVED.value
        assert str(order.wave_id) == str(wave.id)
        assert (wave.metrics.order_count, wave.metrics.unit_count, wave.metrics.unique_skus) == (1, 3, 2)

    def test_max_orders_cap(self, stocked, make_order):
        for _ in range(3):
            make_order({"SKU-1": 1}, allocate=True)

        wave = stocked.create_wave({"max_orders": 2})

        assert len(wave.member_ids) == 2

    def test_line_cap_skips_orders_that_do_not_fit(self, stocked, make_order):
        big = make_order({"SKU-1": 1, "SKU-2": 1}, allocate=True, priority=9)
        bigger = make_order({"SKU-1": 2, "SKU-2": 2}, allocate=True, priority=5)
        small = make_order({"SKU-1": 1}, allocate=True, priority=1)

        wave = stocked.create_wave({"max_lines": 3})

        assert wave.member_ids == [str(big.id), str(small.id)]
        assert stocked.get_order(str(bigger.id)).wave_id is None

    def test_cutoff_and_min_priority(self, stocked, make_order):
        make_order({"SKU-1": 1}, allocate=True, priority=5, sla_deadline=MUCH_LATER)
        make_order({"SKU-1": 1}, allocate=True, priority=0, sla_deadline=LATER)
        due = make_order({"SKU-1": 1}, allocate=True, priority=5, sla_deadline=LATER)

        wave = stocked.create_wave({"cutoff": LATER, "min_priority": 3})

        assert wave.member_ids == [str(due.id)]

    def test_nothing_eligible(self, stocked, make_order):
        make_order({"SKU-1": 1})
        with pytest.raises(EmptySelectionError):
            stocked.create_wave()

    def test_orders_join_one_wave_only(self, stocked, make_order):
        make_order({"SKU-1": 1}, allocate=True)
        stocked.create_wave()

        with pytest.raises(EmptySelectionError):
            stocked.create_wave()


class TestPlanWave:
    def test_explicit_orders_join_a_planned_wave(self, stocked, make_order):
        make_order({"SKU-1": 1}, allocate=True)
        wave = stocked.create_wave()
        late = make_order({"SKU-2": 1}, allocate=True)

        wave = stocked.plan_wave(str(wave.id), order_ids=[str(late.id)])

        assert str(late.id) in wave.member_ids
        assert wave.metrics.order_count == 2

    def test_waved_order_cannot_join_another_wave(self, stocked, make_order):
        first = make_order({"SKU-1": 1}, allocate=True)
        stocked.create_wave()
        make_order({"SKU-2": 1}, allocate=True)
        second_wave = stocked.create_wave()

        with pytest.raises(StateConflictError):
            stocked.plan_wave(str(second_wave.id), order_ids=[str(first.id)])

    def test_explicit_admission_is_all_or_nothing(self, stocked, make_order):
        make_order({"SKU-1": 1}, allocate=True)
        wave = stocked.create_wave()
        ready = make_order({"SKU-1": 1}, allocate=True)
        created = make_order({"SKU-2": 1}, validate=False)

        with pytest.raises(StateConflictError):
            stocked.plan_wave(str(wave.id), order_ids=[str(ready.id), str(created.id)])

        assert stocked.get_order(str(ready.id)).wave_id is None
        assert len(stocked.get_wave(str(wave.id)).member_ids) == 1

    def test_criteria_top_up(self, stocked, make_order):
        make_order({"SKU-1": 1}, allocate=True)
        wave = stocked.create_wave()
        make_order({"SKU-1": 1}, allocate=True)
        make_order({"SKU-2": 1}, allocate=True)

        wave = stocked.plan_wave(str(wave.id))

        assert len(wave.member_ids) == 3

    def test_only_planned_waves_take_orders(self, stocked, make_order, pick_wave):
        make_order({"SKU-1": 1}, allocate=True)
        wave = stocked.create_wave()
        pick_wave(wave.id)
        late = make_order({"SKU-1": 1}, allocate=True)

        with pytest.raises(StateConflictError):
            stocked.plan_wave(str(wave.id), order_ids=[str(late.id)])


class TestWaveStrategies:
    def test_zone_groups_by_postal_code_ahead_of_priority(self, stocked, make_order):
        unrouted = make_order({"SKU-1": 1}, allocate=True, priority=9)
        atlanta = make_order({"SKU-1": 1}, allocate=True, ship_to=ATLANTA)
        new_york = make_order({"SKU-1": 1}, allocate=True, ship_to=NEW_YORK)

        wave = stocked.create_wave({"strategy": "Zone"})

        assert wave.member_ids == [str(new_york.id), str(atlanta.id), str(unrouted.id)]
        assert wave.strategy == "Zone"

    def test_route_groups_by_state(self, stocked, make_order):
        new_york = make_order({"SKU-1": 1}, allocate=True, priority=5, ship_to=NEW_YORK)
        atlanta = make_order({"SKU-1": 1}, allocate=True, ship_to=ATLANTA)

        wave = stocked.create_wave({"strategy": "Route"})

        assert wave.member_ids == [str(atlanta.id), str(new_york.id)]

    def test_product_prefers_orders_sharing_skus_before_the_cap(self, stocked, make_order):
        first = make_order({"SKU-1": 1}, allocate=True)
        odd_one_out = make_order({"SKU-2": 1}, allocate=True, priority=5)
        second = make_order({"SKU-1": 2}, allocate=True)

        wave = stocked.create_wave({"strategy": "Product", "max_orders": 2})

        assert set(wave.member_ids) == {str(first.id), str(second.id)}
        assert stocked.get_order(str(odd_one_out.id)).wave_id is None

    def test_plan_wave_keeps_the_wave_strategy(self, stocked, make_order):
        make_order({"SKU-1": 1}, allocate=True, ship_to=NEW_YORK)
        wave = stocked.create_wave({"strategy": "Zone"})
        unrouted = make_order({"SKU-1": 1}, allocate=True, priority=9)
        atlanta = make_order({"SKU-1": 1}, allocate=True, ship_to=ATLANTA)

        wave = stocked.plan_wave(str(wave.id))

        assert wave.member_ids[1:] == [str(atlanta.id), str(unrouted.id)]

    def test_unknown_strategy_is_rejected(self, stocked, make_order):
        make_order({"SKU-1": 1}, allocate=True)

        with pytest.raises(ValidationError):
            stocked.create_wave({"strategy": "Alphabetical"})


class TestShortShipDisabled:
    @pytest.fixture()
    def policy(self):
        return FulfillmentPolicy(allow_partial_orders=True, allow_short_ship=False)

    def test_partially_allocated_orders_are_held_back(self, floor, stock, make_order):
        stock("SKU-1", "A-01", 3)
        make_order({"SKU-1": 5}, allocate=True)
        with pytest.raises(EmptySelectionError):
            floor.create_wave()

    def test_fully_allocated_orders_still_wave(self, floor, stock, make_order):
        stock("SKU-1", "A-01", 3)
        stock("SKU-2", "A-02", 1)
        make_order({"SKU-1": 5}, allocate=True)
        full = make_order({"SKU-2": 1}, allocate=True)

        wave = floor.create_wave()

        assert wave.member_ids == [str(full.id)]
