from datetime import UTC, date, datetime

import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture

from warehouse.carrier import reset_carrier
from warehouse.carrier.fake_adapter import FakeCarrier
from warehouse.clock import FixedClock
from warehouse.config import FulfillmentPolicy, reset_policy

NOW = datetime(2024, 1, 15, 9, 0, tzinfo=UTC)
TODAY = date(2024, 1, 15)


@pytest.fixture(scope="session")
def warehouse_bed():
    from warehouse.domain import warehouse

    bed = DomainFixture(warehouse)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(warehouse_bed):
    with warehouse_bed.domain_context():
        yield

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()

    reset_policy()
    reset_carrier()


@pytest.fixture()
def clock():
    return FixedClock(NOW)


@pytest.fixture()
def policy():
    return FulfillmentPolicy()


@pytest.fixture()
def carrier():
    return FakeCarrier()


@pytest.fixture()
def engine(clock, policy, carrier):
    from warehouse.engine import WarehouseEngine

    return WarehouseEngine(policy=policy, clock=clock, carrier=carrier)


@pytest.fixture()
def floor(engine):
    """A small warehouse: two products, pick faces, bulk, receiving and returns."""
    engine.create_product("SKU-1", "Widget", dimensions={"weight": 0.5})
    engine.create_product("SKU-2", "Gadget", dimensions={"weight": 1.0})
    engine.create_location("A-01", "A", location_type="Pick_Face", capacity=100)
    engine.create_location("A-02", "A", location_type="Pick_Face", capacity=100)
    engine.create_location("B-01", "B", location_type="Bulk", capacity=500)
    engine.create_location("RECEIVING", "DOCK", location_type="Receiving")
    engine.create_location("RETURNS", "DOCK", location_type="Returns")
    return engine


@pytest.fixture()
def stock(floor):
    """Book on-hand stock: ``stock("SKU-1", "A-01", 10, lot_number=..., expiry_date=...)``."""

    def _stock(sku, location_code, quantity, **attrs):
        return floor.adjust_inventory(sku, location_code, quantity, "Cycle count", **attrs)

    return _stock


@pytest.fixture()
def make_order(floor):
    """Create an order from ``{sku: quantity}`` and move it as far as asked."""

    def _make(lines, validate=True, allocate=False, **attrs):
        order = floor.create_order([{"sku": sku, "quantity": qty} for sku, qty in lines.items()], **attrs)
        if validate or allocate:
            floor.validate_order(str(order.id))
        if allocate:
            floor.allocate_order(str(order.id))
        return floor.get_order(str(order.id))

    return _make


@pytest.fixture()
def pick_wave(floor):
    """Work every pick task of a wave; ``short`` maps SKU to units left on the shelf."""

    def _pick(wave_id, short=None):
        short = short or {}
        tasks = floor.generate_pick_tasks(str(wave_id))
        for task in tasks:
            floor.assign_pick_task(str(task.id), "picker-1")
            floor.start_pick_task(str(task.id))
            floor.complete_pick_task(str(task.id), task.quantity - short.get(task.sku, 0))
        return tasks

    return _pick


@pytest.fixture()
def packed_order(floor, stock, make_order, pick_wave):
    """An order for 2 x SKU-1 that has been waved, picked and packed."""
    stock("SKU-1", "A-01", 10)
    order = make_order(
        {"SKU-1": 2},
        allocate=True,
        ship_to={"name": "Ada", "city": "New York", "state": "NY", "postal_code": "10001", "country": "US"},
    )
    wave = floor.create_wave()
    pick_wave(wave.id)
    return floor.complete_packing_order(str(order.id), [{"weight": 2.0}], packed_by="packer-1")


@pytest.fixture()
def carriers(floor):
    floor.create_carrier("FAST", "Fast Freight", base_rate=10.0, on_time_rate=0.95, transit_days=1)
    floor.create_carrier("SLOW", "Slow Post", base_rate=8.0, on_time_rate=0.80, transit_days=3)
    return floor
