"""Shared BDD fixtures and step definitions for the warehouse."""

from datetime import timedelta

import pytest
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then

from warehouse import errors

_ERROR_CLASSES = {
    "ValidationError": ValidationError,
    "InsufficientStockError": errors.InsufficientStockError,
    "NoCapacityError": errors.NoCapacityError,
    "NoEligibleCarrierError": errors.NoEligibleCarrierError,
    "StateConflictError": errors.StateConflictError,
    "NegativeStockError": errors.NegativeStockError,
    "EmptySelectionError": errors.EmptySelectionError,
    "LabelGenerationError": errors.LabelGenerationError,
}


@pytest.fixture()
def error():
    """Container for the error raised by a When step, if any."""
    return {"exc": None}


@pytest.fixture()
def attempt(error):
    """Run a warehouse operation, capturing the error it raises instead of failing the step."""

    def _attempt(operation, *args, **kwargs):
        try:
            return operation(*args, **kwargs)
        except (ValidationError, errors.WarehouseError) as exc:
            error["exc"] = exc
            return None

    return _attempt


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a small warehouse floor", target_fixture="warehouse")
def _(floor):
    return floor


@given(parsers.cfparse('{quantity:d} units of "{sku}" are stored at "{location}"'))
def _(stock, quantity, sku, location):
    stock(sku, location, quantity)


@given(parsers.cfparse('{quantity:d} units of "{sku}" from lot "{lot}" expiring in {days:d} days are stored at "{location}"'))
def _(stock, clock, quantity, sku, lot, days, location):
    stock(sku, location, quantity, lot_number=lot, expiry_date=clock.today() + timedelta(days=days))


@given(parsers.cfparse('an order for {quantity:d} units of "{sku}"'), target_fixture="order")
def _(make_order, quantity, sku):
    return make_order({sku: quantity})


@given("the order is allocated", target_fixture="order")
def _(warehouse, order):
    warehouse.allocate_order(str(order.id))
    return warehouse.get_order(str(order.id))


@given("the order is released in a wave", target_fixture="wave")
def _(warehouse, order):
    return warehouse.create_wave()


@given("pick tasks are generated", target_fixture="tasks")
def _(warehouse, wave):
    return warehouse.generate_pick_tasks(str(wave.id))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _(warehouse, order, status):
    assert warehouse.get_order(str(order.id)).status == status


@then(parsers.cfparse('the action fails with a "{error_name}"'))
def _(error, error_name):
    assert error["exc"] is not None, f"Expected {error_name} but nothing was raised"
    assert isinstance(error["exc"], _ERROR_CLASSES[error_name])


@then(parsers.cfparse('"{sku}" has {on_hand:d} on hand and {available:d} available'))
def _(warehouse, sku, on_hand, available):
    inventory = warehouse.get_inventory(sku)
    assert (inventory["on_hand"], inventory["available"]) == (on_hand, available)


@then(parsers.cfparse('the wave status is "{status}"'))
def _(warehouse, wave, status):
    assert warehouse.get_wave(str(wave.id)).status == status
