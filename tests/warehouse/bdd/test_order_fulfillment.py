"""BDD tests for allocating, picking and packing an order."""

from pytest_bdd import parsers, scenarios, then, when

scenarios("features/order_fulfillment.feature")


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the order is allocated")
def _(warehouse, attempt, order):
    attempt(warehouse.allocate_order, str(order.id))


@when("every pick task is completed in full")
def _(warehouse, tasks):
    for task in tasks:
        warehouse.assign_pick_task(str(task.id), "picker-1")
        warehouse.start_pick_task(str(task.id))
        warehouse.complete_pick_task(str(task.id), task.quantity)


@when(parsers.cfparse("every pick task is completed with {short:d} unit short"))
def _(warehouse, tasks, short):
    for task in tasks:
        warehouse.assign_pick_task(str(task.id), "picker-1")
        warehouse.start_pick_task(str(task.id))
        warehouse.complete_pick_task(str(task.id), task.quantity - short)


@when(parsers.cfparse("the order is packed into {count:d} package"))
def _(warehouse, order, count):
    warehouse.complete_packing_order(str(order.id), [{"weight": 1.0}] * count, packed_by="packer-1")


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the order has {short:d} unit short"))
def _(warehouse, order, short):
    assert sum(line.qty_short for line in warehouse.get_order(str(order.id)).lines) == short
