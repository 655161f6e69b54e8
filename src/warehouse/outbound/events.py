"""Outbound domain events — orders, waves, pick tasks and packing.

These events form the audit trail of the outbound flow. Services coordinate
through direct calls; nothing in the engine subscribes to these events.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from warehouse.domain import warehouse


# ---------------------------------------------------------------------------
# Order
# ---------------------------------------------------------------------------
@warehouse.event(part_of="Order")
class OrderReceived:
    """A customer order arrived for fulfillment."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    priority = Integer(required=True)
    sla_deadline = DateTime()
    lines = Text(required=True)  # JSON list of {sku, quantity}
    received_at = DateTime(required=True)


@warehouse.event(part_of="Order")
class OrderValidated:
    __version__ = 1

    order_id = Identifier(required=True)
    validated_at = DateTime(required=True)


@warehouse.event(part_of="Order")
class OrderAllocated:
    """Stock was reserved for the order, fully or partially."""

    __version__ = 1

    order_id = Identifier(required=True)
    status = String(required=True)
    units_requested = Integer(required=True)
    units_allocated = Integer(required=True)
    allocated_at = DateTime(required=True)


@warehouse.event(part_of="Order")
class OrderWaved:
    __version__ = 1

    order_id = Identifier(required=True)
    wave_id = Identifier(required=True)
    waved_at = DateTime(required=True)


@warehouse.event(part_of="Order")
class OrderPickingStarted:
    __version__ = 1

    order_id = Identifier(required=True)
    wave_id = Identifier(required=True)
    started_at = DateTime(required=True)


@warehouse.event(part_of="Order")
class OrderLineShortPicked:
    """Fewer units than allocated were found for an order line."""

    __version__ = 1

    order_id = Identifier(required=True)
    line_id = Identifier(required=True)
    sku = String(required=True)
    short_quantity = Integer(required=True)
    recorded_at = DateTime(required=True)


@warehouse.event(part_of="Order")
class OrderPacked:
    __version__ = 1

    order_id = Identifier(required=True)
    package_count = Integer(required=True)
    total_weight = Float()
    packed_at = DateTime(required=True)


@warehouse.event(part_of="Order")
class OrderShipped:
    __version__ = 1

    order_id = Identifier(required=True)
    shipment_id = Identifier(required=True)
    shipped_at = DateTime(required=True)


@warehouse.event(part_of="Order")
class OrderClosed:
    __version__ = 1

    order_id = Identifier(required=True)
    closed_at = DateTime(required=True)


@warehouse.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String()
    cancelled_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Wave
# ---------------------------------------------------------------------------
@warehouse.event(part_of="Wave")
class WavePlanned:
    """A wave was created with an initial set of member orders."""

    __version__ = 1

    wave_id = Identifier(required=True)
    wave_number = String(required=True)
    order_ids = Text(required=True)  # JSON list
    planned_at = DateTime(required=True)


@warehouse.event(part_of="Wave")
class WaveOrdersAdded:
    __version__ = 1

    wave_id = Identifier(required=True)
    order_ids = Text(required=True)  # JSON list
    added_at = DateTime(required=True)


@warehouse.event(part_of="Wave")
class WaveOrderRemoved:
    __version__ = 1

    wave_id = Identifier(required=True)
    order_id = Identifier(required=True)
    removed_at = DateTime(required=True)


@warehouse.event(part_of="Wave")
class WaveStatusChanged:
    """A wave moved to Picking, Picked, Completed or Cancelled."""

    __version__ = 1

    wave_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Pick task
# ---------------------------------------------------------------------------
@warehouse.event(part_of="PickTask")
class PickTaskCreated:
    __version__ = 1

    task_id = Identifier(required=True)
    wave_id = Identifier(required=True)
    sku = String(required=True)
    location_code = String(required=True)
    quantity = Integer(required=True)
    sequence = Integer(required=True)
    created_at = DateTime(required=True)


@warehouse.event(part_of="PickTask")
class PickTaskAssigned:
    __version__ = 1

    task_id = Identifier(required=True)
    assignee = String(required=True)
    assigned_at = DateTime(required=True)


@warehouse.event(part_of="PickTask")
class PickTaskStarted:
    __version__ = 1

    task_id = Identifier(required=True)
    started_at = DateTime(required=True)


@warehouse.event(part_of="PickTask")
class PickTaskCompleted:
    __version__ = 1

    task_id = Identifier(required=True)
    wave_id = Identifier(required=True)
    quantity = Integer(required=True)
    picked_quantity = Integer(required=True)
    short_quantity = Integer(required=True)
    completed_at = DateTime(required=True)


@warehouse.event(part_of="PickTask")
class PickTaskCancelled:
    __version__ = 1

    task_id = Identifier(required=True)
    reason = String()
    cancelled_at = DateTime(required=True)


@warehouse.event(part_of="PickTask")
class PickTaskReduced:
    """Allocations of a cancelled order were withdrawn from a pending task."""

    __version__ = 1

    task_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)
    reduced_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Packing slip
# ---------------------------------------------------------------------------
@warehouse.event(part_of="PackingSlip")
class PackingSlipCreated:
    __version__ = 1

    slip_id = Identifier(required=True)
    order_id = Identifier(required=True)
    units_to_pack = Integer(required=True)
    created_at = DateTime(required=True)


@warehouse.event(part_of="PackingSlip")
class PackingSlipCompleted:
    __version__ = 1

    slip_id = Identifier(required=True)
    order_id = Identifier(required=True)
    packed_by = String()
    package_count = Integer(required=True)
    completed_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Pick exception
# ---------------------------------------------------------------------------
@warehouse.event(part_of="PickException")
class PickExceptionReported:
    """A picker could not pick what the task asked for."""

    __version__ = 1

    exception_id = Identifier(required=True)
    task_id = Identifier(required=True)
    wave_id = Identifier(required=True)
    sku = String(required=True)
    location_code = String(required=True)
    shortfall = Integer(required=True)
    reason = String(required=True)
    reported_by = String()
    reported_at = DateTime(required=True)


@warehouse.event(part_of="PickException")
class PickExceptionStatusChanged:
    __version__ = 1

    exception_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    resolution = String()
    changed_at = DateTime(required=True)
