"""Warehouse engine — composition root and public operations.

Builds every component once, handing each its store, policy, clock, locks
and collaborators, and exposes the warehouse operations as plain methods.
Calls must run inside an active ``warehouse`` domain context.
"""

import structlog

from warehouse.carrier import get_carrier
from warehouse.catalogue.management import Catalogue
from warehouse.catalogue.product import Product
from warehouse.clock import SystemClock
from warehouse.config import get_policy
from warehouse.domain import warehouse
from warehouse.inbound.asn import AdvanceShippingNotice
from warehouse.inbound.purchase_order import PurchaseOrder
from warehouse.inbound.putaway import PutAwayAssigner
from warehouse.inbound.putaway_task import PutAwayTask
from warehouse.inbound.receipt import Receipt
from warehouse.inbound.receiving import ReceivingService
from warehouse.layout.directory import LocationDirectory
from warehouse.layout.location import Location
from warehouse.locking import KeyedLocks
from warehouse.outbound.allocation import AllocationEngine
from warehouse.outbound.lifecycle import OrderLifecycle
from warehouse.outbound.order import Order
from warehouse.outbound.packing import PackingStation
from warehouse.outbound.packing_slip import PackingSlip
from warehouse.outbound.pick_exception import PickException
from warehouse.outbound.pick_task import PickTask
from warehouse.outbound.picking import PickTaskGenerator
from warehouse.outbound.planning import WavePlanner
from warehouse.outbound.wave import Wave
from warehouse.shipping.carrier import Carrier
from warehouse.shipping.dispatch import ShippingService
from warehouse.shipping.returns import ReturnsService
from warehouse.shipping.rma import ReturnAuthorization
from warehouse.shipping.selection import CarrierSelector
from warehouse.shipping.shipment import Shipment
from warehouse.stock.allocation import Allocation
from warehouse.stock.ledger import InventoryLedger
from warehouse.stock.lot import Lot
from warehouse.stock.movement import StockMovement
from warehouse.stock.record import InventoryRecord
from warehouse.store import (
    ALLOCATIONS,
    ASNS,
    CARRIERS,
    INVENTORY_RECORDS,
    LOCATIONS,
    LOTS,
    ORDERS,
    PACKING_SLIPS,
    PICK_EXCEPTIONS,
    PICK_TASKS,
    PRODUCTS,
    PURCHASE_ORDERS,
    PUTAWAY_TASKS,
    RECEIPTS,
    RETURN_AUTHORIZATIONS,
    SHIPMENTS,
    STOCK_MOVEMENTS,
    WAVES,
    RepositoryStore,
)

logger = structlog.get_logger(__name__)

# container -> (document class, child collections loaded with it)
CONTAINERS = {
    PRODUCTS: (Product, ()),
    LOCATIONS: (Location, ()),
    INVENTORY_RECORDS: (InventoryRecord, ()),
    LOTS: (Lot, ()),
    STOCK_MOVEMENTS: (StockMovement, ()),
    ALLOCATIONS: (Allocation, ()),
    ORDERS: (Order, ("lines",)),
    WAVES: (Wave, ()),
    PICK_TASKS: (PickTask, ()),
    PICK_EXCEPTIONS: (PickException, ()),
    PACKING_SLIPS: (PackingSlip, ("lines",)),
    PURCHASE_ORDERS: (PurchaseOrder, ("lines",)),
    ASNS: (AdvanceShippingNotice, ()),
    RECEIPTS: (Receipt, ("lines",)),
    PUTAWAY_TASKS: (PutAwayTask, ()),
    CARRIERS: (Carrier, ()),
    SHIPMENTS: (Shipment, ("packages", "tracking_events")),
    RETURN_AUTHORIZATIONS: (ReturnAuthorization, ("items", "inspection_results")),
}


class WarehouseEngine:
    def __init__(self, store=None, policy=None, clock=None, carrier=None, domain=warehouse):
        self.store = store or RepositoryStore(domain)
        self.policy = policy or get_policy()
        self.clock = clock or SystemClock()
        self.carrier = carrier or get_carrier()
        self.locks = KeyedLocks()

        for name, (document_cls, eager) in CONTAINERS.items():
            self.store.create_container(name, document_cls, eager)

        self.catalogue = Catalogue(self.store, self.clock)
        self.directory = LocationDirectory(self.store, self.clock, self.catalogue)
        self.ledger = InventoryLedger(self.store, self.locks, self.clock, self.catalogue, self.directory)
        self.allocation = AllocationEngine(self.store, self.ledger, self.locks, self.clock, self.policy)
        self.lifecycle = OrderLifecycle(
            self.store, self.locks, self.clock, self.policy, self.allocation, self.catalogue
        )
        self.planner = WavePlanner(self.store, self.lifecycle, self.locks, self.clock, self.policy)
        self.picking = PickTaskGenerator(self.store, self.ledger, self.lifecycle, self.locks, self.clock)
        self.packing = PackingStation(self.store, self.lifecycle, self.planner, self.locks, self.clock)
        self.putaway = PutAwayAssigner(
            self.store, self.ledger, self.directory, self.catalogue, self.locks, self.clock, self.policy
        )
        self.receiving = ReceivingService(
            self.store, self.ledger, self.catalogue, self.putaway, self.locks, self.clock
        )
        self.shipping = ShippingService(
            self.store,
            self.lifecycle,
            CarrierSelector.from_policy(self.policy),
            self.carrier,
            self.locks,
            self.clock,
        )
        self.returns = ReturnsService(
            self.store, self.ledger, self.directory, self.carrier, self.locks, self.clock, self.policy
        )

    # -------------------------------------------------------------------
    # Catalogue and layout
    # -------------------------------------------------------------------
    def create_product(self, sku: str, name: str, **attrs) -> Product:
        return self.catalogue.create_product(sku, name, **attrs)

    def update_product(self, sku: str, expected_revision: int | None = None, **attrs) -> Product:
        return self.catalogue.update_product(sku, expected_revision=expected_revision, **attrs)

    def get_product_revision(self, sku: str) -> int:
        return self.catalogue.product_revision(sku)

    def get_product(self, sku: str) -> Product:
        return self.catalogue.require(sku)

    def create_location(self, code: str, zone: str, **attrs) -> Location:
        return self.directory.create_location(code, zone, **attrs)

    def set_location_status(self, code: str, status: str) -> Location:
        return self.directory.set_location_status(code, status)

    def get_available_locations(self, sku: str, location_type: str | None = None, min_capacity: int = 0) -> list:
        return self.directory.get_available_locations(sku, location_type=location_type, min_capacity=min_capacity)

    # -------------------------------------------------------------------
    # Inventory and lots
    # -------------------------------------------------------------------
    def get_inventory(self, sku: str, location_code: str | None = None) -> dict:
        return self.ledger.get_inventory(sku, location_code)

    def get_movements(self, sku: str) -> list:
        return self.ledger.get_movements(sku)

    def adjust_inventory(
        self,
        sku: str,
        location_code: str,
        delta: int,
        reason: str,
        lot_number: str | None = None,
        reference: str | None = None,
        expiry_date=None,
    ) -> InventoryRecord:
        return self.ledger.adjust(
            sku, location_code, lot_number, delta, reason, reference=reference, expiry_date=expiry_date
        )

    def allocate_inventory(
        self,
        sku: str,
        quantity: int,
        reference: str | None = None,
        exclude_locations=None,
        partial: bool = False,
    ):
        return self.allocation.allocate_inventory(
            sku, quantity, reference=reference, exclude_locations=exclude_locations, partial=partial
        )

    def release_allocation(self, allocation_id: str, quantity: int | None = None) -> Allocation:
        return self.ledger.release(allocation_id, quantity)

    def create_lot(self, sku: str, lot_number: str, **attrs) -> Lot:
        return self.ledger.create_lot(sku, lot_number, **attrs)

    def set_lot_quality_status(self, sku: str, lot_number: str, status: str) -> Lot:
        return self.ledger.set_lot_quality_status(sku, lot_number, status)

    def get_lots_by_product(self, sku: str, status: str | None = None) -> list:
        return self.ledger.get_lots_by_product(sku, status)

    def get_expiring_lots(self, days: int = 30) -> list:
        return self.ledger.get_expiring_lots(days)

    # -------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------
    def create_purchase_order(self, po_number: str, supplier_name: str, lines: list[dict], **attrs):
        return self.receiving.create_purchase_order(po_number, supplier_name, lines, **attrs)

    def get_purchase_order(self, purchase_order_id: str) -> PurchaseOrder:
        return self.receiving.get_purchase_order(purchase_order_id)

    def process_asn(self, asn_number: str, items: list[dict], purchase_order_id: str | None = None, **attrs):
        return self.receiving.process_asn(asn_number, items, purchase_order_id=purchase_order_id, **attrs)

    def start_receiving(
        self,
        purchase_order_id: str | None = None,
        asn_id: str | None = None,
        expected_items: list[dict] | None = None,
        **attrs,
    ) -> Receipt:
        return self.receiving.start_receiving(
            purchase_order_id=purchase_order_id, asn_id=asn_id, expected_items=expected_items, **attrs
        )

    def process_received_item(self, receipt_id: str, sku: str, quantity: int, **attrs):
        return self.receiving.process_received_item(receipt_id, sku, quantity, **attrs)

    def complete_receiving(self, receipt_id: str) -> Receipt:
        return self.receiving.complete_receiving(receipt_id)

    def get_receipt(self, receipt_id: str) -> Receipt:
        return self.store.get(RECEIPTS, receipt_id)

    def assign_put_away(self, receipt_id: str, receipt_line_id: str) -> PutAwayTask:
        """Retry put-away assignment for a received line left at receiving."""
        return self.putaway.assign(receipt_id, receipt_line_id)

    def get_put_away_task(self, task_id: str) -> PutAwayTask:
        return self.putaway.get_task(task_id)

    def complete_put_away_task(
        self, task_id: str, put_quantity: int | None = None, completed_by: str | None = None
    ) -> PutAwayTask:
        return self.putaway.complete(task_id, put_quantity, completed_by)

    # -------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------
    def create_order(self, lines: list[dict], **attrs) -> Order:
        return self.lifecycle.create_order(lines, **attrs)

    def get_order(self, order_id: str) -> Order:
        return self.lifecycle.get_order(order_id)

    def validate_order(self, order_id: str) -> Order:
        return self.lifecycle.validate_order(order_id)

    def allocate_order(self, order_id: str) -> list:
        return self.allocation.allocate_order(order_id)

    def cancel_order(self, order_id: str, reason: str | None = None) -> Order:
        """Cancel an order, release its stock and drop it from its wave."""
        order = self.lifecycle.cancel_order(order_id, reason)
        # wave_id is kept on a cancelled order; it was read under the order lock
        if order.wave_id:
            self.planner.release_order(str(order.wave_id), str(order_id))
            self.picking.settle_wave(str(order.wave_id))
        return order

    def ship_order(self, order_id: str, shipment_id: str) -> Order:
        return self.lifecycle.ship_order(order_id, shipment_id)

    # -------------------------------------------------------------------
    # Waves and picking
    # -------------------------------------------------------------------
    def create_wave(self, criteria=None) -> Wave:
        return self.planner.create_wave(criteria)

    def plan_wave(self, wave_id: str, order_ids: list[str] | None = None, criteria=None) -> Wave:
        return self.planner.plan_wave(wave_id, order_ids=order_ids, criteria=criteria)

    def get_wave(self, wave_id: str) -> Wave:
        return self.planner.get_wave(wave_id)

    def generate_pick_tasks(self, wave_id: str) -> list:
        return self.picking.generate_pick_tasks(wave_id)

    def get_pick_task(self, task_id: str) -> PickTask:
        return self.picking.get_task(task_id)

    def assign_pick_task(self, task_id: str, worker_id: str) -> PickTask:
        return self.picking.assign(task_id, worker_id)

    def start_pick_task(self, task_id: str) -> PickTask:
        return self.picking.start(task_id)

    def complete_pick_task(
        self, task_id: str, actual_qty: int, reason: str | None = None, reported_by: str | None = None
    ) -> PickTask:
        return self.picking.complete(task_id, actual_qty, reason=reason, reported_by=reported_by)

    def cancel_pick_task(self, task_id: str, reason: str | None = None) -> PickTask:
        return self.picking.cancel_task(task_id, reason)

    def report_pick_exception(
        self, task_id: str, reason: str, shortfall: int = 0, reported_by: str | None = None
    ) -> PickException:
        return self.picking.report_exception(task_id, reason, shortfall=shortfall, reported_by=reported_by)

    def get_pick_exceptions(self, wave_id: str | None = None, status: str | None = None) -> list[PickException]:
        return self.picking.get_exceptions(wave_id=wave_id, status=status)

    def investigate_pick_exception(self, exception_id: str) -> PickException:
        return self.picking.investigate_exception(exception_id)

    def resolve_pick_exception(self, exception_id: str, resolution: str) -> PickException:
        return self.picking.resolve_exception(exception_id, resolution)

    # -------------------------------------------------------------------
    # Packing
    # -------------------------------------------------------------------
    def create_packing_slip(self, order_id: str) -> PackingSlip:
        return self.packing.create_packing_slip(order_id)

    def complete_packing_order(self, order_id: str, packages: list[dict], packed_by: str | None = None):
        return self.packing.complete_packing_order(order_id, packages, packed_by=packed_by)

    # -------------------------------------------------------------------
    # Shipping and returns
    # -------------------------------------------------------------------
    def create_carrier(self, code: str, name: str, **attrs) -> Carrier:
        return self.shipping.create_carrier(code, name, **attrs)

    def get_carrier(self, code: str) -> Carrier:
        return self.shipping.get_carrier(code)

    def select_optimal_carrier(self, request):
        return self.shipping.select_optimal_carrier(request)

    def create_shipment(self, order_ids: list[str], carrier_code: str | None = None, **attrs) -> Shipment:
        return self.shipping.create_shipment(order_ids, carrier_code=carrier_code, **attrs)

    def get_shipment(self, shipment_id: str) -> Shipment:
        return self.shipping.get_shipment(shipment_id)

    def generate_shipping_labels(self, shipment_id: str) -> Shipment:
        return self.shipping.generate_shipping_labels(shipment_id)

    def update_shipment_tracking(self, shipment_id: str, status: str, **attrs) -> Shipment:
        return self.shipping.update_shipment_tracking(shipment_id, status, **attrs)

    def refresh_shipment_tracking(self, shipment_id: str) -> Shipment:
        return self.shipping.refresh_shipment_tracking(shipment_id)

    def delivery_performance_report(self, days: int = 30, carrier_code: str | None = None) -> dict:
        return self.shipping.delivery_performance_report(days=days, carrier_code=carrier_code)

    def create_return_authorization(self, order_id: str, items: list[dict], reason: str, **attrs):
        return self.returns.create_return_authorization(order_id, items, reason, **attrs)

    def get_return_authorization(self, rma_id: str) -> ReturnAuthorization:
        return self.returns.get_return_authorization(rma_id)

    def process_received_return(self, rma_id: str, items: list[dict], processed_by: str | None = None):
        return self.returns.process_received_return(rma_id, items, processed_by=processed_by)

    def generate_return_shipping_label(
        self, rma_id: str, carrier_code: str | None = None, service_level: str = "Standard"
    ) -> ReturnAuthorization:
        return self.returns.generate_return_shipping_label(
            rma_id, carrier_code=carrier_code, service_level=service_level
        )


def build_engine(**overrides) -> WarehouseEngine:
    """Engine over the warehouse domain's configured repositories."""
    engine = WarehouseEngine(**overrides)
    logger.info(
        "Warehouse engine ready",
        allow_partial_orders=engine.policy.allow_partial_orders,
        allow_short_ship=engine.policy.allow_short_ship,
    )
    return engine
