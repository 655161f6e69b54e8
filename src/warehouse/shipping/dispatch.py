"""Shipping service — carriers, shipments, labels and tracking.

Orders are marked Shipped once every package of their shipment has a label;
a delivered shipment closes its orders. The delivery performance report
summarises recent shipments per carrier.
"""

import math
from collections import defaultdict
from datetime import timedelta

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError

from warehouse.errors import LabelGenerationError, StateConflictError
from warehouse.outbound.order import OrderStatus
from warehouse.shipping.carrier import Carrier
from warehouse.shipping.selection import ShipmentRequest
from warehouse.shipping.shipment import Shipment, ShipmentStatus
from warehouse.store import CARRIERS, ORDERS, SHIPMENTS

logger = structlog.get_logger(__name__)

_ADDRESS_FIELDS = ("name", "street", "city", "state", "postal_code", "country")


def _largest_dimensions(packages: list[dict]) -> dict | None:
    sides = {}
    for package in packages:
        for side, value in (package.get("dimensions") or {}).items():
            if value is not None:
                sides[side] = max(sides.get(side, 0), value)
    return sides or None


class ShippingService:
    def __init__(self, store, lifecycle, selector, carrier_port, locks, clock):
        self.store = store
        self.lifecycle = lifecycle
        self.selector = selector
        self.carrier_port = carrier_port
        self.locks = locks
        self.clock = clock

    def _shipment_lock(self, shipment_id):
        return self.locks.hold(("shipment", str(shipment_id)))

    # -------------------------------------------------------------------
    # Carriers
    # -------------------------------------------------------------------
    def create_carrier(self, code: str, name: str, **attrs) -> Carrier:
        try:
            self.store.get(CARRIERS, code)
        except ObjectNotFoundError:
            carrier = Carrier.register(code, name, self.clock.now(), **attrs)
            self.store.add(CARRIERS, carrier)
            logger.info("Carrier created", carrier=code, on_time_rate=carrier.on_time_rate)
            return carrier
        raise ValidationError({"code": [f"Carrier {code} already exists"]})

    def get_carrier(self, code: str) -> Carrier:
        return self.store.get(CARRIERS, code)

    def select_optimal_carrier(self, request):
        """Recommend the best eligible carrier (with the runners-up)."""
        carriers = self.store.list(CARRIERS)
        choice = self.selector.select(carriers, ShipmentRequest.coerce(request), self.clock.now())
        logger.info(
            "Carrier selected",
            carrier=choice.recommended.carrier_code,
            score=choice.recommended.score,
            alternatives=len(choice.alternatives),
        )
        return choice

    # -------------------------------------------------------------------
    # Shipments
    # -------------------------------------------------------------------
    def get_shipment(self, shipment_id: str) -> Shipment:
        return self.store.get(SHIPMENTS, shipment_id)

    def create_shipment(
        self,
        order_ids: list[str],
        carrier_code: str | None = None,
        service_level: str = "Standard",
        packages: list[dict] | None = None,
        destination: dict | None = None,
        requirements: tuple[str, ...] = (),
    ) -> Shipment:
        """Create a shipment for packed orders.

        Packages default to those recorded at packing and the destination to
        the first order's ship-to address. Without a carrier code the best
        eligible carrier is chosen.
        """
        if not order_ids:
            raise ValidationError({"order_ids": ["A shipment needs at least one order"]})

        with self.locks.hold(("shipment", "create")):
            orders = [self.store.get(ORDERS, oid) for oid in order_ids]
            for order in orders:
                if order.status != OrderStatus.PACKED.value:
                    raise StateConflictError(
                        {"status": [f"Order {order.id} must be packed before shipping, not {order.status}"]}
                    )
            taken = {oid for s in self.store.list(SHIPMENTS) for oid in s.member_ids}
            already = [str(o.id) for o in orders if str(o.id) in taken]
            if already:
                raise StateConflictError({"order_ids": [f"Orders already on a shipment: {', '.join(already)}"]})

            if packages is None:
                packages = [package for order in orders for package in order.packages]
            if destination is None and orders[0].ship_to:
                destination = {f: getattr(orders[0].ship_to, f) for f in _ADDRESS_FIELDS}

            now = self.clock.now()
            weight = sum(float(p.get("weight") or 0.0) for p in packages)
            request = ShipmentRequest(
                destination={k: (destination or {}).get(k) for k in ("country", "state", "postal_code")},
                weight=weight,
                dimensions=_largest_dimensions(packages),
                requirements=tuple(requirements),
                sla_deadline=min((o.sla_deadline for o in orders if o.sla_deadline), default=None),
            )
            if carrier_code is None:
                option = self.selector.select(self.store.list(CARRIERS), request, now).recommended
            else:
                options = self.selector.rank_carriers([self.get_carrier(carrier_code)], request, now)
                if not options:
                    raise StateConflictError({"carrier": [f"Carrier {carrier_code} cannot take this shipment"]})
                option = options[0]

            shipment = Shipment.create(
                [str(o.id) for o in orders],
                option.carrier_code,
                packages,
                now,
                service_level=service_level,
                destination=destination,
                estimated_cost=option.cost,
                estimated_delivery=option.estimated_delivery,
            )
            self.store.add(SHIPMENTS, shipment)

        logger.info(
            "Shipment created",
            shipment_id=str(shipment.id),
            carrier=shipment.carrier_code,
            orders=len(orders),
            estimated_cost=shipment.estimated_cost,
        )
        return shipment

    def generate_shipping_labels(self, shipment_id: str) -> Shipment:
        """Buy a label per package and ship the orders.

        If the carrier refuses any label, the labels already bought are voided
        and nothing is recorded. Calling it again on a manifested shipment
        buys nothing new.
        """
        with self._shipment_lock(shipment_id):
            shipment = self.get_shipment(shipment_id)
            if not shipment.is_manifested:
                labels = []
                for package in shipment.packages:
                    label = self.carrier_port.create_label(
                        shipment.shipment_number,
                        shipment.carrier_code,
                        shipment.service_level,
                        package.weight,
                        package.dimensions,
                    )
                    if label.get("error"):
                        self._void(labels)
                        logger.warning(
                            "Label generation failed",
                            shipment_id=str(shipment_id),
                            carrier=shipment.carrier_code,
                            error=label["error"],
                        )
                        raise LabelGenerationError({"carrier": [label["error"]]})
                    labels.append(label)

                shipment.record_labels(labels, shipment.estimated_delivery, self.clock.now())
                self.store.add(SHIPMENTS, shipment)
                logger.info("Labels generated", shipment_id=str(shipment_id), labels=len(labels))

        for order_id in shipment.member_ids:
            self.lifecycle.ship_order(order_id, str(shipment.id))
        return shipment

    def _void(self, labels):
        for label in labels:
            result = self.carrier_port.void_label(label["tracking_number"])
            if not result.get("voided"):
                logger.error("Label could not be voided", tracking_number=label["tracking_number"])

    def update_shipment_tracking(
        self,
        shipment_id: str,
        status: str,
        location: str | None = None,
        description: str | None = None,
        occurred_at=None,
        source: str = "manual",
    ) -> Shipment:
        with self._shipment_lock(shipment_id):
            shipment = self.get_shipment(shipment_id)
            delivered = shipment.record_tracking(
                status,
                self.clock.now(),
                location=location,
                description=description,
                occurred_at=occurred_at,
                source=source,
            )
            self.store.add(SHIPMENTS, shipment)

        if shipment.status == ShipmentStatus.EXCEPTION.value:
            logger.warning("Shipment exception", shipment_id=str(shipment_id), tracking_status=status)
        if delivered:
            for order_id in shipment.member_ids:
                self.lifecycle.close_order(order_id)
            logger.info("Shipment delivered", shipment_id=str(shipment_id))
        return shipment

    def refresh_shipment_tracking(self, shipment_id: str) -> Shipment:
        """Pull the latest status from the carrier for the shipment's first package."""
        shipment = self.get_shipment(shipment_id)
        if not shipment.tracking_numbers:
            raise StateConflictError({"status": [f"Shipment {shipment.shipment_number} has no labels yet"]})

        tracking = self.carrier_port.get_tracking(shipment.tracking_numbers[0])
        if tracking.get("error"):
            logger.warning("Carrier tracking unavailable", shipment_id=str(shipment_id), error=tracking["error"])
            return shipment

        events = tracking.get("events") or []
        latest = events[-1] if events else {}
        return self.update_shipment_tracking(
            shipment_id,
            tracking["status"],
            location=tracking.get("location"),
            description=latest.get("description"),
            source="carrier",
        )

    # -------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------
    def delivery_performance_report(self, days: int = 30, carrier_code: str | None = None) -> dict:
        """On-time rate, transit time and exception rate of shipments created in the last ``days``.

        A delivery is on time when it arrived no later than the shipment's
        estimated delivery. Transit days are counted from shipment creation,
        rounded up.
        """
        if days < 1:
            raise ValidationError({"days": ["Report period must be at least one day"]})
        now = self.clock.now()
        since = now - timedelta(days=days)
        filters = {"carrier_code": carrier_code} if carrier_code else {}
        shipments = [s for s in self.store.list(SHIPMENTS, **filters) if s.created_at and s.created_at >= since]

        by_carrier = defaultdict(list)
        for shipment in shipments:
            by_carrier[shipment.carrier_code].append(shipment)

        report = {
            "period_days": days,
            "since": since,
            "until": now,
            **_performance(shipments),
            "carriers": {code: _performance(group) for code, group in sorted(by_carrier.items())},
        }
        logger.info(
            "Delivery performance reported",
            days=days,
            carrier=carrier_code,
            shipments=report["total_shipments"],
            on_time_rate=report["on_time_rate"],
        )
        return report


def _performance(shipments: list[Shipment]) -> dict:
    delivered = [s for s in shipments if s.status == ShipmentStatus.DELIVERED.value and s.actual_delivery]
    on_time = [s for s in delivered if s.estimated_delivery and s.actual_delivery <= s.estimated_delivery]
    transit = [math.ceil((s.actual_delivery - s.created_at).total_seconds() / 86400) for s in delivered]
    exceptions = [s for s in shipments if s.status == ShipmentStatus.EXCEPTION.value]
    return {
        "total_shipments": len(shipments),
        "delivered": len(delivered),
        "on_time": len(on_time),
        "on_time_rate": round(100 * len(on_time) / len(delivered), 1) if delivered else 0.0,
        "average_transit_days": round(sum(transit) / len(transit), 1) if transit else None,
        "exceptions": len(exceptions),
        "exception_rate": round(100 * len(exceptions) / len(shipments), 1) if shipments else 0.0,
    }
