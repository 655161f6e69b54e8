"""Shipment aggregate — packed orders handed to one carrier.

State Machine:
    CREATED → MANIFESTED → PICKED_UP → IN_TRANSIT → DELIVERED
    PICKED_UP | IN_TRANSIT ↔ EXCEPTION
"""

import json
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, String, Text, ValueObject

from warehouse.domain import warehouse
from warehouse.errors import StateConflictError
from warehouse.shipping.events import (
    ShipmentCreated,
    ShipmentDelivered,
    ShipmentManifested,
    ShipmentTrackingUpdated,
)


class ShipmentStatus(Enum):
    CREATED = "Created"
    MANIFESTED = "Manifested"
    PICKED_UP = "Picked_Up"
    IN_TRANSIT = "In_Transit"
    DELIVERED = "Delivered"
    EXCEPTION = "Exception"


# Carrier tracking codes and the shipment status each one implies
TRACKING_STATUS_MAP = {
    "picked_up": ShipmentStatus.PICKED_UP,
    "in_transit": ShipmentStatus.IN_TRANSIT,
    "out_for_delivery": ShipmentStatus.IN_TRANSIT,
    "delivered": ShipmentStatus.DELIVERED,
    "delivery_attempted": ShipmentStatus.EXCEPTION,
    "exception": ShipmentStatus.EXCEPTION,
    "returned_to_sender": ShipmentStatus.EXCEPTION,
}


@warehouse.value_object(part_of="Shipment")
class Destination:
    name = String(max_length=200)
    street = String(max_length=255)
    city = String(max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(max_length=2)

    def as_dict(self) -> dict:
        return {"country": self.country, "state": self.state, "postal_code": self.postal_code}


@warehouse.entity(part_of="Shipment")
class Package:
    weight = Float(default=0.0)
    length = Float()
    width = Float()
    height = Float()
    tracking_number = String(max_length=100)
    label_url = String(max_length=500)

    @property
    def dimensions(self) -> dict:
        return {"length": self.length, "width": self.width, "height": self.height}


@warehouse.entity(part_of="Shipment")
class TrackingEvent:
    status = String(required=True, max_length=50)
    location = String(max_length=200)
    description = String(max_length=500)
    source = String(max_length=20, default="manual")
    occurred_at = DateTime(required=True)


@warehouse.aggregate
class Shipment:
    shipment_number = String(required=True, max_length=50)
    order_ids = Text(required=True)  # JSON list
    carrier_code = String(required=True, max_length=50)
    service_level = String(max_length=50, default="Standard")
    destination = ValueObject(Destination)
    packages = HasMany(Package)
    tracking_events = HasMany(TrackingEvent)
    status = String(choices=ShipmentStatus, default=ShipmentStatus.CREATED.value)
    estimated_cost = Float()
    estimated_delivery = DateTime()
    actual_delivery = DateTime()
    current_location = String(max_length=200)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(
        cls,
        order_ids: list[str],
        carrier_code: str,
        packages: list[dict],
        now,
        service_level: str = "Standard",
        destination: dict | None = None,
        estimated_cost: float | None = None,
        estimated_delivery=None,
        shipment_number: str | None = None,
    ):
        if not order_ids:
            raise ValidationError({"order_ids": ["A shipment needs at least one order"]})
        if not packages:
            raise ValidationError({"packages": ["A shipment needs at least one package"]})

        shipment = cls(
            shipment_number=shipment_number or f"SHIP-{now:%Y%m%d%H%M%S%f}",
            order_ids=json.dumps([str(oid) for oid in order_ids]),
            carrier_code=carrier_code,
            service_level=service_level,
            destination=Destination(**destination) if destination else None,
            status=ShipmentStatus.CREATED.value,
            estimated_cost=estimated_cost,
            estimated_delivery=estimated_delivery,
            created_at=now,
            updated_at=now,
        )
        for package in packages:
            dimensions = package.get("dimensions") or {}
            shipment.add_packages(
                Package(
                    weight=float(package.get("weight") or 0.0),
                    length=dimensions.get("length"),
                    width=dimensions.get("width"),
                    height=dimensions.get("height"),
                )
            )
        shipment.raise_(
            ShipmentCreated(
                shipment_id=str(shipment.id),
                shipment_number=shipment.shipment_number,
                order_ids=shipment.order_ids,
                carrier_code=carrier_code,
                service_level=service_level,
                package_count=len(packages),
                estimated_cost=estimated_cost,
                created_at=now,
            )
        )
        return shipment

    @property
    def member_ids(self) -> list[str]:
        return json.loads(self.order_ids or "[]")

    @property
    def total_weight(self) -> float:
        return sum(p.weight or 0.0 for p in self.packages or [])

    @property
    def tracking_numbers(self) -> list[str]:
        return [p.tracking_number for p in self.packages or [] if p.tracking_number]

    @property
    def is_manifested(self) -> bool:
        return self.status != ShipmentStatus.CREATED.value

    def record_labels(self, labels: list[dict], estimated_delivery, now) -> None:
        """Attach one label per package, in package order."""
        if self.is_manifested:
            raise StateConflictError({"status": [f"Shipment {self.shipment_number} already has labels"]})
        packages = list(self.packages or [])
        if len(labels) != len(packages):
            raise ValidationError({"labels": [f"Expected {len(packages)} labels, got {len(labels)}"]})

        for package, label in zip(packages, labels):
            package.tracking_number = label["tracking_number"]
            package.label_url = label.get("label_url")
        self.status = ShipmentStatus.MANIFESTED.value
        if estimated_delivery is not None:
            self.estimated_delivery = estimated_delivery
        self.updated_at = now
        self.raise_(
            ShipmentManifested(
                shipment_id=str(self.id),
                tracking_numbers=json.dumps(self.tracking_numbers),
                estimated_delivery=self.estimated_delivery,
                manifested_at=now,
            )
        )

    def record_tracking(
        self,
        tracking_status: str,
        now,
        location: str | None = None,
        description: str | None = None,
        occurred_at=None,
        source: str = "manual",
    ) -> bool:
        """Add a tracking event; returns True when it delivered the shipment."""
        if not self.is_manifested:
            raise StateConflictError({"status": [f"Shipment {self.shipment_number} has no labels yet"]})

        target = TRACKING_STATUS_MAP.get(tracking_status, ShipmentStatus.IN_TRANSIT)
        if self.status == ShipmentStatus.DELIVERED.value:
            if target == ShipmentStatus.DELIVERED:
                return False
            raise StateConflictError({"status": [f"Shipment {self.shipment_number} is already delivered"]})

        occurred_at = occurred_at or now
        self.add_tracking_events(
            TrackingEvent(
                status=tracking_status,
                location=location,
                description=description,
                source=source,
                occurred_at=occurred_at,
            )
        )
        self.status = target.value
        self.current_location = location or self.current_location
        self.updated_at = now
        self.raise_(
            ShipmentTrackingUpdated(
                shipment_id=str(self.id),
                tracking_status=tracking_status,
                status=self.status,
                location=location,
                description=description,
                occurred_at=occurred_at,
            )
        )

        if target != ShipmentStatus.DELIVERED:
            return False
        self.actual_delivery = occurred_at
        self.raise_(ShipmentDelivered(shipment_id=str(self.id), order_ids=self.order_ids, delivered_at=occurred_at))
        return True
