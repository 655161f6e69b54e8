"""Carrier aggregate — a parcel carrier's coverage, limits, rates and record."""

import json
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text, ValueObject

from warehouse.domain import warehouse
from warehouse.shipping.events import CarrierRegistered


class CarrierStatus(Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    SUSPENDED = "Suspended"


# Special requirements a shipment may ask for, by capability flag name
CAPABILITIES = ("signature", "insurance", "refrigerated", "cash_on_delivery")


@warehouse.value_object(part_of="Carrier")
class CarrierCapabilities:
    signature = Boolean(default=False)
    insurance = Boolean(default=False)
    refrigerated = Boolean(default=False)
    cash_on_delivery = Boolean(default=False)


@warehouse.aggregate
class Carrier:
    id = Identifier(identifier=True)  # carrier code
    name = String(required=True, max_length=100)
    status = String(choices=CarrierStatus, default=CarrierStatus.ACTIVE.value)
    service_areas = Text(default="[]")  # JSON list of {country, state, postal_code}; empty = everywhere
    max_weight = Float()
    max_length = Float()
    max_width = Float()
    max_height = Float()
    base_rate = Float(default=0.0)
    per_kg_rate = Float(default=0.0)
    on_time_rate = Float(default=1.0)
    transit_days = Integer(default=1)
    capabilities = ValueObject(CarrierCapabilities)
    created_at = DateTime()

    @classmethod
    def register(cls, code: str, name: str, now, service_areas=None, capabilities=None, **attrs):
        if not code:
            raise ValidationError({"code": ["Carrier code is required"]})
        on_time_rate = attrs.get("on_time_rate", 1.0)
        if on_time_rate is None or not 0.0 <= on_time_rate <= 1.0:
            raise ValidationError({"on_time_rate": ["On-time rate must be between 0 and 1"]})
        unknown = set(capabilities or {}) - set(CAPABILITIES)
        if unknown:
            raise ValidationError({"capabilities": [f"Unknown capabilities: {', '.join(sorted(unknown))}"]})

        carrier = cls(
            id=code,
            name=name,
            service_areas=json.dumps(service_areas or []),
            capabilities=CarrierCapabilities(**(capabilities or {})),
            created_at=now,
            **attrs,
        )
        carrier.raise_(
            CarrierRegistered(
                carrier_code=code,
                name=name,
                on_time_rate=carrier.on_time_rate,
                transit_days=carrier.transit_days,
                registered_at=now,
            )
        )
        return carrier

    @property
    def code(self) -> str:
        return str(self.id)

    @property
    def is_active(self) -> bool:
        return self.status == CarrierStatus.ACTIVE.value

    @property
    def areas(self) -> list[dict]:
        return json.loads(self.service_areas or "[]")

    def covers(self, destination: dict) -> bool:
        """An area matches when every field it names matches the destination.

        Country and state compare case-insensitively; postal codes match by
        prefix, so an area of ``{"postal_code": "10"}`` covers ``10001``.
        """
        areas = self.areas
        if not areas:
            return True
        destination = destination or {}
        return any(_area_matches(area, destination) for area in areas)

    def accommodates(self, weight: float, dimensions: dict | None) -> bool:
        if self.max_weight is not None and weight > self.max_weight:
            return False
        for side in ("length", "width", "height"):
            limit = getattr(self, f"max_{side}")
            if limit is not None and dimensions and (dimensions.get(side) or 0) > limit:
                return False
        return True

    def supports(self, requirements) -> bool:
        flags = self.capabilities or CarrierCapabilities()
        return all(getattr(flags, requirement, False) for requirement in requirements or ())

    def quote(self, weight: float) -> float:
        return round((self.base_rate or 0.0) + (self.per_kg_rate or 0.0) * weight, 2)


def _area_matches(area: dict, destination: dict) -> bool:
    for key in ("country", "state"):
        wanted = area.get(key)
        if wanted and (destination.get(key) or "").lower() != wanted.lower():
            return False
    prefix = area.get("postal_code")
    if prefix and not str(destination.get("postal_code") or "").startswith(str(prefix)):
        return False
    return True
