"""Carrier selection — a pure scoring function over carrier data.

Carriers that cannot take the shipment are excluded before anything is
scored: inactive carriers, destinations outside their service areas,
parcels over their weight or size limits, special requirements they do not
offer, and transit times that miss the SLA deadline. Each remaining carrier
is scored

    score = cost * cost_weight + (1 - on_time_rate) * reliability_weight

with ``cost = base_rate + per_kg_rate * weight``. The lowest score wins and
ties go to the lowest carrier code.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

import structlog

from warehouse.errors import NoEligibleCarrierError

logger = structlog.get_logger(__name__)

_SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class ShipmentRequest:
    destination: dict = field(default_factory=dict)
    weight: float = 0.0
    dimensions: dict | None = None
    requirements: tuple[str, ...] = ()
    sla_deadline: datetime | None = None
    max_transit_days: int | None = None

    @classmethod
    def coerce(cls, request) -> "ShipmentRequest":
        if isinstance(request, cls):
            return request
        data = dict(request)
        data["requirements"] = tuple(data.get("requirements") or ())
        return cls(**data)

    def transit_allowance(self, now: datetime | None) -> float | None:
        """Days of transit the SLA leaves (part days count), or None when there is no SLA."""
        allowances = []
        if self.max_transit_days is not None:
            allowances.append(float(self.max_transit_days))
        if self.sla_deadline is not None and now is not None:
            allowances.append((self.sla_deadline - now).total_seconds() / _SECONDS_PER_DAY)
        return min(allowances) if allowances else None


@dataclass(frozen=True)
class CarrierOption:
    carrier_code: str
    name: str
    cost: float
    on_time_rate: float
    transit_days: int
    score: float
    estimated_delivery: datetime | None = None


@dataclass(frozen=True)
class CarrierChoice:
    recommended: CarrierOption
    alternatives: list[CarrierOption] = field(default_factory=list)

    @property
    def options(self) -> list[CarrierOption]:
        return [self.recommended, *self.alternatives]


class CarrierSelector:
    def __init__(self, cost_weight: float = 1.0, reliability_weight: float = 100.0):
        self.cost_weight = cost_weight
        self.reliability_weight = reliability_weight

    @classmethod
    def from_policy(cls, policy) -> "CarrierSelector":
        return cls(policy.carrier_cost_weight, policy.carrier_reliability_weight)

    def _exclusion(self, carrier, request, allowance):
        if not carrier.is_active:
            return "inactive"
        if not carrier.covers(request.destination):
            return "outside service area"
        if not carrier.accommodates(request.weight, request.dimensions):
            return "over weight or size limit"
        if not carrier.supports(request.requirements):
            return "missing capability"
        if allowance is not None and carrier.transit_days > allowance:
            return "misses SLA"
        return None

    def score(self, cost: float, on_time_rate: float) -> float:
        return cost * self.cost_weight + (1.0 - on_time_rate) * self.reliability_weight

    def rank_carriers(self, carriers, request, now: datetime | None = None) -> list[CarrierOption]:
        """Every eligible carrier as an option, best first."""
        request = ShipmentRequest.coerce(request)
        allowance = request.transit_allowance(now)

        options = []
        for carrier in carriers:
            reason = self._exclusion(carrier, request, allowance)
            if reason:
                logger.debug("Carrier excluded", carrier=carrier.code, reason=reason)
                continue
            cost = carrier.quote(request.weight)
            options.append(
                CarrierOption(
                    carrier_code=carrier.code,
                    name=carrier.name,
                    cost=cost,
                    on_time_rate=carrier.on_time_rate,
                    transit_days=carrier.transit_days,
                    score=round(self.score(cost, carrier.on_time_rate), 6),
                    estimated_delivery=now + timedelta(days=carrier.transit_days) if now else None,
                )
            )
        return sorted(options, key=lambda o: (o.score, o.carrier_code))

    def select(self, carriers, request, now: datetime | None = None) -> CarrierChoice:
        options = self.rank_carriers(carriers, request, now)
        if not options:
            raise NoEligibleCarrierError({"carrier": ["No carrier can take this shipment"]})
        return CarrierChoice(recommended=options[0], alternatives=options[1:])
