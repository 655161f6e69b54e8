"""AdvanceShippingNotice aggregate — a supplier's notice that goods are on the way.

State Machine:
    IN_TRANSIT → ARRIVED → RECEIVED
"""

import json
from enum import Enum

from protean.fields import DateTime, Identifier, String, Text

from warehouse.domain import warehouse
from warehouse.errors import StateConflictError
from warehouse.inbound.events import AsnRegistered, AsnStatusChanged


class AsnStatus(Enum):
    IN_TRANSIT = "In_Transit"
    ARRIVED = "Arrived"
    RECEIVED = "Received"


_VALID_TRANSITIONS = {
    AsnStatus.IN_TRANSIT: {AsnStatus.ARRIVED, AsnStatus.RECEIVED},
    AsnStatus.ARRIVED: {AsnStatus.RECEIVED},
    AsnStatus.RECEIVED: set(),  # terminal
}


@warehouse.aggregate
class AdvanceShippingNotice:
    asn_number = String(required=True, max_length=50)
    purchase_order_id = Identifier()
    carrier = String(max_length=100)
    tracking_number = String(max_length=100)
    expected_arrival = DateTime()
    items = Text(default="[]")  # JSON list of {sku, quantity}
    status = String(choices=AsnStatus, default=AsnStatus.IN_TRANSIT.value)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def register(cls, asn_number, items, now, purchase_order_id=None, **attrs):
        asn = cls(
            asn_number=asn_number,
            purchase_order_id=purchase_order_id,
            items=json.dumps(items or []),
            status=AsnStatus.IN_TRANSIT.value,
            created_at=now,
            updated_at=now,
            **attrs,
        )
        asn.raise_(
            AsnRegistered(
                asn_id=str(asn.id),
                asn_number=asn_number,
                purchase_order_id=purchase_order_id,
                expected_arrival=asn.expected_arrival,
                registered_at=now,
            )
        )
        return asn

    @property
    def expected_items(self) -> list[dict]:
        return json.loads(self.items or "[]")

    def _move_to(self, target: AsnStatus, now) -> None:
        current = AsnStatus(self.status)
        if current == target:
            return
        if target not in _VALID_TRANSITIONS[current]:
            raise StateConflictError(
                {"status": [f"ASN {self.asn_number} cannot transition from {current.value} to {target.value}"]}
            )
        self.status = target.value
        self.updated_at = now
        self.raise_(
            AsnStatusChanged(
                asn_id=str(self.id),
                previous_status=current.value,
                new_status=target.value,
                changed_at=now,
            )
        )

    def mark_arrived(self, now) -> None:
        self._move_to(AsnStatus.ARRIVED, now)

    def mark_received(self, now) -> None:
        self._move_to(AsnStatus.RECEIVED, now)
