"""ReturnAuthorization aggregate — a customer return from authorization to inspection.

State Machine:
    AUTHORIZED → COMPLETED
    AUTHORIZED → REJECTED

Refunds depend on the condition the item arrives in:

    new, like_new   full refund, restocked
    used            80% refund, restocked
    damaged         50% refund, not restocked
    defective       full refund, not restocked
    anything else   no refund, not restocked

Refund amounts are per authorized line and are prorated when fewer units
arrive than were authorized.
"""

from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, Text

from warehouse.domain import warehouse
from warehouse.errors import StateConflictError
from warehouse.shipping.events import ReturnAuthorized, ReturnLabelIssued, ReturnProcessed, ReturnRejected


class RmaStatus(Enum):
    AUTHORIZED = "Authorized"
    COMPLETED = "Completed"
    REJECTED = "Rejected"


class ReturnReason(Enum):
    DEFECTIVE = "defective"
    WRONG_ITEM = "wrong_item"
    NOT_NEEDED = "not_needed"
    DAMAGED = "damaged"
    OTHER = "other"


class InspectionOutcome(Enum):
    ACCEPTED = "Accepted"
    NOT_AUTHORIZED = "Not_Authorized"


# condition -> (share of the authorized refund, may go back on the shelf)
REFUND_RULES = {
    "new": (1.0, True),
    "like_new": (1.0, True),
    "used": (0.8, True),
    "damaged": (0.5, False),
    "defective": (1.0, False),
}


@warehouse.entity(part_of="ReturnAuthorization")
class ReturnItem:
    sku = String(required=True, max_length=50)
    quantity = Integer(required=True, min_value=1)
    condition = String(max_length=20, default="unknown")
    refund_amount = Float(default=0.0)
    restockable = Boolean(default=True)


@warehouse.entity(part_of="ReturnAuthorization")
class InspectionResult:
    sku = String(required=True, max_length=50)
    quantity = Integer(default=0)
    outcome = String(choices=InspectionOutcome, required=True)
    actual_condition = String(max_length=20)
    refund_amount = Float(default=0.0)
    restocked_quantity = Integer(default=0)
    notes = String(max_length=500)


@warehouse.aggregate
class ReturnAuthorization:
    rma_number = String(required=True, max_length=50)
    order_id = Identifier(required=True)
    shipment_id = Identifier()
    customer_name = String(max_length=200)
    reason = String(choices=ReturnReason, required=True)
    reason_description = Text()
    return_type = String(max_length=20, default="refund")
    items = HasMany(ReturnItem)
    inspection_results = HasMany(InspectionResult)
    status = String(choices=RmaStatus, default=RmaStatus.AUTHORIZED.value)
    estimated_refund = Float(default=0.0)
    actual_refund = Float(default=0.0)
    rejection_reason = String(max_length=500)
    expires_at = DateTime()
    return_carrier_code = String(max_length=50)
    return_tracking_number = String(max_length=100)
    return_label_url = String(max_length=500)
    label_issued_at = DateTime()
    processed_by = String(max_length=100)
    processed_at = DateTime()
    created_at = DateTime()

    @classmethod
    def authorize(cls, order_id: str, items: list[dict], reason: str, now, expires_at, **attrs):
        if not items:
            raise ValidationError({"items": ["A return needs at least one item"]})
        if reason not in {r.value for r in ReturnReason}:
            raise ValidationError({"reason": [f"Unknown return reason: {reason}"]})

        rma = cls(
            rma_number=attrs.pop("rma_number", None) or f"RMA-{now:%Y%m%d%H%M%S%f}",
            order_id=order_id,
            reason=reason,
            status=RmaStatus.AUTHORIZED.value,
            expires_at=expires_at,
            created_at=now,
            **attrs,
        )
        for item in items:
            rma.add_items(
                ReturnItem(
                    sku=item["sku"],
                    quantity=item["quantity"],
                    condition=item.get("condition", "unknown"),
                    refund_amount=float(item.get("refund_amount") or 0.0),
                    restockable=item.get("restockable", True),
                )
            )
        rma.estimated_refund = sum(i.refund_amount for i in rma.items)
        rma.raise_(
            ReturnAuthorized(
                rma_id=str(rma.id),
                rma_number=rma.rma_number,
                order_id=str(order_id),
                reason=reason,
                estimated_refund=rma.estimated_refund,
                expires_at=expires_at,
                authorized_at=now,
            )
        )
        return rma

    def item_for(self, sku: str) -> ReturnItem | None:
        for item in self.items or []:
            if item.sku == sku:
                return item
        return None

    def is_expired(self, now) -> bool:
        return self.expires_at is not None and now > self.expires_at

    def ensure_open(self) -> None:
        if self.status != RmaStatus.AUTHORIZED.value:
            raise StateConflictError({"status": [f"Return {self.rma_number} is already {self.status}"]})

    def assess(self, sku: str, quantity: int, condition: str, notes: str | None = None) -> InspectionResult:
        """Work out refund and restock for one received item (nothing is recorded)."""
        authorized = self.item_for(sku)
        if authorized is None:
            return InspectionResult(
                sku=sku,
                quantity=quantity,
                outcome=InspectionOutcome.NOT_AUTHORIZED.value,
                actual_condition=condition,
                notes="Item not on the return authorization",
            )

        share, restock = REFUND_RULES.get(condition, (0.0, False))
        accepted = min(quantity, authorized.quantity)
        refund = authorized.refund_amount * share * accepted / authorized.quantity
        return InspectionResult(
            sku=sku,
            quantity=quantity,
            outcome=InspectionOutcome.ACCEPTED.value,
            actual_condition=condition,
            refund_amount=round(refund, 2),
            restocked_quantity=accepted if restock and authorized.restockable else 0,
            notes=notes,
        )

    def complete(self, results: list[InspectionResult], processed_by: str | None, now) -> None:
        self.ensure_open()
        for result in results:
            self.add_inspection_results(result)
        self.actual_refund = round(sum(r.refund_amount for r in results), 2)
        self.status = RmaStatus.COMPLETED.value
        self.processed_by = processed_by
        self.processed_at = now
        self.raise_(
            ReturnProcessed(
                rma_id=str(self.id),
                actual_refund=self.actual_refund,
                units_restocked=sum(r.restocked_quantity for r in results),
                processed_by=processed_by,
                processed_at=now,
            )
        )

    def reject(self, reason: str, now) -> None:
        self.ensure_open()
        self.status = RmaStatus.REJECTED.value
        self.rejection_reason = reason
        self.processed_at = now
        self.raise_(ReturnRejected(rma_id=str(self.id), reason=reason, rejected_at=now))

    @property
    def has_return_label(self) -> bool:
        return bool(self.return_tracking_number)

    def record_return_label(self, carrier_code: str, tracking_number: str, label_url: str | None, now) -> None:
        self.ensure_open()
        if self.has_return_label:
            raise StateConflictError({"label": [f"Return {self.rma_number} already has a label"]})
        self.return_carrier_code = carrier_code
        self.return_tracking_number = tracking_number
        self.return_label_url = label_url
        self.label_issued_at = now
        self.raise_(
            ReturnLabelIssued(
                rma_id=str(self.id),
                carrier_code=carrier_code,
                tracking_number=tracking_number,
                label_url=label_url,
                issued_at=now,
            )
        )
