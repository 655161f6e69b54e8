"""PurchaseOrder aggregate — stock ordered from a supplier.

State Machine:
    PENDING → CONFIRMED → PARTIALLY_RECEIVED → RECEIVED
    PENDING → PARTIALLY_RECEIVED | RECEIVED (goods arrive before confirmation)
"""

from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Date, DateTime, Float, HasMany, Integer, String, Text

from warehouse.domain import warehouse
from warehouse.inbound.events import PurchaseOrderConfirmed, PurchaseOrderCreated, PurchaseOrderReceiptRecorded


class PurchaseOrderStatus(Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    PARTIALLY_RECEIVED = "Partially_Received"
    RECEIVED = "Received"


@warehouse.entity(part_of="PurchaseOrder")
class PurchaseOrderLine:
    sku = String(required=True, max_length=50)
    description = String(max_length=255)
    qty_ordered = Integer(required=True, min_value=1)
    qty_received = Integer(default=0)
    unit_cost = Float(default=0.0)

    @property
    def total_cost(self) -> float:
        return self.qty_ordered * (self.unit_cost or 0.0)


@warehouse.aggregate
class PurchaseOrder:
    po_number = String(required=True, max_length=50)
    supplier_name = String(required=True, max_length=200)
    supplier_contact = String(max_length=200)
    expected_delivery_date = Date()
    lines = HasMany(PurchaseOrderLine)
    status = String(choices=PurchaseOrderStatus, default=PurchaseOrderStatus.PENDING.value)
    notes = Text()
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, po_number, supplier_name, lines, now, **attrs):
        if not lines:
            raise ValidationError({"lines": ["Purchase order needs at least one line"]})

        po = cls(
            po_number=po_number,
            supplier_name=supplier_name,
            status=PurchaseOrderStatus.PENDING.value,
            created_at=now,
            updated_at=now,
            **attrs,
        )
        for line in lines:
            po.add_lines(
                PurchaseOrderLine(
                    sku=line["sku"],
                    description=line.get("description"),
                    qty_ordered=line["quantity"],
                    unit_cost=line.get("unit_cost", 0.0),
                )
            )
        po.raise_(
            PurchaseOrderCreated(
                purchase_order_id=str(po.id),
                po_number=po_number,
                supplier_name=supplier_name,
                line_count=len(po.lines),
                total_value=po.total_value,
                created_at=now,
            )
        )
        return po

    @property
    def total_value(self) -> float:
        return sum(line.total_cost for line in self.lines or [])

    def line_for(self, sku: str) -> PurchaseOrderLine | None:
        for line in self.lines or []:
            if line.sku == sku:
                return line
        return None

    def confirm(self, now) -> None:
        if self.status != PurchaseOrderStatus.PENDING.value:
            return
        self.status = PurchaseOrderStatus.CONFIRMED.value
        self.updated_at = now
        self.raise_(PurchaseOrderConfirmed(purchase_order_id=str(self.id), confirmed_at=now))

    def record_receipt(self, sku: str, quantity: int, now) -> None:
        line = self.line_for(sku)
        if line is None:
            raise ValidationError({"sku": [f"{sku} is not on purchase order {self.po_number}"]})

        line.qty_received = line.qty_received + quantity
        if all(item.qty_received >= item.qty_ordered for item in self.lines):
            self.status = PurchaseOrderStatus.RECEIVED.value
        else:
            self.status = PurchaseOrderStatus.PARTIALLY_RECEIVED.value
        self.updated_at = now
        self.raise_(
            PurchaseOrderReceiptRecorded(
                purchase_order_id=str(self.id),
                sku=sku,
                quantity=quantity,
                status=self.status,
                recorded_at=now,
            )
        )
