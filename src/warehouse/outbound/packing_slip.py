"""PackingSlip aggregate — what the packing station puts in the box."""

import json
from enum import Enum

from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text

from warehouse.domain import warehouse
from warehouse.errors import StateConflictError
from warehouse.outbound.events import PackingSlipCompleted, PackingSlipCreated


class PackingSlipStatus(Enum):
    OPEN = "Open"
    PACKED = "Packed"


@warehouse.entity(part_of="PackingSlip")
class SlipLine:
    line_id = Identifier(required=True)
    sku = String(required=True, max_length=50)
    qty_ordered = Integer(required=True)
    qty_picked = Integer(default=0)
    qty_to_pack = Integer(default=0)


@warehouse.aggregate
class PackingSlip:
    order_id = Identifier(required=True)
    order_number = String(max_length=50)
    lines = HasMany(SlipLine)
    status = String(choices=PackingSlipStatus, default=PackingSlipStatus.OPEN.value)
    packed_by = String(max_length=100)
    packages = Text()  # JSON list of package dicts
    total_weight = Float(default=0.0)
    created_at = DateTime()
    packed_at = DateTime()

    @classmethod
    def for_order(cls, order, now):
        slip = cls(
            order_id=str(order.id),
            order_number=order.order_number,
            status=PackingSlipStatus.OPEN.value,
            created_at=now,
        )
        for line in order.lines or []:
            slip.add_lines(
                SlipLine(
                    line_id=str(line.id),
                    sku=line.sku,
                    qty_ordered=line.qty_requested,
                    qty_picked=line.qty_picked,
                    qty_to_pack=min(line.qty_requested, line.qty_picked),
                )
            )
        slip.raise_(
            PackingSlipCreated(
                slip_id=str(slip.id),
                order_id=str(order.id),
                units_to_pack=slip.units_to_pack,
                created_at=now,
            )
        )
        return slip

    @property
    def units_to_pack(self) -> int:
        return sum(line.qty_to_pack for line in self.lines or [])

    def mark_packed(self, packages: list[dict], packed_by: str | None, now) -> None:
        if self.status == PackingSlipStatus.PACKED.value:
            raise StateConflictError({"status": [f"Packing slip {self.id} is already packed"]})

        self.status = PackingSlipStatus.PACKED.value
        self.packed_by = packed_by
        self.packages = json.dumps(packages)
        self.total_weight = sum(float(p.get("weight") or 0.0) for p in packages)
        self.packed_at = now
        self.raise_(
            PackingSlipCompleted(
                slip_id=str(self.id),
                order_id=str(self.order_id),
                packed_by=packed_by,
                package_count=len(packages),
                completed_at=now,
            )
        )
