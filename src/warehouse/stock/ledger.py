"""Inventory ledger — the single source of truth for stock quantities.

Every mutation of an InventoryRecord goes through this module and runs under
the per-SKU lock for its whole read-decide-write sequence, so for every SKU
the sum of allocated units never exceeds the sum of on-hand units, whatever
the interleaving of callers. Different SKUs proceed in parallel.

Reservations pick records first-expired-first-out: expiry ascending (records
without expiry last), then receipt time ascending, then location code.
"""

from dataclasses import dataclass, field
from datetime import timedelta

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError

from warehouse.errors import InsufficientStockError, NegativeStockError
from warehouse.stock.allocation import Allocation
from warehouse.stock.lot import Lot, QualityStatus, lot_key
from warehouse.stock.movement import MovementKind, StockMovement
from warehouse.stock.record import InventoryRecord, record_key
from warehouse.store import ALLOCATIONS, INVENTORY_RECORDS, LOCATIONS, LOTS, PUTAWAY_TASKS, STOCK_MOVEMENTS

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ReservationResult:
    """Allocations made by one ``reserve`` call and the quantity left unmet."""

    allocations: list = field(default_factory=list)
    remainder: int = 0

    @property
    def reserved(self) -> int:
        return sum(a.quantity for a in self.allocations)


def _fefo_key(record):
    return (
        record.expiry_date is None,
        record.expiry_date,
        record.received_on is None,
        record.received_on,
        record.location_code,
    )


def _positive_quantity(quantity, name="quantity"):
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError({name: ["Quantity must be a positive whole number"]})


class InventoryLedger:
    def __init__(self, store, locks, clock, catalogue, directory):
        self.store = store
        self.locks = locks
        self.clock = clock
        self.catalogue = catalogue
        self.directory = directory

    def _sku_lock(self, sku):
        return self.locks.hold(("sku", sku))

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _find_record(self, record_id):
        try:
            return self.store.get(INVENTORY_RECORDS, record_id)
        except ObjectNotFoundError:
            return None

    def _find_lot(self, sku, lot_number):
        try:
            return self.store.get(LOTS, lot_key(sku, lot_number))
        except ObjectNotFoundError:
            return None

    def _log(self, record, kind, quantity, before, reason=None, reference=None):
        self.store.add(
            STOCK_MOVEMENTS,
            StockMovement(
                sku=record.sku,
                location_code=record.location_code,
                lot_number=record.lot_number,
                kind=kind.value,
                quantity=quantity,
                on_hand_before=before[0],
                on_hand_after=record.on_hand,
                allocated_before=before[1],
                allocated_after=record.allocated,
                reason=reason,
                reference=reference,
                occurred_at=self.clock.now(),
            ),
        )

    # -------------------------------------------------------------------
    # Adjustments
    # -------------------------------------------------------------------
    def adjust(
        self,
        sku: str,
        location_code: str,
        lot_number: str | None,
        delta: int,
        reason: str,
        reference: str | None = None,
        expiry_date=None,
    ) -> InventoryRecord:
        """Apply a signed on-hand change to one (sku, location, lot) record."""
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise ValidationError({"delta": ["Adjustment must be a non-zero whole number"]})
        if not reason:
            raise ValidationError({"reason": ["Adjustment reason is required"]})
        self.catalogue.require(sku)
        self.directory.require(location_code)
        lot_number = lot_number or None
        now = self.clock.now()

        with self._sku_lock(sku):
            record_id = record_key(sku, location_code, lot_number)
            record = self._find_record(record_id)
            if record is None:
                if delta < 0:
                    logger.error(
                        "Negative adjustment on empty record",
                        sku=sku,
                        location=location_code,
                        lot=lot_number,
                        delta=delta,
                    )
                    raise NegativeStockError({"on_hand": [f"No stock of {sku} at {location_code} to decrement"]})
                if expiry_date is None and lot_number:
                    lot = self._find_lot(sku, lot_number)
                    expiry_date = lot.expiry_date if lot else None
                record = InventoryRecord.open(sku, location_code, lot_number, now, expiry_date=expiry_date)

            before = (record.on_hand, record.allocated)
            try:
                record.adjust(delta, reason, now, reference=reference)
            except NegativeStockError:
                logger.error(
                    "Adjustment would break ledger invariant",
                    record_id=record_id,
                    on_hand=record.on_hand,
                    allocated=record.allocated,
                    delta=delta,
                )
                raise
            self.store.add(INVENTORY_RECORDS, record)
            self._log(record, MovementKind.ADJUST, delta, before, reason=reason, reference=reference)

        logger.info("Stock adjusted", sku=sku, location=location_code, lot=lot_number, delta=delta, reason=reason)
        return record

    # -------------------------------------------------------------------
    # Reservations
    # -------------------------------------------------------------------
    def _candidates(self, sku, exclude_locations):
        excluded = set(exclude_locations or ())
        inactive = {loc.code for loc in self.store.list(LOCATIONS) if not loc.is_active}
        blocked_lots = {lot.lot_number for lot in self.store.list(LOTS, sku=sku) if lot.is_blocked}
        records = [
            r
            for r in self.store.list(INVENTORY_RECORDS, sku=sku)
            if r.available > 0
            and r.location_code not in excluded
            and r.location_code not in inactive
            and r.lot_number not in blocked_lots
        ]
        return sorted(records, key=_fefo_key)

    def available_quantity(self, sku: str, exclude_locations=None) -> int:
        """Units of the SKU that a reservation could take right now."""
        with self._sku_lock(sku):
            return sum(r.available for r in self._candidates(sku, exclude_locations))

    def reserve(
        self,
        sku: str,
        quantity: int,
        order_id: str | None = None,
        line_id: str | None = None,
        exclude_locations=None,
        partial: bool = False,
    ) -> ReservationResult:
        """Reserve ``quantity`` units of the SKU across as many records as needed.

        All-or-nothing unless ``partial`` is set, in which case whatever is
        available is reserved and the shortfall is returned as ``remainder``.
        """
        _positive_quantity(quantity)
        self.catalogue.require(sku)

        with self._sku_lock(sku):
            plan, remaining = [], quantity
            for record in self._candidates(sku, exclude_locations):
                if remaining == 0:
                    break
                take = min(record.available, remaining)
                plan.append((record, take))
                remaining -= take

            if remaining and not partial:
                logger.warning(
                    "Reservation rejected",
                    sku=sku,
                    requested=quantity,
                    available=quantity - remaining,
                    order_id=order_id,
                )
                raise InsufficientStockError(sku, quantity, quantity - remaining)

            allocations = self._apply_reservations(plan, order_id, line_id)

        logger.info(
            "Stock reserved",
            sku=sku,
            requested=quantity,
            reserved=quantity - remaining,
            allocations=len(allocations),
            order_id=order_id,
        )
        return ReservationResult(allocations=allocations, remainder=remaining)

    def _apply_reservations(self, plan, order_id, line_id):
        now = self.clock.now()
        applied = []  # (record_id, quantity, allocation, allocation_saved)
        try:
            for record, take in plan:
                allocation = Allocation(
                    order_id=order_id,
                    line_id=line_id,
                    sku=record.sku,
                    location_code=record.location_code,
                    lot_number=record.lot_number,
                    record_id=str(record.id),
                    quantity=take,
                    created_at=now,
                )
                before = (record.on_hand, record.allocated)
                record.reserve(take, str(allocation.id), order_id, now)
                self.store.add(INVENTORY_RECORDS, record)
                applied.append([str(record.id), take, allocation, False])
                self.store.add(ALLOCATIONS, allocation)
                applied[-1][3] = True
                self._log(record, MovementKind.RESERVE, take, before, reference=order_id)
        except Exception:
            logger.exception("Reservation failed part-way, compensating", order_id=order_id)
            self._compensate(applied)
            raise
        return [entry[2] for entry in applied]

    def _compensate(self, applied):
        now = self.clock.now()
        for record_id, take, allocation, allocation_saved in reversed(applied):
            try:
                record = self.store.get(INVENTORY_RECORDS, record_id)
                record.release(take, str(allocation.id), now)
                self.store.add(INVENTORY_RECORDS, record)
                if allocation_saved:
                    stored = self.store.get(ALLOCATIONS, str(allocation.id))
                    stored.release(None, now)
                    self.store.add(ALLOCATIONS, stored)
            except Exception:
                logger.exception("Compensation failed", record_id=record_id, allocation_id=str(allocation.id))

    # -------------------------------------------------------------------
    # Consumption
    # -------------------------------------------------------------------
    def _consume(self, allocation_id, quantity, kind):
        sku = self.store.get(ALLOCATIONS, allocation_id).sku
        now = self.clock.now()
        with self._sku_lock(sku):
            allocation = self.store.get(ALLOCATIONS, allocation_id)
            record = self.store.get(INVENTORY_RECORDS, allocation.record_id)
            before = (record.on_hand, record.allocated)
            if kind is MovementKind.COMMIT:
                taken = allocation.commit(quantity, now)
                record.commit(taken, str(allocation.id), now)
            else:
                taken = allocation.release(quantity, now)
                record.release(taken, str(allocation.id), now)
            self.store.add(INVENTORY_RECORDS, record)
            self.store.add(ALLOCATIONS, allocation)
            self._log(record, kind, taken, before, reference=allocation.order_id)

        logger.info(
            "Allocation consumed",
            kind=kind.value,
            allocation_id=allocation_id,
            sku=sku,
            quantity=taken,
        )
        return allocation

    def commit(self, allocation_id: str, quantity: int | None = None) -> Allocation:
        """Turn reserved units into a permanent decrement of on-hand stock."""
        return self._consume(allocation_id, quantity, MovementKind.COMMIT)

    def release(self, allocation_id: str, quantity: int | None = None) -> Allocation:
        """Return reserved units to available stock."""
        return self._consume(allocation_id, quantity, MovementKind.RELEASE)

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def get_inventory(self, sku: str, location_code: str | None = None) -> dict:
        self.catalogue.require(sku)
        records = self.store.list(INVENTORY_RECORDS, sku=sku)
        pending = self.store.list(PUTAWAY_TASKS, sku=sku, status="Pending")
        if location_code:
            records = [r for r in records if r.location_code == location_code]
            pending = [t for t in pending if t.destination_code == location_code]

        records = sorted(records, key=lambda r: (r.location_code, r.lot_number or ""))
        return {
            "sku": sku,
            "on_hand": sum(r.on_hand for r in records),
            "allocated": sum(r.allocated for r in records),
            "available": sum(r.available for r in records),
            "in_transit": sum(t.quantity for t in pending),
            "locations": [
                {
                    "location": r.location_code,
                    "lot_number": r.lot_number,
                    "expiry_date": r.expiry_date,
                    "on_hand": r.on_hand,
                    "allocated": r.allocated,
                    "available": r.available,
                }
                for r in records
            ],
        }

    def get_movements(self, sku: str) -> list[StockMovement]:
        return sorted(self.store.list(STOCK_MOVEMENTS, sku=sku), key=lambda m: m.occurred_at)

    def allocations_for(self, order_id: str, open_only: bool = False) -> list[Allocation]:
        allocations = self.store.list(ALLOCATIONS, order_id=order_id)
        if open_only:
            allocations = [a for a in allocations if a.is_open]
        return sorted(allocations, key=lambda a: (a.created_at, a.location_code, str(a.id)))

    # -------------------------------------------------------------------
    # Lots
    # -------------------------------------------------------------------
    def create_lot(self, sku: str, lot_number: str, **attrs) -> Lot:
        self.catalogue.require(sku)
        if self._find_lot(sku, lot_number) is not None:
            raise ValidationError({"lot_number": [f"Lot {lot_number} already exists for {sku}"]})

        lot = Lot.create(sku=sku, lot_number=lot_number, now=self.clock.now(), **attrs)
        self.store.add(LOTS, lot)
        logger.info("Lot created", sku=sku, lot_number=lot_number, expiry_date=str(lot.expiry_date))
        return lot

    def get_lot(self, sku: str, lot_number: str) -> Lot | None:
        return self._find_lot(sku, lot_number)

    def set_lot_quality_status(self, sku: str, lot_number: str, status: str) -> Lot:
        lot = self._find_lot(sku, lot_number)
        if lot is None:
            raise ValidationError({"lot_number": [f"Unknown lot {lot_number} for {sku}"]})
        with self._sku_lock(sku):
            lot.change_quality_status(status, self.clock.now())
            self.store.add(LOTS, lot)
        return lot

    def record_lot_receipt(self, lot: Lot, quantity: int) -> Lot:
        with self._sku_lock(lot.sku):
            lot = self.store.get(LOTS, str(lot.id))
            lot.record_receipt(quantity, self.clock.now())
            self.store.add(LOTS, lot)
        return lot

    def get_lots_by_product(self, sku: str, status: str | None = None) -> list[Lot]:
        self.catalogue.require(sku)
        lots = self.store.list(LOTS, sku=sku)
        if status:
            lots = [lot for lot in lots if lot.quality_status == status]
        return sorted(lots, key=lambda lot: (lot.expiry_date is None, lot.expiry_date, lot.lot_number))

    def get_expiring_lots(self, days: int = 30) -> list[Lot]:
        """Approved lots whose expiry falls between today and ``days`` from now."""
        today = self.clock.today()
        horizon = today + timedelta(days=days)
        lots = [
            lot
            for lot in self.store.list(LOTS, quality_status=QualityStatus.APPROVED.value)
            if lot.expiry_date is not None and today <= lot.expiry_date <= horizon
        ]
        return sorted(lots, key=lambda lot: (lot.expiry_date, lot.sku, lot.lot_number))
