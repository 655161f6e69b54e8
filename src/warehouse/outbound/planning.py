"""Wave planner — batches allocated orders into waves of pick work.

Eligible orders are taken highest priority first, then earliest SLA
deadline, then order id. A zone, route or product strategy groups the
candidates first and keeps that order as the tie-break. Each one is admitted
through the order lifecycle's per-order compare-and-set, so an order is never
a member of two open waves.
"""

from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

import structlog
from protean.exceptions import ValidationError

from warehouse.errors import EmptySelectionError, StateConflictError
from warehouse.outbound.order import OrderStatus
from warehouse.outbound.wave import Wave, WaveStatus
from warehouse.store import ORDERS, WAVES

logger = structlog.get_logger(__name__)

_PACKED_OR_LATER = {OrderStatus.PACKED.value, OrderStatus.SHIPPED.value, OrderStatus.CLOSED.value}


class WaveStrategy(Enum):
    STANDARD = "Standard"  # priority, deadline, order id
    ZONE = "Zone"  # destination postal code
    PRODUCT = "Product"  # orders sharing the most SKUs with the rest first
    ROUTE = "Route"  # destination country, state, city


@dataclass(frozen=True)
class WaveCriteria:
    """Selection rules for a wave.

    cutoff:        only orders whose SLA deadline is at or before this instant
    min_priority:  only orders with at least this priority
    max_orders / max_lines: caps on the wave's size
    strategy:      grouping applied to the candidates before the caps
    """

    cutoff: datetime | None = None
    min_priority: int | None = None
    max_orders: int | None = None
    max_lines: int | None = None
    strategy: str = WaveStrategy.STANDARD.value
    statuses: tuple[str, ...] = field(
        default=(OrderStatus.ALLOCATED.value, OrderStatus.PARTIALLY_ALLOCATED.value)
    )

    def __post_init__(self):
        if self.strategy not in {s.value for s in WaveStrategy}:
            raise ValidationError({"strategy": [f"Unknown wave strategy: {self.strategy}"]})

    @classmethod
    def coerce(cls, criteria) -> "WaveCriteria":
        if criteria is None:
            return cls()
        if isinstance(criteria, cls):
            return criteria
        return cls(**criteria)


def _selection_key(order):
    return (-(order.priority or 0), order.sla_deadline is None, order.sla_deadline, str(order.id))


def _destination(order, *attrs):
    ship_to = order.ship_to
    values = tuple((getattr(ship_to, attr, None) or "") if ship_to else "" for attr in attrs)
    # orders without a destination go last
    return (not any(values), values)


def order_candidates(orders: list, strategy: str) -> list:
    """Order wave candidates for the strategy; ties fall back to the standard order."""
    if strategy == WaveStrategy.ZONE.value:
        return sorted(orders, key=lambda o: (_destination(o, "postal_code"), _selection_key(o)))
    if strategy == WaveStrategy.ROUTE.value:
        return sorted(orders, key=lambda o: (_destination(o, "country", "state", "city"), _selection_key(o)))
    if strategy == WaveStrategy.PRODUCT.value:
        counts = Counter(line.sku for o in orders for line in o.lines or [])

        def overlap(order):
            return sum(counts[line.sku] for line in order.lines or [])

        return sorted(orders, key=lambda o: (-overlap(o), _selection_key(o)))
    return sorted(orders, key=_selection_key)


class WavePlanner:
    def __init__(self, store, lifecycle, locks, clock, policy):
        self.store = store
        self.lifecycle = lifecycle
        self.locks = locks
        self.clock = clock
        self.policy = policy

    def _wave_lock(self, wave_id):
        return self.locks.hold(("wave", str(wave_id)))

    def get_wave(self, wave_id: str) -> Wave:
        return self.store.get(WAVES, wave_id)

    # -------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------
    def _eligible(self, criteria: WaveCriteria) -> list:
        statuses = set(criteria.statuses)
        if not self.policy.allow_short_ship:
            statuses.discard(OrderStatus.PARTIALLY_ALLOCATED.value)

        eligible = []
        for order in self.store.list(ORDERS):
            if order.status not in statuses or order.wave_id:
                continue
            if criteria.cutoff is not None and (order.sla_deadline is None or order.sla_deadline > criteria.cutoff):
                continue
            if criteria.min_priority is not None and (order.priority or 0) < criteria.min_priority:
                continue
            eligible.append(order)
        return order_candidates(eligible, criteria.strategy)

    def _admit(self, wave: Wave, candidates: list, criteria: WaveCriteria, admitted_lines: int = 0) -> list:
        admitted = []
        for order in candidates:
            if criteria.max_orders is not None and len(wave.member_ids) + len(admitted) >= criteria.max_orders:
                break
            line_count = len(order.lines or [])
            if criteria.max_lines is not None and admitted_lines + line_count > criteria.max_lines:
                continue
            try:
                admitted.append(self.lifecycle.admit_to_wave(str(order.id), str(wave.id)))
            except StateConflictError:
                # Lost the race for this order to another wave or a cancellation
                logger.info("Order no longer eligible for wave", order_id=str(order.id), wave_id=str(wave.id))
                continue
            admitted_lines += line_count
        return admitted

    def _members(self, wave: Wave) -> list:
        return [self.store.get(ORDERS, oid) for oid in wave.member_ids]

    # -------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------
    def create_wave(self, criteria=None) -> Wave:
        """Create a Planned wave from every eligible order within the caps."""
        criteria = WaveCriteria.coerce(criteria)
        candidates = self._eligible(criteria)
        if not candidates:
            raise EmptySelectionError({"criteria": ["No orders match the wave criteria"]})

        now = self.clock.now()
        wave = Wave.plan(
            now,
            cutoff=criteria.cutoff,
            max_orders=criteria.max_orders,
            max_lines=criteria.max_lines,
            strategy=criteria.strategy,
        )
        with self._wave_lock(wave.id):
            admitted = self._admit(wave, candidates, criteria)
            if not admitted:
                raise EmptySelectionError({"criteria": ["Every matching order was taken by another wave"]})

            wave.admit([str(o.id) for o in admitted], now, initial=True)
            wave.record_metrics(admitted)
            self.store.add(WAVES, wave)

        logger.info(
            "Wave planned",
            wave_id=str(wave.id),
            orders=wave.metrics.order_count,
            units=wave.metrics.unit_count,
            estimated_pick_minutes=wave.metrics.estimated_pick_minutes,
        )
        return wave

    def plan_wave(self, wave_id: str, order_ids: list[str] | None = None, criteria=None) -> Wave:
        """Admit more orders into a Planned wave.

        Explicit ``order_ids`` are all-or-nothing: if any of them is not
        eligible, none is admitted.
        """
        with self._wave_lock(wave_id):
            wave = self.get_wave(wave_id)
            if wave.status != WaveStatus.PLANNED.value:
                raise StateConflictError({"status": [f"Wave {wave_id} is {wave.status}, not Planned"]})

            members = self._members(wave)
            used_lines = sum(len(o.lines or []) for o in members)
            if order_ids:
                admitted = self._admit_explicit(wave, order_ids)
            else:
                if criteria is None:
                    criteria = WaveCriteria(strategy=wave.strategy or WaveStrategy.STANDARD.value)
                criteria = WaveCriteria.coerce(criteria)
                if criteria.max_orders is None and wave.max_orders is not None:
                    criteria = replace(criteria, max_orders=wave.max_orders)
                admitted = self._admit(wave, self._eligible(criteria), criteria, admitted_lines=used_lines)
                if not admitted:
                    raise EmptySelectionError({"criteria": ["No orders match the wave criteria"]})

            now = self.clock.now()
            wave.admit([str(o.id) for o in admitted], now)
            wave.record_metrics(members + admitted)
            self.store.add(WAVES, wave)

        logger.info("Orders added to wave", wave_id=str(wave_id), added=len(admitted))
        return wave

    def _admit_explicit(self, wave, order_ids):
        keys = [("order", str(oid)) for oid in order_ids]
        with self.locks.hold(*keys):
            orders = [self.store.get(ORDERS, oid) for oid in order_ids]
            statuses = {OrderStatus.ALLOCATED.value}
            if self.policy.allow_short_ship:
                statuses.add(OrderStatus.PARTIALLY_ALLOCATED.value)
            for order in orders:
                if order.status not in statuses or order.wave_id:
                    raise StateConflictError(
                        {"order_id": [f"Order {order.id} is {order.status} and cannot join wave {wave.id}"]}
                    )
            return [self.lifecycle.admit_to_wave(str(order.id), str(wave.id)) for order in orders]

    def release_order(self, wave_id: str, order_id: str) -> Wave:
        """Drop a cancelled order from its wave and settle the wave."""
        with self._wave_lock(wave_id):
            wave = self.get_wave(wave_id)
            wave.remove_order(str(order_id), self.clock.now())
            self._settle(wave)
            self.store.add(WAVES, wave)
        return wave

    def on_order_packed(self, wave_id: str) -> Wave:
        with self._wave_lock(wave_id):
            wave = self.get_wave(wave_id)
            self._settle(wave)
            self.store.add(WAVES, wave)
        return wave

    def _settle(self, wave: Wave) -> None:
        if not wave.is_open:
            return
        now = self.clock.now()
        if not wave.member_ids:
            wave.cancel(now)
            logger.info("Wave cancelled, no orders left", wave_id=str(wave.id))
        elif all(o.status in _PACKED_OR_LATER for o in self._members(wave)):
            wave.complete(now)
            logger.info("Wave completed", wave_id=str(wave.id))
