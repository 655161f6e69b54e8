"""Pick task generator — turns a wave's reservations into floor work.

Reserved allocations of the wave's orders are grouped by (location, SKU);
each group becomes one task, and tasks are sequenced by location code so a
picker walks the aisles in order. Generation only covers allocations not
already on a live task, so calling it again is harmless and re-tasks stock
whose task was cancelled.

Completing a task commits the picked units in the ledger, returns any
shortfall to available stock, opens a pick exception for it and reports
(picked, short) per order line to the order lifecycle. Completing the same
task twice is a no-op.
"""

from collections import defaultdict

import structlog

from warehouse.errors import StateConflictError
from warehouse.outbound.order import OrderStatus
from warehouse.outbound.pick_exception import PickException
from warehouse.outbound.pick_task import UNSTARTED_STATUSES, PickTask, PickTaskStatus
from warehouse.outbound.wave import WaveStatus
from warehouse.store import ALLOCATIONS, ORDERS, PICK_EXCEPTIONS, PICK_TASKS, WAVES

logger = structlog.get_logger(__name__)

_PICKABLE_ORDER_STATUSES = {OrderStatus.WAVED.value, OrderStatus.PICKING.value}


class PickTaskGenerator:
    def __init__(self, store, ledger, lifecycle, locks, clock):
        self.store = store
        self.ledger = ledger
        self.lifecycle = lifecycle
        self.locks = locks
        self.clock = clock

    def _task_lock(self, task_id):
        return self.locks.hold(("task", str(task_id)))

    def get_task(self, task_id: str) -> PickTask:
        return self.store.get(PICK_TASKS, task_id)

    def tasks_for_wave(self, wave_id: str, live_only: bool = True) -> list[PickTask]:
        tasks = self.store.list(PICK_TASKS, wave_id=str(wave_id))
        if live_only:
            tasks = [t for t in tasks if t.is_live]
        return sorted(tasks, key=lambda t: (t.sequence, t.location_code, t.sku))

    # -------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------
    def generate_pick_tasks(self, wave_id: str) -> list[PickTask]:
        with self.locks.hold(("wave", str(wave_id))):
            wave = self.store.get(WAVES, wave_id)
            if wave.status not in (WaveStatus.PLANNED.value, WaveStatus.PICKING.value):
                if wave.status in (WaveStatus.PICKED.value, WaveStatus.COMPLETED.value):
                    return self.tasks_for_wave(wave_id)
                raise StateConflictError({"status": [f"Wave {wave_id} is {wave.status}"]})

            with self.locks.hold(*[("order", oid) for oid in wave.member_ids]):
                now = self.clock.now()
                active = []
                for order_id in wave.member_ids:
                    order = self.store.get(ORDERS, order_id)
                    if order.status not in _PICKABLE_ORDER_STATUSES:
                        continue
                    if order.status == OrderStatus.WAVED.value:
                        self.lifecycle.begin_picking(order_id)
                    active.append(order_id)

                existing = self.store.list(PICK_TASKS, wave_id=str(wave_id))
                covered = {aid for t in existing if t.is_live for aid in t.covered_allocation_ids}
                groups = defaultdict(list)
                for order_id in active:
                    for allocation in self.ledger.allocations_for(order_id, open_only=True):
                        if str(allocation.id) not in covered:
                            groups[(allocation.location_code, allocation.sku)].append(allocation)

                live_by_group = {(t.location_code, t.sku): t for t in existing if t.is_live}
                created = 0
                for group in sorted(groups):
                    allocations = groups[group]
                    live = live_by_group.get(group)
                    if live is not None and live.status in UNSTARTED_STATUSES:
                        with self._task_lock(live.id):
                            live = self.get_task(str(live.id))
                            live.extend(allocations, now)
                            self.store.add(PICK_TASKS, live)
                        continue
                    if live is not None:
                        logger.warning(
                            "Allocations left untasked, group already being picked",
                            wave_id=str(wave_id),
                            location=group[0],
                            sku=group[1],
                        )
                        continue
                    task = PickTask.create(str(wave_id), group[1], group[0], allocations, 0, now)
                    self.store.add(PICK_TASKS, task)
                    created += 1

                self._resequence(wave_id)
                if wave.status == WaveStatus.PLANNED.value:
                    wave.start_picking(now)
                    self.store.add(WAVES, wave)

        logger.info("Pick tasks generated", wave_id=str(wave_id), created=created)
        return self.tasks_for_wave(wave_id)

    def _resequence(self, wave_id):
        live = [t for t in self.store.list(PICK_TASKS, wave_id=str(wave_id)) if t.is_live]
        for sequence, task in enumerate(sorted(live, key=lambda t: (t.location_code, t.sku)), start=1):
            if task.sequence != sequence:
                with self._task_lock(task.id):
                    task = self.get_task(str(task.id))
                    task.sequence = sequence
                    self.store.add(PICK_TASKS, task)

    # -------------------------------------------------------------------
    # Task lifecycle
    # -------------------------------------------------------------------
    def assign(self, task_id: str, worker_id: str) -> PickTask:
        with self._task_lock(task_id):
            task = self.get_task(task_id)
            task.assign(worker_id, self.clock.now())
            self.store.add(PICK_TASKS, task)
        logger.info("Pick task assigned", task_id=str(task_id), worker_id=worker_id)
        return task

    def start(self, task_id: str) -> PickTask:
        with self._task_lock(task_id):
            task = self.get_task(task_id)
            task.start(self.clock.now())
            self.store.add(PICK_TASKS, task)
        return task

    def complete(
        self, task_id: str, actual_qty: int, reason: str | None = None, reported_by: str | None = None
    ) -> PickTask:
        """Record the units actually picked and settle the covered allocations.

        A shortfall opens a pick exception carrying ``reason`` (``"Short pick"``
        when none is given).
        """
        with self._task_lock(task_id):
            task = self.get_task(task_id)
            if task.status == PickTaskStatus.COMPLETED.value:
                logger.info("Pick task already completed", task_id=str(task_id))
                return task

            now = self.clock.now()
            task.complete(actual_qty, now)  # validates state and quantity before any ledger write

            picks = defaultdict(dict)
            remaining = actual_qty
            for allocation_id in task.covered_allocation_ids:
                allocation = self.store.get(ALLOCATIONS, allocation_id)
                outstanding = allocation.outstanding
                if outstanding <= 0:
                    continue
                picked = min(outstanding, remaining)
                if picked:
                    self.ledger.commit(allocation_id, picked)
                if outstanding - picked:
                    self.ledger.release(allocation_id, outstanding - picked)
                remaining -= picked
                if allocation.order_id and allocation.line_id:
                    previous = picks[allocation.order_id].get(allocation.line_id, (0, 0))
                    picks[allocation.order_id][allocation.line_id] = (
                        previous[0] + picked,
                        previous[1] + outstanding - picked,
                    )

            self.store.add(PICK_TASKS, task)
            if task.short_quantity:
                self._open_exception(task, reason or "Short pick", task.short_quantity, reported_by or task.assignee)

        logger.info(
            "Pick task completed",
            task_id=str(task_id),
            picked=task.picked_quantity,
            short=task.short_quantity,
        )
        for order_id, line_picks in picks.items():
            self.lifecycle.record_line_picks(order_id, line_picks)
        self.settle_wave(str(task.wave_id))
        return task

    def cancel_task(self, task_id: str, reason: str | None = None) -> PickTask:
        """Abandon a task that has not completed; its allocations stay reserved for re-tasking."""
        with self._task_lock(task_id):
            task = self.get_task(task_id)
            if task.status == PickTaskStatus.CANCELLED.value:
                return task
            task.cancel(reason, self.clock.now())
            self.store.add(PICK_TASKS, task)
        logger.info("Pick task cancelled", task_id=str(task_id), reason=reason)
        return task

    # -------------------------------------------------------------------
    # Exceptions
    # -------------------------------------------------------------------
    def _open_exception(self, task, reason, shortfall, reported_by) -> PickException:
        exception = PickException.report(task, reason, shortfall, reported_by, self.clock.now())
        self.store.add(PICK_EXCEPTIONS, exception)
        logger.warning(
            "Pick exception reported",
            exception_id=str(exception.id),
            task_id=str(task.id),
            sku=task.sku,
            location=task.location_code,
            shortfall=shortfall,
            reason=exception.reason,
        )
        return exception

    def report_exception(
        self, task_id: str, reason: str, shortfall: int = 0, reported_by: str | None = None
    ) -> PickException:
        """Report a problem at the task's location without changing the task."""
        with self._task_lock(task_id):
            task = self.get_task(task_id)
            return self._open_exception(task, reason, shortfall, reported_by)

    def get_exceptions(self, wave_id: str | None = None, status: str | None = None) -> list[PickException]:
        filters = {}
        if wave_id:
            filters["wave_id"] = str(wave_id)
        if status:
            filters["status"] = status
        return sorted(self.store.list(PICK_EXCEPTIONS, **filters), key=lambda e: (e.created_at, e.location_code))

    def investigate_exception(self, exception_id: str) -> PickException:
        with self.locks.hold(("pick_exception", str(exception_id))):
            exception = self.store.get(PICK_EXCEPTIONS, exception_id)
            exception.investigate(self.clock.now())
            self.store.add(PICK_EXCEPTIONS, exception)
        return exception

    def resolve_exception(self, exception_id: str, resolution: str) -> PickException:
        with self.locks.hold(("pick_exception", str(exception_id))):
            exception = self.store.get(PICK_EXCEPTIONS, exception_id)
            exception.resolve(resolution, self.clock.now())
            self.store.add(PICK_EXCEPTIONS, exception)
        logger.info("Pick exception resolved", exception_id=str(exception_id), resolution=resolution)
        return exception

    # -------------------------------------------------------------------
    # Wave completion
    # -------------------------------------------------------------------
    def settle_wave(self, wave_id: str) -> None:
        """Mark the wave Picked once every task is closed and nothing is left to pick."""
        with self.locks.hold(("wave", str(wave_id))):
            wave = self.store.get(WAVES, wave_id)
            if wave.status != WaveStatus.PICKING.value:
                return
            if any(not t.is_closed for t in self.store.list(PICK_TASKS, wave_id=str(wave_id))):
                return

            picking = []
            for order_id in wave.member_ids:
                order = self.store.get(ORDERS, order_id)
                if order.status != OrderStatus.PICKING.value:
                    continue
                if self.ledger.allocations_for(order_id, open_only=True):
                    return
                picking.append(order_id)

            wave.mark_picked(self.clock.now())
            self.store.add(WAVES, wave)
            for order_id in picking:
                self.lifecycle.mark_pick_complete(order_id)

        logger.info("Wave picked", wave_id=str(wave_id), orders=len(picking))
