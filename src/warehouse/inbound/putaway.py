"""Put-away assigner — chooses where received stock goes and books it in.

Destination choice is serialized under one put-away lock: spare capacity
counts units already routed by pending tasks, so two receipts can never be
sent into the same free space.
"""

import structlog

from warehouse.errors import NoCapacityError
from warehouse.inbound.putaway_task import PutAwayTask
from warehouse.store import PUTAWAY_TASKS, RECEIPTS

logger = structlog.get_logger(__name__)

_ASSIGN_LOCK = ("putaway", "assign")


class PutAwayAssigner:
    def __init__(self, store, ledger, directory, catalogue, locks, clock, policy):
        self.store = store
        self.ledger = ledger
        self.directory = directory
        self.catalogue = catalogue
        self.locks = locks
        self.clock = clock
        self.policy = policy

    def get_task(self, task_id: str) -> PutAwayTask:
        return self.store.get(PUTAWAY_TASKS, task_id)

    def assign(self, receipt_id: str, receipt_line_id: str) -> PutAwayTask:
        """Create the put-away task of a received line (once per line)."""
        with self.locks.hold(_ASSIGN_LOCK):
            receipt = self.store.get(RECEIPTS, receipt_id)
            line = receipt.line(receipt_line_id)
            if line.putaway_task_id:
                return self.get_task(str(line.putaway_task_id))

            product = self.catalogue.require(line.sku)
            candidates = self.directory.put_away_candidates(product, line.qty_received)
            if not candidates:
                logger.warning(
                    "No location can take received stock",
                    receipt_id=str(receipt_id),
                    sku=line.sku,
                    quantity=line.qty_received,
                )
                raise NoCapacityError(
                    {"location": [f"No active location has room for {line.qty_received} units of {line.sku}"]}
                )

            task = PutAwayTask.create(
                str(receipt.id), line, self.policy.receiving_location, candidates, self.clock.now()
            )
            self.store.add(PUTAWAY_TASKS, task)
            receipt.attach_putaway_task(str(line.id), str(task.id))
            self.store.add(RECEIPTS, receipt)

        logger.info(
            "Put-away task created",
            task_id=str(task.id),
            sku=task.sku,
            quantity=task.quantity,
            destination=task.destination_code,
        )
        return task

    def complete(self, task_id: str, put_qty: int | None = None, completed_by: str | None = None) -> PutAwayTask:
        """Book the stock into the destination; a task completes exactly once."""
        with self.locks.hold(("putaway_task", str(task_id))):
            task = self.get_task(task_id)
            task.ensure_pending()
            quantity = task.quantity if put_qty is None else put_qty

            task.complete(quantity, completed_by, self.clock.now())
            self.ledger.adjust(
                task.sku,
                task.destination_code,
                task.lot_number,
                quantity,
                reason="Put-away",
                reference=str(task.receipt_id),
                expiry_date=task.expiry_date,
            )
            self.store.add(PUTAWAY_TASKS, task)

        if quantity < task.quantity:
            logger.warning(
                "Put-away short of received quantity",
                task_id=str(task_id),
                received=task.quantity,
                put_away=quantity,
            )
        logger.info("Put-away completed", task_id=str(task_id), sku=task.sku, destination=task.destination_code)
        return task
