"""Warehouse error taxonomy.

Every error carries a ``messages`` dict (field -> list of messages) in the
same shape as ``protean.exceptions.ValidationError``, which is used as-is for
malformed input and unknown products or locations.

    InsufficientStockError    retry after restock
    NoCapacityError           caller must relax constraints
    NoEligibleCarrierError    caller must relax constraints
    StateConflictError        operation invalid for the current state
    ConcurrencyConflictError  a write lost a race, safe to retry
    NegativeStockError        would break the ledger invariant
    EmptySelectionError       wave criteria matched nothing
    LabelGenerationError      the carrier refused a label, safe to retry
"""


class WarehouseError(Exception):
    def __init__(self, messages: dict):
        self.messages = messages
        super().__init__(messages)


class InsufficientStockError(WarehouseError):
    def __init__(self, sku: str, requested: int, available: int):
        self.sku = sku
        self.requested = requested
        self.available = available
        super().__init__(
            {"sku": [f"Insufficient stock for {sku}: requested {requested}, available {available}"]}
        )


class NoCapacityError(WarehouseError):
    pass


class NoEligibleCarrierError(WarehouseError):
    pass


class StateConflictError(WarehouseError):
    pass


class ConcurrencyConflictError(WarehouseError):
    pass


class NegativeStockError(WarehouseError):
    pass


class EmptySelectionError(WarehouseError):
    pass


class LabelGenerationError(WarehouseError):
    pass
