"""Fulfillment policy — switches and weights read from the environment."""

import os
from dataclasses import dataclass

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class FulfillmentPolicy:
    """Operational policy shared by the allocation, picking and shipping services.

    allow_partial_orders:  orders may be allocated short (PartiallyAllocated)
    allow_short_ship:      short-picked or partially allocated orders may be
                           waved, packed and shipped
    carrier_cost_weight / carrier_reliability_weight:
                           weights in the carrier score
                           ``cost * cost_weight + (1 - on_time) * reliability_weight``
    """

    allow_partial_orders: bool = False
    allow_short_ship: bool = True
    carrier_cost_weight: float = 1.0
    carrier_reliability_weight: float = 100.0
    receiving_location: str = "RECEIVING"
    returns_location: str = "RETURNS"
    rma_window_days: int = 30

    @classmethod
    def from_env(cls) -> "FulfillmentPolicy":
        return cls(
            allow_partial_orders=_env_bool("WAREHOUSE_ALLOW_PARTIAL_ORDERS", False),
            allow_short_ship=_env_bool("WAREHOUSE_ALLOW_SHORT_SHIP", True),
            carrier_cost_weight=float(os.environ.get("WAREHOUSE_CARRIER_COST_WEIGHT", "1.0")),
            carrier_reliability_weight=float(os.environ.get("WAREHOUSE_CARRIER_RELIABILITY_WEIGHT", "100.0")),
            receiving_location=os.environ.get("WAREHOUSE_RECEIVING_LOCATION", "RECEIVING"),
            returns_location=os.environ.get("WAREHOUSE_RETURNS_LOCATION", "RETURNS"),
            rma_window_days=int(os.environ.get("WAREHOUSE_RMA_WINDOW_DAYS", "30")),
        )


_policy_instance = None


def get_policy() -> FulfillmentPolicy:
    """Return the configured policy (singleton, read once from the environment)."""
    global _policy_instance
    if _policy_instance is None:
        _policy_instance = FulfillmentPolicy.from_env()
    return _policy_instance


def reset_policy():
    """Reset the policy singleton (useful for testing)."""
    global _policy_instance
    _policy_instance = None
