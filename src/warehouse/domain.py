"""Warehouse bounded context — inventory, fulfillment orchestration and logistics.

Tracks stock per (product, location, lot), allocates it to customer orders,
batches orders into waves of pick work, routes received goods to storage
locations and hands packed orders over to carriers.
"""

from protean.domain import Domain

from warehouse.utils.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging()

logger = get_logger(__name__)

# Domain Composition Root
warehouse = Domain(name="warehouse")
