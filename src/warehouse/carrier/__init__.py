"""Carrier adapters — label purchase and tracking behind ``CarrierPort``.

The engine receives its adapter explicitly. When none is given it falls back
to the adapter named by ``WAREHOUSE_CARRIER_ADAPTER`` (``fake`` by default).
"""

import os
from collections.abc import Callable

import structlog

from warehouse.carrier.port import CarrierPort

logger = structlog.get_logger(__name__)

_factories: dict[str, Callable[[], CarrierPort]] = {}
_carrier_instance: CarrierPort | None = None


def register_adapter(name: str, factory: Callable[[], CarrierPort]) -> None:
    """Make an adapter available under ``name`` for environment selection."""
    _factories[name.lower()] = factory


def _fake_factory() -> CarrierPort:
    from warehouse.carrier.fake_adapter import FakeCarrier

    return FakeCarrier()


register_adapter("fake", _fake_factory)


def get_carrier() -> CarrierPort:
    """Return the environment-selected adapter, built once per process."""
    global _carrier_instance
    if _carrier_instance is None:
        name = os.environ.get("WAREHOUSE_CARRIER_ADAPTER", "fake").lower()
        if name not in _factories:
            raise ValueError(f"Unknown carrier adapter: {name}")
        _carrier_instance = _factories[name]()
        logger.info("carrier_adapter_selected", adapter=name)
    return _carrier_instance


def reset_carrier() -> None:
    """Forget the selected adapter so the next lookup re-reads the environment."""
    global _carrier_instance
    _carrier_instance = None
