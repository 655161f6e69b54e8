"""Layout domain events."""

from protean.fields import DateTime, Identifier, Integer, String

from warehouse.domain import warehouse


@warehouse.event(part_of="Location")
class LocationCreated:
    """A storage or staging location was added to the warehouse layout."""

    __version__ = 1

    code = Identifier(required=True)
    zone = String(required=True)
    location_type = String(required=True)
    capacity = Integer()
    created_at = DateTime(required=True)


@warehouse.event(part_of="Location")
class LocationStatusChanged:
    """A location was activated, deactivated or put into maintenance."""

    __version__ = 1

    code = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)
