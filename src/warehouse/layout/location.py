"""Location aggregate — a physical slot in the warehouse, identified by its code."""

from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String

from warehouse.domain import warehouse
from warehouse.layout.events import LocationCreated, LocationStatusChanged


class LocationType(Enum):
    BULK = "Bulk"
    PICK_FACE = "Pick_Face"
    STAGING = "Staging"
    RECEIVING = "Receiving"
    RETURNS = "Returns"


class LocationStatus(Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    MAINTENANCE = "Maintenance"


_SECURITY_RANK = {"Standard": 0, "High": 1}


@warehouse.aggregate
class Location:
    id = Identifier(identifier=True)  # location code, e.g. "A-01-02"
    name = String(max_length=100)
    zone = String(required=True, max_length=50)
    aisle = String(max_length=20)
    location_type = String(choices=LocationType, default=LocationType.BULK.value)
    capacity = Integer(min_value=0)  # units; empty means unbounded
    temperature_controlled = Boolean(default=False)
    security_level = String(max_length=20, default="Standard")
    status = String(choices=LocationStatus, default=LocationStatus.ACTIVE.value)
    created_at = DateTime()
    updated_at = DateTime()

    @property
    def code(self) -> str:
        return str(self.id)

    @property
    def is_active(self) -> bool:
        return self.status == LocationStatus.ACTIVE.value

    @classmethod
    def create(
        cls,
        code: str,
        zone: str,
        now,
        location_type: str = LocationType.BULK.value,
        capacity: int | None = None,
        name: str | None = None,
        aisle: str | None = None,
        temperature_controlled: bool = False,
        security_level: str = "Standard",
    ):
        if security_level not in _SECURITY_RANK:
            raise ValidationError({"security_level": [f"Unknown security level: {security_level}"]})

        location = cls(
            id=code,
            name=name or code,
            zone=zone,
            aisle=aisle,
            location_type=location_type,
            capacity=capacity,
            temperature_controlled=temperature_controlled,
            security_level=security_level,
            created_at=now,
            updated_at=now,
        )
        location.raise_(
            LocationCreated(
                code=code,
                zone=zone,
                location_type=location_type,
                capacity=capacity,
                created_at=now,
            )
        )
        return location

    def can_store(self, product) -> bool:
        """Whether the product's storage requirements are met here."""
        storage = product.storage
        if storage is None:
            return True
        if storage.temperature_controlled and not self.temperature_controlled:
            return False
        required = _SECURITY_RANK.get(storage.security_level or "Standard", 0)
        return _SECURITY_RANK.get(self.security_level, 0) >= required

    def change_status(self, status: str, now) -> None:
        if status not in {s.value for s in LocationStatus}:
            raise ValidationError({"status": [f"Unknown location status: {status}"]})
        new_status = LocationStatus(status)
        previous = self.status
        if previous == new_status.value:
            return
        self.status = new_status.value
        self.updated_at = now
        self.raise_(
            LocationStatusChanged(
                code=self.code,
                previous_status=previous,
                new_status=new_status.value,
                changed_at=now,
            )
        )
