"""Location directory — layout master data and capacity queries.

Spare capacity of a location is its capacity minus the units on hand there
minus the units already routed to it by pending put-away tasks.
"""

from collections import defaultdict

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError

from warehouse.layout.location import Location, LocationType
from warehouse.store import INVENTORY_RECORDS, LOCATIONS, PUTAWAY_TASKS

logger = structlog.get_logger(__name__)


class LocationDirectory:
    def __init__(self, store, clock, catalogue):
        self.store = store
        self.clock = clock
        self.catalogue = catalogue

    # -------------------------------------------------------------------
    # Master data
    # -------------------------------------------------------------------
    def create_location(self, code: str, zone: str, **attrs) -> Location:
        if not code or not str(code).strip():
            raise ValidationError({"code": ["Location code is required"]})
        if self.find(code) is not None:
            raise ValidationError({"code": [f"Location {code} already exists"]})

        location = Location.create(code=str(code).strip(), zone=zone, now=self.clock.now(), **attrs)
        self.store.add(LOCATIONS, location)
        logger.info("Location created", code=location.code, location_type=location.location_type)
        return location

    def set_location_status(self, code: str, status: str) -> Location:
        location = self.require(code)
        location.change_status(status, self.clock.now())
        self.store.add(LOCATIONS, location)
        return location

    def find(self, code: str) -> Location | None:
        try:
            return self.store.get(LOCATIONS, code)
        except ObjectNotFoundError:
            return None

    def require(self, code: str) -> Location:
        location = self.find(code)
        if location is None:
            raise ValidationError({"location": [f"Unknown location: {code}"]})
        return location

    # -------------------------------------------------------------------
    # Capacity
    # -------------------------------------------------------------------
    def _occupancy(self) -> dict[str, int]:
        occupied = defaultdict(int)
        for record in self.store.list(INVENTORY_RECORDS):
            occupied[record.location_code] += record.on_hand
        return occupied

    def _inbound(self) -> dict[str, int]:
        routed = defaultdict(int)
        for task in self.store.list(PUTAWAY_TASKS, status="Pending"):
            routed[task.destination_code] += task.quantity
        return routed

    def spare_capacity(self, code: str) -> int | None:
        """Units that can still be routed to the location (None when unbounded)."""
        location = self.require(code)
        if location.capacity is None:
            return None
        return location.capacity - self._occupancy()[code] - self._inbound()[code]

    def get_available_locations(
        self,
        sku: str | None = None,
        location_type: str | None = None,
        min_capacity: int = 0,
    ) -> list[Location]:
        """Active locations, ordered by code, that can take ``min_capacity`` more units.

        With a SKU, only locations meeting the product's storage requirements
        are returned.
        """
        product = self.catalogue.require(sku) if sku else None
        occupied = self._occupancy()
        routed = self._inbound()

        available = []
        for location in sorted(self.store.list(LOCATIONS), key=lambda loc: loc.code):
            if not location.is_active:
                continue
            if location_type and location.location_type != location_type:
                continue
            if product is not None and not location.can_store(product):
                continue
            if location.capacity is not None:
                spare = location.capacity - occupied[location.code] - routed[location.code]
                if spare < max(min_capacity, 1):
                    continue
            available.append(location)
        return available

    def put_away_candidates(self, product, quantity: int) -> list[str]:
        """Location codes able to take ``quantity`` units of the product, best first.

        Pick faces already holding the SKU come first, then bulk locations;
        each group is ordered by location code. Locations without a capacity
        limit are not put-away targets.
        """
        occupied = self._occupancy()
        routed = self._inbound()
        holding = {
            record.location_code
            for record in self.store.list(INVENTORY_RECORDS, sku=product.sku)
            if record.on_hand > 0
        }

        pick_faces, bulk = [], []
        for location in sorted(self.store.list(LOCATIONS), key=lambda loc: loc.code):
            if not location.is_active or location.capacity is None or not location.can_store(product):
                continue
            spare = location.capacity - occupied[location.code] - routed[location.code]
            if spare < quantity:
                continue
            if location.location_type == LocationType.PICK_FACE.value and location.code in holding:
                pick_faces.append(location.code)
            elif location.location_type == LocationType.BULK.value:
                bulk.append(location.code)
        return pick_faces + bulk
