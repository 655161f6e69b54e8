"""Fake carrier adapter — deterministic carrier for testing and development.

Generates mock tracking numbers and labels, and reports a scripted tracking
status. Configurable success/failure behavior for integration testing.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

from warehouse.carrier.port import CarrierPort


class FakeCarrier(CarrierPort):
    """Fake carrier that always succeeds by default."""

    def __init__(self):
        self.should_succeed = True
        self.failure_reason = "Carrier unavailable"
        self.fail_after = None
        self.tracking_status = "in_transit"
        self.labels_created = []
        self.labels_voided = []

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Carrier unavailable",
        fail_after: int | None = None,
        tracking_status: str = "in_transit",
    ):
        """Configure the fake carrier behavior for testing.

        ``fail_after`` lets that many labels succeed before refusing the rest.
        """
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.fail_after = fail_after
        self.tracking_status = tracking_status

    def create_label(
        self,
        shipment_number: str,
        _carrier_code: str,
        service_level: str,
        _weight: float | None = None,
        _dimensions: dict | None = None,
    ) -> dict:
        refused = not self.should_succeed or (
            self.fail_after is not None and len(self.labels_created) >= self.fail_after
        )
        if refused:
            return {
                "tracking_number": None,
                "label_url": None,
                "estimated_delivery": None,
                "error": self.failure_reason,
            }

        tracking_number = f"FAKE-{uuid4().hex[:12].upper()}"
        self.labels_created.append(tracking_number)

        days = {"Standard": 5, "Express": 2, "Overnight": 1}.get(service_level, 5)
        estimated_delivery = datetime.now(UTC) + timedelta(days=days)

        return {
            "tracking_number": tracking_number,
            "label_url": f"https://fake-carrier.example.com/labels/{shipment_number}/{tracking_number}.pdf",
            "estimated_delivery": estimated_delivery.isoformat(),
        }

    def get_tracking(self, _tracking_number: str) -> dict:
        if not self.should_succeed:
            return {
                "status": "unknown",
                "location": None,
                "events": [],
                "error": self.failure_reason,
            }

        return {
            "status": self.tracking_status,
            "location": "Distribution Center, NY",
            "events": [
                {
                    "status": self.tracking_status,
                    "location": "Distribution Center, NY",
                    "description": "Scanned at carrier facility",
                    "occurred_at": datetime.now(UTC).isoformat(),
                },
            ],
        }

    def void_label(self, tracking_number: str) -> dict:
        if not self.should_succeed:
            return {"voided": False, "reason": self.failure_reason}
        self.labels_voided.append(tracking_number)
        return {"voided": True, "reason": "Label voided"}
