"""Carrier port — abstract interface for carrier label and tracking integrations.

All carrier adapters must implement this interface. The shipping service
programs against the port; adapters are swapped via configuration.
"""

from abc import ABC, abstractmethod


class CarrierPort(ABC):
    """Abstract interface for carrier adapters."""

    @abstractmethod
    def create_label(
        self,
        shipment_number: str,
        carrier_code: str,
        service_level: str,
        weight: float | None = None,
        dimensions: dict | None = None,
    ) -> dict:
        """Purchase a shipping label for one package.

        Returns:
            dict with keys: tracking_number, label_url, estimated_delivery
            (plus ``error`` when the carrier refused the request)
        """
        ...

    @abstractmethod
    def get_tracking(self, tracking_number: str) -> dict:
        """Get current tracking status for a package.

        Returns:
            dict with keys: status, location, events (list of tracking events)
        """
        ...

    @abstractmethod
    def void_label(self, tracking_number: str) -> dict:
        """Void a label that will not be used.

        Returns:
            dict with keys: voided (bool), reason (str)
        """
        ...
