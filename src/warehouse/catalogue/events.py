"""Catalogue domain events."""

from protean.fields import DateTime, Identifier, String, Text

from warehouse.domain import warehouse


@warehouse.event(part_of="Product")
class ProductRegistered:
    """A product (SKU) was registered for warehousing."""

    __version__ = 1

    sku = Identifier(required=True)
    name = String(required=True)
    unit_of_measure = String()
    registered_at = DateTime(required=True)


@warehouse.event(part_of="Product")
class ProductDetailsUpdated:
    """Descriptive attributes or storage requirements of a product changed."""

    __version__ = 1

    sku = Identifier(required=True)
    changed_fields = Text(required=True)  # JSON list of attribute names
    updated_at = DateTime(required=True)
