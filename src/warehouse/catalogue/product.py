"""Product aggregate — warehouse master data for one SKU.

The SKU is the identity and never changes. Dimensions feed carrier
eligibility checks; storage requirements restrict which locations may hold
the product.
"""

import json
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, String, Text, ValueObject

from warehouse.catalogue.events import ProductDetailsUpdated, ProductRegistered
from warehouse.domain import warehouse


class ProductStatus(Enum):
    ACTIVE = "Active"
    DISCONTINUED = "Discontinued"


class SecurityLevel(Enum):
    STANDARD = "Standard"
    HIGH = "High"


@warehouse.value_object(part_of="Product")
class Dimensions:
    """Unit dimensions in centimetres and weight in kilograms."""

    length = Float(min_value=0)
    width = Float(min_value=0)
    height = Float(min_value=0)
    weight = Float(min_value=0)


@warehouse.value_object(part_of="Product")
class StorageRequirements:
    temperature_controlled = Boolean(default=False)
    hazardous = Boolean(default=False)
    fragile = Boolean(default=False)
    security_level = String(max_length=20, choices=SecurityLevel, default=SecurityLevel.STANDARD.value)


_UPDATABLE = ("name", "description", "category", "unit_of_measure", "lot_tracked", "expiry_tracked", "status")


@warehouse.aggregate
class Product:
    id = Identifier(identifier=True)  # SKU
    name = String(required=True, max_length=255)
    description = Text()
    category = String(max_length=100)
    unit_of_measure = String(max_length=10, default="EA")
    dimensions = ValueObject(Dimensions)
    storage = ValueObject(StorageRequirements)
    lot_tracked = Boolean(default=False)
    expiry_tracked = Boolean(default=False)
    status = String(choices=ProductStatus, default=ProductStatus.ACTIVE.value)
    created_at = DateTime()
    updated_at = DateTime()

    @property
    def sku(self) -> str:
        return str(self.id)

    @property
    def weight(self) -> float:
        return (self.dimensions.weight or 0.0) if self.dimensions else 0.0

    @property
    def needs_temperature_control(self) -> bool:
        return bool(self.storage and self.storage.temperature_controlled)

    @classmethod
    def register(
        cls,
        sku: str,
        name: str,
        now,
        description: str | None = None,
        category: str | None = None,
        unit_of_measure: str = "EA",
        dimensions: dict | None = None,
        storage: dict | None = None,
        lot_tracked: bool = False,
        expiry_tracked: bool = False,
    ):
        if not sku or not str(sku).strip():
            raise ValidationError({"sku": ["SKU is required"]})

        product = cls(
            id=str(sku).strip(),
            name=name,
            description=description,
            category=category,
            unit_of_measure=unit_of_measure,
            dimensions=Dimensions(**dimensions) if dimensions else None,
            storage=StorageRequirements(**(storage or {})),
            lot_tracked=lot_tracked,
            expiry_tracked=expiry_tracked,
            created_at=now,
            updated_at=now,
        )
        product.raise_(
            ProductRegistered(
                sku=product.sku,
                name=name,
                unit_of_measure=unit_of_measure,
                registered_at=now,
            )
        )
        return product

    def update_details(self, now, dimensions: dict | None = None, storage: dict | None = None, **attrs) -> None:
        unknown = set(attrs) - set(_UPDATABLE)
        if unknown:
            raise ValidationError({"product": [f"Cannot update: {', '.join(sorted(unknown))}"]})

        changed = []
        for attr, value in attrs.items():
            setattr(self, attr, value)
            changed.append(attr)
        if dimensions is not None:
            self.dimensions = Dimensions(**dimensions)
            changed.append("dimensions")
        if storage is not None:
            self.storage = StorageRequirements(**storage)
            changed.append("storage")
        if not changed:
            return

        self.updated_at = now
        self.raise_(
            ProductDetailsUpdated(
                sku=self.sku,
                changed_fields=json.dumps(sorted(changed)),
                updated_at=now,
            )
        )
