"""Catalogue service — register, update and look up products."""

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError

from warehouse.catalogue.product import Product
from warehouse.store import PRODUCTS

logger = structlog.get_logger(__name__)


class Catalogue:
    def __init__(self, store, clock):
        self.store = store
        self.clock = clock

    def create_product(self, sku: str, name: str, **attrs) -> Product:
        if self.find(sku) is not None:
            raise ValidationError({"sku": [f"Product {sku} already exists"]})

        product = Product.register(sku=sku, name=name, now=self.clock.now(), **attrs)
        self.store.add(PRODUCTS, product)
        logger.info("Product registered", sku=product.sku)
        return product

    def update_product(self, sku: str, expected_revision: int | None = None, **attrs) -> Product:
        """Change descriptive attributes of a product.

        With ``expected_revision`` (read through ``product_revision``) the edit
        is rejected with ``ConcurrencyConflictError`` if the product was written
        since.
        """
        product = self.require(sku)
        product.update_details(now=self.clock.now(), **attrs)
        self.store.add(PRODUCTS, product, expected_revision=expected_revision)
        return product

    def product_revision(self, sku: str) -> int:
        self.require(sku)
        return self.store.revision(PRODUCTS, sku)

    def find(self, sku: str) -> Product | None:
        try:
            return self.store.get(PRODUCTS, sku)
        except ObjectNotFoundError:
            return None

    def require(self, sku: str) -> Product:
        """Return the product or raise ``ValidationError`` for an unknown SKU."""
        product = self.find(sku)
        if product is None:
            raise ValidationError({"sku": [f"Unknown SKU: {sku}"]})
        return product
