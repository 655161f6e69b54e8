"""Application tests for the repository-backed document store."""

import pytest
from protean.exceptions import ObjectNotFoundError

from warehouse.errors import ConcurrencyConflictError
from warehouse.store import LOCATIONS, PRODUCTS


@pytest.fixture()
def product(engine):
    return engine.create_product("SKU-9", "Sprocket")


class TestDocumentStore:
    def test_every_write_bumps_the_revision(self, engine, product):
        store = engine.store
        before = store.revision(PRODUCTS, str(product.id))

        store.update(PRODUCTS, str(product.id), {"name": "Large Sprocket"})

        assert store.revision(PRODUCTS, str(product.id)) == before + 1
        assert store.get(PRODUCTS, str(product.id)).name == "Large Sprocket"

    def test_stale_revision_is_rejected(self, engine, product):
        store = engine.store
        seen = store.revision(PRODUCTS, str(product.id))
        store.update(PRODUCTS, str(product.id), {"name": "Blue Sprocket"}, expected_revision=seen)

        with pytest.raises(ConcurrencyConflictError):
            store.update(PRODUCTS, str(product.id), {"name": "Red Sprocket"}, expected_revision=seen)

        assert store.get(PRODUCTS, str(product.id)).name == "Blue Sprocket"

    def test_list_filters_on_exact_values(self, engine):
        engine.create_location("A-01", "A", location_type="Pick_Face", capacity=10)
        engine.create_location("B-01", "B", location_type="Bulk", capacity=10)

        bulk = engine.store.list(LOCATIONS, location_type="Bulk")

        assert [location.code for location in bulk] == ["B-01"]

    def test_removed_documents_are_gone(self, engine, product):
        engine.store.remove(PRODUCTS, str(product.id))

        assert engine.store.revision(PRODUCTS, str(product.id)) == 0
        with pytest.raises(ObjectNotFoundError):
            engine.store.get(PRODUCTS, str(product.id))

    def test_unknown_container(self, engine):
        with pytest.raises(KeyError):
            engine.store.list("pallets")
