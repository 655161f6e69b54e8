"""Application tests for products, locations and lots."""

from datetime import date, timedelta

import pytest
from protean.exceptions import ValidationError

from warehouse.errors import ConcurrencyConflictError

TODAY = date(2024, 1, 15)


class TestProducts:
    def test_create_and_fetch(self, engine):
        engine.create_product(
            "SKU-1",
            "Widget",
            category="Tools",
            dimensions={"length": 10.0, "width": 5.0, "height": 2.0, "weight": 0.4},
            storage={"fragile": True},
        )
        product = engine.get_product("SKU-1")
        assert product.name == "Widget"
        assert product.weight == 0.4
        assert product.storage.fragile is True

    def test_sku_is_unique(self, engine):
        engine.create_product("SKU-1", "Widget")
        with pytest.raises(ValidationError):
            engine.create_product("SKU-1", "Other widget")

    def test_update_descriptive_attributes(self, engine):
        engine.create_product("SKU-1", "Widget")
        engine.update_product("SKU-1", name="Widget Pro", lot_tracked=True)
        product = engine.get_product("SKU-1")
        assert (product.name, product.lot_tracked) == ("Widget Pro", True)

    def test_sku_cannot_be_updated(self, engine):
        engine.create_product("SKU-1", "Widget")
        with pytest.raises(ValidationError):
            engine.update_product("SKU-1", id="SKU-2")

    def test_edit_with_current_revision(self, engine):
        engine.create_product("SKU-1", "Widget")
        seen = engine.get_product_revision("SKU-1")

        engine.update_product("SKU-1", expected_revision=seen, name="Widget Pro")

        assert engine.get_product("SKU-1").name == "Widget Pro"
        assert engine.get_product_revision("SKU-1") == seen + 1

    def test_edit_from_a_stale_read_is_rejected(self, engine):
        engine.create_product("SKU-1", "Widget")
        seen = engine.get_product_revision("SKU-1")
        engine.update_product("SKU-1", name="Widget Pro")

        with pytest.raises(ConcurrencyConflictError):
            engine.update_product("SKU-1", expected_revision=seen, name="Widget Max")

        assert engine.get_product("SKU-1").name == "Widget Pro"

    def test_unknown_product(self, engine):
        with pytest.raises(ValidationError):
            engine.get_product("SKU-404")


class TestLocations:
    def test_location_code_is_unique(self, floor):
        with pytest.raises(ValidationError):
            floor.create_location("A-01", "A")

    def test_available_locations_respect_capacity(self, floor, stock):
        stock("SKU-1", "A-01", 95)

        codes = [loc.code for loc in floor.get_available_locations("SKU-1", min_capacity=10)]

        assert "A-01" not in codes
        assert codes == ["A-02", "B-01", "RECEIVING", "RETURNS"]

    def test_available_locations_by_type(self, floor):
        codes = [loc.code for loc in floor.get_available_locations("SKU-1", location_type="Pick_Face")]
        assert codes == ["A-01", "A-02"]

    def test_inactive_locations_are_not_available(self, floor):
        floor.set_location_status("A-02", "Inactive")
        codes = [loc.code for loc in floor.get_available_locations("SKU-1", location_type="Pick_Face")]
        assert codes == ["A-01"]

    def test_temperature_controlled_products_need_controlled_locations(self, floor):
        floor.create_product("COLD-1", "Vaccine", storage={"temperature_controlled": True})
        floor.create_location("C-01", "COLD", location_type="Bulk", capacity=50, temperature_controlled=True)

        codes = [loc.code for loc in floor.get_available_locations("COLD-1")]

        assert codes == ["C-01"]

    def test_unknown_status_is_rejected(self, floor):
        with pytest.raises(ValidationError):
            floor.set_location_status("A-01", "Flooded")


class TestLots:
    def test_lot_number_is_unique_per_product(self, floor):
        floor.create_lot("SKU-1", "L1")
        floor.create_lot("SKU-2", "L1")
        with pytest.raises(ValidationError):
            floor.create_lot("SKU-1", "L1")

    def test_expiry_must_follow_manufacture(self, floor):
        with pytest.raises(ValidationError):
            floor.create_lot("SKU-1", "L1", manufacturing_date=TODAY, expiry_date=TODAY - timedelta(days=1))

    def test_lots_by_product_in_expiry_order(self, floor):
        floor.create_lot("SKU-1", "L-LATE", expiry_date=TODAY + timedelta(days=90))
        floor.create_lot("SKU-1", "L-NONE")
        floor.create_lot("SKU-1", "L-SOON", expiry_date=TODAY + timedelta(days=10), quality_status="Approved")

        assert [lot.lot_number for lot in floor.get_lots_by_product("SKU-1")] == ["L-SOON", "L-LATE", "L-NONE"]
        assert [lot.lot_number for lot in floor.get_lots_by_product("SKU-1", status="Approved")] == ["L-SOON"]

    def test_expiring_lots_are_approved_and_within_window(self, floor):
        floor.create_lot("SKU-1", "L1", expiry_date=TODAY + timedelta(days=5), quality_status="Approved")
        floor.create_lot("SKU-2", "L2", expiry_date=TODAY + timedelta(days=20), quality_status="Approved")
        floor.create_lot("SKU-1", "L3", expiry_date=TODAY + timedelta(days=60), quality_status="Approved")
        floor.create_lot("SKU-1", "L4", expiry_date=TODAY + timedelta(days=3), quality_status="Rejected")
        floor.create_lot("SKU-1", "L5", expiry_date=TODAY - timedelta(days=1), quality_status="Approved")

        expiring = floor.get_expiring_lots(days=30)

        assert [(lot.sku, lot.lot_number) for lot in expiring] == [("SKU-1", "L1"), ("SKU-2", "L2")]
