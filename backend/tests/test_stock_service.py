"""
Product and stock store tests.

Verifies:
- Product creation seeds a zero stock record at every location
- adjust_stock sets quantities outright and bypasses the transaction log
- Quantity validation (negatives, precision)
- Low-stock listing and categories
"""

from decimal import Decimal

import pytest

from aquastock.errors import NotFound, ValidationError
from aquastock.models import InventoryTransaction, StockRecord
from aquastock.services import stock_service


class TestCreateProduct:

    def test_seeds_zero_stock_at_both_locations(self, db_session):
        product = stock_service.create_product("5L Jerrican", description="Refill", min_stock_level=2)

        records = db_session.query(StockRecord).filter_by(product_id=product.id).all()
        assert sorted(r.location for r in records) == ["kamulu", "utawala"]
        assert all(r.quantity == 0 for r in records)
        assert stock_service.get_stock(product.id, "kamulu") == Decimal("0")
        assert stock_service.get_stock(product.id, "utawala") == Decimal("0")

    def test_requires_name(self, db_session):
        with pytest.raises(ValidationError):
            stock_service.create_product("   ")

    def test_rejects_negative_min_stock_level(self, db_session):
        with pytest.raises(ValidationError):
            stock_service.create_product("Bottle", min_stock_level=-1)

    def test_unknown_category(self, db_session):
        with pytest.raises(NotFound):
            stock_service.create_product("Bottle", category_id=999)
        assert stock_service.list_products() == []

    def test_with_category(self, db_session):
        category = stock_service.create_category("Bottles")
        product = stock_service.create_product("1L Bottle", category_id=category.id)

        assert stock_service.list_products(category_id=category.id)[0].id == product.id
        assert product.category.name == "Bottles"


class TestGetStock:

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFound):
            stock_service.get_stock(12345, "utawala")

    def test_unknown_location(self, db_session, product):
        with pytest.raises(ValidationError):
            stock_service.get_stock(product.id, "nairobi")


class TestAdjustStock:

    def test_sets_quantity_outright(self, db_session, product):
        record = stock_service.adjust_stock(product.id, "utawala", "7.5")

        assert record.quantity == Decimal("7.50")
        assert stock_service.get_stock(product.id, "utawala") == Decimal("7.5")
        assert stock_service.get_stock(product.id, "kamulu") == Decimal("20")

    def test_zero_is_allowed(self, db_session, product):
        stock_service.adjust_stock(product.id, "kamulu", 0)
        assert stock_service.get_stock(product.id, "kamulu") == Decimal("0")

    def test_not_logged(self, db_session, product):
        stock_service.adjust_stock(product.id, "utawala", 42)
        assert db_session.query(InventoryTransaction).count() == 0

    @pytest.mark.parametrize("bad", [-1, "abc", None, True, "1.234", float("nan")])
    def test_rejects_bad_quantities(self, db_session, product, bad):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(product.id, "utawala", bad)
        assert stock_service.get_stock(product.id, "utawala") == Decimal("10")

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFound):
            stock_service.adjust_stock(999, "utawala", 5)


class TestLowStock:

    def test_lists_records_below_threshold(self, db_session, product, second_product):
        # product: min 5, utawala 10, kamulu 20; second_product: min 1, utawala 3, kamulu 0
        low = stock_service.list_low_stock()
        assert [(r.product_id, r.location) for r in low] == [(second_product.id, "kamulu")]

        stock_service.adjust_stock(product.id, "utawala", 4)
        low_utawala = stock_service.list_low_stock("utawala")
        assert [r.product_id for r in low_utawala] == [product.id]


class TestCategories:

    def test_duplicate_name(self, db_session):
        stock_service.create_category("Dispensers")
        with pytest.raises(ValidationError):
            stock_service.create_category("Dispensers")
        assert [c.name for c in stock_service.list_categories()] == ["Dispensers"]
