"""
LPO tests.

Verifies:
- Approval receives every line into the target location
- Rejection leaves stock unchanged
- Only admin may approve or reject
"""

from decimal import Decimal

import pytest

from aquastock.errors import Forbidden, InvalidTransition, NotFound, ValidationError
from aquastock.models import InventoryTransaction
from aquastock.services import purchase_service, stock_service


def _items(product, second_product):
    return [
        {"product_id": product.id, "quantity": 50, "unit_price_cents": 120},
        {"product_id": second_product.id, "quantity": "2.5", "unit_price_cents": 3333},
    ]


class TestCreatePurchaseOrder:

    def test_pending_with_frozen_total(self, db_session, clerk, product, second_product):
        order = purchase_service.create_purchase_order(
            "Aqua Supplies Ltd",
            "kamulu",
            _items(product, second_product),
            clerk,
            supplier_contact="0700111222",
        )

        assert order.status == "pending"
        # 50 * 120 + round_half_up(2.5 * 3333 = 8332.5)
        assert order.total_amount_cents == 6000 + 8333
        assert len(order.items) == 2

    def test_unknown_product(self, db_session, clerk):
        with pytest.raises(NotFound):
            purchase_service.create_purchase_order(
                "Supplier", "kamulu",
                [{"product_id": 777, "quantity": 1, "unit_price_cents": 1}],
                clerk,
            )

    def test_requires_supplier_and_location(self, db_session, clerk, product, second_product):
        with pytest.raises(ValidationError):
            purchase_service.create_purchase_order("", "kamulu", _items(product, second_product), clerk)
        with pytest.raises(ValidationError):
            purchase_service.create_purchase_order("Supplier", "eldoret", _items(product, second_product), clerk)


class TestApprovePurchaseOrder:

    def test_receives_into_target_location(self, db_session, admin, clerk, product, second_product):
        order = purchase_service.create_purchase_order("Supplier", "kamulu", _items(product, second_product), clerk)

        approved = purchase_service.transition_purchase_order(order.id, "approve", admin)

        assert approved.status == "approved"
        assert stock_service.get_stock(product.id, "kamulu") == Decimal("70")
        assert stock_service.get_stock(second_product.id, "kamulu") == Decimal("2.5")
        # Other location untouched
        assert stock_service.get_stock(product.id, "utawala") == Decimal("10")

        entries = db_session.query(InventoryTransaction).filter_by(reference_type="purchase_order").all()
        assert sorted(e.quantity_delta for e in entries) == [Decimal("2.5"), Decimal("50")]
        assert {e.type for e in entries} == {"purchase"}

    def test_status_vocabulary_also_accepted(self, db_session, admin, clerk, product, second_product):
        order = purchase_service.create_purchase_order("Supplier", "utawala", _items(product, second_product), clerk)
        approved = purchase_service.transition_purchase_order(order.id, "approved", admin)
        assert approved.status == "approved"

    def test_double_approve(self, db_session, admin, clerk, product, second_product):
        order = purchase_service.create_purchase_order("Supplier", "kamulu", _items(product, second_product), clerk)
        purchase_service.transition_purchase_order(order.id, "approve", admin)

        with pytest.raises(InvalidTransition):
            purchase_service.transition_purchase_order(order.id, "approve", admin)
        assert stock_service.get_stock(product.id, "kamulu") == Decimal("70")


class TestRejectPurchaseOrder:

    def test_stock_unchanged(self, db_session, admin, clerk, product, second_product):
        order = purchase_service.create_purchase_order("Supplier", "kamulu", _items(product, second_product), clerk)

        rejected = purchase_service.transition_purchase_order(order.id, "reject", admin)

        assert rejected.status == "rejected"
        assert stock_service.get_stock(product.id, "kamulu") == Decimal("20")
        assert stock_service.get_stock(second_product.id, "kamulu") == Decimal("0")
        assert db_session.query(InventoryTransaction).count() == 0


class TestPurchaseOrderAuthority:

    @pytest.mark.parametrize("role_fixture", ["accountant", "clerk", "basic_user"])
    def test_only_admin(self, request, db_session, clerk, product, second_product, role_fixture):
        actor = request.getfixturevalue(role_fixture)
        order = purchase_service.create_purchase_order("Supplier", "kamulu", _items(product, second_product), clerk)

        with pytest.raises(Forbidden):
            purchase_service.transition_purchase_order(order.id, "approve", actor)
        assert purchase_service.get_purchase_order(order.id).status == "pending"

    @pytest.mark.parametrize("action", ["ship", None, "completed"])
    def test_unknown_action(self, db_session, admin, clerk, product, second_product, action):
        order = purchase_service.create_purchase_order("Supplier", "kamulu", _items(product, second_product), clerk)
        with pytest.raises(ValidationError):
            purchase_service.transition_purchase_order(order.id, action, admin)
