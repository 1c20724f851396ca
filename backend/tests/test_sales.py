"""
Sale approval tests.

Verifies:
- Approval deducts every item from utawala, all-or-nothing
- InsufficientStock leaves stock and status untouched
- A second transition of the same sale is InvalidTransition with no
  further stock change
- Only admin/accountant may approve or reject
- One transaction log entry per item on approval, none on rejection
"""

from decimal import Decimal

import pytest

from aquastock.errors import Forbidden, InsufficientStock, InvalidTransition, NotFound, ValidationError
from aquastock.extensions import db
from aquastock.models import InventoryTransaction, Sale
from aquastock.services import customer_service, sales_service, stock_service, workflow


def _line(product, quantity, price=1500):
    return {"product_id": product.id, "quantity": quantity, "unit_price_cents": price}


class TestCreateSale:

    def test_pending_with_frozen_total(self, db_session, clerk, product, second_product):
        sale = sales_service.create_sale(
            [_line(product, "2.5", 199), _line(second_product, 1, 1000)],
            clerk,
            customer_name="Wanjiku",
            payment_method="mpesa",
        )

        assert sale.status == "pending"
        assert sale.created_by_user_id == clerk.id
        # 2.5 * 199 = 497.5, rounded half-up
        assert [item.total_price_cents for item in sale.items] == [498, 1000]
        assert sale.total_amount_cents == 1498
        # Creation never touches stock
        assert stock_service.get_stock(product.id, "utawala") == Decimal("10")

    def test_requires_items(self, db_session, clerk):
        with pytest.raises(ValidationError):
            sales_service.create_sale([], clerk)

    def test_unknown_product(self, db_session, clerk):
        with pytest.raises(NotFound):
            sales_service.create_sale([{"product_id": 404, "quantity": 1, "unit_price_cents": 1}], clerk)

    def test_unknown_payment_method(self, db_session, clerk, product):
        with pytest.raises(ValidationError):
            sales_service.create_sale([_line(product, 1)], clerk, payment_method="barter")

    @pytest.mark.parametrize("customer_id", ["abc", 2.5, False, [1]])
    def test_customer_id_must_be_an_id(self, db_session, clerk, product, customer_id):
        with pytest.raises(ValidationError):
            sales_service.create_sale([_line(product, 1)], clerk, customer_id=customer_id)
        assert db_session.query(Sale).count() == 0

    def test_customer_id_as_digit_string(self, db_session, clerk, product):
        customer = customer_service.create_customer("Kamau", phone="0722000111")
        sale = sales_service.create_sale([_line(product, 1)], clerk, customer_id=str(customer.id))
        assert sale.customer_id == customer.id

    def test_save_customer_links_resolved_customer(self, db_session, clerk, product):
        first = sales_service.create_sale(
            [_line(product, 1)], clerk,
            customer_name="Otieno", customer_phone="0712000111", save_customer=True,
        )
        second = sales_service.create_sale(
            [_line(product, 1)], clerk,
            customer_name="Otieno O.", customer_phone="0712000111", save_customer=True,
        )

        assert first.customer_id is not None
        assert first.customer_id == second.customer_id


class TestApproveSale:

    def test_insufficient_then_corrected(self, db_session, admin, clerk, product):
        sale = sales_service.create_sale([_line(product, 12)], clerk)

        with pytest.raises(InsufficientStock) as exc_info:
            sales_service.transition_sale(sale.id, "approved", admin)

        shortfall = exc_info.value.details["items"][0]
        assert shortfall["product_id"] == product.id
        assert shortfall["location"] == "utawala"
        assert shortfall["requested"] == 12
        assert shortfall["available"] == 10
        assert shortfall["shortfall"] == 2
        assert stock_service.get_stock(product.id, "utawala") == Decimal("10")
        assert sales_service.get_sale(sale.id).status == "pending"

        sales_service.update_sale_items(sale.id, [_line(product, 4)], clerk)
        approved = sales_service.transition_sale(sale.id, "approved", admin)

        assert approved.status == "approved"
        assert approved.approved_by_user_id == admin.id
        assert approved.approved_at is not None
        assert stock_service.get_stock(product.id, "utawala") == Decimal("6")
        # Sales never touch kamulu
        assert stock_service.get_stock(product.id, "kamulu") == Decimal("20")

    def test_all_or_nothing_across_items(self, db_session, accountant, clerk, product, second_product):
        sale = sales_service.create_sale([_line(product, 5), _line(second_product, 4)], clerk)

        with pytest.raises(InsufficientStock) as exc_info:
            sales_service.transition_sale(sale.id, "approved", accountant)

        assert [i["product_id"] for i in exc_info.value.details["items"]] == [second_product.id]
        assert stock_service.get_stock(product.id, "utawala") == Decimal("10")
        assert stock_service.get_stock(second_product.id, "utawala") == Decimal("3")
        assert db_session.query(InventoryTransaction).count() == 0

    def test_repeated_product_lines_are_checked_together(self, db_session, admin, clerk, product):
        sale = sales_service.create_sale([_line(product, 6), _line(product, 6)], clerk)

        with pytest.raises(InsufficientStock):
            sales_service.transition_sale(sale.id, "approved", admin)
        assert stock_service.get_stock(product.id, "utawala") == Decimal("10")

    def test_exact_stock_reaches_zero(self, db_session, admin, clerk, product):
        sale = sales_service.create_sale([_line(product, "10.00")], clerk)
        sales_service.transition_sale(sale.id, "approved", admin)
        assert stock_service.get_stock(product.id, "utawala") == Decimal("0")

    def test_logs_one_entry_per_item(self, db_session, admin, clerk, product, second_product):
        sale = sales_service.create_sale([_line(product, 2), _line(second_product, 1)], clerk)
        sales_service.transition_sale(sale.id, "approved", admin)

        entries = (
            db_session.query(InventoryTransaction)
            .order_by(InventoryTransaction.id)
            .all()
        )
        assert [(e.product_id, e.location, e.type, e.quantity_delta) for e in entries] == [
            (product.id, "utawala", "sale", Decimal("-2")),
            (second_product.id, "utawala", "sale", Decimal("-1")),
        ]
        assert all(e.reference_type == "sale" and e.reference_id == sale.id for e in entries)
        assert all(e.created_by_user_id == admin.id for e in entries)


class TestDoubleSubmit:

    def test_second_approval_is_invalid_and_deducts_once(self, db_session, admin, accountant, clerk, product):
        sale = sales_service.create_sale([_line(product, 3)], clerk)

        sales_service.transition_sale(sale.id, "approved", admin)
        with pytest.raises(InvalidTransition) as exc_info:
            sales_service.transition_sale(sale.id, "approved", accountant)

        assert exc_info.value.details["status"] == "approved"
        assert stock_service.get_stock(product.id, "utawala") == Decimal("7")
        assert db_session.query(InventoryTransaction).count() == 1

    def test_reject_after_approve(self, db_session, admin, clerk, product):
        sale = sales_service.create_sale([_line(product, 3)], clerk)
        sales_service.transition_sale(sale.id, "approved", admin)

        with pytest.raises(InvalidTransition):
            sales_service.transition_sale(sale.id, "rejected", admin)
        assert sales_service.get_sale(sale.id).status == "approved"

    def test_conditional_claim_admits_one_winner(self, db_session, admin, clerk, product):
        """Two claims racing inside one storage transaction: the second sees a non-pending row."""
        sale = sales_service.create_sale([_line(product, 3)], clerk)

        workflow.claim(workflow.SALE, sale.id, "approved", admin.id)
        with pytest.raises(InvalidTransition):
            workflow.claim(workflow.SALE, sale.id, "approved", admin.id)
        db.session.rollback()

        assert sales_service.get_sale(sale.id).status == "pending"

    def test_corrections_after_approval_are_refused(self, db_session, admin, clerk, product):
        sale = sales_service.create_sale([_line(product, 3)], clerk)
        sales_service.transition_sale(sale.id, "approved", admin)

        with pytest.raises(InvalidTransition):
            sales_service.update_sale_items(sale.id, [_line(product, 1)], clerk)
        assert [item.quantity for item in sales_service.get_sale(sale.id).items] == [Decimal("3")]


class TestRejectSale:

    def test_no_stock_change(self, db_session, accountant, clerk, product):
        sale = sales_service.create_sale([_line(product, 3)], clerk)
        rejected = sales_service.transition_sale(sale.id, "rejected", accountant)

        assert rejected.status == "rejected"
        assert stock_service.get_stock(product.id, "utawala") == Decimal("10")
        assert db_session.query(InventoryTransaction).count() == 0


class TestSaleAuthority:

    @pytest.mark.parametrize("role_fixture", ["clerk", "basic_user"])
    @pytest.mark.parametrize("status", ["approved", "rejected"])
    def test_forbidden_roles(self, request, db_session, clerk, product, role_fixture, status):
        actor = request.getfixturevalue(role_fixture)
        sale = sales_service.create_sale([_line(product, 1)], clerk)

        with pytest.raises(Forbidden):
            sales_service.transition_sale(sale.id, status, actor)

        assert sales_service.get_sale(sale.id).status == "pending"
        assert stock_service.get_stock(product.id, "utawala") == Decimal("10")

    def test_denial_is_logged(self, db_session, clerk, product, caplog):
        sale = sales_service.create_sale([_line(product, 1)], clerk)

        with caplog.at_level("WARNING"):
            with pytest.raises(Forbidden):
                sales_service.transition_sale(sale.id, "approved", clerk)

        assert "Denied Sale -> approved for role clerk" in caplog.text

    def test_unknown_target_state(self, db_session, admin, clerk, product):
        sale = sales_service.create_sale([_line(product, 1)], clerk)
        with pytest.raises(ValidationError):
            sales_service.transition_sale(sale.id, "completed", admin)

    def test_unknown_sale(self, db_session, admin):
        with pytest.raises(NotFound):
            sales_service.transition_sale(999, "approved", admin)
