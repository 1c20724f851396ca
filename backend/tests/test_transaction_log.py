"""Transaction log reads and append guards."""

from decimal import Decimal

import pytest

from aquastock.services import sales_service, transaction_log_service, transfer_service


def test_filters_newest_first(db_session, admin, clerk, product):
    sale = sales_service.create_sale(
        [{"product_id": product.id, "quantity": 1, "unit_price_cents": 100}], clerk,
    )
    sales_service.transition_sale(sale.id, "approved", admin)
    transfer = transfer_service.create_transfer(product.id, "kamulu", "utawala", 2, clerk)
    transfer_service.transition_transfer(transfer.id, "completed", clerk)

    everything = transaction_log_service.list_transactions(product_id=product.id)
    assert [e.type for e in everything] == ["transfer", "transfer", "sale"]

    utawala = transaction_log_service.list_transactions(location="utawala")
    assert [(e.type, e.quantity_delta) for e in utawala] == [
        ("transfer", Decimal("2")),
        ("sale", Decimal("-1")),
    ]

    assert len(transaction_log_service.list_transactions(type="sale")) == 1
    assert len(transaction_log_service.list_transactions(reference_type="transfer", reference_id=transfer.id)) == 2
    assert len(transaction_log_service.list_transactions(limit=1)) == 1


def test_unknown_type_is_refused(db_session, product):
    with pytest.raises(ValueError):
        transaction_log_service.append_transaction(
            product_id=product.id,
            location="utawala",
            type="adjustment",
            quantity_delta=Decimal("1"),
            reference_type="manual",
            reference_id=1,
        )
