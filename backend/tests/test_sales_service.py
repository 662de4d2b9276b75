# Overview: Pytest coverage for atomic sale commits.

"""
Sale commit tests

A sale writes the sale, its lines, a stock-out per line and one customer
ledger entry. Every failure case below must leave all four untouched.
"""

import logging

import pytest

from tradeledger.models import CustomerTransaction, InventoryTransaction, Sale, SaleItem
from tradeledger.models.customers import KIND_SALE
from tradeledger.models.inventory import STOCK_OUT
from tradeledger.models.sales import PAYMENT_STATUS_PAID, PAYMENT_STATUS_PARTIAL, PAYMENT_STATUS_UNPAID
from tradeledger.services import customer_ledger_service, inventory_service, sales_service
from tradeledger.services.errors import (
    CustomerNotFound,
    InsufficientStock,
    InvalidAmount,
    InvalidPaymentType,
    ItemNotFound,
    PriceBelowLimit,
)
from tradeledger.validation import MAX_PRICE_CENTS


def _assert_nothing_written(db_session):
    assert db_session.query(Sale).count() == 0
    assert db_session.query(SaleItem).count() == 0
    assert db_session.query(InventoryTransaction).filter_by(kind=STOCK_OUT).count() == 0
    assert db_session.query(CustomerTransaction).count() == 0


class TestCreateSale:
    def test_totals_stock_and_ledger(self, db_session, make_item, make_customer, line):
        customer = make_customer()
        cement = make_item(name="Cement", quantity=10, sell_price_cents=10_000)
        nails = make_item(name="Nails", quantity=50, sell_price_cents=500)

        sale = sales_service.create_sale(
            db_session,
            customer_id=customer.id,
            items=[line(cement, 2, 10_000), line(nails, 10, 500)],
            payment_type="CASH",
            discount_cents=1_000,
            paid_cents=20_000,
        )

        assert sale.subtotal_cents == 25_000
        assert sale.total_cents == 24_000
        assert sale.total_cents == sale.subtotal_cents - sale.discount_cents
        assert sale.payment_status == PAYMENT_STATUS_PARTIAL
        assert [(i.item_id, i.line_total_cents) for i in sale.items] == [(cement.id, 20_000), (nails.id, 5_000)]

        assert inventory_service.get_item(db_session, cement.id).quantity == 8
        assert inventory_service.get_item(db_session, nails.id).quantity == 40

        entries = db_session.query(CustomerTransaction).filter_by(customer_id=customer.id).all()
        assert len(entries) == 1
        assert entries[0].kind == KIND_SALE
        assert entries[0].sale_id == sale.id
        assert entries[0].amount_cents == 20_000 - 24_000

        balance = customer_ledger_service.get_balance(db_session, customer.id)
        assert balance.balance_cents == -4_000
        assert balance.status == "Due"

    def test_stock_out_rows_link_to_sale(self, db_session, make_item, make_customer, line):
        customer = make_customer()
        item = make_item(quantity=5)
        sale = sales_service.create_sale(
            db_session, customer_id=customer.id, items=[line(item, 2, 10_000)], payment_type="MPESA",
            paid_cents=20_000,
        )

        out = db_session.query(InventoryTransaction).filter_by(kind=STOCK_OUT).one()
        assert out.sale_id == sale.id
        assert out.quantity == 2
        assert sale.payment_status == PAYMENT_STATUS_PAID
        assert inventory_service.reconcile_item(db_session, item.id)["consistent"] is True

    def test_overpayment_at_till_is_credit(self, db_session, make_item, make_customer, line):
        customer = make_customer()
        item = make_item(quantity=5)
        sales_service.create_sale(
            db_session, customer_id=customer.id, items=[line(item, 1, 10_000)], payment_type="CASH",
            paid_cents=12_000,
        )

        balance = customer_ledger_service.get_balance(db_session, customer.id)
        assert balance.balance_cents == 2_000
        assert balance.status == "Credit"

    def test_unpaid_sale(self, db_session, make_item, make_customer, line):
        customer = make_customer()
        item = make_item(quantity=5)
        sale = sales_service.create_sale(
            db_session, customer_id=customer.id, items=[line(item, 1, 10_000)], payment_type="CASH",
        )
        assert sale.payment_status == PAYMENT_STATUS_UNPAID
        assert sale.due_cents == 10_000

    def test_zero_total_sale_is_paid(self, db_session, make_item, make_customer, line):
        customer = make_customer()
        sample = make_item(name="Sample", quantity=5, sell_price_cents=None)
        sale = sales_service.create_sale(
            db_session, customer_id=customer.id, items=[line(sample, 1, 0)], payment_type="CASH",
        )
        assert sale.total_cents == 0
        assert sale.payment_status == PAYMENT_STATUS_PAID
        assert customer_ledger_service.get_balance(db_session, customer.id).status == "Settled"

    def test_same_item_on_two_lines_checks_combined_quantity(self, db_session, make_item, make_customer, line):
        customer = make_customer()
        item = make_item(quantity=3)

        with pytest.raises(InsufficientStock) as exc_info:
            sales_service.create_sale(
                db_session,
                customer_id=customer.id,
                items=[line(item, 2, 10_000), line(item, 2, 10_000)],
                payment_type="CASH",
            )
        assert exc_info.value.requested == 4
        _assert_nothing_written(db_session)


class TestSaleRollback:
    def test_insufficient_stock_on_second_line(self, db_session, make_item, make_customer, line):
        customer = make_customer()
        plenty = make_item(name="Plenty", quantity=10)
        scarce = make_item(name="Scarce", quantity=1)

        with pytest.raises(InsufficientStock):
            sales_service.create_sale(
                db_session,
                customer_id=customer.id,
                items=[line(plenty, 2, 10_000), line(scarce, 5, 10_000)],
                payment_type="CASH",
                paid_cents=70_000,
            )

        _assert_nothing_written(db_session)
        assert inventory_service.get_item(db_session, plenty.id).quantity == 10
        assert inventory_service.get_item(db_session, scarce.id).quantity == 1

    def test_price_below_limit(self, db_session, make_item, make_customer, line):
        customer = make_customer()
        item = make_item(quantity=10, sell_price_cents=10_000, limit_price_cents=9_000)

        with pytest.raises(PriceBelowLimit) as exc_info:
            sales_service.create_sale(
                db_session, customer_id=customer.id, items=[line(item, 1, 8_999)], payment_type="CASH",
            )
        assert exc_info.value.to_dict()["details"] == {"item_id": item.id, "limit": 9_000, "given": 8_999}
        _assert_nothing_written(db_session)
        assert inventory_service.get_item(db_session, item.id).quantity == 10

    def test_price_at_limit_is_allowed(self, db_session, make_item, make_customer, line):
        customer = make_customer()
        item = make_item(quantity=10, sell_price_cents=10_000, limit_price_cents=9_000)
        sale = sales_service.create_sale(
            db_session, customer_id=customer.id, items=[line(item, 1, 9_000)], payment_type="CASH",
        )
        assert sale.total_cents == 9_000

    def test_unknown_item(self, db_session, make_item, make_customer, line):
        customer = make_customer()
        item = make_item(quantity=10)
        missing = type("Missing", (), {"id": 99_999})()

        with pytest.raises(ItemNotFound):
            sales_service.create_sale(
                db_session,
                customer_id=customer.id,
                items=[line(item, 1, 10_000), line(missing, 1, 10_000)],
                payment_type="CASH",
            )
        _assert_nothing_written(db_session)

    def test_unknown_customer(self, db_session, make_item, line):
        item = make_item(quantity=10)
        with pytest.raises(CustomerNotFound):
            sales_service.create_sale(db_session, customer_id=99_999, items=[line(item, 1, 10_000)], payment_type="CASH")
        _assert_nothing_written(db_session)

    def test_invalid_payment_type(self, db_session, make_item, make_customer, line):
        customer = make_customer()
        item = make_item(quantity=10)
        with pytest.raises(InvalidPaymentType):
            sales_service.create_sale(
                db_session, customer_id=customer.id, items=[line(item, 1, 10_000)], payment_type="BARTER",
            )
        _assert_nothing_written(db_session)

    @pytest.mark.parametrize("kwargs", [
        {"discount_cents": -1},
        {"paid_cents": -100},
        {"discount_cents": 10_001},
    ])
    def test_invalid_amounts(self, db_session, make_item, make_customer, line, kwargs):
        customer = make_customer()
        item = make_item(quantity=10)
        with pytest.raises(InvalidAmount):
            sales_service.create_sale(
                db_session, customer_id=customer.id, items=[line(item, 1, 10_000)], payment_type="CASH", **kwargs,
            )
        _assert_nothing_written(db_session)

    def test_subtotal_above_cap_rejected(self, db_session, make_item, make_customer, line):
        customer = make_customer()
        item = make_item(quantity=1_000, sell_price_cents=None)
        with pytest.raises(InvalidAmount, match="subtotal cannot exceed"):
            sales_service.create_sale(
                db_session, customer_id=customer.id, items=[line(item, 2, MAX_PRICE_CENTS)], payment_type="CASH",
            )
        _assert_nothing_written(db_session)

    def test_empty_sale(self, db_session, make_customer):
        customer = make_customer()
        with pytest.raises(InvalidAmount):
            sales_service.create_sale(db_session, customer_id=customer.id, items=[], payment_type="CASH")


class TestPriceWarning:
    def test_deep_discount_is_logged(self, db_session, make_item, make_customer, line, caplog):
        customer = make_customer()
        item = make_item(quantity=10, sell_price_cents=10_000)

        with caplog.at_level(logging.WARNING, logger="tradeledger.services.sales_service"):
            sales_service.create_sale(
                db_session, customer_id=customer.id, items=[line(item, 1, 7_999)], payment_type="CASH",
            )

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING and r.name.endswith("sales_service")]
        assert len(warnings) == 1
        assert "7999" in warnings[0].getMessage()

    def test_price_at_eighty_percent_is_not_logged(self, db_session, make_item, make_customer, line, caplog):
        customer = make_customer()
        item = make_item(quantity=10, sell_price_cents=10_000)

        with caplog.at_level(logging.WARNING, logger="tradeledger.services.sales_service"):
            sales_service.create_sale(
                db_session, customer_id=customer.id, items=[line(item, 1, 8_000)], payment_type="CASH",
            )

        assert not [r for r in caplog.records if r.levelno == logging.WARNING and r.name.endswith("sales_service")]


class TestSaleQueries:
    def test_list_and_receipt(self, db_session, make_item, make_customer, line):
        alice = make_customer(name="Alice")
        bob = make_customer(name="Bob")
        item = make_item(name="Cement", quantity=10)

        first = sales_service.create_sale(db_session, customer_id=alice.id, items=[line(item, 1, 10_000)], payment_type="CASH")
        second = sales_service.create_sale(db_session, customer_id=bob.id, items=[line(item, 2, 10_000)], payment_type="MPESA")

        assert [s.id for s in sales_service.list_sales(db_session)] == [second.id, first.id]
        assert [s.id for s in sales_service.list_sales(db_session, customer_id=alice.id)] == [first.id]

        receipt = sales_service.sale_receipt(db_session, second.id)
        assert receipt["customer"]["name"] == "Bob"
        assert receipt["lines"][0]["name"] == "Cement"
        assert receipt["total_cents"] == 20_000
        assert receipt["due_cents"] == 20_000

    def test_line_prices_survive_repricing(self, db_session, make_item, make_customer, line):
        customer = make_customer()
        cement = make_item(name="Cement", quantity=10, sell_price_cents=10_000, limit_price_cents=9_000)
        nails = make_item(name="Nails", quantity=50, sell_price_cents=500)
        sale = sales_service.create_sale(
            db_session, customer_id=customer.id, items=[line(cement, 2, 9_500), line(nails, 4, 450)],
            payment_type="MPESA", discount_cents=800,
        )
        receipt_before = sales_service.sale_receipt(db_session, sale.id)

        inventory_service.update_item(db_session, cement.id, {"sell_price_cents": 15_000, "limit_price_cents": 14_000})
        inventory_service.update_item(db_session, nails.id, {"sell_price_cents": 50, "limit_price_cents": None})
        db_session.expire_all()

        stored = sales_service.get_sale(db_session, sale.id)
        assert [(i.unit_price_cents, i.line_total_cents) for i in stored.items] == [(9_500, 19_000), (450, 1_800)]
        assert stored.subtotal_cents == 20_800
        assert stored.total_cents == 20_000
        assert sales_service.sale_receipt(db_session, sale.id) == receipt_before
