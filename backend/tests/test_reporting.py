# Overview: Pytest coverage for report periods and aggregates.

from datetime import datetime

import pytest

from tradeledger.services import reporting_service, sales_service
from tradeledger.services.reporting_service import ReportError, resolve_range


class TestResolveRange:
    # Wednesday
    now = datetime(2024, 5, 15, 13, 45)

    def test_daily(self):
        start, end = resolve_range("daily", self.now)
        assert start == datetime(2024, 5, 15)
        assert end == datetime(2024, 5, 15, 23, 59, 59, 999999)

    def test_weekly_starts_on_sunday(self):
        start, end = resolve_range("weekly", self.now)
        assert start == datetime(2024, 5, 12)
        assert end == datetime(2024, 5, 18, 23, 59, 59, 999999)

    def test_weekly_on_a_sunday(self):
        start, _ = resolve_range("weekly", datetime(2024, 5, 12, 8, 0))
        assert start == datetime(2024, 5, 12)

    def test_monthly_december(self):
        start, end = resolve_range("monthly", datetime(2024, 12, 31, 23, 0))
        assert start == datetime(2024, 12, 1)
        assert end == datetime(2024, 12, 31, 23, 59, 59, 999999)

    def test_yearly(self):
        start, end = resolve_range("yearly", self.now)
        assert start == datetime(2024, 1, 1)
        assert end == datetime(2024, 12, 31, 23, 59, 59, 999999)

    def test_missing_range_defaults_to_daily(self):
        assert resolve_range(None, self.now) == resolve_range("daily", self.now)


@pytest.fixture
def two_sales(db_session, make_item, make_customer, line):
    customer = make_customer()
    cement = make_item(name="Cement", quantity=20, sell_price_cents=1_000)
    nails = make_item(name="Nails", quantity=20, sell_price_cents=100)
    make_item(name="Paint", quantity=3, sell_price_cents=500, low_stock_limit=5)

    sales_service.create_sale(
        db_session, customer_id=customer.id, items=[line(cement, 2, 1_000), line(nails, 7, 100)],
        payment_type="CASH", discount_cents=200, paid_cents=2_500,
    )
    sales_service.create_sale(
        db_session, customer_id=customer.id, items=[line(cement, 1, 1_000)], payment_type="MPESA",
    )
    return cement, nails


def test_sales_summary(db_session, two_sales):
    cement, nails = two_sales
    report = reporting_service.sales_summary(db_session, range_name="daily")

    assert report["sales_count"] == 2
    assert report["total_cents"] == 2_500 + 1_000
    assert report["paid_cents"] == 2_500
    assert report["discount_cents"] == 200
    assert report["most_sold_item"] == {"item_id": nails.id, "name": "Nails", "quantity": 7}
    assert report["least_sold_item"] == {"item_id": cement.id, "name": "Cement", "quantity": 3}


def test_sales_summary_outside_range(db_session, two_sales):
    report = reporting_service.sales_summary(db_session, range_name="yearly", now=datetime(2000, 6, 1))
    assert report["sales_count"] == 0
    assert report["total_cents"] == 0
    assert report["most_sold_item"] is None


def test_sales_summary_rejects_unknown_range(db_session):
    with pytest.raises(ReportError):
        reporting_service.sales_summary(db_session, range_name="hourly")


def test_top_products(db_session, two_sales):
    cement, nails = two_sales
    rows = reporting_service.top_products(db_session, limit=1)
    assert rows == [{"item_id": nails.id, "name": "Nails", "quantity_sold": 7}]

    with pytest.raises(ReportError):
        reporting_service.top_products(db_session, limit=0)


def test_inventory_usage(db_session, two_sales):
    rows = {row["name"]: row for row in reporting_service.inventory_usage(db_session)}

    assert rows["Cement"]["total_sold"] == 3
    assert rows["Cement"]["current_stock"] == 17
    assert rows["Nails"]["current_stock"] == 13
    assert rows["Paint"]["total_sold"] == 0
    assert rows["Paint"]["low_stock"] is True
