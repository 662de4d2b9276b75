# Overview: Pytest coverage for payload parsing and model-driven validation.

import pytest

from tradeledger.models import InventoryItem
from tradeledger.validation import (
    MAX_PRICE_CENTS,
    MAX_QUANTITY,
    CreateSaleRequest,
    ModelValidationPolicy,
    PaymentRequest,
    RefundRequest,
    StockMovementRequest,
    ValidationError,
    enforce_rules_item,
    parse_id_arg,
    parse_range_bound,
    validate_payload,
)


class TestCreateSaleRequest:
    def test_parses_payload(self):
        req = CreateSaleRequest.from_payload({
            "customer_id": "4",
            "items": [
                {"item_id": 1, "quantity": 2, "unit_price_cents": 1_500},
                {"item_id": 2, "quantity": 1, "unit_price_cents": 0},
            ],
            "payment_type": " CASH ",
            "paid_cents": 1_000,
        })

        assert req.customer_id == 4
        assert req.payment_type == "CASH"
        assert req.discount_cents == 0
        assert [line.line_total_cents for line in req.items] == [3_000, 0]

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {"customer_id": 1, "payment_type": "CASH"},
        {"customer_id": 1, "payment_type": "CASH", "items": []},
        {"customer_id": 1, "items": [{"item_id": 1, "quantity": 1, "unit_price_cents": 1}]},
        {"payment_type": "CASH", "items": [{"item_id": 1, "quantity": 1, "unit_price_cents": 1}]},
    ])
    def test_missing_parts(self, payload):
        with pytest.raises(ValidationError):
            CreateSaleRequest.from_payload(payload)

    @pytest.mark.parametrize("line, message", [
        ({"item_id": 1, "quantity": 0, "unit_price_cents": 100}, "items[0]: quantity must be >= 1"),
        ({"item_id": 1, "quantity": 1.5, "unit_price_cents": 100}, "items[0]: quantity must be an integer, not a decimal"),
        ({"item_id": 1, "quantity": 1, "unit_price_cents": -1}, "items[0]: unit_price_cents must be >= 0"),
        ({"item_id": 1, "quantity": 1, "unit_price_cents": "1e3"}, "items[0]: unit_price_cents must be a plain integer"),
    ])
    def test_bad_lines(self, line, message):
        with pytest.raises(ValidationError) as exc_info:
            CreateSaleRequest.from_payload({"customer_id": 1, "payment_type": "CASH", "items": [line]})
        assert str(exc_info.value).startswith(message)

    @pytest.mark.parametrize("field", ["discount_cents", "paid_cents"])
    def test_negative_money_rejected(self, field):
        with pytest.raises(ValidationError):
            CreateSaleRequest.from_payload({
                "customer_id": 1,
                "payment_type": "CASH",
                "items": [{"item_id": 1, "quantity": 1, "unit_price_cents": 100}],
                field: -1,
            })


def test_payment_and_refund_requests():
    assert PaymentRequest.from_payload({"amount_cents": 500, "payment_type": "MPESA"}) == PaymentRequest(500, "MPESA")
    assert RefundRequest.from_payload({"amount_cents": 5, "payment_type": "CASH"}).reason is None
    with pytest.raises(ValidationError):
        PaymentRequest.from_payload({"amount_cents": True, "payment_type": "CASH"})


def test_stock_movement_request():
    req = StockMovementRequest.from_payload({"quantity": "12", "note": "  restock "})
    assert req == StockMovementRequest(quantity=12, note="restock")
    with pytest.raises(ValidationError):
        StockMovementRequest.from_payload({"note": "no quantity"})


class TestValidatePayload:
    policy = ModelValidationPolicy(writable_fields={"name", "unit", "sell_price_cents"}, required_on_create={"name"})

    def test_create_requires_fields(self):
        with pytest.raises(ValidationError, match="Missing required fields: name"):
            validate_payload(model=InventoryItem, payload={"unit": "kg"}, policy=self.policy, partial=False)

    def test_non_writable_field_rejected(self):
        with pytest.raises(ValidationError, match="Field not allowed: quantity"):
            validate_payload(model=InventoryItem, payload={"quantity": 3}, policy=self.policy, partial=True)

    def test_length_and_blank_checks(self):
        with pytest.raises(ValidationError, match="exceeds max length 16"):
            validate_payload(model=InventoryItem, payload={"unit": "x" * 17}, policy=self.policy, partial=True)
        with pytest.raises(ValidationError, match="cannot be blank"):
            validate_payload(model=InventoryItem, payload={"name": "   "}, policy=self.policy, partial=True)

    def test_coerces_types(self):
        patch = validate_payload(
            model=InventoryItem,
            payload={"name": " Cement ", "sell_price_cents": "1200"},
            policy=self.policy,
            partial=False,
        )
        assert patch == {"name": "Cement", "sell_price_cents": 1200}


def test_enforce_rules_item():
    enforce_rules_item({"sell_price_cents": 0, "low_stock_limit": 0})
    with pytest.raises(ValidationError):
        enforce_rules_item({"limit_price_cents": -1})
    with pytest.raises(ValidationError):
        enforce_rules_item({"base_price_cents": 1_000_000_000})
    with pytest.raises(ValidationError):
        enforce_rules_item({"low_stock_limit": -3})


def test_parse_range_bound():
    assert parse_range_bound(None, "start") is None
    assert parse_range_bound("2024-05-01T10:00:00Z", "start").hour == 10
    with pytest.raises(ValidationError, match="start must be an ISO-8601 datetime"):
        parse_range_bound("yesterday", "start")


@pytest.mark.parametrize("build, message", [
    (lambda: PaymentRequest.from_payload({"amount_cents": MAX_PRICE_CENTS + 1, "payment_type": "CASH"}),
     "amount_cents must be <="),
    (lambda: RefundRequest.from_payload({"amount_cents": 10**20, "payment_type": "CASH"}), "amount_cents must be <="),
    (lambda: StockMovementRequest.from_payload({"quantity": MAX_QUANTITY + 1}), "quantity must be <="),
    (lambda: StockMovementRequest.from_payload({"quantity": -10**20}), "quantity is out of range"),
    (lambda: CreateSaleRequest.from_payload({
        "customer_id": 1, "payment_type": "CASH", "paid_cents": 10**20,
        "items": [{"item_id": 1, "quantity": 1, "unit_price_cents": 1}],
    }), "paid_cents must be <="),
    (lambda: CreateSaleRequest.from_payload({
        "customer_id": 2**31, "payment_type": "CASH",
        "items": [{"item_id": 1, "quantity": 1, "unit_price_cents": 1}],
    }), "customer_id must be <="),
    (lambda: CreateSaleRequest.from_payload({
        "customer_id": 1, "payment_type": "CASH",
        "items": [{"item_id": 1, "quantity": 1, "unit_price_cents": MAX_PRICE_CENTS + 1}],
    }), "items[0]: unit_price_cents must be <="),
])
def test_request_integers_are_bounded(build, message):
    with pytest.raises(ValidationError) as exc_info:
        build()
    assert str(exc_info.value).startswith(message)


def test_request_integers_at_the_cap_are_accepted():
    assert PaymentRequest.from_payload({"amount_cents": MAX_PRICE_CENTS, "payment_type": "CASH"}).amount_cents == MAX_PRICE_CENTS
    assert StockMovementRequest.from_payload({"quantity": MAX_QUANTITY}).quantity == MAX_QUANTITY


def test_item_payload_integers_are_bounded():
    policy = ModelValidationPolicy(writable_fields={"low_stock_limit"})
    with pytest.raises(ValidationError, match="low_stock_limit is out of range"):
        validate_payload(model=InventoryItem, payload={"low_stock_limit": 10**20}, policy=policy, partial=True)
    with pytest.raises(ValidationError, match="low_stock_limit must be between 0 and"):
        enforce_rules_item({"low_stock_limit": MAX_QUANTITY + 1})


def test_parse_id_arg():
    assert parse_id_arg(None, "customer_id") is None
    assert parse_id_arg(" ", "customer_id") is None
    assert parse_id_arg("42", "customer_id") == 42
    for bad in ("abc", "1.5", "0", "-3", str(2**31)):
        with pytest.raises(ValidationError):
            parse_id_arg(bad, "customer_id")
