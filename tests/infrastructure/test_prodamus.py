"""Tests for the Prodamus gateway codec."""

from dataclasses import dataclass, field
from decimal import Decimal
from urllib.parse import parse_qs, urlsplit

import pytest

from storefront.domain.exceptions import PaymentGatewayNotConfiguredError
from storefront.infrastructure.prodamus import (
    ProdamusGateway,
    canonicalize,
    compute_signature,
    is_payment_failed,
    is_payment_successful,
    parse_products,
)

SECRET = "unit-test-secret"


@dataclass
class FakeItem:
    product_name: str
    applied_price: Decimal
    quantity: int


@dataclass
class FakeOrder:
    order_number: str = "ORD-260601-ABCDEF0123"
    customer_name: str = "Ivan Petrov"
    customer_phone: str = "+79990001122"
    customer_email: str | None = "ivan@example.com"
    promocode_discount: Decimal = Decimal("0.00")
    items: list[FakeItem] = field(
        default_factory=lambda: [
            FakeItem("Tea pot", Decimal("800.00"), 2),
            FakeItem("Cup", Decimal("150.5"), 1),
        ]
    )


def link_amount(params: dict[str, str]) -> Decimal:
    total = Decimal("0.00")
    index = 0
    while f"products[{index}][price]" in params:
        total += Decimal(params[f"products[{index}][price]"]) * int(params[f"products[{index}][quantity]"])
        index += 1
    return total


def signed(fields: dict[str, str], secret: str = SECRET) -> dict[str, str]:
    return {**fields, "sign": compute_signature(fields, secret)}


@pytest.fixture
def codec() -> ProdamusGateway:
    return ProdamusGateway(secret_key=SECRET, payment_form_url="https://pay.example.test/")


class TestCanonicalize:
    def test_sorted_key_value_pairs(self) -> None:
        assert canonicalize({"b": "2", "a": "1", "c": ""}) == "a:1;b:2;c:"


class TestVerify:
    """Tests for notification signature verification."""

    def test_valid_signature(self, codec: ProdamusGateway) -> None:
        payload = signed({"order_num": "ORD-1", "payment_status": "success", "sum": "100.00"})
        assert codec.verify(payload)

    def test_field_order_does_not_matter(self, codec: ProdamusGateway) -> None:
        payload = signed({"sum": "1", "order_num": "ORD-1"})
        reordered = {"order_num": payload["order_num"], "sign": payload["sign"], "sum": payload["sum"]}
        assert codec.verify(reordered)

    def test_tampered_field_rejected(self, codec: ProdamusGateway) -> None:
        payload = signed({"order_num": "ORD-1", "sum": "100.00"})
        payload["sum"] = "1.00"
        assert not codec.verify(payload)

    def test_added_field_rejected(self, codec: ProdamusGateway) -> None:
        payload = signed({"order_num": "ORD-1"})
        payload["extra"] = "x"
        assert not codec.verify(payload)

    def test_missing_or_empty_signature_rejected(self, codec: ProdamusGateway) -> None:
        assert not codec.verify({"order_num": "ORD-1"})
        assert not codec.verify({"order_num": "ORD-1", "sign": ""})

    def test_non_ascii_signature_rejected(self, codec: ProdamusGateway) -> None:
        assert not codec.verify({"order_num": "ORD-1", "sign": "подпись"})

    def test_wrong_secret_rejected(self, codec: ProdamusGateway) -> None:
        assert not codec.verify(signed({"order_num": "ORD-1"}, secret="other"))

    def test_fails_closed_without_secret(self) -> None:
        codec = ProdamusGateway(secret_key=None, payment_form_url=None)
        assert not codec.verify(signed({"order_num": "ORD-1"}))


class TestPaymentLink:
    """Tests for payment link construction."""

    def test_link_carries_signed_order_params(self, codec: ProdamusGateway) -> None:
        url = codec.build_payment_link(
            FakeOrder(),
            success_url="https://shop.test/ok",
            notification_url="https://api.shop.test/webhooks/prodamus",
        )

        parts = urlsplit(url)
        params = {key: values[0] for key, values in parse_qs(parts.query).items()}

        assert url.startswith("https://pay.example.test/?")
        assert params["order_id"] == "ORD-260601-ABCDEF0123"
        assert params["customer_email"] == "ivan@example.com"
        assert params["products[0][name]"] == "Tea pot"
        assert params["products[0][price]"] == "800.00"
        assert params["products[0][quantity]"] == "2"
        assert params["products[1][price]"] == "150.50"
        assert params["success_url"] == "https://shop.test/ok"
        assert "fail_url" not in params
        assert codec.verify(params)

    def test_promocode_discount_is_spread_over_lines(self, codec: ProdamusGateway) -> None:
        url = codec.build_payment_link(FakeOrder(promocode_discount=Decimal("100.00")))
        params = {key: values[0] for key, values in parse_qs(urlsplit(url).query).items()}

        assert link_amount(params) == Decimal("1650.50")
        assert params["products[0][price]"] == "754.29"
        assert params["products[0][quantity]"] == "1"
        assert params["products[1][name]"] == "Tea pot"
        assert params["products[1][price]"] == "754.30"
        assert params["products[2][name]"] == "Cup"
        assert params["products[2][price]"] == "141.91"
        assert codec.verify(params)

    def test_existing_query_string_is_extended(self) -> None:
        codec = ProdamusGateway(secret_key=SECRET, payment_form_url="https://pay.example.test/?lang=ru")
        url = codec.build_payment_link(FakeOrder(customer_email=None))
        assert url.startswith("https://pay.example.test/?lang=ru&order_id=")
        assert "customer_email" not in url

    def test_requires_configuration(self) -> None:
        codec = ProdamusGateway(secret_key=None, payment_form_url="https://pay.example.test/")
        assert not codec.is_configured
        with pytest.raises(PaymentGatewayNotConfiguredError):
            codec.build_payment_link(FakeOrder())

    def test_sign_requires_secret(self) -> None:
        with pytest.raises(PaymentGatewayNotConfiguredError):
            ProdamusGateway(secret_key="", payment_form_url=None).sign({"a": "1"})


class TestStatusClassification:
    @pytest.mark.parametrize(
        "status,description",
        [
            ("success", None),
            ("SUCCESS", None),
            ("order_success", None),
            ("", "Успешная оплата"),
        ],
    )
    def test_successful(self, status: str, description: str | None) -> None:
        assert is_payment_successful(status, description)
        assert not is_payment_failed(status, description)

    @pytest.mark.parametrize(
        "status,description",
        [
            ("fail", None),
            ("order_denied", None),
            ("order_canceled", None),
            ("", "Ошибка оплаты"),
        ],
    )
    def test_failed(self, status: str, description: str | None) -> None:
        assert is_payment_failed(status, description)
        assert not is_payment_successful(status, description)

    def test_unknown_status_is_neither(self) -> None:
        assert not is_payment_successful("order_processing")
        assert not is_payment_failed("order_processing")
        assert not is_payment_successful(None)


class TestParseProducts:
    def test_parses_both_key_styles(self) -> None:
        raw = '[{"name": "Tea", "price": 100.5, "quantity": 2}, {"Name": "Cup", "Price": "3", "Quantity": "1"}]'

        products = parse_products(raw)

        assert [p.name for p in products] == ["Tea", "Cup"]
        assert products[0].price == Decimal("100.50")
        assert products[0].quantity == 2
        assert products[1].price == Decimal("3.00")

    @pytest.mark.parametrize("raw", [None, "", "not json", '{"name": "x"}', '[{"price": "abc"}]'])
    def test_malformed_input_yields_empty_list(self, raw: str | None) -> None:
        assert parse_products(raw) == []
