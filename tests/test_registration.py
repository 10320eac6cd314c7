"""Payment registration: validation, bank-first ordering, return URL."""

import httpx
import pytest

from voucherpay.common.errors import ConfigurationError, GatewayRejectedError, GatewayUnavailableError, ValidationError
from voucherpay.services.registration.service import PaymentRegistrationService

PURCHASE = {
    "service_id": "svc1",
    "service_name": "Абонемент",
    "price": "6 480",
    "phone": "+7 999 123-45-67",
    "email": "a@b.com",
    "visits": 12,
    "freezing": "30",
}


@pytest.fixture
def service(settings, bank_client, order_store):
    return PaymentRegistrationService(settings, bank_client, order_store)


def test_register_stores_record_after_bank_accepts(service, order_store, bank):
    """The record is stored under the bank orderId with normalized fields."""

    result = service.register(dict(PURCHASE, back_url="/catalog"))

    assert result.order_id == "bank-1"
    assert result.form_url.startswith("https://bank.test/pay")
    record = order_store.get_by_order_number(result.order_number)
    assert record.order_id == "bank-1"
    assert record.price_major_units == 6480
    assert record.customer_phone == "79991234567"
    assert record.visits == "12"
    assert record.freezing_days == "30"
    assert record.back_url == "/catalog"

    _, form = bank.requests[0]
    assert form["amount"] == "648000"
    assert form["orderNumber"] == result.order_number
    assert form["returnUrl"] == "https://shop.test/payments/return?back=%2Fcatalog"


@pytest.mark.parametrize(
    "override",
    [
        {"service_id": "  "},
        {"email": ""},
        {"price": "0"},
        {"price": "abc"},
        {"price": "-5"},
        {"email": "nobody"},
        {"phone": "call me"},
    ],
)
def test_invalid_requests_never_reach_the_bank(service, bank, override):
    """Validation failures make no bank call."""

    with pytest.raises(ValidationError):
        service.register(dict(PURCHASE, **override))
    assert bank.requests == []


@pytest.mark.parametrize(
    "failure",
    [
        httpx.ConnectError("refused"),
        None,
    ],
)
def test_bank_failure_leaves_no_order_record(service, bank, order_store, settings, failure):
    """A failed bank registration stores nothing."""

    if failure is not None:
        bank.fail_with = failure
        expected = GatewayUnavailableError
    else:
        bank.register_response = httpx.Response(200, json={"errorCode": "5", "errorMessage": "Access denied"})
        expected = GatewayRejectedError

    with pytest.raises(expected):
        service.register(dict(PURCHASE))

    order_number = bank.requests[0][1]["orderNumber"]
    assert order_store.get_by_order_number(order_number) is None


def test_missing_credentials_are_configuration_error(service, settings, bank):
    """Missing bank credentials surface as ConfigurationError."""

    settings.bank_token = ""
    with pytest.raises(ConfigurationError):
        service.register(dict(PURCHASE))
    assert bank.requests == []


def test_each_attempt_gets_a_fresh_order_number(service):
    """Every submission mints a new order number."""

    first = service.register(dict(PURCHASE))
    second = service.register(dict(PURCHASE))
    assert first.order_number != second.order_number
    assert first.order_number.startswith("ORD")


def test_untrusted_back_url_is_replaced(service, order_store):
    """Foreign back URLs are replaced by the default at registration."""

    result = service.register(dict(PURCHASE, back_url="https://evil.test/phish"))
    assert order_store.get_by_order_id(result.order_id).back_url == "/"


def test_client_back_url_can_be_disabled(service, settings, order_store):
    """With client back URLs off, the default is stored."""

    settings.honor_client_back_url = False
    settings.default_back_url = "/thanks"
    result = service.register(dict(PURCHASE, back_url="/catalog"))
    assert order_store.get_by_order_id(result.order_id).back_url == "/thanks"
