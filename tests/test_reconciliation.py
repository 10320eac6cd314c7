"""Return reconciliation: only the bank's word confirms a payment, fulfillment happens once."""

from concurrent.futures import ThreadPoolExecutor

import httpx
import pytest

from tests.fakes import FakeRenderer
from voucherpay.common import state_machine as sm
from voucherpay.common.errors import ValidationError
from voucherpay.services.reconciliation.service import (
    MSG_DELAYED,
    MSG_ISSUED,
    MSG_NOT_PAID,
    MSG_UNAVAILABLE,
    ReturnReconciliationService,
)
from voucherpay.services.registration.service import PaymentRegistrationService
from voucherpay.services.vouchers.notifier import SaleNotifier
from voucherpay.services.vouchers.service import VoucherIssuer

PURCHASE = {
    "service_id": "svc1",
    "service_name": "Абонемент",
    "price": "6480",
    "phone": "89991234567",
    "email": "a@b.com",
    "back_url": "/catalog",
}


@pytest.fixture
def registered(settings, bank_client, order_store):
    return PaymentRegistrationService(settings, bank_client, order_store).register(dict(PURCHASE))


@pytest.fixture
def service(settings, bank_client, order_store, issuer):
    return ReturnReconciliationService(settings, bank_client, order_store, issuer)


def _artifacts(voucher_store):
    return sorted(voucher_store.directory.glob("*.pdf"))


def test_paid_order_is_fulfilled(service, registered, bank, voucher_store):
    """A bank-confirmed order ends FULFILLED with a signed voucher link."""

    bank.paid.add(registered.order_id)

    result = service.reconcile(order_id=registered.order_id)

    assert result.confirmed
    assert result.state == sm.FULFILLED
    assert result.message == MSG_ISSUED
    assert result.order_ref == registered.order_number
    assert result.back_url == "/catalog"
    assert result.voucher_url.startswith("https://shop.test/voucher?doc=")
    assert "&token=" in result.voucher_url
    assert len(_artifacts(voucher_store)) == 1


def test_repeated_returns_issue_exactly_one_voucher(service, registered, bank, voucher_store, renderer, mailer):
    """Reloads and double redirects return the first voucher instead of issuing again."""

    bank.paid.add(registered.order_id)

    first = service.reconcile(order_id=registered.order_id)
    second = service.reconcile(order_id=registered.order_id)
    third = service.reconcile(order_number=registered.order_number)

    assert first.voucher_url == second.voucher_url == third.voucher_url
    assert len(_artifacts(voucher_store)) == 1
    assert len(renderer.calls) == 1
    assert len(mailer.sent) == 1


def test_concurrent_returns_issue_exactly_one_voucher(service, registered, bank, voucher_store, renderer, mailer):
    """Parallel return hits for one paid order race on the claim; only one issues."""

    bank.paid.add(registered.order_id)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: service.reconcile(order_id=registered.order_id), range(8)))

    assert all(r.confirmed and r.state == sm.FULFILLED for r in results)
    urls = {r.voucher_url for r in results if r.voucher_url}
    assert len(urls) == 1
    for r in results:
        if r.voucher_url is None:
            assert r.message == MSG_DELAYED.format(ref=registered.order_number)
    assert len(_artifacts(voucher_store)) == 1
    assert len(renderer.calls) == 1
    assert len(mailer.sent) == 1


def test_unpaid_order_is_not_confirmed(service, registered, voucher_store):
    """A plausible success flag in the redirect changes nothing; the bank says unpaid."""

    result = service.reconcile(order_id=registered.order_id, order_number=registered.order_number)

    assert not result.confirmed
    assert result.state == sm.PAYMENT_REJECTED
    assert result.message == MSG_NOT_PAID
    assert result.voucher_url is None
    assert _artifacts(voucher_store) == []
    assert voucher_store.doc_for_order(registered.order_id) is None


def test_foreign_paid_order_id_cannot_fulfil_local_unpaid_order(service, registered, bank, voucher_store):
    """A paid bank order that is not ours must not unlock our unpaid order found by number."""

    bank.orders["bank-foreign"] = {"orderNumber": "FOREIGN-1", "amount": "10000"}
    bank.paid.add("bank-foreign")

    result = service.reconcile(order_id="bank-foreign", order_number=registered.order_number)

    assert not result.confirmed
    assert result.state == sm.ORDER_MISSING
    assert result.voucher_url is None
    assert voucher_store.doc_for_order(registered.order_id) is None
    assert _artifacts(voucher_store) == []


def test_status_is_asked_for_the_local_record(service, registered, bank):
    """Once a record is found, the bank is queried with that record's own orderId."""

    bank.paid.add(registered.order_id)
    result = service.reconcile(order_number=registered.order_number)
    assert result.confirmed
    assert bank.requests[-1][1] == {"token": "bank-token", "orderId": registered.order_id}


def test_bank_order_number_mismatch_is_not_fulfilled(service, registered, bank, voucher_store):
    """The bank's paid order must carry the record's orderNumber."""

    bank.status_response = httpx.Response(
        200, json={"errorCode": "0", "orderStatus": 2, "orderNumber": "SOMEONE-ELSE"}
    )

    result = service.reconcile(order_id=registered.order_id)

    assert not result.confirmed
    assert result.state == sm.ORDER_MISSING
    assert voucher_store.doc_for_order(registered.order_id) is None


def test_bank_unreachable_is_gateway_unavailable(service, registered, bank, voucher_store):
    """Transport failures end GATEWAY_UNAVAILABLE and issue nothing."""

    bank.fail_with = httpx.ReadTimeout("slow")

    result = service.reconcile(order_id=registered.order_id)

    assert not result.confirmed
    assert result.state == sm.GATEWAY_UNAVAILABLE
    assert result.message == MSG_UNAVAILABLE
    assert _artifacts(voucher_store) == []


def test_bank_rejection_surfaces_bank_message(service, registered, bank):
    """A non-zero errorCode from the status call shows the bank's own message."""

    bank.status_response = httpx.Response(200, json={"errorCode": "2", "errorMessage": "Payment declined"})

    result = service.reconcile(order_id=registered.order_id)

    assert result.state == sm.PAYMENT_REJECTED
    assert result.message == "Payment declined"


def test_paid_order_without_local_record_is_order_missing(service, bank, voucher_store):
    """Paid at the bank but unknown locally is an integrity error, never success."""

    bank.status_response = httpx.Response(200, json={"errorCode": "0", "orderStatus": 2})

    result = service.reconcile(order_id="bank-unknown", back="/here")

    assert not result.confirmed
    assert result.state == sm.ORDER_MISSING
    assert "bank-unknown" in result.message
    assert result.back_url == "/here"
    assert _artifacts(voucher_store) == []


def test_render_failure_still_confirms_payment(settings, bank_client, order_store, voucher_store, mailer, registered, bank):
    """A broken renderer degrades the link, not the payment confirmation."""

    issuer = VoucherIssuer(settings, voucher_store, FakeRenderer(fail=True), mailer, SaleNotifier(settings))
    service = ReturnReconciliationService(settings, bank_client, order_store, issuer)
    bank.paid.add(registered.order_id)

    first = service.reconcile(order_id=registered.order_id)
    second = service.reconcile(order_id=registered.order_id)

    for result in (first, second):
        assert result.confirmed
        assert result.state == sm.FULFILLED
        assert result.message == MSG_DELAYED.format(ref=registered.order_number)
        assert registered.order_number in result.message
        assert result.voucher_url is None
    assert len(list(voucher_store.directory.glob("*.json"))) == 1


def test_metadata_write_failure_releases_claim(service, registered, bank, voucher_store, monkeypatch):
    """If nothing durable was written, the next return issues the voucher normally."""

    bank.paid.add(registered.order_id)
    original_save_meta = voucher_store.save_meta
    attempts = []

    def flaky_save_meta(meta):
        attempts.append(meta.doc_id)
        if len(attempts) == 1:
            raise OSError("disk full")
        original_save_meta(meta)

    monkeypatch.setattr(voucher_store, "save_meta", flaky_save_meta)

    first = service.reconcile(order_id=registered.order_id)
    assert first.confirmed
    assert first.voucher_url is None
    assert first.message == MSG_DELAYED.format(ref=registered.order_number)
    assert voucher_store.doc_for_order(registered.order_id) is None

    second = service.reconcile(order_id=registered.order_id)
    assert second.message == MSG_ISSUED
    assert second.voucher_url is not None
    assert len(_artifacts(voucher_store)) == 1


def test_missing_identifiers_are_rejected(service):
    """Blank identifiers are a client error, not a state transition."""

    with pytest.raises(ValidationError):
        service.reconcile(order_id="  ", order_number=None)


def test_untrusted_back_parameter_falls_back(service, registered, bank):
    """A foreign back URL is replaced by the default location."""

    result = service.reconcile(order_id=registered.order_id, back="https://evil.test/")
    assert result.back_url == "/"


def test_back_parameter_ignored_when_client_back_urls_disabled(service, registered, settings):
    """With client back URLs off, the stored back URL wins over the query string."""

    settings.honor_client_back_url = False
    result = service.reconcile(order_id=registered.order_id, back="/elsewhere")
    assert result.back_url == "/catalog"


def test_client_payload_keys(service, registered, bank):
    """The client-side result object has exactly the documented keys."""

    bank.paid.add(registered.order_id)
    payload = service.reconcile(order_id=registered.order_id).client_payload()
    assert set(payload) == {"confirmed", "voucherUrl", "message", "orderRef", "state"}
    assert payload["confirmed"] is True
