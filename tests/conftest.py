"""Shared fixtures: settings in a temp dir, a scripted bank, in-memory side effects."""

import pytest

from tests.fakes import FakeBank, FakeMailer, FakeRenderer
from voucherpay.common.config import Settings
from voucherpay.services.bank_gateway.client import BankGatewayClient
from voucherpay.services.orders.store import FileOrderStore
from voucherpay.services.vouchers.notifier import SaleNotifier
from voucherpay.services.vouchers.service import VoucherIssuer
from voucherpay.services.vouchers.store import VoucherStore


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        bank_base_url="https://bank.test/payment",
        bank_token="bank-token",
        public_base_url="https://shop.test",
        orders_dir=str(tmp_path / "orders"),
        vouchers_dir=str(tmp_path / "vouchers"),
        database_url="sqlite:///:memory:",
        voucher_secret="s3cret",
    )


@pytest.fixture
def bank():
    return FakeBank()


@pytest.fixture
def bank_client(settings, bank):
    return BankGatewayClient(settings, transport=bank.transport)


@pytest.fixture
def order_store(settings):
    return FileOrderStore(settings.orders_dir)


@pytest.fixture
def voucher_store(settings):
    return VoucherStore(settings.vouchers_dir)


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def issuer(settings, voucher_store, renderer, mailer):
    return VoucherIssuer(settings, voucher_store, renderer, mailer, SaleNotifier(settings))
