"""Payment registration: validate the purchase, register it with the bank,
then persist the Order Record under the bank's `orderId`.

Never retried internally; every call mints a fresh order number, so a user
re-submitting the form may leave unpaid duplicates behind, which is harmless
because only a paid order is ever fulfilled.
"""

import secrets
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlencode

from voucherpay.common.config import Settings
from voucherpay.common.errors import ValidationError
from voucherpay.common.logging import logger, order_ref_ctx
from voucherpay.common.normalize import is_valid_email, normalize_phone, normalize_price, safe_back_url
from voucherpay.services.bank_gateway.client import BankGatewayClient
from voucherpay.services.orders.models import OrderRecord
from voucherpay.services.orders.store import OrderStore
from voucherpay.services.registration.schemas import PurchaseRequest, RegistrationResult

REQUIRED_FIELDS = ("service_id", "service_name", "price", "phone", "email")


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


class PaymentRegistrationService:
    def __init__(self, settings: Settings, bank: BankGatewayClient, orders: OrderStore) -> None:
        self.settings = settings
        self.bank = bank
        self.orders = orders

    def validate(self, payload: dict[str, Any]) -> PurchaseRequest:
        """Turn a raw purchase payload into a `PurchaseRequest` or raise `ValidationError`."""

        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        missing = [name for name in REQUIRED_FIELDS if not _text(payload.get(name))]
        if missing:
            raise ValidationError(f"Required fields missing: {', '.join(missing)}")

        price = normalize_price(payload.get("price"))
        if price <= 0:
            raise ValidationError("Price must be a positive whole amount")
        phone = normalize_phone(_text(payload.get("phone")))
        if not phone:
            raise ValidationError("Phone number must contain digits")
        email = _text(payload.get("email"))
        if not is_valid_email(email):
            raise ValidationError("E-mail address is invalid")

        return PurchaseRequest(
            service_id=_text(payload.get("service_id")),
            service_name=_text(payload.get("service_name")),
            price_major_units=price,
            phone=phone,
            email=email,
            visits=_text(payload.get("visits")) or None,
            freezing_days=_text(payload.get("freezing")) or None,
            back_url=_text(payload.get("back_url")) or None,
        )

    def new_order_number(self) -> str:
        """Prefix + UTC timestamp + random suffix, e.g. `ORD20261018104455-9f3a1c2b`."""

        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        return f"{self.settings.order_number_prefix}{stamp}-{secrets.token_hex(4)}"

    def resolve_back_url(self, requested: str | None) -> str:
        s = self.settings
        if not s.honor_client_back_url:
            return s.default_back_url
        return safe_back_url(requested, s.public_base_url, s.allowed_back_hosts, s.default_back_url)

    def return_url(self, back_url: str) -> str:
        base = self.settings.public_base_url.rstrip("/")
        return f"{base}{self.settings.return_path}?{urlencode({'back': back_url})}"

    def register(self, payload: dict[str, Any]) -> RegistrationResult:
        request = self.validate(payload)
        order_number = self.new_order_number()
        back_url = self.resolve_back_url(request.back_url)
        token = order_ref_ctx.set(order_number)
        try:
            registered = self.bank.register_order(
                order_number=order_number,
                amount_major=request.price_major_units,
                return_url=self.return_url(back_url),
                description=request.service_name,
            )
            record = OrderRecord(
                order_id=registered.order_id,
                order_number=order_number,
                service_id=request.service_id,
                service_name=request.service_name,
                price_major_units=request.price_major_units,
                currency=self.settings.bank_currency,
                visits=request.visits,
                freezing_days=request.freezing_days,
                customer_phone=request.phone,
                customer_email=request.email,
                back_url=back_url,
            )
            try:
                self.orders.put(record)
            except Exception:
                # The bank order exists but nothing local points at it.
                logger.exception(
                    "order store write failed after bank registration order_id=%s order_number=%s",
                    registered.order_id,
                    order_number,
                )
                raise
            logger.info(
                "payment registered order_id=%s order_number=%s amount=%s",
                registered.order_id,
                order_number,
                request.price_major_units,
            )
            return RegistrationResult(
                form_url=registered.form_url,
                order_id=registered.order_id,
                order_number=order_number,
            )
        finally:
            order_ref_ctx.reset(token)
