"""Acquiring bank REST client (register + status).

Speaks the RBS-style form API: credentials and parameters go as
`application/x-www-form-urlencoded`, answers are JSON objects that carry an
`errorCode` on failure. Calls are never retried here; registering twice
creates two bank orders.
"""

from time import perf_counter

import httpx

from voucherpay.common.config import Settings
from voucherpay.common.errors import (
    ConfigurationError,
    GatewayRejectedError,
    GatewayResponseError,
    GatewayUnavailableError,
    ValidationError,
)
from voucherpay.common.logging import logger
from voucherpay.common.metrics import bank_latency_seconds, bank_requests_total
from voucherpay.services.bank_gateway.schemas import OrderStatus, RegisteredOrder

REGISTER_ENDPOINT = "rest/register.do"
STATUS_ENDPOINT = "rest/getOrderStatusExtended.do"

# orderStatus 2: the amount is fully authorized. 0 registered, 1 held,
# 3 reversed, 4 refunded, 5 ACS pending, 6 declined.
PAID_STATUS = 2


class BankGatewayClient:
    """Thin typed wrapper over the bank's `register` and `status` calls."""

    def __init__(self, settings: Settings, transport: httpx.BaseTransport | None = None) -> None:
        self.settings = settings
        self.transport = transport

    def _auth_params(self) -> dict[str, str]:
        """Resolve credentials; token wins over the username/password pair."""

        if self.settings.bank_token:
            return {"token": self.settings.bank_token}
        if self.settings.bank_username and self.settings.bank_password:
            return {"userName": self.settings.bank_username, "password": self.settings.bank_password}
        raise ConfigurationError(
            "BANK_TOKEN or BANK_USERNAME/BANK_PASSWORD",
            "bank credentials are not configured",
        )

    def _post(self, operation: str, endpoint: str, params: dict) -> dict:
        form = {**self._auth_params(), **{k: v for k, v in params.items() if v not in (None, "")}}
        url = f"{self.settings.bank_base_url.rstrip('/')}/{endpoint}"
        start = perf_counter()
        try:
            with httpx.Client(
                timeout=self.settings.bank_timeout_seconds,
                verify=self.settings.bank_verify_ssl,
                transport=self.transport,
            ) as client:
                resp = client.post(url, data=form)
        except httpx.TransportError as exc:
            bank_requests_total.labels(operation=operation, outcome="unavailable").inc()
            logger.warning("bank call failed operation=%s error=%s", operation, exc)
            raise GatewayUnavailableError(f"cannot reach bank: {exc.__class__.__name__}", operation) from exc
        finally:
            bank_latency_seconds.labels(operation=operation).observe(max(0.0, perf_counter() - start))

        if not resp.is_success:
            bank_requests_total.labels(operation=operation, outcome="http_error").inc()
            logger.warning("bank http error operation=%s status=%s", operation, resp.status_code)
            raise GatewayResponseError(f"bank answered HTTP {resp.status_code}", operation, resp.status_code)
        try:
            payload = resp.json()
        except ValueError as exc:
            bank_requests_total.labels(operation=operation, outcome="http_error").inc()
            raise GatewayResponseError("bank answer is not JSON", operation, resp.status_code) from exc
        if not isinstance(payload, dict):
            bank_requests_total.labels(operation=operation, outcome="http_error").inc()
            raise GatewayResponseError("bank answer is not a JSON object", operation, resp.status_code)
        bank_requests_total.labels(operation=operation, outcome="ok").inc()
        return payload

    @staticmethod
    def _raise_for_error_code(payload: dict, operation: str) -> None:
        """`errorCode` present and not "0" is a failure; absent or "0" is success."""

        code = payload.get("errorCode")
        if code is None or str(code).strip() in ("", "0"):
            return
        message = str(payload.get("errorMessage") or "")
        logger.info("bank rejected operation=%s error_code=%s message=%s", operation, code, message)
        raise GatewayRejectedError(str(code).strip(), message, operation)

    def register_order(
        self,
        order_number: str,
        amount_major: int,
        return_url: str,
        currency: str | None = None,
        language: str | None = None,
        description: str | None = None,
    ) -> RegisteredOrder:
        """Register a payment and return the bank `orderId` and hosted form URL.

        `amount_major` is whole major units (rubles); conversion to minor
        units happens here and nowhere else.
        """

        if isinstance(amount_major, bool) or not isinstance(amount_major, int) or amount_major < 0:
            raise ValueError(f"amount must be a non-negative integer, got {amount_major!r}")
        payload = self._post(
            "register",
            REGISTER_ENDPOINT,
            {
                "orderNumber": order_number,
                "amount": amount_major * 100,
                "returnUrl": return_url,
                "currency": currency or self.settings.bank_currency,
                "language": language or self.settings.bank_language,
                "description": description,
            },
        )
        self._raise_for_error_code(payload, "register")
        order_id = payload.get("orderId")
        form_url = payload.get("formUrl")
        if not order_id or not form_url:
            raise GatewayResponseError("register answer lacks orderId/formUrl", "register")
        return RegisteredOrder(order_id=str(order_id), form_url=str(form_url))

    def fetch_status(self, order_id: str | None = None, order_number: str | None = None) -> dict:
        """Raw status payload, no interpretation (used for ops passthrough)."""

        if order_id:
            params = {"orderId": order_id}
        elif order_number:
            params = {"orderNumber": order_number}
        else:
            raise ValidationError("orderId or orderNumber required")
        return self._post("status", STATUS_ENDPOINT, params)

    def query_status(self, order_id: str | None = None, order_number: str | None = None) -> OrderStatus:
        """Ask the bank whether the order is paid. Safe to repeat."""

        payload = self.fetch_status(order_id=order_id, order_number=order_number)
        self._raise_for_error_code(payload, "status")
        raw_status = payload.get("orderStatus")
        try:
            status_code = int(raw_status) if raw_status is not None else None
        except (TypeError, ValueError):
            status_code = None
        return OrderStatus(
            paid=status_code == PAID_STATUS,
            raw_status_code=status_code,
            error_code=str(payload.get("errorCode") or "0"),
            error_message=str(payload.get("errorMessage") or ""),
            raw=payload,
        )
