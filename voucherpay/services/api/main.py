"""HTTP surface: purchase registration, bank return, voucher download, ops status.

`create_app` wires every component from one `Settings` object; collaborators
that talk to the outside world can be injected for tests.
"""

from time import perf_counter
from typing import Any
from uuid import uuid4

import httpx
from fastapi import Body, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError

from voucherpay.common.config import Settings
from voucherpay.common.errors import (
    AccessError,
    ConfigurationError,
    DuplicateOrderError,
    GatewayError,
    ValidationError,
)
from voucherpay.common.logging import configure_logging, logger, trace_id_ctx
from voucherpay.common.metrics import (
    http_request_duration_seconds,
    http_requests_total,
    metrics_response,
    registrations_total,
)
from voucherpay.common.startup import log_startup_config
from voucherpay.common.tracing import instrument_app, setup_tracing
from voucherpay.services.api.pages import render_return_page
from voucherpay.services.bank_gateway.client import BankGatewayClient
from voucherpay.services.orders.store import make_order_store
from voucherpay.services.reconciliation.service import ReturnReconciliationService
from voucherpay.services.registration.service import PaymentRegistrationService
from voucherpay.services.vouchers.access import VoucherAccessGateway
from voucherpay.services.vouchers.mailer import SmtpMailer
from voucherpay.services.vouchers.notifier import SaleNotifier
from voucherpay.services.vouchers.renderer import VoucherRenderer
from voucherpay.services.vouchers.service import VoucherIssuer
from voucherpay.services.vouchers.store import VoucherStore

MISCONFIGURED = "Server misconfigured"
STATUS_PATH = "/api/payments/status"
STARTUP_KEYS = [
    "bank_base_url",
    "bank_token",
    "bank_username",
    "bank_password",
    "bank_verify_ssl",
    "public_base_url",
    "order_store_backend",
    "orders_dir",
    "vouchers_dir",
    "voucher_secret",
    "smtp_host",
    "notify_url",
    "otel_exporter_otlp_endpoint",
]


def create_app(
    settings: Settings,
    *,
    bank_transport: httpx.BaseTransport | None = None,
    notify_transport: httpx.BaseTransport | None = None,
    renderer: VoucherRenderer | None = None,
    mailer: SmtpMailer | None = None,
) -> FastAPI:
    """Build the application and all of its services from `settings`."""

    tracing_enabled = setup_tracing(settings)
    log_startup_config(settings, STARTUP_KEYS)

    bank = BankGatewayClient(settings, transport=bank_transport)
    orders = make_order_store(settings)
    vouchers = VoucherStore(settings.vouchers_dir)
    issuer = VoucherIssuer(
        settings,
        vouchers,
        renderer or VoucherRenderer(
            settings.voucher_template_path, settings.voucher_logo_path, settings.voucher_font_path
        ),
        mailer or SmtpMailer(settings),
        SaleNotifier(settings, transport=notify_transport),
    )
    registration = PaymentRegistrationService(settings, bank, orders)
    reconciliation = ReturnReconciliationService(settings, bank, orders, issuer)
    access = VoucherAccessGateway(settings, vouchers)

    app = FastAPI(title="Voucher Payments")
    app.state.settings = settings
    app.state.orders = orders
    app.state.vouchers = vouchers
    if tracing_enabled:
        instrument_app(app)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Bind a trace id and record request count and latency for every call."""

        trace_token = trace_id_ctx.set(request.headers.get("x-trace-id") or str(uuid4()))
        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=settings.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=settings.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()
            trace_id_ctx.reset(trace_token)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        if request.url.path == STATUS_PATH:
            return JSONResponse(
                {"error": "missing_parameters", "message": "Request body must be a JSON object"}, status_code=400
            )
        return JSONResponse({"ok": False, "message": "Invalid request body"}, status_code=400)

    @app.post("/api/payments/register")
    def register_payment(payload: dict[str, Any] = Body(...)):
        """Register a purchase with the bank and return the hosted form URL."""

        try:
            result = registration.register(payload)
        except ValidationError as exc:
            registrations_total.labels(outcome="invalid").inc()
            return JSONResponse({"ok": False, "message": str(exc)}, status_code=400)
        except ConfigurationError as exc:
            registrations_total.labels(outcome="misconfigured").inc()
            logger.error("registration blocked, missing setting=%s", exc.setting)
            return JSONResponse({"ok": False, "message": MISCONFIGURED}, status_code=400)
        except GatewayError as exc:
            registrations_total.labels(outcome="gateway_error").inc()
            return JSONResponse({"ok": False, "message": exc.user_message}, status_code=400)
        except (DuplicateOrderError, OSError, SQLAlchemyError):
            registrations_total.labels(outcome="store_error").inc()
            return JSONResponse({"ok": False, "message": "Could not save the order, please try again"}, status_code=500)
        registrations_total.labels(outcome="ok").inc()
        return {
            "ok": True,
            "message": "Redirecting to payment",
            "formUrl": result.form_url,
            "orderId": result.order_id,
            "orderNumber": result.order_number,
        }

    @app.get("/payments/return", response_class=HTMLResponse)
    def payment_return(
        order_id: str | None = Query(default=None, alias="orderId"),
        md_order: str | None = Query(default=None, alias="mdOrder"),
        order_number: str | None = Query(default=None, alias="orderNumber"),
        back: str | None = Query(default=None),
    ):
        """Bank redirect target. Verifies payment out of band, then bounces home."""

        try:
            result = reconciliation.reconcile(order_id=order_id or md_order, order_number=order_number, back=back)
        except ValidationError as exc:
            back_url = reconciliation.back_url(back, None)
            payload = {"confirmed": False, "voucherUrl": None, "message": str(exc), "orderRef": None, "state": None}
            html = render_return_page(str(exc), payload, back_url, settings.result_storage_key)
            return HTMLResponse(html, status_code=400)
        except ConfigurationError as exc:
            logger.error("reconciliation blocked, missing setting=%s", exc.setting)
            back_url = reconciliation.back_url(back, None)
            payload = {
                "confirmed": False,
                "voucherUrl": None,
                "message": MISCONFIGURED,
                "orderRef": order_id or md_order or order_number,
                "state": None,
            }
            html = render_return_page(MISCONFIGURED, payload, back_url, settings.result_storage_key)
            return HTMLResponse(html, status_code=500)
        html = render_return_page(result.message, result.client_payload(), result.back_url, settings.result_storage_key)
        return HTMLResponse(html)

    @app.get("/voucher")
    def download_voucher(doc: str | None = Query(default=None), token: str | None = Query(default=None)):
        """Stream a voucher PDF to whoever holds its signed link."""

        try:
            voucher = access.fetch(doc, token)
        except AccessError as exc:
            return PlainTextResponse(str(exc), status_code=exc.status_code)
        except ConfigurationError as exc:
            logger.error("voucher download blocked, missing setting=%s", exc.setting)
            return PlainTextResponse(MISCONFIGURED, status_code=500)
        return FileResponse(
            voucher.path,
            media_type=voucher.media_type,
            filename=voucher.filename,
            content_disposition_type="inline",
        )

    @app.post(STATUS_PATH)
    def payment_status(payload: dict[str, Any] = Body(...)):
        """Ops passthrough of the bank's raw status payload."""

        order_id = str(payload.get("orderId") or "").strip()
        order_number = str(payload.get("orderNumber") or "").strip()
        try:
            return bank.fetch_status(order_id=order_id or None, order_number=order_number or None)
        except ValidationError as exc:
            return JSONResponse({"error": "missing_parameters", "message": str(exc)}, status_code=400)
        except ConfigurationError as exc:
            logger.error("status check blocked, missing setting=%s", exc.setting)
            return JSONResponse({"error": "server_misconfigured", "message": MISCONFIGURED}, status_code=500)
        except GatewayError as exc:
            return JSONResponse({"error": "request_failed", "message": str(exc)}, status_code=502)

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        """Container health probe endpoint."""

        return {"ok": True}

    return app


settings = Settings()
configure_logging(settings)
app = create_app(settings)
