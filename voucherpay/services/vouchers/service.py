"""Voucher issuance for confirmed orders.

Writes the metadata sidecar first (traceability), then the rendered PDF, then
runs the best-effort side effects (e-mail, sale notification). A failed
render still leaves metadata behind and surfaces as `IssueError`; failed side
effects are only logged and counted.
"""

from datetime import datetime, timezone
from html import escape
from urllib.parse import urlencode
from uuid import uuid4

from pydantic import BaseModel

from voucherpay.common.config import Settings
from voucherpay.common.errors import ConfigurationError, IssueError
from voucherpay.common.logging import doc_id_ctx, logger
from voucherpay.common.metrics import side_effect_failures_total, vouchers_issued_total
from voucherpay.services.orders.models import OrderRecord
from voucherpay.services.vouchers import tokens
from voucherpay.services.vouchers.mailer import SmtpMailer
from voucherpay.services.vouchers.notifier import SaleNotifier
from voucherpay.services.vouchers.renderer import VoucherRenderer
from voucherpay.services.vouchers.store import VoucherMeta, VoucherStore


class IssuedVoucher(BaseModel):
    doc_id: str
    access_url: str | None
    artifact_available: bool
    newly_issued: bool = True
    emailed: bool = False
    notified: bool = False


def format_price(value: int) -> str:
    return f"{value:,}".replace(",", " ")


class VoucherIssuer:
    """Produces, persists and delivers the voucher for one paid order."""

    def __init__(
        self,
        settings: Settings,
        store: VoucherStore,
        renderer: VoucherRenderer,
        mailer: SmtpMailer,
        notifier: SaleNotifier,
    ) -> None:
        self.settings = settings
        self.store = store
        self.renderer = renderer
        self.mailer = mailer
        self.notifier = notifier

    def _secret(self) -> str:
        if not self.settings.voucher_secret:
            raise ConfigurationError("VOUCHER_SECRET", "voucher secret is not configured")
        return self.settings.voucher_secret

    def access_url(self, doc_id: str, email: str) -> str:
        token = tokens.sign(self._secret(), doc_id, email)
        base = self.settings.public_base_url.rstrip("/")
        return f"{base}/voucher?{urlencode({'doc': doc_id, 'token': token})}"

    def existing_for_order(self, order_id: str) -> IssuedVoucher | None:
        """The voucher already bound to this order, or None if it was never fulfilled."""

        doc_id = self.store.doc_for_order(order_id)
        if doc_id is None:
            return None
        meta = self.store.load_meta(doc_id)
        available = meta is not None and self.store.has_artifact(doc_id)
        return IssuedVoucher(
            doc_id=doc_id,
            access_url=self.access_url(doc_id, meta.email) if available else None,
            artifact_available=available,
            newly_issued=False,
            emailed=meta.emailed if meta else False,
            notified=meta.notified if meta else False,
        )

    def issue(self, record: OrderRecord) -> IssuedVoucher:
        """Issue the voucher for `record`.

        Raises `IssueError` when no openable artifact could be produced; the
        payment stays confirmed regardless.
        """

        self._secret()
        doc_id = str(uuid4())
        try:
            owner = self.store.claim(record.order_id, doc_id)
        except OSError as exc:
            logger.exception("voucher claim failed order_id=%s", record.order_id)
            raise IssueError("voucher claim could not be stored") from exc
        if owner != doc_id:
            logger.info("voucher already claimed order_id=%s doc_id=%s", record.order_id, owner)
            return self.existing_for_order(record.order_id)

        token = doc_id_ctx.set(doc_id)
        try:
            return self._issue_claimed(record, doc_id)
        finally:
            doc_id_ctx.reset(token)

    def _issue_claimed(self, record: OrderRecord, doc_id: str) -> IssuedVoucher:
        issued_at = datetime.now(timezone.utc)
        url = self.access_url(doc_id, record.customer_email)
        meta = VoucherMeta(
            doc_id=doc_id,
            order_id=record.order_id,
            order_number=record.order_number,
            email=record.customer_email,
            phone=record.customer_phone,
            service_id=record.service_id,
            service_name=record.service_name,
            price=record.price_major_units,
            created_at=issued_at,
        )
        try:
            self.store.save_meta(meta)
        except OSError as exc:
            logger.exception("voucher metadata write failed order_id=%s", record.order_id)
            # Nothing durable was issued under this doc id; the next return starts over.
            try:
                self.store.release(record.order_id, doc_id)
            except OSError:
                logger.exception("voucher claim release failed order_id=%s", record.order_id)
            raise IssueError("voucher metadata could not be stored") from exc

        render_error = None
        try:
            pdf = self.renderer.render(self._context(record, doc_id, issued_at, url), qr_payload=url)
            self.store.save_artifact(doc_id, pdf)
            meta.artifact = True
        except Exception as exc:
            render_error = exc
            side_effect_failures_total.labels(channel="render").inc()
            logger.exception("voucher rendering failed order_id=%s", record.order_id)

        meta.notified = self._notify(record, doc_id, issued_at)
        meta.emailed = self._email(record, doc_id, url if meta.artifact else None)
        try:
            self.store.save_meta(meta)
        except OSError:
            logger.exception("voucher metadata update failed order_id=%s", record.order_id)

        vouchers_issued_total.labels(artifact=str(meta.artifact).lower()).inc()
        if render_error is not None:
            raise IssueError("voucher could not be rendered", doc_id) from render_error
        logger.info("voucher issued order_id=%s emailed=%s notified=%s", record.order_id, meta.emailed, meta.notified)
        return IssuedVoucher(
            doc_id=doc_id,
            access_url=url,
            artifact_available=True,
            emailed=meta.emailed,
            notified=meta.notified,
        )

    @staticmethod
    def _context(record: OrderRecord, doc_id: str, issued_at: datetime, url: str) -> dict[str, str]:
        return {
            "doc_id": doc_id,
            "date": issued_at.strftime("%Y-%m-%d %H:%M UTC"),
            "service_name": record.service_name,
            "price": format_price(record.price_major_units),
            "visits": record.visits or "-",
            "freezing": record.freezing_days or "-",
            "phone": record.customer_phone,
            "email": record.customer_email,
            "voucher_url": url,
        }

    def _notify(self, record: OrderRecord, doc_id: str, issued_at: datetime) -> bool:
        if not self.notifier.enabled:
            return False
        try:
            self.notifier.notify_sale(record, doc_id, issued_at)
        except Exception:
            side_effect_failures_total.labels(channel="notify").inc()
            logger.exception("sale notification failed order_id=%s", record.order_id)
            return False
        return True

    def _email(self, record: OrderRecord, doc_id: str, url: str | None) -> bool:
        if not self.mailer.enabled:
            return False
        if url:
            link = f'<p>Download: <a href="{escape(url)}">{escape(url)}</a></p>'
            attachment = self.store.artifact_path(doc_id)
        else:
            link = (
                "<p>Your voucher could not be generated yet. Please contact support quoting "
                f"order <b>{escape(record.order_number)}</b>.</p>"
            )
            attachment = None
        body = (
            "<p>Hello!</p>"
            f"<p>Your purchase of <b>{escape(record.service_name)}</b> is confirmed "
            f"(document <b>{doc_id}</b>).</p>{link}"
        )
        try:
            self.mailer.send(
                record.customer_email,
                f"Your voucher: {record.service_name}",
                body,
                attachment=attachment,
                attachment_name=f"voucher_{doc_id}.pdf",
            )
        except Exception:
            side_effect_failures_total.labels(channel="email").inc()
            logger.exception("voucher email failed order_id=%s", record.order_id)
            return False
        return True
