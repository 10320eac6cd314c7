"""Return reconciliation: the bank redirected the browser back to us.

Nothing in the redirect is trusted beyond the order identifiers. Payment is
confirmed only by asking the bank, and fulfillment happens at most once per
order however many times the return page is hit.
"""

from voucherpay.common import state_machine as sm
from voucherpay.common.config import Settings
from voucherpay.common.errors import ConfigurationError, GatewayError, GatewayRejectedError, IssueError, ValidationError
from voucherpay.common.logging import logger, order_ref_ctx
from voucherpay.common.metrics import reconciliations_total
from voucherpay.common.normalize import safe_back_url
from voucherpay.services.bank_gateway.client import BankGatewayClient
from voucherpay.services.orders.models import OrderRecord
from voucherpay.services.orders.store import OrderStore
from voucherpay.services.reconciliation.schemas import ReconciliationResult
from voucherpay.services.vouchers.service import IssuedVoucher, VoucherIssuer

MSG_ISSUED = "Payment confirmed. Your voucher is ready."
MSG_DELAYED = "Payment confirmed, but your voucher is delayed. Please contact support quoting {ref}."
MSG_NOT_PAID = "Payment not confirmed."
MSG_UNAVAILABLE = "Could not verify the payment with the bank right now. Please reload this page later."
MSG_ORDER_MISSING = "Payment received but the order could not be found. Please contact support quoting {ref}."


class ReturnReconciliationService:
    def __init__(
        self,
        settings: Settings,
        bank: BankGatewayClient,
        orders: OrderStore,
        issuer: VoucherIssuer,
    ) -> None:
        self.settings = settings
        self.bank = bank
        self.orders = orders
        self.issuer = issuer

    def back_url(self, requested: str | None, record: OrderRecord | None) -> str:
        s = self.settings
        if not s.honor_client_back_url:
            requested = None
        candidate = requested or (record.back_url if record else None)
        return safe_back_url(candidate, s.public_base_url, s.allowed_back_hosts, s.default_back_url)

    def reconcile(
        self,
        order_id: str | None = None,
        order_number: str | None = None,
        back: str | None = None,
    ) -> ReconciliationResult:
        """Run one return hit through PENDING -> VERIFYING -> terminal state."""

        order_id = (order_id or "").strip() or None
        order_number = (order_number or "").strip() or None
        if not order_id and not order_number:
            raise ValidationError("orderId or orderNumber required")
        token = order_ref_ctx.set(order_id or order_number)
        try:
            result = self._reconcile(order_id, order_number, back)
        finally:
            order_ref_ctx.reset(token)
        reconciliations_total.labels(state=result.state).inc()
        return result

    def _find_record(self, order_id: str | None, order_number: str | None) -> OrderRecord | None:
        """Local record matching every identifier the redirect carried."""

        record = self.orders.lookup(order_id=order_id, order_number=order_number)
        if record is None:
            return None
        if order_id and record.order_id != order_id:
            logger.warning(
                "return identifiers disagree order_id=%s record_order_id=%s order_number=%s",
                order_id,
                record.order_id,
                order_number,
            )
            return None
        return record

    def _reconcile(self, order_id: str | None, order_number: str | None, back: str | None) -> ReconciliationResult:
        state = sm.PENDING
        record = self._find_record(order_id, order_number)
        order_ref = record.order_number if record else (order_number or order_id)
        back_url = self.back_url(back, record)

        def finish(new_state: str, confirmed: bool, message: str, voucher_url: str | None = None):
            sm.validate_transition(state, new_state)
            return ReconciliationResult(
                confirmed=confirmed,
                message=message,
                order_ref=order_ref,
                state=new_state,
                back_url=back_url,
                voucher_url=voucher_url,
            )

        sm.validate_transition(state, sm.VERIFYING)
        state = sm.VERIFYING
        # With a local record, only that record's bank order can authorize fulfillment.
        if record is not None:
            query = {"order_id": record.order_id}
        elif order_id:
            query = {"order_id": order_id}
        else:
            query = {"order_number": order_number}
        try:
            status = self.bank.query_status(**query)
        except GatewayRejectedError as exc:
            return finish(sm.PAYMENT_REJECTED, False, exc.user_message)
        except GatewayError as exc:
            logger.warning("status check failed: %s", exc)
            return finish(sm.GATEWAY_UNAVAILABLE, False, MSG_UNAVAILABLE)

        if not status.paid:
            logger.info("payment not confirmed order_status=%s", status.raw_status_code)
            return finish(sm.PAYMENT_REJECTED, False, MSG_NOT_PAID)
        bank_order_number = str(status.raw.get("orderNumber") or "")
        if record is not None and bank_order_number and bank_order_number != record.order_number:
            logger.error(
                "bank order number does not match record order_id=%s bank_order_number=%s record_order_number=%s",
                record.order_id,
                bank_order_number,
                record.order_number,
            )
            record = None
        if record is None:
            logger.error("bank reports paid order without local record order_id=%s order_number=%s", order_id, order_number)
            return finish(sm.ORDER_MISSING, False, MSG_ORDER_MISSING.format(ref=order_ref))

        voucher = self._fulfill(record)
        if voucher is None or voucher.access_url is None:
            return finish(sm.FULFILLED, True, MSG_DELAYED.format(ref=order_ref))
        return finish(sm.FULFILLED, True, MSG_ISSUED, voucher.access_url)

    def _fulfill(self, record: OrderRecord) -> IssuedVoucher | None:
        """Issue the voucher unless one already exists for this order."""

        try:
            existing = self.issuer.existing_for_order(record.order_id)
            if existing is not None:
                logger.info("order already fulfilled doc_id=%s", existing.doc_id)
                return existing
            return self.issuer.issue(record)
        except IssueError as exc:
            logger.error("voucher delayed doc_id=%s error=%s", exc.doc_id, exc)
            return None
        except ConfigurationError as exc:
            logger.error("voucher not issued, server misconfigured setting=%s", exc.setting)
            return None
