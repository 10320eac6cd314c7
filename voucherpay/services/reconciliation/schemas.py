"""Reconciliation result handed back to the browser."""

from pydantic import BaseModel


class ReconciliationResult(BaseModel):
    confirmed: bool
    message: str
    order_ref: str
    state: str
    back_url: str
    voucher_url: str | None = None

    def client_payload(self) -> dict:
        """The object stored client side under the result key."""

        return {
            "confirmed": self.confirmed,
            "voucherUrl": self.voucher_url,
            "message": self.message,
            "orderRef": self.order_ref,
            "state": self.state,
        }
