"""Signed voucher downloads."""

from pathlib import Path

from pydantic import BaseModel

from voucherpay.common.config import Settings
from voucherpay.common.errors import AccessError, AccessForbiddenError, AccessNotFoundError, ConfigurationError
from voucherpay.common.logging import logger
from voucherpay.common.metrics import voucher_access_total
from voucherpay.services.vouchers import tokens
from voucherpay.services.vouchers.store import VoucherStore


class VoucherFile(BaseModel):
    path: Path
    size: int
    filename: str
    media_type: str = "application/pdf"


class VoucherAccessGateway:
    def __init__(self, settings: Settings, store: VoucherStore) -> None:
        self.settings = settings
        self.store = store

    def fetch(self, doc_id: str | None, token: str | None) -> VoucherFile:
        """Check the token for `doc_id` and locate its PDF."""

        if not doc_id or not token:
            voucher_access_total.labels(outcome="bad_request").inc()
            raise AccessError("Missing doc or token")
        if not self.settings.voucher_secret:
            raise ConfigurationError("VOUCHER_SECRET", "voucher secret is not configured")

        meta = self.store.load_meta(doc_id)
        if meta is None or not meta.email:
            voucher_access_total.labels(outcome="not_found").inc()
            raise AccessNotFoundError("Voucher not found")
        if not tokens.verify(self.settings.voucher_secret, doc_id, meta.email, token):
            voucher_access_total.labels(outcome="forbidden").inc()
            logger.warning("voucher token mismatch doc_id=%s", doc_id)
            raise AccessForbiddenError("Invalid token")
        if not self.store.has_artifact(doc_id):
            voucher_access_total.labels(outcome="not_found").inc()
            raise AccessNotFoundError("Voucher not found")

        path = self.store.artifact_path(doc_id)
        voucher_access_total.labels(outcome="ok").inc()
        return VoucherFile(path=path, size=path.stat().st_size, filename=f"{doc_id}.pdf")
