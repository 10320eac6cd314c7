"""File-backed voucher storage.

Layout under `vouchers_dir`:
    {doc_id}.pdf            rendered voucher
    {doc_id}.json           metadata sidecar (access control + traceability)
    by-order/{order_id}.json  fulfillment claim, created exclusively once per order
"""

import json
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from voucherpay.common.files import create_exclusive, is_safe_key, write_atomic


class VoucherMeta(BaseModel):
    """Metadata sidecar stored next to the artifact."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    doc_id: str
    order_id: str
    order_number: str
    email: str
    phone: str
    service_id: str
    service_name: str
    price: int
    created_at: datetime
    artifact: bool = False
    emailed: bool = False
    notified: bool = False


class VoucherStore:
    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.claims_dir = self.directory / "by-order"

    def artifact_path(self, doc_id: str) -> Path:
        return self.directory / f"{doc_id}.pdf"

    def _meta_path(self, doc_id: str) -> Path:
        return self.directory / f"{doc_id}.json"

    def claim(self, order_id: str, doc_id: str) -> str:
        """Bind `doc_id` to the order unless another doc already holds it.

        Returns the doc id that owns the order afterwards; equal to `doc_id`
        only for the caller that won the claim.
        """

        if not is_safe_key(order_id) or not is_safe_key(doc_id):
            raise ValueError(f"unsafe voucher key: {order_id!r}/{doc_id!r}")
        payload = json.dumps({"docId": doc_id, "orderId": order_id}).encode("utf-8")
        if create_exclusive(self.claims_dir / f"{order_id}.json", payload):
            return doc_id
        existing = self.doc_for_order(order_id)
        if existing is None:
            raise RuntimeError(f"claim for order {order_id} exists but is unreadable")
        return existing

    def release(self, order_id: str, doc_id: str) -> bool:
        """Drop the claim on `order_id` if `doc_id` still holds it, so the order can be issued again."""

        if self.doc_for_order(order_id) != doc_id:
            return False
        (self.claims_dir / f"{order_id}.json").unlink(missing_ok=True)
        return True

    def doc_for_order(self, order_id: str) -> str | None:
        if not is_safe_key(order_id):
            return None
        try:
            raw = (self.claims_dir / f"{order_id}.json").read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return json.loads(raw)["docId"]

    def save_meta(self, meta: VoucherMeta) -> None:
        write_atomic(self._meta_path(meta.doc_id), meta.model_dump_json(by_alias=True).encode("utf-8"))

    def load_meta(self, doc_id: str) -> VoucherMeta | None:
        if not is_safe_key(doc_id):
            return None
        try:
            raw = self._meta_path(doc_id).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return VoucherMeta.model_validate_json(raw)

    def save_artifact(self, doc_id: str, data: bytes) -> None:
        write_atomic(self.artifact_path(doc_id), data)

    def has_artifact(self, doc_id: str) -> bool:
        return is_safe_key(doc_id) and self.artifact_path(doc_id).is_file()
