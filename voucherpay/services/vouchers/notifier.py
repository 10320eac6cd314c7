"""Outbound sale notification to the club's accounting endpoint."""

from datetime import datetime

import httpx

from voucherpay.common.config import Settings
from voucherpay.services.orders.models import OrderRecord


class SaleNotifier:
    """Posts one sale record per issued voucher. Callers treat it as best effort."""

    def __init__(self, settings: Settings, transport: httpx.BaseTransport | None = None) -> None:
        self.settings = settings
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.settings.notify_url)

    def build_payload(self, record: OrderRecord, doc_id: str, sold_at: datetime) -> dict:
        return {
            "club_id": self.settings.notify_club_id,
            "phone": record.customer_phone,
            "email": record.customer_email,
            "sale": {
                "goods": [{"id": record.service_id, "qnt": 1, "summ": record.price_major_units}],
                "cashless": 1,
                "docId": doc_id,
                "date": sold_at.strftime("%Y-%m-%dT%H:%M:%S"),
            },
        }

    def notify_sale(self, record: OrderRecord, doc_id: str, sold_at: datetime) -> None:
        s = self.settings
        headers = {}
        if s.notify_user_token:
            headers["usertoken"] = s.notify_user_token
        if s.notify_api_key:
            headers["apikey"] = s.notify_api_key
        auth = (s.notify_username, s.notify_password) if s.notify_username else None
        with httpx.Client(timeout=s.notify_timeout_seconds, transport=self.transport) as client:
            resp = client.post(
                s.notify_url,
                json=self.build_payload(record, doc_id, sold_at),
                headers=headers,
                auth=auth,
            )
        resp.raise_for_status()
