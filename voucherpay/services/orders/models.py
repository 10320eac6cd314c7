"""Order Record shape and its SQL table.

An Order Record is written once, after the bank accepted the registration,
and answers "what was this payment for" during reconciliation.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field
from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from voucherpay.common.db import Base


class OrderRecord(BaseModel):
    """Pending-order metadata keyed by bank `order_id` and local `order_number`."""

    order_id: str
    order_number: str
    service_id: str
    service_name: str
    price_major_units: int = Field(gt=0)
    currency: str = "643"
    visits: str | None = None
    freezing_days: str | None = None
    customer_phone: str
    customer_email: str
    back_url: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class OrderRow(Base):
    """One row per order; both identifiers are unique keys of the same row."""

    __tablename__ = "orders"

    order_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    order_number: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    service_id: Mapped[str] = mapped_column(String)
    service_name: Mapped[str] = mapped_column(String)
    price_major_units: Mapped[int] = mapped_column(Integer)
    currency: Mapped[str] = mapped_column(String(3))
    visits: Mapped[str | None] = mapped_column(String, nullable=True)
    freezing_days: Mapped[str | None] = mapped_column(String, nullable=True)
    customer_phone: Mapped[str] = mapped_column(String)
    customer_email: Mapped[str] = mapped_column(String)
    back_url: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    @classmethod
    def from_record(cls, record: OrderRecord) -> "OrderRow":
        return cls(**record.model_dump())

    def to_record(self) -> OrderRecord:
        created_at = self.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return OrderRecord(
            order_id=self.order_id,
            order_number=self.order_number,
            service_id=self.service_id,
            service_name=self.service_name,
            price_major_units=self.price_major_units,
            currency=self.currency,
            visits=self.visits,
            freezing_days=self.freezing_days,
            customer_phone=self.customer_phone,
            customer_email=self.customer_email,
            back_url=self.back_url,
            created_at=created_at,
        )
