"""Typed results returned by the acquiring bank client."""

from typing import Any

from pydantic import BaseModel, Field


class RegisteredOrder(BaseModel):
    """Bank-side order created by `register.do`."""

    order_id: str
    form_url: str


class OrderStatus(BaseModel):
    """Interpreted `getOrderStatusExtended.do` answer."""

    paid: bool
    raw_status_code: int | None
    error_code: str = "0"
    error_message: str = ""
    raw: dict[str, Any] = Field(default_factory=dict)
