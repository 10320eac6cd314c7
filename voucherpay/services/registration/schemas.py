"""Purchase request/response shapes for payment registration."""

from pydantic import BaseModel


class PurchaseRequest(BaseModel):
    """Validated, normalized purchase request."""

    service_id: str
    service_name: str
    price_major_units: int
    phone: str
    email: str
    visits: str | None = None
    freezing_days: str | None = None
    back_url: str | None = None


class RegistrationResult(BaseModel):
    form_url: str
    order_id: str
    order_number: str
