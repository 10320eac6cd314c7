"""Central environment-driven settings for the voucher payment service.

The process builds one `Settings` instance at startup and hands it to every
component (see `voucherpay.services.api.main.create_app`). Variables can also
come from a `.env` file in the working directory.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "voucherpay"
    log_level: str = "INFO"

    bank_base_url: str = "https://alfa.rbsuat.com/payment"
    bank_token: str = ""
    bank_username: str = ""
    bank_password: str = ""
    bank_verify_ssl: bool = True
    bank_timeout_seconds: float = 20.0
    bank_currency: str = "643"
    bank_language: str = "ru"

    public_base_url: str = "http://localhost:8000"
    return_path: str = "/payments/return"
    default_back_url: str = "/"
    allowed_back_hosts: list[str] = []
    honor_client_back_url: bool = True
    result_storage_key: str = "alfaPaymentResult"

    order_number_prefix: str = "ORD"
    order_store_backend: str = "file"
    orders_dir: str = "var/orders"
    database_url: str = "sqlite:///var/orders.db"

    vouchers_dir: str = "var/vouchers"
    voucher_secret: str = ""
    voucher_template_path: str = ""
    voucher_logo_path: str = ""
    voucher_font_path: str = ""

    smtp_host: str = ""
    smtp_port: int = 0
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "noreply@localhost"
    smtp_from_name: str = "Voucher desk"
    smtp_encryption: str = ""
    smtp_allow_self_signed: bool = False
    smtp_timeout_seconds: float = 30.0

    notify_url: str = ""
    notify_club_id: str = ""
    notify_username: str = ""
    notify_password: str = ""
    notify_user_token: str = ""
    notify_api_key: str = ""
    notify_timeout_seconds: float = 15.0

    otel_exporter_otlp_endpoint: str = ""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
