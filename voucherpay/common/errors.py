"""Error taxonomy shared by every component.

HTTP handlers map these onto status codes; services raise them and never
return error sentinels.
"""


class VoucherPayError(Exception):
    """Base class for all domain errors."""


class ValidationError(VoucherPayError):
    """Bad or missing client input; the message is safe to show the user."""


class ConfigurationError(VoucherPayError):
    """A mandatory server-side setting is missing.

    `setting` names the variable for the logs only; users get a generic
    message.
    """

    def __init__(self, setting: str, message: str | None = None) -> None:
        super().__init__(message or f"missing configuration: {setting}")
        self.setting = setting


class GatewayError(VoucherPayError):
    """The acquiring bank could not be used for this call."""

    user_message = "Payment gateway is temporarily unavailable"

    def __init__(self, message: str, operation: str = "") -> None:
        super().__init__(message)
        self.operation = operation


class GatewayUnavailableError(GatewayError):
    """Network failure or timeout before a response was received."""


class GatewayResponseError(GatewayError):
    """The bank answered with a non-2xx status or an unparseable body."""

    def __init__(self, message: str, operation: str = "", status_code: int | None = None) -> None:
        super().__init__(message, operation)
        self.status_code = status_code


class GatewayRejectedError(GatewayError):
    """The bank processed the call and returned a non-zero error code."""

    def __init__(self, error_code: str, error_message: str, operation: str = "") -> None:
        super().__init__(f"bank error {error_code}: {error_message}", operation)
        self.error_code = error_code
        self.error_message = error_message

    @property
    def user_message(self) -> str:
        return self.error_message or f"Payment was rejected by the bank (code {self.error_code})"


class AccessError(VoucherPayError):
    """Voucher download refused. Messages stay deliberately minimal."""

    status_code = 400


class AccessForbiddenError(AccessError):
    status_code = 403


class AccessNotFoundError(AccessError):
    status_code = 404


class IssueError(VoucherPayError):
    """Voucher rendering or storage failed after payment was confirmed."""

    def __init__(self, message: str, doc_id: str | None = None) -> None:
        super().__init__(message)
        self.doc_id = doc_id


class DuplicateOrderError(VoucherPayError):
    """An Order Record already exists under one of the keys."""
