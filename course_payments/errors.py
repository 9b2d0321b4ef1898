class PaymentServiceError(Exception):
    """Base error for request handling. Maps onto an HTTP status."""

    status_code = 500
    public_message = "Internal Server Error"

    def __init__(self, message: str = None, public_message: str = None):
        super().__init__(message or self.public_message)
        if public_message is not None:
            self.public_message = public_message


class ValidationError(PaymentServiceError):
    status_code = 400
    public_message = "Invalid request"


class SignatureError(PaymentServiceError):
    status_code = 400
    public_message = "Invalid signature"


class UpstreamError(PaymentServiceError):
    status_code = 500
    public_message = "Internal Server Error"


class StoreError(UpstreamError):
    """The spreadsheet API rejected or failed a call."""


class GatewayError(UpstreamError):
    """The payment gateway rejected or failed a call."""


class ConfigurationError(RuntimeError):
    pass
