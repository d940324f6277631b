"""Typed failures raised by the workflows and mapped to HTTP responses."""


class StorefrontError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(StorefrontError):
    status_code = 400
    default_message = "Invalid input data"


class Unauthorized(StorefrontError):
    status_code = 401
    default_message = "Invalid or missing token"


class Forbidden(StorefrontError):
    status_code = 403
    default_message = "Access denied"


class NotFound(StorefrontError):
    status_code = 404
    default_message = "Not found"


class Conflict(StorefrontError):
    status_code = 409
    default_message = "Already exists"


class InvalidState(StorefrontError):
    status_code = 400
    default_message = "Operation not allowed in the current state"


class PaymentProviderError(StorefrontError):
    status_code = 400
    default_message = "Payment provider request failed"
