# barstock/errors.py
# Domain errors raised by services and translated to HTTP responses in main.py


class BarStockError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(BarStockError):
    status_code = 404
    default_message = "Not found"


class Forbidden(BarStockError):
    status_code = 403
    default_message = "Forbidden"


class Conflict(BarStockError):
    status_code = 409
    default_message = "Conflict"


class InvalidInput(BarStockError):
    status_code = 400
    default_message = "Invalid input"


class InvalidQuantity(InvalidInput):
    default_message = "Quantity must be a positive number"


class StorageError(BarStockError):
    status_code = 500
    default_message = "Database error"


class AuthError(BarStockError):
    status_code = 401
    default_message = "Invalid token"

    def __init__(self, message: str = None, expired: bool = False):
        super().__init__(message)
        self.expired = expired


class ExternalServiceError(BarStockError):
    status_code = 502
    default_message = "Upstream service error"


class ServiceUnavailable(BarStockError):
    status_code = 503
    default_message = "Service not configured"
