"""
Order engine error taxonomy.

Every error raised by the order services derives from OrderError and carries
the HTTP status the routes answer with. Anything that is not an OrderError is
an unexpected failure: routes log it with full detail and answer 500 with a
generic message.
"""


class OrderError(Exception):
    """Base class for order engine errors."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(OrderError):
    """Missing or malformed input. Raised before any transaction is opened."""
    status_code = 400


class AuthorizationError(OrderError):
    """Principal is outside the requested shop/branch or lacks a role."""
    status_code = 403


class NotFoundError(OrderError):
    """Entity absent or outside the principal's scope."""
    status_code = 404


class BusinessRuleViolation(OrderError):
    """Request is well formed but breaks an order rule."""
    status_code = 400


class ProductNotFound(NotFoundError):
    pass


class InsufficientStock(BusinessRuleViolation):
    pass


class PriceMismatch(BusinessRuleViolation):
    pass


class InsufficientPayment(BusinessRuleViolation):
    pass


class InvalidTransition(BusinessRuleViolation):
    """Order status does not allow the requested transition."""
    pass


class RefundExceedsTotal(BusinessRuleViolation):
    pass


class TransientConflict(OrderError):
    """Lock wait timeout that outlived the retry budget."""
    status_code = 503

    def __init__(self, message: str = "Order could not be processed due to a conflicting update, please retry",
                 details: dict | None = None):
        super().__init__(message, details)
