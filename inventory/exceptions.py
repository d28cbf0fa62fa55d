"""
Error types raised by the request fulfillment and transfer services.

Every error carries a stable ``code`` and the HTTP status the API layer
renders it with. ``StockConflictError`` subclasses are the only errors expected
under normal concurrent load: the live quantity changed underneath the caller,
and an operator has to re-resolve rather than blindly retry.
"""


class FulfillmentError(Exception):
    code = 'fulfillment_error'
    status_code = 400

    def __init__(self, message, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def as_dict(self):
        payload = {'error': self.code, 'detail': self.message}
        payload.update({key: str(value) for key, value in self.context.items()})
        return payload


class ValidationError(FulfillmentError):
    """Malformed input, detected before any write."""
    code = 'validation_error'
    status_code = 400


class NotFoundError(FulfillmentError):
    code = 'not_found'
    status_code = 404


class AuthorizationError(FulfillmentError):
    """The approval policy denied the actor."""
    code = 'not_authorized'
    status_code = 403


class InvalidTransitionError(FulfillmentError):
    """Illegal state edge, including resolving something already resolved."""
    code = 'invalid_transition'
    status_code = 409


class StockConflictError(FulfillmentError):
    status_code = 409
    retryable_by_operator = True


class StaleSufficiencyError(StockConflictError):
    """Source stock fell below the required quantity after the notification was raised."""
    code = 'stale_sufficiency'


class InsufficientStockError(StockConflictError):
    """A ledger debit would take an inventory record below zero."""
    code = 'insufficient_stock'
