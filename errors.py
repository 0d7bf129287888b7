"""
Exceptions raised by the payment core and rendered by the HTTP layer.

Outcomes such as an orphan event or an already processed event are not
errors and never appear here.
"""


class PaymentError(Exception):
    status_code = 500
    message = "Internal error"

    def __init__(self, message=None, **context):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.context = context

    def to_dict(self):
        return {'success': False, 'error': self.message}


class SignatureInvalid(PaymentError):
    status_code = 401
    message = "Unauthorized"


class MalformedPayload(PaymentError):
    status_code = 400
    message = "Invalid payload"


class ProviderUnavailable(PaymentError):
    """Provider call failed or timed out; safe to retry, nothing was written."""
    status_code = 502
    message = "Payment provider unavailable"


class StorageFailure(PaymentError):
    status_code = 500
    message = "Storage failure"


class DonationNotFound(PaymentError):
    status_code = 404
    message = "Donation not found"


class DonationStateError(PaymentError):
    status_code = 409
    message = "Invalid donation state"
