from .campaign import Campaign
from .donation import Donation, PaymentMethod, PaymentProvider, PaymentStatus
from .payment_log import PaymentLog
from .provider_token import ProviderToken

__all__ = [
    'Campaign',
    'Donation',
    'PaymentLog',
    'PaymentMethod',
    'PaymentProvider',
    'PaymentStatus',
    'ProviderToken',
]
