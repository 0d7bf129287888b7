import logging

from errors import ProviderUnavailable
from services.events import to_cents
from services.provider_base import ProviderClient, with_retry

logger = logging.getLogger(__name__)

CARD_STATUS_MAP = {
    'pending': 'pending',
    'processing': 'pending',
    'requires_payment_method': 'pending',
    'completed': 'completed',
    'succeeded': 'completed',
    'paid': 'completed',
    'failed': 'failed',
    'expired': 'expired',
    'cancelled': 'cancelled',
    'canceled': 'cancelled',
}


class CardProviderService(ProviderClient):
    """Card payment gateway: hosted payment links and payment lookups."""

    def __init__(self, base_url, api_key, timeout_seconds=12.0, max_retries=2, transport=None):
        super().__init__(base_url, timeout_seconds=timeout_seconds, max_retries=max_retries, transport=transport)
        self.api_key = api_key

    @classmethod
    def from_config(cls, config, transport=None):
        return cls(
            config['CARD_API_URL'],
            config.get('CARD_API_KEY'),
            timeout_seconds=config.get('PROVIDER_TIMEOUT_SECONDS', 12.0),
            max_retries=config.get('PROVIDER_MAX_RETRIES', 2),
            transport=transport
        )

    @property
    def headers(self):
        return {'X-API-Key': self.api_key or ''}

    @with_retry(max_retries=2, delay=0.5)
    async def create_payment_link(self, amount, currency, metadata, success_url=None, failed_url=None):
        """Creates a hosted checkout link; ``amount`` in major units, sent in cents."""
        payload = {
            'amount': to_cents(amount),
            'currency': currency,
            'metadata': {k: str(v) for k, v in (metadata or {}).items() if v is not None},
            'successUrl': success_url,
            'failedUrl': failed_url
        }
        response = await self._send('POST', '/api/v1/payment-links', json=payload, headers=self.headers)

        if response.status_code >= 400:
            logger.error(f"Card gateway error creating payment link: {response.status_code} {response.text[:200]}")
            raise ProviderUnavailable(f"Card gateway error: {response.status_code}")

        data = self._json(response)
        checkout_url = data.get('checkoutUrl') or data.get('url')
        if not checkout_url:
            raise ProviderUnavailable("Card gateway returned no checkout url")

        return {
            'paymentId': data.get('paymentId'),
            'paymentLinkId': data.get('id') or data.get('paymentLinkId'),
            'checkoutUrl': checkout_url
        }

    @with_retry(max_retries=2, delay=0.5)
    async def get_payment(self, payment_id):
        response = await self._send('GET', f'/payment/{payment_id}', headers=self.headers)

        if response.status_code >= 400:
            logger.warning(f"Card gateway error fetching payment {payment_id}: {response.status_code}")
            raise ProviderUnavailable(f"Card gateway error: {response.status_code}")

        return self._json(response)
