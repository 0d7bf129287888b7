import logging
import requests

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Fire-and-forget notifications; the donation ledger never depends on delivery."""

    def __init__(self, url=None, timeout=3):
        self.url = url
        self.timeout = timeout

    def donation_completed(self, donation):
        payload = {
            'type': 'donation.completed',
            'donationId': donation.id,
            'campaignId': donation.campaign_id,
            'donorId': None if donation.is_anonymous else donation.donor_id,
            'amount': float(donation.amount),
            'currency': donation.currency
        }
        logger.info(f"Donation completed notification: {payload}")

        if not self.url:
            return False

        response = requests.post(self.url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        return True
