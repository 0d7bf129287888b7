"""
Active status checks for providers whose webhooks cannot be relied on.

A completed status from the provider is turned into a ``PaymentEvent`` and
handed to the same reconciliation engine the webhooks use. Any provider
error is returned to the caller untouched: an error never becomes a
terminal status and never writes to the ledger.
"""
from dataclasses import dataclass
from typing import Optional

import structlog

from errors import MalformedPayload, ProviderUnavailable
from models import PaymentProvider, PaymentStatus
from services.card_provider_service import CARD_STATUS_MAP
from services.events import COMPLETED, PaymentEvent, as_int, event_from_qr_status
from services.ledger import LedgerStore
from services.qr_provider_service import QR_STATUS_MAP

logger = structlog.get_logger(__name__)

PROVIDER_ALIASES = {
    'qr': PaymentProvider.QR,
    PaymentProvider.QR: PaymentProvider.QR,
    'card': PaymentProvider.CARD,
    PaymentProvider.CARD: PaymentProvider.CARD,
}


@dataclass
class PolledStatus:
    status: str
    processed_at: Optional[str] = None
    payer_name: Optional[str] = None
    payer_account: Optional[str] = None
    payer_document: Optional[str] = None
    transaction_id: Optional[str] = None
    message: Optional[str] = None
    checked_provider: bool = True
    reconciliation: Optional[object] = None

    def to_dict(self):
        data = {
            'status': self.status,
            'processedAt': self.processed_at,
            'payerName': self.payer_name,
            'payerAccount': self.payer_account,
            'payerDocument': self.payer_document,
            'transactionId': self.transaction_id,
            'message': self.message,
        }
        return {k: v for k, v in data.items() if v is not None}


def _local_completed_status(donation):
    return PolledStatus(
        status='completed',
        processed_at=donation.qr_processed_at.isoformat() if donation.qr_processed_at else None,
        payer_name=donation.qr_payer_name,
        payer_account=donation.qr_payer_account,
        payer_document=donation.qr_payer_document,
        transaction_id=donation.qr_transaction_id or donation.card_payment_id,
        checked_provider=False
    )


class StatusPoller:
    def __init__(self, session, engine, qr_client=None, card_client=None):
        self.session = session
        self.store = LedgerStore(session)
        self.engine = engine
        self.qr_client = qr_client
        self.card_client = card_client

    async def poll(self, provider, alias):
        provider = PROVIDER_ALIASES.get(provider)
        if not alias:
            raise MalformedPayload("Alias is required")
        if provider == PaymentProvider.QR:
            return await self._poll_qr(alias)
        if provider == PaymentProvider.CARD:
            return await self._poll_card(alias)
        raise MalformedPayload("Unsupported provider")

    async def _poll_qr(self, alias):
        donation = self.store.find_donation_by_alias(alias)

        if donation is None:
            # An alias replaced by a newer QR; the client should generate a new one
            logger.info("qr_alias_not_found", alias=alias)
            return PolledStatus(status='expired', message='QR not found', checked_provider=False)

        if donation.payment_status == PaymentStatus.COMPLETED:
            logger.info("qr_status_short_circuit", alias=alias, donation_id=donation.id)
            return _local_completed_status(donation)

        if donation.payment_status == PaymentStatus.CANCELLED:
            return PolledStatus(status='cancelled', checked_provider=False)

        # Do not hold a read transaction open across the provider call
        self.session.rollback()

        if self.qr_client is None:
            raise ProviderUnavailable("QR provider not configured")
        raw = await self.qr_client.check_status(alias)

        status = QR_STATUS_MAP.get(str(raw.get('status') or '').upper())
        if status is None:
            logger.warning("qr_status_unknown", alias=alias, provider_status=raw.get('status'))
            raise ProviderUnavailable(f"Unknown provider status: {raw.get('status')}")

        result = PolledStatus(
            status=status,
            processed_at=raw.get('processedAt'),
            payer_name=raw.get('payerName'),
            payer_account=raw.get('payerAccount'),
            payer_document=raw.get('payerDocument'),
            transaction_id=raw.get('transactionId')
        )

        if status == COMPLETED:
            donation = self.store.find_donation_by_alias(alias)
            if donation is not None:
                result.reconciliation = self.engine.reconcile(event_from_qr_status(donation, raw))
        return result

    async def _poll_card(self, payment_id):
        donation = self.store.find_donation_by_card_payment(payment_id)
        if donation is not None and donation.payment_status == PaymentStatus.COMPLETED:
            logger.info("card_status_short_circuit", payment_id=payment_id, donation_id=donation.id)
            return _local_completed_status(donation)

        donation_id = donation.id if donation is not None else None
        self.session.rollback()

        if self.card_client is None:
            raise ProviderUnavailable("Card gateway not configured")
        data = await self.card_client.get_payment(payment_id)

        status = CARD_STATUS_MAP.get(str(data.get('status') or '').lower())
        if status is None:
            logger.warning("card_status_unknown", payment_id=payment_id, provider_status=data.get('status'))
            raise ProviderUnavailable(f"Unknown provider status: {data.get('status')}")

        result = PolledStatus(
            status=status,
            processed_at=data.get('completedAt') or data.get('updatedAt'),
            transaction_id=str(payment_id)
        )

        if status == COMPLETED:
            metadata = data.get('metadata') if isinstance(data.get('metadata'), dict) else {}
            details = dict(metadata)
            details['source'] = 'status_poll'
            if data.get('stripeSessionId'):
                details['sessionId'] = str(data['stripeSessionId'])
            event = PaymentEvent(
                provider=PaymentProvider.CARD,
                provider_payment_id=str(payment_id),
                outcome=COMPLETED,
                donation_id=donation_id or metadata.get('donationId'),
                campaign_id=metadata.get('campaignId'),
                donor_id=metadata.get('donorId'),
                amount_cents=as_int(data.get('amount')),
                currency=str(data.get('currency') or 'BOB'),
                metadata=details
            )
            result.reconciliation = self.engine.reconcile(event)
        return result
