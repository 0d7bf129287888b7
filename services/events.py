"""
Normalized payment events.

Both providers, and both delivery paths (push webhooks and polled status
checks), are reduced to a ``PaymentEvent`` before anything touches the
ledger.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from errors import MalformedPayload
from models import PaymentProvider

COMPLETED = 'completed'
FAILED = 'failed'
OUTCOMES = (COMPLETED, FAILED)

CARD_EVENT_OUTCOMES = {
    'payment.completed': COMPLETED,
    'payment.failed': FAILED,
}

CENTS = Decimal('100')


def to_decimal(value, default=None):
    if value is None or value == '':
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def to_cents(amount):
    value = to_decimal(amount, Decimal('0'))
    return int((value * CENTS).quantize(Decimal('1')))


def parse_datetime(value):
    """Accepts ISO-8601 and the QR provider's dd/MM/yyyy [HH:mm[:ss]] formats."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    try:
        parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
        return parsed.replace(tzinfo=None)
    except ValueError:
        pass
    for fmt in ('%d/%m/%Y %H:%M:%S', '%d/%m/%Y %H:%M', '%d/%m/%Y'):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


@dataclass
class PaymentEvent:
    provider: str
    provider_payment_id: str
    outcome: str
    donation_id: Optional[str] = None
    campaign_id: Optional[str] = None
    donor_id: Optional[str] = None
    amount_cents: int = 0
    currency: str = 'BOB'
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.provider not in (PaymentProvider.CARD, PaymentProvider.QR):
            raise MalformedPayload(f"Unknown provider: {self.provider}")
        if self.outcome not in OUTCOMES:
            raise MalformedPayload(f"Unsupported outcome: {self.outcome}")
        if not self.provider_payment_id:
            raise MalformedPayload("Missing provider payment id")
        self.provider_payment_id = str(self.provider_payment_id)
        self.donation_id = str(self.donation_id) if self.donation_id else None
        self.metadata = dict(self.metadata or {})

    @property
    def provider_amount(self):
        """Total charged by the provider, in major units."""
        return Decimal(self.amount_cents or 0) / CENTS

    @property
    def base_amount(self):
        return to_decimal(self.metadata.get('amount'))

    @property
    def tip_amount(self):
        return to_decimal(self.metadata.get('tipAmount'))

    def audit_dict(self):
        return {
            'provider': self.provider,
            'providerPaymentId': self.provider_payment_id,
            'outcome': self.outcome,
            'donationId': self.donation_id,
            'campaignId': self.campaign_id,
            'donorId': self.donor_id,
            'amountCents': self.amount_cents,
            'currency': self.currency,
            'providerMetadata': self.metadata,
        }


def as_int(value):
    try:
        return int(Decimal(str(value)))
    except (InvalidOperation, ValueError, TypeError):
        return 0


def event_from_card_webhook(body):
    """
    Builds an event from a card gateway webhook body.

    Returns None for event types that carry no payment outcome. The flat
    payload variant (fields next to ``event`` instead of under ``data``) is
    accepted as well.
    """
    if not isinstance(body, dict):
        raise MalformedPayload("Payload must be a JSON object")

    event_name = body.get('event')
    data = body.get('data')
    if data is None and 'paymentId' in body:
        data = body

    if not event_name or not isinstance(data, dict):
        raise MalformedPayload("Missing event or data")
    if not isinstance(event_name, str):
        raise MalformedPayload("Invalid event type")

    outcome = CARD_EVENT_OUTCOMES.get(event_name)
    if outcome is None:
        return None

    payment_id = data.get('paymentId')
    if not payment_id:
        raise MalformedPayload("Missing paymentId")

    metadata = data.get('metadata')
    if not isinstance(metadata, dict):
        metadata = {}
    details = dict(metadata)
    details['event'] = event_name
    if data.get('stripeSessionId'):
        details['sessionId'] = str(data['stripeSessionId'])

    return PaymentEvent(
        provider=PaymentProvider.CARD,
        provider_payment_id=str(payment_id),
        outcome=outcome,
        donation_id=metadata.get('donationId') or None,
        campaign_id=metadata.get('campaignId') or None,
        donor_id=metadata.get('donorId') or None,
        amount_cents=as_int(data.get('amount')),
        currency=str(data.get('currency') or 'BOB'),
        metadata=details
    )


def charged_amount(donation):
    """Amount charged to the donor: base amount plus tip."""
    return Decimal(str(donation.amount)) + Decimal(str(donation.tip_amount or 0))


def event_from_qr_status(donation, status_data, source='status_poll'):
    """Completed event for a QR donation, keyed by its alias."""
    status_data = status_data or {}
    return PaymentEvent(
        provider=PaymentProvider.QR,
        provider_payment_id=donation.qr_alias,
        outcome=COMPLETED,
        donation_id=donation.id,
        campaign_id=donation.campaign_id,
        donor_id=donation.donor_id,
        amount_cents=to_cents(charged_amount(donation)),
        currency=donation.currency,
        metadata={
            'source': source,
            'amount': str(donation.amount),
            'transactionId': status_data.get('transactionId'),
            'payerName': status_data.get('payerName'),
            'payerAccount': status_data.get('payerAccount'),
            'payerDocument': status_data.get('payerDocument'),
            'processedAt': status_data.get('processedAt'),
        }
    )


def event_from_qr_callback(donation, body):
    """Completed event from the QR provider's push callback body."""
    return PaymentEvent(
        provider=PaymentProvider.QR,
        provider_payment_id=donation.qr_alias,
        outcome=COMPLETED,
        donation_id=donation.id,
        campaign_id=donation.campaign_id,
        donor_id=donation.donor_id,
        amount_cents=to_cents(body.get('monto')),
        currency=str(body.get('moneda') or donation.currency),
        metadata={
            'source': 'callback',
            'amount': str(donation.amount),
            'transactionId': body.get('numeroOrdenOriginante'),
            'payerName': body.get('nombreCliente'),
            'payerAccount': body.get('cuentaCliente'),
            'payerDocument': body.get('documentoCliente'),
            'processedAt': body.get('fechaproceso') or body.get('fechaProceso'),
        }
    )
