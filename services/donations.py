"""
Donation lifecycle outside provider reconciliation: creating the pending
row, attaching a QR code and the operator/donor cancel action.

Payment state machine::

    pending   -> completed | failed | cancelled
    failed    -> completed | cancelled
    completed -> (nothing)
    cancelled -> (nothing)

Only the reconciliation engine moves a donation to completed or failed;
cancelled is reachable only through ``cancel_donation``.
"""
import time
from datetime import datetime, timedelta
from decimal import Decimal

import structlog

from errors import DonationNotFound, DonationStateError, MalformedPayload
from models import Donation, PaymentMethod, PaymentProvider, PaymentStatus
from services.events import charged_amount
from services.ledger import LedgerStore

logger = structlog.get_logger(__name__)

TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED},
    PaymentStatus.FAILED: {PaymentStatus.COMPLETED, PaymentStatus.CANCELLED},
    PaymentStatus.COMPLETED: set(),
    PaymentStatus.CANCELLED: set(),
}

QR_VALIDITY = timedelta(days=1)


def can_transition(current, target):
    return target in TRANSITIONS.get(current, set())


def create_donation(session, campaign_id, amount, payment_method, donor_id=None, tip_amount=None,
                    is_anonymous=False, message=None, currency='BOB'):
    """Creates the pending donation row; its id is the correlation id sent to providers."""
    method = PaymentMethod.from_client(payment_method)
    if method == PaymentMethod.CREDIT_CARD:
        provider = PaymentProvider.CARD
    elif method == PaymentMethod.QR:
        provider = PaymentProvider.QR
    else:
        provider = PaymentProvider.NONE

    donation = Donation(
        campaign_id=campaign_id,
        donor_id=None if is_anonymous else donor_id,
        is_anonymous=bool(is_anonymous),
        amount=Decimal(str(amount)),
        tip_amount=Decimal(str(tip_amount)) if tip_amount not in (None, '') else None,
        currency=currency,
        payment_status=PaymentStatus.PENDING,
        payment_provider=provider,
        payment_method=method,
        message=message or None
    )
    LedgerStore(session).add_donation(donation)
    session.commit()

    logger.info(
        "donation_created",
        donation_id=donation.id,
        campaign_id=campaign_id,
        amount=float(donation.amount),
        method=method
    )
    return donation


async def attach_payment_link(session, donation, card_client, site_url):
    link = await card_client.create_payment_link(
        charged_amount(donation),
        donation.currency,
        {
            'donationId': donation.id,
            'campaignId': donation.campaign_id,
            'donorId': donation.donor_id,
            'amount': str(donation.amount),
            'tipAmount': str(donation.tip_amount) if donation.tip_amount is not None else None
        },
        success_url=f"{site_url.rstrip('/')}/donate/success?donationId={donation.id}",
        failed_url=f"{site_url.rstrip('/')}/donate/failed?donationId={donation.id}"
    )

    donation.card_payment_id = link.get('paymentId')
    donation.card_payment_link_id = link.get('paymentLinkId')
    donation.card_checkout_url = link['checkoutUrl']
    donation.payment_provider = PaymentProvider.CARD
    session.commit()
    return link


def build_alias(prefix, donation_id, now=None):
    """``{PREFIX}-{last uuid group}-{unix ts}``; a new alias per generated QR."""
    short_id = donation_id.split('-')[-1] if '-' in donation_id else donation_id[-8:]
    timestamp = int(now if now is not None else time.time())
    return f"{prefix}-{short_id}-{timestamp}"


async def attach_qr(session, donation, qr_client, prefix, description='Donation'):
    if donation.payment_status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
        raise DonationStateError(f"Cannot generate a QR for a {donation.payment_status} donation")

    alias = build_alias(prefix, donation.id)
    expires_at = datetime.utcnow() + QR_VALIDITY
    # Captured before the provider call; the session may be rolled back by token refreshes
    donation_id = donation.id
    amount = charged_amount(donation)
    currency = donation.currency

    qr = await qr_client.generate_qr(
        alias,
        amount,
        currency,
        description,
        expires_at.strftime('%d/%m/%Y')
    )

    donation = LedgerStore(session).get_donation(donation_id)
    donation.qr_alias = alias
    donation.qr_id = qr.get('qrId')
    donation.qr_image = qr.get('qrImage')
    donation.qr_expires_at = expires_at
    donation.payment_provider = PaymentProvider.QR
    donation.payment_method = PaymentMethod.QR
    session.commit()

    logger.info("qr_generated", donation_id=donation_id, alias=alias)
    return {
        'alias': alias,
        'qrId': qr.get('qrId'),
        'qrImage': qr.get('qrImage'),
        'expiresAt': expires_at.strftime('%d/%m/%Y %H:%M')
    }


async def cancel_donation(session, donation_id, reason=None, actor_id=None, qr_client=None):
    """
    Cancels a pending or failed donation. Cancelling a completed donation is a
    domain error; cancelling twice is a no-op.
    """
    store = LedgerStore(session)
    donation = store.get_donation(donation_id)
    if donation is None:
        raise DonationNotFound()

    if donation.payment_status == PaymentStatus.CANCELLED:
        return donation, False

    if not can_transition(donation.payment_status, PaymentStatus.CANCELLED):
        raise DonationStateError("Cannot cancel a completed payment")

    provider_disabled = None
    alias = donation.qr_alias
    if alias and donation.payment_provider == PaymentProvider.QR and qr_client is not None:
        session.rollback()
        provider_disabled = await qr_client.disable_qr(alias)
        if not provider_disabled:
            # QR may already be expired or disabled on the provider side
            logger.warning("qr_disable_failed", donation_id=donation_id, alias=alias)

    # Re-read under lock: a completion may have landed during the provider call
    donation = store.get_donation(donation_id, lock=True)
    if not can_transition(donation.payment_status, PaymentStatus.CANCELLED):
        session.rollback()
        if donation.payment_status == PaymentStatus.CANCELLED:
            return donation, False
        raise DonationStateError("Cannot cancel a completed payment")

    donation.payment_status = PaymentStatus.CANCELLED
    donation.cancel_reason = (reason or 'user_cancelled')[:200]
    donation.cancelled_by = actor_id
    donation.cancelled_at = datetime.utcnow()
    session.commit()

    logger.info(
        "donation_cancelled",
        donation_id=donation_id,
        reason=donation.cancel_reason,
        cancelled_by=actor_id,
        provider_disabled=provider_disabled
    )
    return donation, True


def require_amount(value, field='amount'):
    try:
        amount = Decimal(str(value).replace(',', '.'))
    except Exception:
        raise MalformedPayload(f"Invalid {field}")
    if not amount.is_finite():
        raise MalformedPayload(f"Invalid {field}")
    return amount
