from flask import Blueprint, current_app, jsonify, request

from config import Config
from database import db
from errors import DonationNotFound, MalformedPayload
from production import sanitize_input
from routes import deps
from security import limiter, logger
from services import donations
from services.ledger import LedgerStore
from services.validation_service import ValidationService

payment_bp = Blueprint('payment', __name__)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise MalformedPayload("Request body must be a JSON object")
    return data


def _get_donation(donation_id):
    donation = LedgerStore(db.session).get_donation(donation_id)
    if donation is None:
        raise DonationNotFound()
    return donation


@payment_bp.route('/api/donations', methods=['POST'])
@limiter.limit(Config.RATE_LIMIT_PAYMENT)
async def create_donation():
    """Creates a pending donation and starts the chosen payment flow."""
    data = _json_body()
    logger.info("donation_request_received", campaign_id=data.get('campaignId'), method=data.get('paymentMethod'))

    validation_errors = ValidationService.validate_donation(
        db.session,
        data.get('campaignId'),
        data.get('amount'),
        data.get('paymentMethod'),
        tip_amount=data.get('tipAmount'),
        donor_id=data.get('donorId')
    )
    if validation_errors:
        logger.warning("donation_validation_failed", errors=validation_errors, campaign_id=data.get('campaignId'))
        return jsonify({
            'success': False,
            'error': validation_errors[0],
            'all_errors': validation_errors
        }), 422

    donation = donations.create_donation(
        db.session,
        data['campaignId'],
        donations.require_amount(data['amount']),
        data['paymentMethod'],
        donor_id=data.get('donorId'),
        tip_amount=data.get('tipAmount'),
        is_anonymous=bool(data.get('isAnonymous')),
        message=sanitize_input(data.get('message')),
        currency=current_app.config.get('QR_CURRENCY', 'BOB')
    )

    response = {'success': True, 'donationId': donation.id}
    if data['paymentMethod'] in ('card', 'credit_card'):
        site_url = current_app.config.get('SITE_URL') or request.host_url
        link = await donations.attach_payment_link(db.session, donation, deps.card_client(), site_url)
        response['checkoutUrl'] = link['checkoutUrl']
    elif data['paymentMethod'] == 'qr':
        response['qr'] = await donations.attach_qr(
            db.session,
            donation,
            deps.qr_client(),
            current_app.config.get('QR_ALIAS_PREFIX', 'DONA'),
            description=f"Donation {donation.id[:8]}"
        )

    response['donation'] = _get_donation(response['donationId']).to_dict()
    return jsonify(response), 201


@payment_bp.route('/api/donations/<donation_id>/status')
def donation_status(donation_id):
    donation = _get_donation(donation_id)
    return jsonify({'success': True, 'data': donation.to_dict()})


@payment_bp.route('/api/donations/<donation_id>/cancel', methods=['POST'])
async def cancel_donation(donation_id):
    data = request.get_json(silent=True) or {}
    actor_id = data.get('actorId') or request.headers.get('X-Actor-Id')

    donation, changed = await donations.cancel_donation(
        db.session,
        donation_id,
        reason=sanitize_input(data.get('reason')),
        actor_id=actor_id,
        qr_client=deps.qr_client()
    )
    return jsonify({
        'success': True,
        'message': 'Payment cancelled' if changed else 'Payment already cancelled',
        'data': donation.to_dict()
    })


@payment_bp.route('/api/payments/<provider>/status/<alias>')
async def payment_status(provider, alias):
    status = await deps.poller().poll(provider, alias)
    return jsonify({'success': True, 'data': status.to_dict()})


@payment_bp.route('/api/qr/status/<alias>')
async def qr_status(alias):
    return await payment_status('qr', alias)


@payment_bp.route('/api/qr/generate', methods=['POST'])
async def generate_qr():
    """Issues a fresh QR for an existing pending or failed donation."""
    data = _json_body()
    donation = _get_donation(data.get('donationId'))

    qr = await donations.attach_qr(
        db.session,
        donation,
        deps.qr_client(),
        current_app.config.get('QR_ALIAS_PREFIX', 'DONA'),
        description=sanitize_input(data.get('description')) or f"Donation {donation.id[:8]}"
    )
    return jsonify({'success': True, 'data': qr})


@payment_bp.route('/api/qr/disable', methods=['POST'])
async def disable_qr():
    data = _json_body()
    alias = data.get('alias')
    if not alias:
        raise MalformedPayload("Alias is required")

    disabled = await deps.qr_client().disable_qr(alias)
    logger.info("qr_disable_requested", alias=alias, disabled=disabled)
    if not disabled:
        return jsonify({'success': False, 'error': 'Failed to disable QR'}), 502
    return jsonify({'success': True})


@payment_bp.route('/api/campaigns/<campaign_id>/totals')
def campaign_totals(campaign_id):
    totals = deps.cached_campaign_totals(campaign_id)
    if totals is None:
        return jsonify({'success': False, 'error': 'Campaign not found'}), 404
    return jsonify({'success': True, 'data': totals})
