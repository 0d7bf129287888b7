import hmac
import json

from flask import Blueprint, current_app, jsonify, request

from database import db
from errors import MalformedPayload, PaymentError, SignatureInvalid
from routes import deps
from security import limiter, logger
from services.events import charged_amount, event_from_card_webhook, event_from_qr_callback
from services.ledger import LedgerStore
from services.signature import require_valid_signature
from services.validation_service import ValidationService

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhook")

QR_OK = "0000"
QR_ERROR = "9999"


@webhook_bp.route("/card", methods=["POST"])
@limiter.exempt
def card_webhook():
    """Card gateway webhook. Any reconciliation outcome is acknowledged with 200."""
    webhook_id = request.headers.get("X-Webhook-Id")
    webhook_event = request.headers.get("X-Webhook-Event")
    logger.info("card_webhook_received", webhook_id=webhook_id, webhook_event=webhook_event)

    # Raw bytes: the signature covers the body exactly as sent
    raw_body = request.get_data(cache=True)

    secret = current_app.config.get("CARD_WEBHOOK_SECRET")
    if not secret:
        logger.error("webhook_secret_missing")
        return jsonify({"success": False, "error": "Webhook secret not configured"}), 500

    try:
        try:
            require_valid_signature(raw_body, request.headers, secret)
        except SignatureInvalid:
            logger.warning("webhook_signature_invalid", webhook_id=webhook_id, remote_addr=request.remote_addr)
            raise

        try:
            body = json.loads(raw_body)
        except ValueError:
            raise MalformedPayload("Invalid JSON")

        event = event_from_card_webhook(body)
        if event is None:
            logger.info("webhook_ignored_event", webhook_id=webhook_id, event_name=body.get("event"))
            return jsonify({"received": True}), 200

        if not event.donation_id:
            # Payment link metadata lost: fall back to the stored payment id
            donation = LedgerStore(db.session).find_donation_by_card_payment(event.provider_payment_id)
            if donation is not None:
                event.donation_id = donation.id

        deps.engine().reconcile(event)
        return jsonify({"received": True}), 200

    except PaymentError:
        raise
    except Exception as e:
        db.session.rollback()
        logger.error("card_webhook_failed", webhook_id=webhook_id, error=str(e), exc_info=True)
        return jsonify({"success": False, "error": "Internal error"}), 500


def _qr_response(codigo, mensaje, status=200):
    return jsonify({"codigo": codigo, "mensaje": mensaje}), status


def _qr_credentials_valid(auth):
    expected_user = current_app.config.get("QR_CALLBACK_USERNAME")
    expected_password = current_app.config.get("QR_CALLBACK_PASSWORD")
    if not expected_user or not expected_password:
        return False
    if auth is None or auth.type != "basic":
        return False
    return (
        hmac.compare_digest(str(auth.username or ""), expected_user)
        and hmac.compare_digest(str(auth.password or ""), expected_password)
    )


@webhook_bp.route("/qr/callback", methods=["POST"])
@limiter.exempt
def qr_callback():
    """QR provider push notification; replies in the provider's codigo/mensaje envelope."""
    if not _qr_credentials_valid(request.authorization):
        logger.warning("qr_callback_unauthorized", remote_addr=request.remote_addr)
        return _qr_response(QR_ERROR, "Unauthorized", 401)

    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return _qr_response(QR_ERROR, "Invalid payload")

    alias = body.get("alias")
    if not alias:
        return _qr_response(QR_ERROR, "Alias missing")

    try:
        donation = LedgerStore(db.session).find_donation_by_alias(alias)
        if donation is None:
            logger.warning("qr_callback_unknown_alias", alias=alias)
            return _qr_response(QR_ERROR, "Donation not found")

        if not ValidationService.amounts_match(charged_amount(donation), body.get("monto")):
            logger.error(
                "qr_callback_amount_mismatch",
                alias=alias,
                expected=str(charged_amount(donation)),
                received=body.get("monto")
            )
            return _qr_response(QR_ERROR, "Amount mismatch")

        result = deps.engine().reconcile(event_from_qr_callback(donation, body))
        if result.applied:
            return _qr_response(QR_OK, "Success")
        return _qr_response(QR_OK, "Already processed")

    except PaymentError as e:
        logger.error("qr_callback_failed", alias=alias, error=e.message)
        return _qr_response(QR_ERROR, e.message)
    except Exception as e:
        db.session.rollback()
        logger.error("qr_callback_failed", alias=alias, error=str(e), exc_info=True)
        return _qr_response(QR_ERROR, "Internal Error")
