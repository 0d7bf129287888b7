"""
Per-request wiring of the payment core: every request gets an engine bound to
the Flask-SQLAlchemy session and provider clients built from app config.
"""
from flask import current_app

from database import db
from security import cache
from services.card_provider_service import CardProviderService
from services.ledger import LedgerStore
from services.qr_provider_service import QrProviderService
from services.reconciliation import ReconciliationEngine
from services.status_poller import StatusPoller


def _transport():
    # Tests install an httpx.MockTransport here
    return current_app.extensions.get('provider_transport')


def qr_client():
    return QrProviderService.from_config(current_app.config, db.session, transport=_transport())


def card_client():
    return CardProviderService.from_config(current_app.config, transport=_transport())


def engine():
    return ReconciliationEngine(
        db.session,
        notifier=current_app.extensions.get('notifier'),
        on_completed=invalidate_campaign_totals
    )


def poller():
    return StatusPoller(db.session, engine(), qr_client=qr_client(), card_client=card_client())


@cache.memoize()
def cached_campaign_totals(campaign_id):
    return LedgerStore(db.session).campaign_totals(campaign_id)


def invalidate_campaign_totals(result):
    if result.campaign_id:
        cache.delete_memoized(cached_campaign_totals, result.campaign_id)
