from decimal import Decimal

import pytest
from sqlalchemy import create_engine, update

from app import create_app
from config import TestConfig
from conftest import reload_campaign, reload_donation, signed_post
from database import db
from models import Campaign, Donation, PaymentProvider, PaymentStatus
from services.ledger import LedgerStore


@pytest.fixture
def app(tmp_path):
    # A file database so a second connection sees the same rows
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'ledger.db'}"

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def other_writer(app):
    """Connection outside the request session, standing in for a concurrent worker."""
    engine = create_engine(app.config["SQLALCHEMY_DATABASE_URI"])
    yield engine
    engine.dispose()


def complete_elsewhere(engine, donation_id, campaign_id, amount):
    donations, campaigns = Donation.__table__, Campaign.__table__
    with engine.begin() as conn:
        conn.execute(
            update(donations).where(donations.c.id == donation_id).values(payment_status=PaymentStatus.COMPLETED)
        )
        conn.execute(
            update(campaigns)
            .where(campaigns.c.id == campaign_id)
            .values(collected_amount=campaigns.c.collected_amount + amount, donor_count=campaigns.c.donor_count + 1)
        )


def cancel_elsewhere(engine, donation_id):
    donations = Donation.__table__
    with engine.begin() as conn:
        conn.execute(
            update(donations)
            .where(donations.c.id == donation_id)
            .values(payment_status=PaymentStatus.CANCELLED, cancel_reason="operator")
        )


def test_locked_read_returns_committed_state(session, campaign, make_donation, other_writer):
    donation = make_donation()
    store = LedgerStore(session)
    assert store.get_donation(donation.id).payment_status == PaymentStatus.PENDING

    complete_elsewhere(other_writer, donation.id, campaign.id, Decimal("100.00"))

    assert store.get_donation(donation.id, lock=True).payment_status == PaymentStatus.COMPLETED


def test_cancel_committed_during_card_webhook_is_not_overwritten(client, session, campaign, make_donation,
                                                                 other_writer, monkeypatch):
    donation = make_donation(provider=PaymentProvider.CARD, card_payment_id="pay_42")
    donation_id = donation.id
    find = LedgerStore.find_donation_by_card_payment

    def find_then_cancel(self, payment_id):
        found = find(self, payment_id)
        cancel_elsewhere(other_writer, donation_id)
        return found

    monkeypatch.setattr(LedgerStore, "find_donation_by_card_payment", find_then_cancel)

    response = signed_post(client, "/webhook/card", {
        "event": "payment.completed",
        "data": {"paymentId": "pay_42", "amount": 10000}
    })

    assert response.status_code == 200
    assert reload_donation(session, donation_id).payment_status == PaymentStatus.CANCELLED
    campaign = reload_campaign(session, campaign.id)
    assert campaign.collected_amount == Decimal("0")
    assert campaign.donor_count == 0


def test_completion_committed_during_cancel_is_kept(client, session, campaign, make_donation, other_writer,
                                                    monkeypatch):
    donation = make_donation(provider=PaymentProvider.CARD)
    donation_id, campaign_id = donation.id, campaign.id
    get_donation = LedgerStore.get_donation
    completed = []

    def get_then_complete(self, requested_id, lock=False):
        found = get_donation(self, requested_id, lock=lock)
        if not lock and not completed:
            complete_elsewhere(other_writer, donation_id, campaign_id, Decimal("100.00"))
            completed.append(donation_id)
        return found

    monkeypatch.setattr(LedgerStore, "get_donation", get_then_complete)

    response = client.post(f"/api/donations/{donation_id}/cancel")

    assert response.status_code == 409
    assert response.get_json() == {"success": False, "error": "Cannot cancel a completed payment"}
    donation = reload_donation(session, donation_id)
    assert donation.payment_status == PaymentStatus.COMPLETED
    assert donation.cancelled_at is None
    assert reload_campaign(session, campaign_id).donor_count == 1
