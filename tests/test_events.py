from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from errors import MalformedPayload
from models import PaymentProvider
from services.aggregates import recompute_percentage
from services.events import (
    COMPLETED,
    FAILED,
    PaymentEvent,
    event_from_card_webhook,
    event_from_qr_callback,
    parse_datetime,
    to_cents,
)
from services.notifications import NotificationDispatcher


def test_card_webhook_event_fields():
    event = event_from_card_webhook({
        "event": "payment.failed",
        "data": {
            "paymentId": "pay_1",
            "amount": 10500,
            "currency": "BOB",
            "stripeSessionId": "cs_1",
            "metadata": {"donationId": "d1", "campaignId": "c1", "amount": "100", "tipAmount": "5"},
        }
    })

    assert event.outcome == FAILED
    assert event.provider == PaymentProvider.CARD
    assert event.donation_id == "d1"
    assert event.provider_amount == Decimal("105")
    assert event.base_amount == Decimal("100")
    assert event.tip_amount == Decimal("5")
    assert event.metadata["sessionId"] == "cs_1"


@pytest.mark.parametrize("body", [
    [],
    {"data": {"paymentId": "p"}},
    {"event": "payment.completed"},
    {"event": "payment.completed", "data": {"paymentId": ""}},
    {"event": ["payment.completed"], "data": {"paymentId": "p"}},
    {"event": {"type": "payment.completed"}, "data": {"paymentId": "p"}},
])
def test_malformed_card_webhooks(body):
    with pytest.raises(MalformedPayload):
        event_from_card_webhook(body)


def test_payment_event_rejects_unknown_outcome():
    with pytest.raises(MalformedPayload):
        PaymentEvent(provider=PaymentProvider.CARD, provider_payment_id="p", outcome="refunded")


def test_qr_callback_event_is_keyed_by_alias():
    donation = SimpleNamespace(id="d1", campaign_id="c1", donor_id=None, qr_alias="DONA-a-1", amount=Decimal("100"),
                               currency="BOB")

    event = event_from_qr_callback(donation, {"monto": "100.00", "numeroOrdenOriginante": "TX-1"})

    assert event.provider_payment_id == "DONA-a-1"
    assert event.outcome == COMPLETED
    assert event.amount_cents == 10000
    assert event.metadata["transactionId"] == "TX-1"


@pytest.mark.parametrize("value,expected", [
    ("2026-10-19T10:15:00Z", datetime(2026, 10, 19, 10, 15)),
    ("19/10/2026 10:15:30", datetime(2026, 10, 19, 10, 15, 30)),
    ("19/10/2026", datetime(2026, 10, 19)),
    ("yesterday", None),
    (None, None),
])
def test_parse_datetime(value, expected):
    assert parse_datetime(value) == expected


def test_to_cents_rounds():
    assert to_cents("10.005") == 1000
    assert to_cents(Decimal("110")) == 11000


def test_percentage_with_zero_goal():
    assert recompute_percentage(0, 100) == 0.0
    assert recompute_percentage(Decimal("200"), Decimal("50")) == 25.0


def test_notification_posts_when_configured(monkeypatch):
    sent = {}

    class Response:
        def raise_for_status(self):
            return None

    def fake_post(url, json, timeout):
        sent.update(url=url, json=json, timeout=timeout)
        return Response()

    monkeypatch.setattr("services.notifications.requests.post", fake_post)
    donation = SimpleNamespace(id="d1", campaign_id="c1", donor_id="u1", is_anonymous=True, amount=Decimal("10"),
                               currency="BOB")

    assert NotificationDispatcher("https://hooks.test/donations").donation_completed(donation) is True
    assert sent["json"]["donorId"] is None
    assert NotificationDispatcher().donation_completed(donation) is False
