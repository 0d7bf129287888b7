import json
import os
from decimal import Decimal

# Config is read at import time; keep the module-level app off the dev database file
os.environ.setdefault("DATABASE_URL", "sqlite://")

import httpx
import pytest

from app import create_app
from config import TestConfig
from database import db
from models import Campaign, Donation, PaymentProvider, PaymentStatus
from services.signature import sign_legacy


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def session(app):
    return db.session


@pytest.fixture
def campaign(session):
    campaign = Campaign(title="Community library roof", organizer_id="org-1", goal_amount=Decimal("1000.00"))
    session.add(campaign)
    session.commit()
    return campaign


@pytest.fixture
def make_donation(session, campaign):
    def _make(amount="100.00", status=PaymentStatus.PENDING, provider=PaymentProvider.NONE, **fields):
        donation = Donation(
            campaign_id=fields.pop("campaign_id", campaign.id),
            amount=Decimal(amount),
            payment_status=status,
            payment_provider=provider,
            **fields
        )
        session.add(donation)
        session.commit()
        return donation
    return _make


def reload_campaign(session, campaign_id):
    session.expire_all()
    return session.get(Campaign, campaign_id)


def reload_donation(session, donation_id):
    session.expire_all()
    return session.get(Donation, donation_id)


class ProviderAPI:
    """Scripted provider responses served through httpx.MockTransport."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def on(self, method, path, *responses):
        self.routes[(method, path)] = list(responses)

    def count(self, path):
        return sum(1 for _, p, _ in self.calls if p == path)

    def handler(self, request):
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, request.url.path, body))
        queued = self.routes.get((request.method, request.url.path))
        if not queued:
            return httpx.Response(404, json={"error": "not scripted"})
        response = queued.pop(0) if len(queued) > 1 else queued[0]
        if isinstance(response, Exception):
            raise response
        status, payload = response
        return httpx.Response(status, json=payload)

    @property
    def transport(self):
        return httpx.MockTransport(self.handler)


@pytest.fixture
def provider_api(app):
    api = ProviderAPI()
    app.extensions["provider_transport"] = api.transport
    return api


def qr_ok(objeto=None):
    return 200, {"codigo": "0000", "mensaje": "OK", "objeto": objeto or {}}


@pytest.fixture
def qr_token(provider_api):
    provider_api.on("POST", "/autenticacion/v1/generarToken", qr_ok({"token": "tok-1"}))
    return "tok-1"


def signed_post(client, path, payload, secret=TestConfig.CARD_WEBHOOK_SECRET, header="X-Webhook-Signature"):
    raw = json.dumps(payload).encode("utf-8")
    return client.post(
        path,
        data=raw,
        headers={header: sign_legacy(raw, secret), "Content-Type": "application/json"}
    )
