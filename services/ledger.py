"""
Ledger store: the single read/write entry point for donations, the payment
event log and campaign totals. Every caller, authenticated or not, goes
through this repository and gets the same camelCase field contract from
``to_dict()``.
"""
from decimal import Decimal

from sqlalchemy import func, select

from models import Campaign, Donation, PaymentLog, PaymentStatus


class LedgerStore:
    def __init__(self, session):
        self.session = session

    @staticmethod
    def _locked(stmt):
        # Locked reads must not return stale identity-map objects
        return stmt.with_for_update().execution_options(populate_existing=True)

    # --- Donations ---
    def get_donation(self, donation_id, lock=False):
        if not donation_id:
            return None
        stmt = select(Donation).where(Donation.id == str(donation_id))
        if lock:
            stmt = self._locked(stmt)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_donation_by_alias(self, alias, lock=False):
        if not alias:
            return None
        stmt = select(Donation).where(Donation.qr_alias == alias)
        if lock:
            stmt = self._locked(stmt)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_donation_by_card_payment(self, payment_id):
        if not payment_id:
            return None
        stmt = select(Donation).where(Donation.card_payment_id == str(payment_id))
        return self.session.execute(stmt).scalars().first()

    def add_donation(self, donation):
        self.session.add(donation)
        self.session.flush()
        return donation

    # --- Event log ---
    def get_event_log(self, provider, provider_payment_id, lock=False):
        stmt = select(PaymentLog).where(
            PaymentLog.provider == provider,
            PaymentLog.provider_payment_id == str(provider_payment_id)
        )
        if lock:
            stmt = self._locked(stmt)
        return self.session.execute(stmt).scalar_one_or_none()

    def claim_event_log(self, provider, provider_payment_id, status, **fields):
        """
        Inserts the log row and flushes immediately so the unique key is taken
        before any ledger mutation. A concurrent transaction holding the same key
        makes this raise IntegrityError.
        """
        entry = PaymentLog(
            provider=provider,
            provider_payment_id=str(provider_payment_id),
            status=status,
            **fields
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def events_for_donation(self, donation_id):
        stmt = select(PaymentLog).where(PaymentLog.donation_id == donation_id).order_by(PaymentLog.id)
        return list(self.session.execute(stmt).scalars())

    # --- Campaigns ---
    def get_campaign(self, campaign_id):
        if not campaign_id:
            return None
        return self.session.get(Campaign, campaign_id)

    def campaign_totals(self, campaign_id):
        campaign = self.get_campaign(campaign_id)
        return campaign.to_dict() if campaign else None

    def completed_total(self, campaign_id):
        """Sum of base amounts and count of completed donations (tips excluded)."""
        stmt = select(
            func.coalesce(func.sum(Donation.amount), 0),
            func.count(Donation.id)
        ).where(
            Donation.campaign_id == campaign_id,
            Donation.payment_status == PaymentStatus.COMPLETED
        )
        total, count = self.session.execute(stmt).one()
        return Decimal(str(total)), int(count)

    def all_campaign_ids(self):
        return list(self.session.execute(select(Campaign.id)).scalars())
