"""
Validation for new donations before anything is sent to a provider.
"""
from decimal import Decimal, InvalidOperation
from datetime import datetime, timedelta

from models import Donation, PaymentMethod
from services.ledger import LedgerStore

MIN_AMOUNT = Decimal('1.00')
MAX_AMOUNT = Decimal('1000000.00')
ATTEMPT_WINDOW = timedelta(minutes=5)
MAX_ATTEMPTS_PER_WINDOW = 5
CLIENT_METHODS = ('card', 'qr', PaymentMethod.CREDIT_CARD, PaymentMethod.BANK_TRANSFER)


class ValidationService:
    @staticmethod
    def validate_donation(session, campaign_id, amount, payment_method, tip_amount=None, donor_id=None):
        """Returns a list of error messages; empty when the donation can be created."""
        errors = []

        campaign = LedgerStore(session).get_campaign(campaign_id) if campaign_id else None
        if not campaign:
            errors.append("Campaign not found")

        value = ValidationService._decimal(amount)
        if value is None:
            errors.append("Invalid amount")
        elif value < MIN_AMOUNT:
            errors.append(f"Minimum donation: {MIN_AMOUNT}")
        elif value > MAX_AMOUNT:
            errors.append(f"Maximum donation: {MAX_AMOUNT}")

        if tip_amount not in (None, ''):
            tip = ValidationService._decimal(tip_amount)
            if tip is None or tip < 0:
                errors.append("Invalid tip amount")

        if payment_method not in CLIENT_METHODS:
            errors.append("Unsupported payment method")

        # Per-donor attempt limit
        if donor_id:
            window_start = datetime.utcnow() - ATTEMPT_WINDOW
            attempts = session.query(Donation).filter(
                Donation.donor_id == donor_id,
                Donation.created_at >= window_start
            ).count()
            if attempts >= MAX_ATTEMPTS_PER_WINDOW:
                errors.append("Too many attempts in a short period. Try again in 5 minutes")

        return errors

    @staticmethod
    def amounts_match(expected, received, tolerance=Decimal('0.01')):
        """QR callbacks must carry the amount the code was issued for."""
        expected = ValidationService._decimal(expected)
        received = ValidationService._decimal(received)
        if expected is None or received is None:
            return False
        return abs(expected - received) <= tolerance

    @staticmethod
    def _decimal(value):
        if value is None or value == '':
            return None
        try:
            result = Decimal(str(value).replace(',', '.'))
        except (InvalidOperation, ValueError):
            return None
        return result if result.is_finite() else None
