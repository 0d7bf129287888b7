import uuid
from datetime import datetime
from database import db


class PaymentStatus:
    PENDING = 'pending'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'

    ALL = (PENDING, COMPLETED, FAILED, CANCELLED)


class PaymentProvider:
    CARD = 'provider_card'
    QR = 'provider_qr'
    NONE = 'none'

    ALL = (CARD, QR, NONE)


class PaymentMethod:
    CREDIT_CARD = 'credit_card'
    QR = 'qr'
    BANK_TRANSFER = 'bank_transfer'

    ALL = (CREDIT_CARD, QR, BANK_TRANSFER)

    @classmethod
    def from_client(cls, value):
        """Maps the checkout form value ('card', 'qr', ...) to a stored method."""
        if value in ('card', cls.CREDIT_CARD):
            return cls.CREDIT_CARD
        if value == cls.QR:
            return cls.QR
        return cls.BANK_TRANSFER


def _iso(value):
    return value.isoformat() if value else None


def _num(value):
    return float(value) if value is not None else None


class Donation(db.Model):
    __tablename__ = 'donations'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    campaign_id = db.Column(db.String(36), db.ForeignKey('campaigns.id'), nullable=False, index=True)
    donor_id = db.Column(db.String(36), nullable=True)
    is_anonymous = db.Column(db.Boolean, nullable=False, default=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    tip_amount = db.Column(db.Numeric(12, 2), nullable=True)
    total_amount = db.Column(db.Numeric(12, 2), nullable=True)
    currency = db.Column(db.String(8), nullable=False, default='BOB')
    payment_status = db.Column(db.String(20), nullable=False, default=PaymentStatus.PENDING, index=True)
    payment_provider = db.Column(db.String(20), nullable=False, default=PaymentProvider.NONE)
    payment_method = db.Column(db.String(20), nullable=False, default=PaymentMethod.CREDIT_CARD)
    message = db.Column(db.Text)

    # Card gateway correlation
    card_payment_id = db.Column(db.String(120), index=True)
    card_payment_link_id = db.Column(db.String(120))
    card_session_id = db.Column(db.String(255))
    card_checkout_url = db.Column(db.String(500))

    # QR provider correlation
    qr_alias = db.Column(db.String(120), unique=True)
    qr_id = db.Column(db.String(120))
    qr_image = db.Column(db.Text)
    qr_expires_at = db.Column(db.DateTime)
    qr_transaction_id = db.Column(db.String(120))
    qr_payer_name = db.Column(db.String(200))
    qr_payer_account = db.Column(db.String(120))
    qr_payer_document = db.Column(db.String(60))
    qr_processed_at = db.Column(db.DateTime)

    # Cancellation audit
    cancel_reason = db.Column(db.String(200))
    cancelled_by = db.Column(db.String(36))
    cancelled_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_terminal(self):
        return self.payment_status in (PaymentStatus.COMPLETED, PaymentStatus.CANCELLED)

    def to_dict(self):
        return {
            'id': self.id,
            'campaignId': self.campaign_id,
            'donorId': None if self.is_anonymous else self.donor_id,
            'isAnonymous': self.is_anonymous,
            'amount': _num(self.amount),
            'tipAmount': _num(self.tip_amount),
            'totalAmount': _num(self.total_amount),
            'currency': self.currency,
            'paymentStatus': self.payment_status,
            'paymentProvider': self.payment_provider,
            'paymentMethod': self.payment_method,
            'message': self.message,
            'cardPaymentId': self.card_payment_id,
            'qrAlias': self.qr_alias,
            'qrExpiresAt': _iso(self.qr_expires_at),
            'qrTransactionId': self.qr_transaction_id,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }
