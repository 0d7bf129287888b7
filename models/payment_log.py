from datetime import datetime
from database import db


class PaymentLog(db.Model):
    """Event log: one row per (provider, provider_payment_id), terminal statuses only."""
    __tablename__ = 'payment_logs'
    __table_args__ = (
        db.UniqueConstraint('provider', 'provider_payment_id', name='uq_payment_logs_provider_payment'),
    )

    COMPLETED = 'completed'
    FAILED = 'failed'

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(20), nullable=False)
    provider_payment_id = db.Column(db.String(120), nullable=False)
    status = db.Column(db.String(20), nullable=False)
    amount = db.Column(db.Numeric(12, 2))
    currency = db.Column(db.String(8))
    payment_method = db.Column(db.String(20))
    donation_id = db.Column(db.String(36), index=True)
    campaign_id = db.Column(db.String(36))
    donor_id = db.Column(db.String(36))
    details = db.Column('metadata', db.JSON)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'provider': self.provider,
            'providerPaymentId': self.provider_payment_id,
            'status': self.status,
            'amount': float(self.amount) if self.amount is not None else None,
            'currency': self.currency,
            'paymentMethod': self.payment_method,
            'donationId': self.donation_id,
            'campaignId': self.campaign_id,
            'donorId': self.donor_id,
            'metadata': self.details or {},
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None
        }
