import uuid
from datetime import datetime
from database import db

class Campaign(db.Model):
    __tablename__ = 'campaigns'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = db.Column(db.String(200), nullable=False)
    organizer_id = db.Column(db.String(36))
    goal_amount = db.Column(db.Numeric(12, 2), nullable=False)
    # Aggregate columns below are written only by the reconciliation engine
    collected_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    donor_count = db.Column(db.Integer, nullable=False, default=0)
    percentage_funded = db.Column(db.Float, nullable=False, default=0.0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    donations = db.relationship('Donation', backref='campaign', lazy=True)

    @property
    def is_funded(self):
        return float(self.collected_amount or 0) >= float(self.goal_amount or 0)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'organizerId': self.organizer_id,
            'goalAmount': float(self.goal_amount),
            'collectedAmount': float(self.collected_amount or 0),
            'donorCount': self.donor_count or 0,
            'percentageFunded': self.percentage_funded or 0.0,
            'isFunded': self.is_funded
        }
