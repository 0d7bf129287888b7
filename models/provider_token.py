from datetime import datetime, timedelta
from database import db

class ProviderToken(db.Model):
    __tablename__ = 'provider_tokens'

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(20), nullable=False, index=True)
    token = db.Column(db.Text, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def valid_for(self, minutes, now=None):
        now = now or datetime.utcnow()
        return self.expires_at > now + timedelta(minutes=minutes)
