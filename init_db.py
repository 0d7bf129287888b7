# init_db.py - seeds a sample campaign for local development
from decimal import Decimal

from database import db
from models import Campaign

SAMPLE_CAMPAIGNS = [
    {
        "title": "Community library roof repair",
        "organizer_id": "00000000-0000-0000-0000-000000000001",
        "goal_amount": Decimal("5000.00"),
    },
    {
        "title": "School supplies for El Alto",
        "organizer_id": "00000000-0000-0000-0000-000000000001",
        "goal_amount": Decimal("1200.00"),
    },
]


def init_sample_data():
    """Creates missing tables and the sample campaigns; existing campaigns are left alone.

    Must run inside an application context. Production schemas come from
    ``flask db upgrade``.
    """
    db.create_all()

    added = 0
    for data in SAMPLE_CAMPAIGNS:
        if Campaign.query.filter_by(title=data["title"]).first():
            continue
        db.session.add(Campaign(**data))
        added += 1

    db.session.commit()
    print(f"Sample campaigns added: {added}")
    return added


if __name__ == '__main__':
    from app import app

    with app.app_context():
        init_sample_data()
