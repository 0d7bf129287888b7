# check_db.py - audits campaign aggregates against completed donations
import sys

from database import db
from services.aggregates import audit_campaign
from services.ledger import LedgerStore


def audit_all():
    store = LedgerStore(db.session)
    reports = [audit_campaign(db.session, campaign_id) for campaign_id in store.all_campaign_ids()]
    return [r for r in reports if r is not None]


if __name__ == '__main__':
    from app import app

    with app.app_context():
        try:
            reports = audit_all()
        except Exception as e:
            print(f"Database error: {e}")
            sys.exit(2)

        print(f"Campaigns checked: {len(reports)}")
        drifted = [r for r in reports if not r['ok']]
        for r in drifted:
            print(
                f"MISMATCH {r['campaignId']}: collected={r['collectedAmount']} expected={r['expectedAmount']} "
                f"donors={r['donorCount']} expected={r['expectedDonorCount']}"
            )
        if drifted:
            sys.exit(1)
        print("All campaign aggregates match their completed donations")
