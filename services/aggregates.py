from decimal import Decimal

from sqlalchemy import update

from models import Campaign
from services.ledger import LedgerStore


def recompute_percentage(goal_amount, collected_amount):
    goal = float(goal_amount or 0)
    if goal <= 0:
        return 0.0
    return float(collected_amount or 0) / goal * 100


def apply_completed_donation(session, donation):
    """
    Adds the donation's base amount (never the tip) and one donor to its campaign.

    Runs inside the caller's transaction; the increment is a single UPDATE so
    concurrent completions for different donations of the same campaign do not
    lose writes.
    """
    amount = Decimal(str(donation.amount))
    session.execute(
        update(Campaign)
        .where(Campaign.id == donation.campaign_id)
        .values(
            collected_amount=Campaign.collected_amount + amount,
            donor_count=Campaign.donor_count + 1
        )
        .execution_options(synchronize_session=False)
    )

    campaign = session.get(Campaign, donation.campaign_id, populate_existing=True)
    if campaign is None:
        return None

    campaign.percentage_funded = recompute_percentage(campaign.goal_amount, campaign.collected_amount)
    session.flush()
    return campaign


def audit_campaign(session, campaign_id):
    """Checks collected_amount and donor_count against the completed donations."""
    store = LedgerStore(session)
    campaign = store.get_campaign(campaign_id)
    if campaign is None:
        return None

    expected_amount, expected_count = store.completed_total(campaign_id)
    collected = Decimal(str(campaign.collected_amount or 0))
    return {
        'campaignId': campaign_id,
        'collectedAmount': float(collected),
        'expectedAmount': float(expected_amount),
        'donorCount': campaign.donor_count or 0,
        'expectedDonorCount': expected_count,
        'ok': collected == expected_amount and (campaign.donor_count or 0) == expected_count
    }
