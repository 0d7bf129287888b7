from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from conftest import reload_campaign, reload_donation
from errors import StorageFailure
from models import PaymentLog, PaymentProvider, PaymentStatus
from services.aggregates import audit_campaign
from services.events import COMPLETED, FAILED, PaymentEvent
from services.ledger import LedgerStore
from services.reconciliation import Outcome, ReconciliationEngine


def card_event(donation_id, outcome=COMPLETED, payment_id="pay_1", amount_cents=10000, **metadata):
    return PaymentEvent(
        provider=PaymentProvider.CARD,
        provider_payment_id=payment_id,
        outcome=outcome,
        donation_id=donation_id,
        amount_cents=amount_cents,
        metadata=metadata
    )


def log_for(session, payment_id, provider=PaymentProvider.CARD):
    session.expire_all()
    return LedgerStore(session).get_event_log(provider, payment_id)


def test_completed_event_applies_once(session, campaign, make_donation):
    donation = make_donation()
    engine = ReconciliationEngine(session)

    result = engine.reconcile(card_event(donation.id, amount="100.00"))

    assert result.outcome is Outcome.APPLIED
    assert result.payment_status == PaymentStatus.COMPLETED
    donation = reload_donation(session, donation.id)
    assert donation.payment_status == PaymentStatus.COMPLETED
    assert donation.card_payment_id == "pay_1"
    assert donation.payment_method == "credit_card"
    campaign = reload_campaign(session, campaign.id)
    assert campaign.collected_amount == Decimal("100")
    assert campaign.donor_count == 1
    assert campaign.percentage_funded == pytest.approx(10.0)
    assert log_for(session, "pay_1").status == PaymentLog.COMPLETED


def test_redelivery_is_idempotent(session, campaign, make_donation):
    donation = make_donation()
    engine = ReconciliationEngine(session)
    event = card_event(donation.id)

    outcomes = [engine.reconcile(event).outcome for _ in range(3)]

    assert outcomes == [Outcome.APPLIED, Outcome.ALREADY_PROCESSED, Outcome.ALREADY_PROCESSED]
    campaign = reload_campaign(session, campaign.id)
    assert campaign.collected_amount == Decimal("100")
    assert campaign.donor_count == 1
    assert session.query(PaymentLog).count() == 1


def test_failed_after_completed_never_downgrades(session, campaign, make_donation):
    donation = make_donation()
    engine = ReconciliationEngine(session)
    engine.reconcile(card_event(donation.id))

    result = engine.reconcile(card_event(donation.id, outcome=FAILED))

    assert result.outcome is Outcome.ALREADY_PROCESSED
    assert reload_donation(session, donation.id).payment_status == PaymentStatus.COMPLETED
    assert log_for(session, "pay_1").status == PaymentLog.COMPLETED


def test_failure_with_new_payment_id_on_completed_donation_logs_completed(session, campaign, make_donation):
    donation = make_donation()
    engine = ReconciliationEngine(session)
    engine.reconcile(card_event(donation.id, payment_id="pay_1"))

    result = engine.reconcile(card_event(donation.id, outcome=FAILED, payment_id="pay_retry"))

    assert result.outcome is Outcome.ALREADY_PROCESSED
    entry = log_for(session, "pay_retry")
    assert entry.status == PaymentLog.COMPLETED
    assert entry.details["decision"] == "terminal_donation"
    assert entry.details["reportedStatus"] == FAILED
    assert reload_donation(session, donation.id).payment_status == PaymentStatus.COMPLETED
    assert reload_campaign(session, campaign.id).donor_count == 1


def test_failed_then_completed_upgrades(session, campaign, make_donation):
    donation = make_donation()
    engine = ReconciliationEngine(session)

    first = engine.reconcile(card_event(donation.id, outcome=FAILED))
    assert first.outcome is Outcome.APPLIED
    assert reload_donation(session, donation.id).payment_status == PaymentStatus.FAILED
    assert reload_campaign(session, campaign.id).donor_count == 0

    second = engine.reconcile(card_event(donation.id, outcome=COMPLETED))

    assert second.outcome is Outcome.APPLIED
    assert reload_donation(session, donation.id).payment_status == PaymentStatus.COMPLETED
    entry = log_for(session, "pay_1")
    assert entry.status == PaymentLog.COMPLETED
    assert entry.details["upgradedFrom"] == "failed"
    campaign = reload_campaign(session, campaign.id)
    assert campaign.collected_amount == Decimal("100")
    assert campaign.donor_count == 1


def test_repeated_failure_is_already_processed(session, make_donation):
    donation = make_donation()
    engine = ReconciliationEngine(session)
    engine.reconcile(card_event(donation.id, outcome=FAILED))

    assert engine.reconcile(card_event(donation.id, outcome=FAILED)).outcome is Outcome.ALREADY_PROCESSED


def test_failed_event_for_unknown_payment_is_logged_as_orphan(session, campaign):
    engine = ReconciliationEngine(session)

    result = engine.reconcile(card_event(None, outcome=FAILED, payment_id="p2"))

    assert result.outcome is Outcome.ORPHAN_EVENT
    entry = log_for(session, "p2")
    assert entry.status == PaymentLog.FAILED
    assert entry.donation_id is None
    assert entry.details["decision"] == "orphan"
    assert reload_campaign(session, campaign.id).donor_count == 0

    assert engine.reconcile(card_event(None, outcome=FAILED, payment_id="p2")).outcome is Outcome.ALREADY_PROCESSED


def test_completed_orphan_is_not_reapplied(session, campaign):
    engine = ReconciliationEngine(session)
    event = card_event("does-not-exist", payment_id="p3")

    assert engine.reconcile(event).outcome is Outcome.ORPHAN_EVENT
    assert engine.reconcile(event).outcome is Outcome.ALREADY_PROCESSED
    assert reload_campaign(session, campaign.id).collected_amount == Decimal("0")


def test_completion_on_cancelled_donation_is_logged_only(session, campaign, make_donation):
    donation = make_donation(status=PaymentStatus.CANCELLED)
    engine = ReconciliationEngine(session)

    result = engine.reconcile(card_event(donation.id))

    assert result.outcome is Outcome.ALREADY_PROCESSED
    assert reload_donation(session, donation.id).payment_status == PaymentStatus.CANCELLED
    assert log_for(session, "pay_1").details["decision"] == "terminal_donation"
    assert reload_campaign(session, campaign.id).donor_count == 0


def test_second_payment_for_completed_donation_is_not_counted(session, campaign, make_donation):
    donation = make_donation()
    engine = ReconciliationEngine(session)
    engine.reconcile(card_event(donation.id, payment_id="pay_1"))

    result = engine.reconcile(card_event(donation.id, payment_id="pay_2"))

    assert result.outcome is Outcome.ALREADY_PROCESSED
    assert reload_campaign(session, campaign.id).donor_count == 1
    assert log_for(session, "pay_2").status == PaymentLog.COMPLETED


def test_tip_is_recorded_but_not_counted_toward_campaign(session, campaign, make_donation):
    donation = make_donation(amount="100.00", tip_amount=Decimal("10.00"))
    engine = ReconciliationEngine(session)

    engine.reconcile(card_event(donation.id, payment_id="p1", amount_cents=11000, amount="100", tipAmount="10"))
    engine.reconcile(card_event(donation.id, payment_id="p1", amount_cents=11000, amount="100", tipAmount="10"))

    donation = reload_donation(session, donation.id)
    assert donation.payment_status == PaymentStatus.COMPLETED
    assert donation.total_amount == Decimal("110")
    assert donation.tip_amount == Decimal("10")
    campaign = reload_campaign(session, campaign.id)
    assert campaign.collected_amount == Decimal("100")
    assert campaign.donor_count == 1


def test_total_amount_is_first_write_wins(session, make_donation):
    donation = make_donation(amount="100.00", total_amount=Decimal("100.00"))
    ReconciliationEngine(session).reconcile(card_event(donation.id, amount_cents=12000))

    assert reload_donation(session, donation.id).total_amount == Decimal("100")


def test_campaign_totals_match_completed_donations(session, campaign, make_donation):
    engine = ReconciliationEngine(session)
    first = make_donation(amount="100.00")
    second = make_donation(amount="50.50")
    failed = make_donation(amount="70.00")

    engine.reconcile(card_event(first.id, payment_id="a"))
    engine.reconcile(card_event(second.id, payment_id="b", amount_cents=5050))
    engine.reconcile(card_event(failed.id, payment_id="c", outcome=FAILED))
    engine.reconcile(card_event(second.id, payment_id="b", amount_cents=5050))

    report = audit_campaign(session, campaign.id)
    assert report["ok"] is True
    assert report["expectedDonorCount"] == 2
    assert report["collectedAmount"] == pytest.approx(150.5)


def test_completion_hooks_run_once_and_failures_are_contained(session, make_donation):
    donation = make_donation()
    completed = []

    class BrokenNotifier:
        def donation_completed(self, donation):
            raise RuntimeError("smtp down")

    engine = ReconciliationEngine(session, notifier=BrokenNotifier(), on_completed=completed.append)
    event = card_event(donation.id)

    assert engine.reconcile(event).outcome is Outcome.APPLIED
    engine.reconcile(event)

    assert len(completed) == 1
    assert completed[0].donation_id == donation.id
    assert reload_donation(session, donation.id).payment_status == PaymentStatus.COMPLETED


def test_concurrent_claim_is_retried_against_the_winner(session, campaign, make_donation):
    donation = make_donation()
    event = card_event(donation.id)
    engine = ReconciliationEngine(session)
    original_claim = engine.store.claim_event_log
    calls = []

    def racing_claim(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            # Another worker commits the same payment id first
            session.rollback()
            ReconciliationEngine(session).reconcile(event)
            raise IntegrityError("INSERT INTO payment_logs", {}, Exception("UNIQUE constraint failed"))
        return original_claim(*args, **kwargs)

    engine.store.claim_event_log = racing_claim

    result = engine.reconcile(event)

    assert result.outcome is Outcome.ALREADY_PROCESSED
    campaign = reload_campaign(session, campaign.id)
    assert campaign.donor_count == 1
    assert campaign.collected_amount == Decimal("100")


def test_persistent_integrity_error_becomes_storage_failure(session, campaign, make_donation):
    donation = make_donation()
    engine = ReconciliationEngine(session)

    def always_conflicts(*args, **kwargs):
        raise IntegrityError("INSERT INTO payment_logs", {}, Exception("UNIQUE constraint failed"))

    engine.store.claim_event_log = always_conflicts

    with pytest.raises(StorageFailure):
        engine.reconcile(card_event(donation.id))
    assert reload_donation(session, donation.id).payment_status == PaymentStatus.PENDING
    assert reload_campaign(session, campaign.id).donor_count == 0


def test_database_error_rolls_back_and_raises(session, campaign, make_donation):
    donation = make_donation()
    engine = ReconciliationEngine(session)

    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    engine.store.claim_event_log = broken

    with pytest.raises(StorageFailure) as excinfo:
        engine.reconcile(card_event(donation.id))
    assert excinfo.value.status_code == 500
    assert session.query(PaymentLog).count() == 0
