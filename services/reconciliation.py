"""
Reconciliation engine.

Applies a provider payment outcome to the donation ledger and the campaign
aggregate exactly once. Webhooks, the QR push callback and the status poller
all end up in ``ReconciliationEngine.reconcile``.

Decision table, per (provider, provider payment id):

    log entry    incoming     action
    ---------    --------     ------
    completed    any          no-op                     -> ALREADY_PROCESSED
    failed       failed       no-op                     -> ALREADY_PROCESSED
    failed       completed    apply, upgrade log
    (none)       any          claim log row, apply

"apply" then resolves the donation: unresolved -> ORPHAN_EVENT (log only);
donation completed or cancelled -> ALREADY_PROCESSED (log only); otherwise
the donation is updated (and the campaign incremented on completion) and the
result is APPLIED.

All of it runs in one transaction. The log row is claimed with an INSERT
flushed before any other write, so two deliveries of the same payment id
cannot both get past the gate: the loser blocks on the unique key, gets an
IntegrityError once the winner commits, and the decision is re-run against
the winner's row.
"""
import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from errors import StorageFailure
from models import PaymentLog, PaymentMethod, PaymentProvider, PaymentStatus
from services.aggregates import apply_completed_donation
from services.events import COMPLETED, FAILED, parse_datetime
from services.ledger import LedgerStore

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 2

PROVIDER_METHODS = {
    PaymentProvider.CARD: PaymentMethod.CREDIT_CARD,
    PaymentProvider.QR: PaymentMethod.QR,
}


class Outcome(str, enum.Enum):
    APPLIED = 'applied'
    ALREADY_PROCESSED = 'already_processed'
    ORPHAN_EVENT = 'orphan_event'


@dataclass
class ReconciliationOutcome:
    outcome: Outcome
    donation_id: Optional[str] = None
    campaign_id: Optional[str] = None
    log_status: Optional[str] = None
    payment_status: Optional[str] = None

    @property
    def applied(self):
        return self.outcome is Outcome.APPLIED

    def to_dict(self):
        return {
            'outcome': self.outcome.value,
            'donationId': self.donation_id,
            'campaignId': self.campaign_id,
            'logStatus': self.log_status,
            'paymentStatus': self.payment_status
        }


class ReconciliationEngine:
    def __init__(self, session, notifier=None, on_completed=None):
        self.session = session
        self.store = LedgerStore(session)
        self.notifier = notifier
        self.on_completed = on_completed

    def reconcile(self, event):
        result = self._run_in_transaction(event)

        logger.info(
            f"reconciliation_{result.outcome.value}",
            provider=event.provider,
            provider_payment_id=event.provider_payment_id,
            incoming=event.outcome,
            donation_id=result.donation_id,
            log_status=result.log_status,
            payment_status=result.payment_status
        )

        if result.applied and event.outcome == COMPLETED:
            self._after_completion(result)
        return result

    def _run_in_transaction(self, event):
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                result = self._decide(event)
                self.session.commit()
                return result
            except IntegrityError as e:
                self.session.rollback()
                if attempt >= MAX_ATTEMPTS:
                    logger.error(
                        "reconciliation_storage_failure",
                        provider=event.provider,
                        provider_payment_id=event.provider_payment_id,
                        error=str(e)
                    )
                    raise StorageFailure("Could not record payment event") from e
                logger.info(
                    "event_log_race_retry",
                    provider=event.provider,
                    provider_payment_id=event.provider_payment_id,
                    attempt=attempt
                )
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.error(
                    "reconciliation_storage_failure",
                    provider=event.provider,
                    provider_payment_id=event.provider_payment_id,
                    error=str(e),
                    exc_info=True
                )
                raise StorageFailure("Could not record payment event") from e

    def _decide(self, event):
        existing = self.store.get_event_log(event.provider, event.provider_payment_id, lock=True)

        if existing is not None:
            if existing.status == PaymentLog.COMPLETED or event.outcome == FAILED:
                return ReconciliationOutcome(
                    Outcome.ALREADY_PROCESSED,
                    donation_id=existing.donation_id,
                    campaign_id=existing.campaign_id,
                    log_status=existing.status
                )

        donation = self.store.get_donation(event.donation_id, lock=True)

        if existing is None:
            entry = self.store.claim_event_log(event.provider, event.provider_payment_id, event.outcome)
            previous = None
        else:
            entry = existing
            previous = {'status': existing.status, 'metadata': existing.details}

        if donation is None:
            self._write_log(entry, event, None, 'orphan', previous)
            return ReconciliationOutcome(
                Outcome.ORPHAN_EVENT,
                donation_id=event.donation_id,
                campaign_id=event.campaign_id,
                log_status=entry.status
            )

        if donation.payment_status in (PaymentStatus.COMPLETED, PaymentStatus.CANCELLED):
            if donation.payment_status == PaymentStatus.CANCELLED and event.outcome == COMPLETED:
                logger.warning(
                    "payment_on_cancelled_donation",
                    donation_id=donation.id,
                    provider=event.provider,
                    provider_payment_id=event.provider_payment_id
                )
            # A completed donation keeps its log entry at completed whatever the provider reports
            status = COMPLETED if donation.payment_status == PaymentStatus.COMPLETED else event.outcome
            self._write_log(entry, event, donation, 'terminal_donation', previous, status=status)
            return ReconciliationOutcome(
                Outcome.ALREADY_PROCESSED,
                donation_id=donation.id,
                campaign_id=donation.campaign_id,
                log_status=entry.status,
                payment_status=donation.payment_status
            )

        if event.outcome == COMPLETED:
            self._apply_completed(donation, event)
        else:
            self._apply_failed(donation, event)

        self._write_log(entry, event, donation, 'applied', previous)
        return ReconciliationOutcome(
            Outcome.APPLIED,
            donation_id=donation.id,
            campaign_id=donation.campaign_id,
            log_status=entry.status,
            payment_status=donation.payment_status
        )

    def _apply_completed(self, donation, event):
        donation.payment_status = PaymentStatus.COMPLETED
        self._apply_payment_fields(donation, event)
        apply_completed_donation(self.session, donation)

    def _apply_failed(self, donation, event):
        donation.payment_status = PaymentStatus.FAILED
        self._apply_payment_fields(donation, event)
        self.session.flush()

    def _apply_payment_fields(self, donation, event):
        donation.payment_provider = event.provider
        donation.payment_method = PROVIDER_METHODS[event.provider]
        if event.currency:
            donation.currency = event.currency

        # Breakdown is first-write-wins; the pending row may already carry it
        if donation.tip_amount is None and event.tip_amount:
            donation.tip_amount = event.tip_amount
        if donation.total_amount is None:
            donation.total_amount = self._total_for(donation, event)

        meta = event.metadata
        if event.provider == PaymentProvider.CARD:
            donation.card_payment_id = event.provider_payment_id
            if meta.get('sessionId'):
                donation.card_session_id = meta['sessionId']
        else:
            donation.qr_transaction_id = meta.get('transactionId') or donation.qr_transaction_id
            donation.qr_payer_name = meta.get('payerName') or donation.qr_payer_name
            donation.qr_payer_account = meta.get('payerAccount') or donation.qr_payer_account
            donation.qr_payer_document = meta.get('payerDocument') or donation.qr_payer_document
            if event.outcome == COMPLETED:
                donation.qr_processed_at = parse_datetime(meta.get('processedAt')) or datetime.utcnow()

    @staticmethod
    def _total_for(donation, event):
        if event.amount_cents:
            return event.provider_amount
        base = event.base_amount or Decimal(str(donation.amount))
        tip = donation.tip_amount if donation.tip_amount is not None else (event.tip_amount or Decimal('0'))
        return base + Decimal(str(tip))

    def _write_log(self, entry, event, donation, decision, previous, status=None):
        entry.status = status or event.outcome
        entry.amount = event.provider_amount
        entry.currency = event.currency
        entry.payment_method = PROVIDER_METHODS[event.provider]
        entry.donation_id = donation.id if donation is not None else event.donation_id
        entry.campaign_id = donation.campaign_id if donation is not None else event.campaign_id
        entry.donor_id = donation.donor_id if donation is not None else event.donor_id

        details = event.audit_dict()
        details.update({
            'decision': decision,
            'reportedStatus': event.outcome,
            'amountBase': str(event.base_amount) if event.base_amount is not None else None,
            'tipAmount': str(event.tip_amount) if event.tip_amount is not None else None,
            'providerTotalAmount': str(event.provider_amount),
            'recordedAt': datetime.utcnow().isoformat()
        })
        if previous is not None:
            details['upgradedFrom'] = previous['status']
            details['previous'] = previous['metadata']
        entry.details = details
        self.session.flush()

    def _after_completion(self, result):
        # Runs after commit: nothing here may undo the reconciliation
        if self.on_completed is not None:
            try:
                self.on_completed(result)
            except Exception as e:
                logger.warning("post_commit_hook_failed", donation_id=result.donation_id, error=str(e))

        if self.notifier is None:
            return
        try:
            donation = self.store.get_donation(result.donation_id)
            if donation is not None:
                self.notifier.donation_completed(donation)
        except Exception as e:
            logger.warning("notification_failed", donation_id=result.donation_id, error=str(e))
