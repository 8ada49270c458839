"""Commission sync coordination — the admin-facing approve / reject / bulk-sync flows.

Each write below runs as its own command, and so its own unit of work:

- ``approve`` commits the approval first, then attempts the sync. A failed
  sync leaves the commission approved-but-unsynced, which bulk sync picks up.
- ``bulk_sync`` syncs every approved, unsynced Attribution commission one at
  a time. A failure is logged and counted and the scan carries on. Stopping
  midway is safe: synced rows stay synced and the next run sees only the
  remainder.
- ``sync_status`` and ``combined_balance`` are computed from the ledgers on
  every call.
"""

from dataclasses import asdict, dataclass

import structlog
from protean.utils.globals import current_domain

from affiliates.affiliate.affiliate import Affiliate
from affiliates.commission.commission import Commission, CommissionStatus, Ledger
from affiliates.commission.moderation import ApproveCommission, RejectCommission
from affiliates.commission.sync import SKIPPED, SYNCED, SyncCommission
from affiliates.shared.money import round_amount
from affiliates.shared.queries import all_items

logger = structlog.get_logger(__name__)

FAILED = "failed"


@dataclass(frozen=True)
class SyncReport:
    """Outcome counts of a bulk sync run."""

    synced: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class SyncStatus:
    """Attribution-ledger counts for the "sync now" dashboard."""

    total: int
    pending: int
    approved: int
    rejected: int
    synced: int
    unsynced: int

    def as_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class CombinedBalance:
    """What an affiliate can draw on across both ledgers.

    ``awaiting_sync`` is approved Attribution commission not yet mirrored into
    the Legacy ledger; once synced it is part of ``legacy_approved``.
    """

    affiliate_id: str
    legacy_approved: float
    awaiting_sync: float
    pending_attribution: float

    @property
    def total_available(self):
        return round_amount(self.legacy_approved + self.awaiting_sync)

    def as_dict(self):
        return {**asdict(self), "total_available": self.total_available}


def approve(commission_id, approver_id, ledger=None):
    """Approve a commission and, for the Attribution ledger, sync it right away.

    Returns the sync outcome (``"synced"``, ``"skipped"``), ``"failed"`` when
    the sync could not complete, or None for Legacy commissions.
    """
    approved_ledger = current_domain.process(
        ApproveCommission(commission_id=commission_id, approver_id=approver_id, ledger=ledger),
        asynchronous=False,
    )
    if approved_ledger != Ledger.ATTRIBUTION.value:
        return None

    try:
        return current_domain.process(SyncCommission(commission_id=commission_id), asynchronous=False)
    except Exception as exc:
        logger.error(
            "Commission approved but sync failed",
            commission_id=str(commission_id),
            error=str(exc),
        )
        return FAILED


def reject(commission_id, approver_id, reason, ledger=None):
    current_domain.process(
        RejectCommission(commission_id=commission_id, approver_id=approver_id, reason=reason, ledger=ledger),
        asynchronous=False,
    )


def unsynced_commission_ids():
    """Ids of approved Attribution commissions not yet mirrored, oldest first."""
    query = current_domain.repository_for(Commission)._dao.query.filter(
        ledger=Ledger.ATTRIBUTION.value,
        status=CommissionStatus.APPROVED.value,
        synced_to_other_ledger=False,
    )
    return [str(c.id) for c in all_items(query.order_by("created_at"))]


def bulk_sync():
    """Sync every approved, unsynced Attribution commission. Never raises per record."""
    synced = skipped = failed = 0

    for commission_id in unsynced_commission_ids():
        try:
            outcome = current_domain.process(SyncCommission(commission_id=commission_id), asynchronous=False)
        except Exception as exc:
            failed += 1
            logger.error("Commission sync failed", commission_id=commission_id, error=str(exc))
            continue

        if outcome == SYNCED:
            synced += 1
        elif outcome == SKIPPED:
            skipped += 1

    report = SyncReport(synced=synced, skipped=skipped, failed=failed)
    logger.info("Bulk commission sync finished", **report.as_dict())
    return report


def sync_status():
    """Current Attribution-ledger counts; never cached."""
    query = current_domain.repository_for(Commission)._dao.query

    def count(**filters):
        return query.filter(ledger=Ledger.ATTRIBUTION.value, **filters).all().total

    approved = count(status=CommissionStatus.APPROVED.value)
    synced = count(status=CommissionStatus.APPROVED.value, synced_to_other_ledger=True)
    return SyncStatus(
        total=count(),
        pending=count(status=CommissionStatus.PENDING.value),
        approved=approved,
        rejected=count(status=CommissionStatus.REJECTED.value),
        synced=synced,
        unsynced=approved - synced,
    )


def combined_balance(affiliate_id):
    """Approved balance on the affiliate plus Attribution commission still in flight."""
    affiliate = current_domain.repository_for(Affiliate).get(affiliate_id)
    query = current_domain.repository_for(Commission)._dao.query.filter(
        ledger=Ledger.ATTRIBUTION.value,
        affiliate_id=str(affiliate.id),
    )

    def amount(**filters):
        return round_amount(sum(c.commission_amount for c in all_items(query.filter(**filters).order_by("created_at"))))

    return CombinedBalance(
        affiliate_id=str(affiliate.id),
        legacy_approved=affiliate.approved_commission,
        awaiting_sync=amount(status=CommissionStatus.APPROVED.value, synced_to_other_ledger=False),
        pending_attribution=amount(status=CommissionStatus.PENDING.value),
    )
