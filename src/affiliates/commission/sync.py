"""SyncCommission — mirror one approved Attribution commission into the Legacy ledger.

This module is the only place that translates between the two ledgers.
Within a single unit of work it:

1. writes (or approves) the Legacy mirror keyed ``mirror:<source id>``,
2. moves the amount from the affiliate's pending to approved balance,
3. flags the Attribution row ``synced_to_other_ledger``.

If any step fails nothing is saved and the row stays approved-but-unsynced,
ready for the next bulk sync. A row that is already synced is reported as
skipped, never re-credited.
"""

import structlog
from protean.exceptions import ValidationError
from protean.fields import Identifier
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from affiliates.affiliate.affiliate import Affiliate
from affiliates.commission.commission import Commission, CommissionStatus, Ledger, mirror_key
from affiliates.domain import affiliates

logger = structlog.get_logger(__name__)

SYNCED = "synced"
SKIPPED = "skipped"


@affiliates.command(part_of="Commission")
class SyncCommission:
    commission_id = Identifier(required=True)


def find_mirror(source_commission_id):
    results = (
        current_domain.repository_for(Commission)
        ._dao.query.filter(commission_key=mirror_key(source_commission_id))
        .all()
    )
    return results.items[0] if results.items else None


def mirror_into_legacy(source):
    """Return the Legacy row for ``source`` and whether it was newly written."""
    existing = find_mirror(source.id)
    if existing is None:
        return Commission.mirror_of(source), True

    if existing.status == CommissionStatus.PENDING.value:
        existing.approve(source.approved_by)
    return existing, False


@affiliates.command_handler(part_of=Commission)
class SyncCommissionHandler:
    @handle(SyncCommission)
    def sync_commission(self, command):
        repo = current_domain.repository_for(Commission)
        commission = repo.get(command.commission_id)

        if commission.ledger != Ledger.ATTRIBUTION.value:
            raise ValidationError({"ledger": ["Only Attribution commissions are synced"]})
        if commission.synced_to_other_ledger:
            logger.info("Commission already synced", commission_id=str(commission.id))
            return SKIPPED
        if commission.status != CommissionStatus.APPROVED.value:
            raise ValidationError({"status": [f"Cannot sync a {commission.status} commission"]})

        mirror, created = mirror_into_legacy(commission)
        repo.add(mirror)

        if created:
            affiliate_repo = current_domain.repository_for(Affiliate)
            affiliate = affiliate_repo.get(commission.affiliate_id)
            affiliate.approve_commission(commission.commission_amount)
            affiliate_repo.add(affiliate)

        commission.mark_synced(legacy_commission_id=mirror.id)
        repo.add(commission)

        logger.info(
            "Commission synced to legacy ledger",
            commission_id=str(commission.id),
            legacy_commission_id=str(mirror.id),
            credited=created,
        )
        return SYNCED if created else SKIPPED
