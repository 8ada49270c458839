"""Payout settlement — admins move a payout through processing to completion or rejection.

Completing a payout credits the affiliate's paid balance and marks their
oldest approved Legacy commissions paid, as far as the payout amount
covers them. Rejecting a payout returns its amount to the approved balance.
"""

import structlog
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from affiliates.affiliate.affiliate import Affiliate
from affiliates.commission.commission import Commission, CommissionStatus, Ledger
from affiliates.domain import affiliates
from affiliates.payout.payout import Payout
from affiliates.shared.queries import all_items

logger = structlog.get_logger(__name__)


@affiliates.command(part_of="Payout")
class StartPayoutProcessing:
    payout_id = Identifier(required=True)
    processed_by = String(required=True, max_length=100)


@affiliates.command(part_of="Payout")
class CompletePayout:
    payout_id = Identifier(required=True)
    transaction_id = String(max_length=100)


@affiliates.command(part_of="Payout")
class RejectPayout:
    payout_id = Identifier(required=True)
    reason = Text(required=True)


def settle_legacy_commissions(affiliate_id, payout_id, amount):
    """Mark approved Legacy commissions paid, oldest first, up to ``amount``."""
    repo = current_domain.repository_for(Commission)
    approved = all_items(
        repo._dao.query.filter(
            affiliate_id=str(affiliate_id),
            ledger=Ledger.LEGACY.value,
            status=CommissionStatus.APPROVED.value,
        ).order_by("approved_at")
    )

    remaining = amount
    settled = []
    for commission in approved:
        if commission.commission_amount > remaining:
            break
        commission.mark_paid(payout_id)
        repo.add(commission)
        remaining -= commission.commission_amount
        settled.append(str(commission.id))
    return settled


@affiliates.command_handler(part_of=Payout)
class PayoutSettlementHandler:
    @handle(StartPayoutProcessing)
    def start_processing(self, command):
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        payout.start_processing(processed_by=command.processed_by)
        repo.add(payout)

    @handle(CompletePayout)
    def complete(self, command):
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        payout.complete(transaction_id=command.transaction_id)
        repo.add(payout)

        affiliate_repo = current_domain.repository_for(Affiliate)
        affiliate = affiliate_repo.get(payout.affiliate_id)
        affiliate.settle_payout(payout.amount)
        affiliate_repo.add(affiliate)

        settled = settle_legacy_commissions(payout.affiliate_id, payout.id, payout.amount)
        logger.info(
            "Payout completed",
            payout_id=str(payout.id),
            affiliate_id=str(payout.affiliate_id),
            commissions_paid=len(settled),
        )

    @handle(RejectPayout)
    def reject(self, command):
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        payout.reject(command.reason)
        repo.add(payout)

        affiliate_repo = current_domain.repository_for(Affiliate)
        affiliate = affiliate_repo.get(payout.affiliate_id)
        affiliate.release_payout(payout.amount)
        affiliate_repo.add(affiliate)

        logger.info(
            "Payout rejected",
            payout_id=str(payout.id),
            affiliate_id=str(payout.affiliate_id),
            reason=command.reason,
        )
