"""ApproveCommission / RejectCommission — admin decisions on a commission.

Approving an already approved commission is a no-op, so a second admin
clicking "approve" (or a retry) changes nothing. Legacy approvals become
payout-eligible immediately; Attribution approvals become eligible once
SyncCommission mirrors them into the Legacy ledger.
"""

import structlog
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from affiliates.affiliate.affiliate import Affiliate
from affiliates.commission.commission import Commission, CommissionStatus, Ledger
from affiliates.domain import affiliates
from affiliates.referral.referral import Referral, ReferralStatus
from affiliates.referral.registration import find_referral_for_user

logger = structlog.get_logger(__name__)


@affiliates.command(part_of="Commission")
class ApproveCommission:
    commission_id = Identifier(required=True)
    approver_id = String(required=True, max_length=100)
    ledger = String(choices=Ledger)  # Optional guard: the ledger the admin is looking at


@affiliates.command(part_of="Commission")
class RejectCommission:
    commission_id = Identifier(required=True)
    approver_id = String(required=True, max_length=100)
    reason = String(required=True, max_length=500)
    ledger = String(choices=Ledger)


def _load(repo, commission_id, ledger):
    commission = repo.get(commission_id)
    if ledger and commission.ledger != ledger:
        raise ValidationError({"ledger": [f"Commission belongs to the {commission.ledger} ledger"]})
    if commission.is_mirror:
        raise ValidationError({"commission_id": ["Mirrored commissions are managed through their source"]})
    return commission


@affiliates.command_handler(part_of=Commission)
class ModerateCommissionHandler:
    @handle(ApproveCommission)
    def approve_commission(self, command):
        repo = current_domain.repository_for(Commission)
        commission = _load(repo, command.commission_id, command.ledger)

        if commission.status == CommissionStatus.APPROVED.value:
            logger.info("Commission already approved", commission_id=str(commission.id))
            return commission.ledger

        commission.approve(command.approver_id)
        repo.add(commission)

        if commission.ledger == Ledger.LEGACY.value:
            affiliate_repo = current_domain.repository_for(Affiliate)
            affiliate = affiliate_repo.get(commission.affiliate_id)
            affiliate.approve_commission(commission.commission_amount)
            affiliate_repo.add(affiliate)

            referral = find_referral_for_user(commission.user_id) if commission.user_id else None
            if referral is not None and referral.status == ReferralStatus.ORDERED.value:
                referral.mark_approved()
                current_domain.repository_for(Referral).add(referral)

        logger.info(
            "Commission approved",
            commission_id=str(commission.id),
            ledger=commission.ledger,
            approver_id=command.approver_id,
        )
        return commission.ledger

    @handle(RejectCommission)
    def reject_commission(self, command):
        repo = current_domain.repository_for(Commission)
        commission = _load(repo, command.commission_id, command.ledger)

        commission.reject(command.approver_id, command.reason)
        repo.add(commission)

        affiliate_repo = current_domain.repository_for(Affiliate)
        affiliate = affiliate_repo.get(commission.affiliate_id)
        affiliate.reject_commission(commission.commission_amount)
        affiliate_repo.add(affiliate)

        logger.info(
            "Commission rejected",
            commission_id=str(commission.id),
            ledger=commission.ledger,
            approver_id=command.approver_id,
            reason=command.reason,
        )
