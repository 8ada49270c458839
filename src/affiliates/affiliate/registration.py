"""RegisterAffiliate, SuspendAffiliate, ReactivateAffiliate — commands and handler.

One affiliate account per user; referral codes are unique across the program.
"""

import structlog
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from affiliates.affiliate.affiliate import Affiliate, normalize_referral_code
from affiliates.domain import affiliates

logger = structlog.get_logger(__name__)


@affiliates.command(part_of="Affiliate")
class RegisterAffiliate:
    user_id = Identifier(required=True)
    email = String(required=True, max_length=254)
    display_name = String(max_length=100)
    referral_code = String(max_length=20)
    commission_rate = Float()


@affiliates.command(part_of="Affiliate")
class SuspendAffiliate:
    affiliate_id = Identifier(required=True)
    reason = String(required=True, max_length=255)


@affiliates.command(part_of="Affiliate")
class ReactivateAffiliate:
    affiliate_id = Identifier(required=True)


def find_by_referral_code(code):
    """Return the affiliate owning ``code``, or None."""
    if not code:
        return None
    results = (
        current_domain.repository_for(Affiliate)._dao.query.filter(referral_code=normalize_referral_code(code)).all()
    )
    return results.items[0] if results.items else None


def find_by_user(user_id):
    results = current_domain.repository_for(Affiliate)._dao.query.filter(user_id=str(user_id)).all()
    return results.items[0] if results.items else None


@affiliates.command_handler(part_of=Affiliate)
class AffiliateAccountHandler:
    @handle(RegisterAffiliate)
    def register_affiliate(self, command):
        if find_by_user(command.user_id):
            raise ValidationError({"user_id": ["User is already registered as an affiliate"]})
        if command.referral_code and find_by_referral_code(command.referral_code):
            raise ValidationError({"referral_code": ["Referral code is already taken"]})

        affiliate = Affiliate.register(
            user_id=command.user_id,
            email=command.email,
            display_name=command.display_name,
            referral_code=command.referral_code,
            commission_rate=command.commission_rate,
        )
        current_domain.repository_for(Affiliate).add(affiliate)

        logger.info(
            "Affiliate registered",
            affiliate_id=str(affiliate.id),
            referral_code=affiliate.referral_code,
        )
        return str(affiliate.id)

    @handle(SuspendAffiliate)
    def suspend_affiliate(self, command):
        repo = current_domain.repository_for(Affiliate)
        affiliate = repo.get(command.affiliate_id)
        affiliate.suspend(command.reason)
        repo.add(affiliate)

    @handle(ReactivateAffiliate)
    def reactivate_affiliate(self, command):
        repo = current_domain.repository_for(Affiliate)
        affiliate = repo.get(command.affiliate_id)
        affiliate.reactivate()
        repo.add(affiliate)
