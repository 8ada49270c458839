"""RegisterReferral — record that a new user signed up with a referral code.

Self-referrals and repeat registrations are ignored rather than rejected:
signup must succeed whatever the referral code turns out to be.
"""

import structlog
from protean.fields import Identifier, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from affiliates.affiliate.affiliate import Affiliate
from affiliates.affiliate.registration import find_by_referral_code
from affiliates.domain import affiliates
from affiliates.referral.referral import Referral

logger = structlog.get_logger(__name__)


@affiliates.command(part_of="Referral")
class RegisterReferral:
    referral_code = String(required=True, max_length=20)
    user_id = Identifier(required=True)
    email = String(max_length=254)


def find_referral_for_user(user_id):
    results = current_domain.repository_for(Referral)._dao.query.filter(referred_user_id=str(user_id)).all()
    return results.items[0] if results.items else None


def register_referral(referral_code, user_id, email=None):
    """Register within the current unit of work. Returns the referral id or None."""
    affiliate = find_by_referral_code(referral_code)
    if affiliate is None or not affiliate.is_active:
        logger.info("Signup referral code not recognised", referral_code=referral_code, user_id=str(user_id))
        return None
    if str(affiliate.user_id) == str(user_id):
        logger.info("Self-referral ignored", affiliate_id=str(affiliate.id))
        return None

    existing = find_referral_for_user(user_id)
    if existing is not None:
        return str(existing.id)

    referral = Referral.register(
        referral_code=affiliate.referral_code,
        affiliate_id=str(affiliate.id),
        referred_user_id=user_id,
        referred_email=email,
    )
    current_domain.repository_for(Referral).add(referral)

    affiliate.record_referral()
    current_domain.repository_for(Affiliate).add(affiliate)

    logger.info(
        "Referral registered",
        referral_id=str(referral.id),
        affiliate_id=str(affiliate.id),
        user_id=str(user_id),
    )
    return str(referral.id)


@affiliates.command_handler(part_of=Referral)
class RegisterReferralHandler:
    @handle(RegisterReferral)
    def register(self, command):
        return register_referral(command.referral_code, command.user_id, command.email)
