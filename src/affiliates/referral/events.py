"""Domain events for the Referral aggregate."""

from protean.fields import DateTime, Identifier, String

from affiliates.domain import affiliates


@affiliates.event(part_of="Referral")
class ReferralRegistered:
    """A user signed up with an affiliate's referral code."""

    __version__ = 1

    referral_id = Identifier(required=True)
    referral_code = String(required=True)
    affiliate_id = Identifier(required=True)
    referred_user_id = Identifier(required=True)
    registered_at = DateTime(required=True)


@affiliates.event(part_of="Referral")
class ReferralConverted:
    """A referred user placed their first order."""

    __version__ = 1

    referral_id = Identifier(required=True)
    affiliate_id = Identifier(required=True)
    order_id = Identifier(required=True)
    converted_at = DateTime(required=True)
