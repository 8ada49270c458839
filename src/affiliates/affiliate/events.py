"""Domain events for the Affiliate aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from affiliates.domain import affiliates


@affiliates.event(part_of="Affiliate")
class AffiliateRegistered:
    """A user joined the affiliate program and received a referral code."""

    __version__ = 1

    affiliate_id = Identifier(required=True)
    user_id = Identifier(required=True)
    email = String(required=True)
    display_name = String()
    referral_code = String(required=True)
    registered_at = DateTime(required=True)


@affiliates.event(part_of="Affiliate")
class AffiliateSuspended:
    """An affiliate was suspended and stops earning commissions."""

    __version__ = 1

    affiliate_id = Identifier(required=True)
    reason = String(required=True)
    suspended_at = DateTime(required=True)


@affiliates.event(part_of="Affiliate")
class AffiliateReactivated:
    """A suspended affiliate was restored."""

    __version__ = 1

    affiliate_id = Identifier(required=True)
    reactivated_at = DateTime(required=True)


@affiliates.event(part_of="Affiliate")
class AffiliateBalanceChanged:
    """One of the affiliate's commission balances moved.

    ``reason`` names the movement: CommissionRecorded, CommissionApproved,
    CommissionRejected, PayoutReserved, PayoutReleased, or PayoutPaid.
    """

    __version__ = 1

    affiliate_id = Identifier(required=True)
    reason = String(required=True)
    amount = Float(required=True)
    pending_commission = Float(required=True)
    approved_commission = Float(required=True)
    paid_commission = Float(required=True)
    changed_at = DateTime(required=True)
