"""Referral aggregate (CQRS) — the legacy "referral code at signup" record.

A user who signs up with a referral code stays referred by that affiliate;
their orders earn commissions in the Legacy ledger when no open attribution
claims them.

State Machine:
    REGISTERED → ORDERED → APPROVED
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String

from affiliates.domain import affiliates
from affiliates.referral.events import ReferralConverted, ReferralRegistered


class ReferralStatus(Enum):
    REGISTERED = "Registered"
    ORDERED = "Ordered"
    APPROVED = "Approved"


_VALID_TRANSITIONS = {
    ReferralStatus.REGISTERED: {ReferralStatus.ORDERED},
    ReferralStatus.ORDERED: {ReferralStatus.APPROVED},
    ReferralStatus.APPROVED: set(),
}


@affiliates.aggregate
class Referral:
    referral_code = String(required=True, max_length=20)
    affiliate_id = Identifier(required=True)
    referred_user_id = Identifier(required=True, unique=True)
    referred_email = String(max_length=254)
    status = String(choices=ReferralStatus, default=ReferralStatus.REGISTERED.value)
    first_order_id = Identifier()
    registered_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def register(cls, referral_code, affiliate_id, referred_user_id, referred_email=None):
        now = datetime.now(UTC)
        referral = cls(
            referral_code=referral_code,
            affiliate_id=affiliate_id,
            referred_user_id=referred_user_id,
            referred_email=referred_email,
            status=ReferralStatus.REGISTERED.value,
            registered_at=now,
            updated_at=now,
        )
        referral.raise_(
            ReferralRegistered(
                referral_id=str(referral.id),
                referral_code=referral_code,
                affiliate_id=str(affiliate_id),
                referred_user_id=str(referred_user_id),
                registered_at=now,
            )
        )
        return referral

    def _assert_can_transition(self, target_status):
        current = ReferralStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def record_first_order(self, order_id):
        """Mark the referral converted. Later orders leave it untouched."""
        if ReferralStatus(self.status) != ReferralStatus.REGISTERED:
            return

        self._assert_can_transition(ReferralStatus.ORDERED)
        now = datetime.now(UTC)
        self.status = ReferralStatus.ORDERED.value
        self.first_order_id = order_id
        self.updated_at = now
        self.raise_(
            ReferralConverted(
                referral_id=str(self.id),
                affiliate_id=str(self.affiliate_id),
                order_id=str(order_id),
                converted_at=now,
            )
        )

    def mark_approved(self):
        if ReferralStatus(self.status) == ReferralStatus.APPROVED:
            return
        self._assert_can_transition(ReferralStatus.APPROVED)
        self.status = ReferralStatus.APPROVED.value
        self.updated_at = datetime.now(UTC)
