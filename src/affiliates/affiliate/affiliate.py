"""Affiliate aggregate (CQRS) — the affiliate account and its commission balances.

The affiliate account is the legacy program record. It owns the referral code
that visitors arrive with and the four balances that commissions and payouts
move between:

    pending   : recorded commissions awaiting an admin decision
    approved  : payout-eligible (legacy approvals and synced attribution approvals)
    paid      : settled through completed payouts
    total     : lifetime commission, net of rejections

Every balance change is a method on the aggregate so that it is saved (and
version-checked) together with the commission or payout that caused it.

State Machine:
    ACTIVE ⇄ SUSPENDED
"""

import random
import re
import string
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, Integer, String

from affiliates.affiliate.events import (
    AffiliateBalanceChanged,
    AffiliateReactivated,
    AffiliateRegistered,
    AffiliateSuspended,
)
from affiliates.domain import affiliates
from affiliates.shared.money import round_amount

REFERRAL_CODE_PATTERN = re.compile(r"^[A-Z0-9]{4,20}$")


class AffiliateStatus(Enum):
    ACTIVE = "Active"
    SUSPENDED = "Suspended"


class BalanceMovement(Enum):
    COMMISSION_RECORDED = "CommissionRecorded"
    COMMISSION_APPROVED = "CommissionApproved"
    COMMISSION_REJECTED = "CommissionRejected"
    PAYOUT_RESERVED = "PayoutReserved"
    PAYOUT_RELEASED = "PayoutReleased"
    PAYOUT_PAID = "PayoutPaid"


def generate_referral_code(user_id, display_name=None):
    """Name prefix, three random characters, and the tail of the user id."""
    prefix = re.sub(r"[^A-Z0-9]", "", (display_name or "AFF").upper())[:3] or "AFF"
    random_part = "".join(random.choices(string.ascii_uppercase + string.digits, k=3))
    suffix = re.sub(r"[^A-Z0-9]", "", str(user_id).upper())[-4:]
    return f"{prefix}{random_part}{suffix}"


def normalize_referral_code(code):
    return code.strip().upper() if code else code


@affiliates.aggregate
class Affiliate:
    """A member of the affiliate program."""

    user_id = Identifier(required=True, unique=True)
    email = String(required=True, max_length=254)
    display_name = String(max_length=100)
    referral_code = String(required=True, max_length=20, unique=True)
    status = String(choices=AffiliateStatus, default=AffiliateStatus.ACTIVE.value)
    suspension_reason = String(max_length=255)

    # Tier override; None means the program default applies
    commission_rate = Float(min_value=0.0, max_value=100.0)

    total_referrals = Integer(default=0)

    total_commission = Float(default=0.0)
    pending_commission = Float(default=0.0)
    approved_commission = Float(default=0.0)
    paid_commission = Float(default=0.0)

    last_payout_requested_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def referral_code_format(self):
        if self.referral_code and not REFERRAL_CODE_PATTERN.match(self.referral_code):
            raise ValidationError({"referral_code": ["Referral code must be 4-20 upper-case letters or digits"]})

    @invariant.post
    def balances_cannot_be_negative(self):
        for field_name in ("pending_commission", "approved_commission", "paid_commission"):
            value = getattr(self, field_name)
            if value is not None and value < 0:
                raise ValidationError({field_name: ["Balance cannot be negative"]})

    @classmethod
    def register(cls, user_id, email, display_name=None, referral_code=None, commission_rate=None):
        """Enroll a user in the affiliate program."""
        now = datetime.now(UTC)
        code = normalize_referral_code(referral_code) or generate_referral_code(user_id, display_name)

        affiliate = cls(
            user_id=user_id,
            email=email,
            display_name=display_name,
            referral_code=code,
            commission_rate=commission_rate,
            status=AffiliateStatus.ACTIVE.value,
            created_at=now,
            updated_at=now,
        )
        affiliate.raise_(
            AffiliateRegistered(
                affiliate_id=str(affiliate.id),
                user_id=str(user_id),
                email=email,
                display_name=display_name,
                referral_code=code,
                registered_at=now,
            )
        )
        return affiliate

    @property
    def is_active(self):
        return self.status == AffiliateStatus.ACTIVE.value

    def effective_rate(self, default_rate):
        return self.commission_rate if self.commission_rate is not None else default_rate

    # -------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------
    def suspend(self, reason):
        if not self.is_active:
            raise ValidationError({"status": ["Affiliate is already suspended"]})

        now = datetime.now(UTC)
        self.status = AffiliateStatus.SUSPENDED.value
        self.suspension_reason = reason
        self.updated_at = now
        self.raise_(AffiliateSuspended(affiliate_id=str(self.id), reason=reason, suspended_at=now))

    def reactivate(self):
        if self.is_active:
            raise ValidationError({"status": ["Affiliate is already active"]})

        now = datetime.now(UTC)
        self.status = AffiliateStatus.ACTIVE.value
        self.suspension_reason = None
        self.updated_at = now
        self.raise_(AffiliateReactivated(affiliate_id=str(self.id), reactivated_at=now))

    # -------------------------------------------------------------------
    # Activity counters
    # -------------------------------------------------------------------
    def record_referral(self):
        self.total_referrals = (self.total_referrals or 0) + 1
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Balances
    # -------------------------------------------------------------------
    def record_commission(self, amount):
        """A new commission was recorded for this affiliate."""
        amount = round_amount(amount)
        self.pending_commission = round_amount(self.pending_commission + amount)
        self.total_commission = round_amount(self.total_commission + amount)
        self._balance_changed(BalanceMovement.COMMISSION_RECORDED, amount)

    def approve_commission(self, amount):
        """Move an approved commission from pending into the payout-eligible balance."""
        amount = round_amount(amount)
        self.pending_commission = round_amount(max(self.pending_commission - amount, 0.0))
        self.approved_commission = round_amount(self.approved_commission + amount)
        self._balance_changed(BalanceMovement.COMMISSION_APPROVED, amount)

    def reject_commission(self, amount):
        amount = round_amount(amount)
        self.pending_commission = round_amount(max(self.pending_commission - amount, 0.0))
        self.total_commission = round_amount(max(self.total_commission - amount, 0.0))
        self._balance_changed(BalanceMovement.COMMISSION_REJECTED, amount)

    def reserve_payout(self, amount):
        """Take ``amount`` out of the approved balance for a payout request."""
        amount = round_amount(amount)
        if amount > self.approved_commission:
            raise ValidationError({"amount": ["Amount exceeds available balance"]})

        self.approved_commission = round_amount(self.approved_commission - amount)
        self.last_payout_requested_at = datetime.now(UTC)
        self._balance_changed(BalanceMovement.PAYOUT_RESERVED, amount)

    def release_payout(self, amount):
        """Return a rejected payout's amount to the approved balance."""
        amount = round_amount(amount)
        self.approved_commission = round_amount(self.approved_commission + amount)
        self._balance_changed(BalanceMovement.PAYOUT_RELEASED, amount)

    def settle_payout(self, amount):
        amount = round_amount(amount)
        self.paid_commission = round_amount(self.paid_commission + amount)
        self._balance_changed(BalanceMovement.PAYOUT_PAID, amount)

    def _balance_changed(self, movement, amount):
        now = datetime.now(UTC)
        self.updated_at = now
        self.raise_(
            AffiliateBalanceChanged(
                affiliate_id=str(self.id),
                reason=movement.value,
                amount=amount,
                pending_commission=self.pending_commission,
                approved_commission=self.approved_commission,
                paid_commission=self.paid_commission,
                changed_at=now,
            )
        )
