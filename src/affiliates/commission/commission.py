"""Commission aggregate (CQRS) — one order's earnings, in one of two ledgers.

Both ledgers share this aggregate and are told apart by ``ledger``:

    Legacy       : the original "referral code at signup" ledger, and the
                   only one payouts draw on
    Attribution  : the last-click attribution ledger; approved rows must be
                   mirrored into Legacy before they are payout-eligible

``commission_key`` is unique across the table. Origin rows use
``order:<order_id>``, so an order can earn at most one commission whichever
ledger claims it. Legacy mirrors of synced Attribution rows use
``mirror:<source id>`` and never count as a second commission.

State Machine (per ledger):
    Attribution: PENDING → APPROVED | REJECTED   (APPROVED may then be synced once)
    Legacy:      PENDING → APPROVED | REJECTED, APPROVED → PAID
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, String

from affiliates.commission.events import (
    CommissionApproved,
    CommissionPaid,
    CommissionRecorded,
    CommissionRejected,
    CommissionSynced,
)
from affiliates.domain import affiliates
from affiliates.shared.money import percentage_of, round_amount


class Ledger(Enum):
    LEGACY = "Legacy"
    ATTRIBUTION = "Attribution"


class CommissionStatus(Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PAID = "Paid"


_VALID_TRANSITIONS = {
    Ledger.ATTRIBUTION: {
        CommissionStatus.PENDING: {CommissionStatus.APPROVED, CommissionStatus.REJECTED},
        CommissionStatus.APPROVED: set(),
        CommissionStatus.REJECTED: set(),  # Terminal, never synced
        CommissionStatus.PAID: set(),
    },
    Ledger.LEGACY: {
        CommissionStatus.PENDING: {CommissionStatus.APPROVED, CommissionStatus.REJECTED},
        CommissionStatus.APPROVED: {CommissionStatus.PAID},
        CommissionStatus.REJECTED: set(),
        CommissionStatus.PAID: set(),
    },
}


def origin_key(order_id):
    return f"order:{order_id}"


def mirror_key(source_commission_id):
    return f"mirror:{source_commission_id}"


@affiliates.aggregate
class Commission:
    """The commission an affiliate earned on a single order."""

    commission_key = String(required=True, max_length=120, unique=True)
    ledger = String(choices=Ledger, required=True)

    # Order
    order_id = Identifier(required=True)
    user_id = Identifier()
    user_email = String(max_length=254)
    order_total = Float(required=True, min_value=0.0)

    # Affiliate and attribution context
    affiliate_id = Identifier(required=True)
    referral_code = String(required=True, max_length=20)
    attribution_id = Identifier()
    source_commission_id = Identifier()  # Set on Legacy mirrors of Attribution rows

    # Amounts
    commissionable_base = Float(required=True, min_value=0.0)
    commission_rate = Float(required=True, min_value=0.0, max_value=100.0)
    commission_amount = Float(required=True, min_value=0.0)

    # Lifecycle
    status = String(choices=CommissionStatus, default=CommissionStatus.PENDING.value)
    synced_to_other_ledger = Boolean(default=False)
    synced_at = DateTime()
    approved_by = String(max_length=100)
    rejected_by = String(max_length=100)
    rejection_reason = String(max_length=500)
    payout_id = Identifier()

    created_at = DateTime()
    approved_at = DateTime()
    rejected_at = DateTime()
    paid_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def only_approved_attribution_rows_are_synced(self):
        if not self.synced_to_other_ledger:
            return
        if self.ledger != Ledger.ATTRIBUTION.value:
            raise ValidationError({"synced_to_other_ledger": ["Only Attribution commissions are synced"]})
        if self.status != CommissionStatus.APPROVED.value:
            raise ValidationError({"synced_to_other_ledger": ["Only approved commissions can be synced"]})

    @invariant.post
    def mirrors_live_in_legacy_ledger(self):
        if self.source_commission_id and self.ledger != Ledger.LEGACY.value:
            raise ValidationError({"source_commission_id": ["Mirrored commissions belong to the Legacy ledger"]})

    # -------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------
    @classmethod
    def record(
        cls,
        ledger,
        order_id,
        affiliate_id,
        referral_code,
        order_total,
        commissionable_base,
        commission_rate,
        user_id=None,
        user_email=None,
        attribution_id=None,
        recorded_at=None,
    ):
        """Record a pending commission for an order."""
        now = recorded_at or datetime.now(UTC)
        ledger = Ledger(ledger)
        base = round_amount(commissionable_base)
        amount = percentage_of(base, commission_rate)

        commission = cls(
            commission_key=origin_key(order_id),
            ledger=ledger.value,
            order_id=order_id,
            user_id=user_id,
            user_email=user_email,
            order_total=round_amount(order_total),
            affiliate_id=affiliate_id,
            referral_code=referral_code,
            attribution_id=attribution_id,
            commissionable_base=base,
            commission_rate=commission_rate,
            commission_amount=amount,
            status=CommissionStatus.PENDING.value,
            synced_to_other_ledger=False,
            created_at=now,
            updated_at=now,
        )
        commission._raise_recorded(now)
        return commission

    @classmethod
    def mirror_of(cls, source):
        """Build the approved Legacy-ledger copy of an approved Attribution commission."""
        if source.ledger != Ledger.ATTRIBUTION.value:
            raise ValidationError({"ledger": ["Only Attribution commissions can be mirrored"]})
        if source.status != CommissionStatus.APPROVED.value:
            raise ValidationError({"status": ["Only approved commissions can be mirrored"]})

        now = datetime.now(UTC)
        mirror = cls(
            commission_key=mirror_key(source.id),
            ledger=Ledger.LEGACY.value,
            order_id=source.order_id,
            user_id=source.user_id,
            user_email=source.user_email,
            order_total=source.order_total,
            affiliate_id=source.affiliate_id,
            referral_code=source.referral_code,
            attribution_id=source.attribution_id,
            source_commission_id=str(source.id),
            commissionable_base=source.commissionable_base,
            commission_rate=source.commission_rate,
            commission_amount=source.commission_amount,
            status=CommissionStatus.APPROVED.value,
            approved_by=source.approved_by,
            approved_at=source.approved_at or now,
            created_at=now,
            updated_at=now,
        )
        mirror._raise_recorded(now)
        return mirror

    def _raise_recorded(self, at):
        self.raise_(
            CommissionRecorded(
                commission_id=str(self.id),
                ledger=self.ledger,
                order_id=str(self.order_id),
                affiliate_id=str(self.affiliate_id),
                referral_code=self.referral_code,
                user_id=str(self.user_id) if self.user_id else None,
                order_total=self.order_total,
                commissionable_base=self.commissionable_base,
                commission_rate=self.commission_rate,
                commission_amount=self.commission_amount,
                source_commission_id=self.source_commission_id,
                recorded_at=at,
            )
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_mirror(self):
        return self.source_commission_id is not None

    @property
    def is_approved(self):
        return self.status == CommissionStatus.APPROVED.value

    @property
    def awaiting_sync(self):
        return self.ledger == Ledger.ATTRIBUTION.value and self.is_approved and not self.synced_to_other_ledger

    # -------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        """Validate the transition against this row's ledger."""
        current = CommissionStatus(self.status)
        allowed = _VALID_TRANSITIONS[Ledger(self.ledger)].get(current, set())
        if target_status not in allowed:
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def approve(self, approver_id):
        self._assert_can_transition(CommissionStatus.APPROVED)

        now = datetime.now(UTC)
        self.status = CommissionStatus.APPROVED.value
        self.approved_by = str(approver_id)
        self.approved_at = now
        self.updated_at = now

        self.raise_(
            CommissionApproved(
                commission_id=str(self.id),
                ledger=self.ledger,
                affiliate_id=str(self.affiliate_id),
                commission_amount=self.commission_amount,
                approved_by=str(approver_id),
                approved_at=now,
            )
        )

    def reject(self, approver_id, reason):
        if not reason or not reason.strip():
            raise ValidationError({"reason": ["Reason is required when rejecting a commission"]})
        self._assert_can_transition(CommissionStatus.REJECTED)

        now = datetime.now(UTC)
        self.status = CommissionStatus.REJECTED.value
        self.rejected_by = str(approver_id)
        self.rejection_reason = reason
        self.rejected_at = now
        self.updated_at = now

        self.raise_(
            CommissionRejected(
                commission_id=str(self.id),
                ledger=self.ledger,
                affiliate_id=str(self.affiliate_id),
                commission_amount=self.commission_amount,
                rejected_by=str(approver_id),
                reason=reason,
                rejected_at=now,
            )
        )

    def mark_synced(self, legacy_commission_id):
        """Flag an approved Attribution row as mirrored. Happens once."""
        if self.synced_to_other_ledger:
            raise ValidationError({"synced_to_other_ledger": ["Commission is already synced"]})

        now = datetime.now(UTC)
        self.synced_to_other_ledger = True
        self.synced_at = now
        self.updated_at = now

        self.raise_(
            CommissionSynced(
                commission_id=str(self.id),
                legacy_commission_id=str(legacy_commission_id),
                affiliate_id=str(self.affiliate_id),
                commission_amount=self.commission_amount,
                synced_at=now,
            )
        )

    def mark_paid(self, payout_id):
        self._assert_can_transition(CommissionStatus.PAID)

        now = datetime.now(UTC)
        self.status = CommissionStatus.PAID.value
        self.payout_id = payout_id
        self.paid_at = now
        self.updated_at = now

        self.raise_(
            CommissionPaid(
                commission_id=str(self.id),
                affiliate_id=str(self.affiliate_id),
                payout_id=str(payout_id),
                commission_amount=self.commission_amount,
                paid_at=now,
            )
        )
