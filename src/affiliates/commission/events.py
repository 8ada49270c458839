"""Domain events for the Commission aggregate.

All events are versioned, immutable facts. They feed the CommissionQueue
projection and, through the outbox, any downstream consumers.
"""

from protean.fields import DateTime, Float, Identifier, String

from affiliates.domain import affiliates


@affiliates.event(part_of="Commission")
class CommissionRecorded:
    """An order earned a commission in one of the ledgers."""

    __version__ = 1

    commission_id = Identifier(required=True)
    ledger = String(required=True)
    order_id = Identifier(required=True)
    affiliate_id = Identifier(required=True)
    referral_code = String(required=True)
    user_id = Identifier()
    order_total = Float(required=True)
    commissionable_base = Float(required=True)
    commission_rate = Float(required=True)
    commission_amount = Float(required=True)
    source_commission_id = Identifier()
    recorded_at = DateTime(required=True)


@affiliates.event(part_of="Commission")
class CommissionApproved:
    """An admin approved the commission."""

    __version__ = 1

    commission_id = Identifier(required=True)
    ledger = String(required=True)
    affiliate_id = Identifier(required=True)
    commission_amount = Float(required=True)
    approved_by = String(required=True)
    approved_at = DateTime(required=True)


@affiliates.event(part_of="Commission")
class CommissionRejected:
    """An admin rejected the commission. Terminal."""

    __version__ = 1

    commission_id = Identifier(required=True)
    ledger = String(required=True)
    affiliate_id = Identifier(required=True)
    commission_amount = Float(required=True)
    rejected_by = String(required=True)
    reason = String(required=True)
    rejected_at = DateTime(required=True)


@affiliates.event(part_of="Commission")
class CommissionSynced:
    """An approved Attribution commission was mirrored into the Legacy ledger."""

    __version__ = 1

    commission_id = Identifier(required=True)
    legacy_commission_id = Identifier(required=True)
    affiliate_id = Identifier(required=True)
    commission_amount = Float(required=True)
    synced_at = DateTime(required=True)


@affiliates.event(part_of="Commission")
class CommissionPaid:
    """A Legacy commission was settled by a completed payout."""

    __version__ = 1

    commission_id = Identifier(required=True)
    affiliate_id = Identifier(required=True)
    payout_id = Identifier(required=True)
    commission_amount = Float(required=True)
    paid_at = DateTime(required=True)
