"""Domain events for the Payout and SavedPaymentMethod aggregates."""

from protean.fields import DateTime, Float, Identifier, String

from affiliates.domain import affiliates


@affiliates.event(part_of="Payout")
class PayoutRequested:
    """An affiliate asked to withdraw part of their approved balance."""

    __version__ = 1

    payout_id = Identifier(required=True)
    affiliate_id = Identifier(required=True)
    amount = Float(required=True)
    tax_amount = Float(required=True)
    processing_fee = Float(required=True)
    net_amount = Float(required=True)
    payment_method = String(required=True)
    status = String(required=True)
    requested_at = DateTime(required=True)


@affiliates.event(part_of="Payout")
class PayoutProcessingStarted:
    __version__ = 1

    payout_id = Identifier(required=True)
    affiliate_id = Identifier(required=True)
    processed_by = String()
    processed_at = DateTime(required=True)


@affiliates.event(part_of="Payout")
class PayoutCompleted:
    """The bank transfer went out; the gross amount is now paid."""

    __version__ = 1

    payout_id = Identifier(required=True)
    affiliate_id = Identifier(required=True)
    amount = Float(required=True)
    net_amount = Float(required=True)
    transaction_id = String()
    completed_at = DateTime(required=True)


@affiliates.event(part_of="Payout")
class PayoutRejected:
    """The payout was refused and its amount returned to the approved balance."""

    __version__ = 1

    payout_id = Identifier(required=True)
    affiliate_id = Identifier(required=True)
    amount = Float(required=True)
    reason = String(required=True)
    rejected_at = DateTime(required=True)


@affiliates.event(part_of="SavedPaymentMethod")
class PaymentMethodSaved:
    __version__ = 1

    payment_method_id = Identifier(required=True)
    affiliate_id = Identifier(required=True)
    method = String(required=True)
    country = String(required=True)
    saved_at = DateTime(required=True)
