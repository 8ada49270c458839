"""Payout aggregate (CQRS) — an affiliate's withdrawal request.

The gross ``amount`` leaves the affiliate's approved balance when the
request is recorded; withholding tax and the processing fee are
informational splits of that same amount:

    net_amount = amount - amount * tax_rate - processing_fee

State Machine:
    PENDING → PROCESSING | REJECTED
    PROCESSING → COMPLETED | REJECTED
    COMPLETED, REJECTED → (terminal)
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String, Text, ValueObject

from affiliates.domain import affiliates
from affiliates.payout.events import (
    PayoutCompleted,
    PayoutProcessingStarted,
    PayoutRejected,
    PayoutRequested,
)
from affiliates.shared.money import round_amount


class PayoutStatus(Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    REJECTED = "Rejected"


_VALID_TRANSITIONS = {
    PayoutStatus.PENDING: {PayoutStatus.PROCESSING, PayoutStatus.REJECTED},
    PayoutStatus.PROCESSING: {PayoutStatus.COMPLETED, PayoutStatus.REJECTED},
    PayoutStatus.COMPLETED: set(),
    PayoutStatus.REJECTED: set(),
}


@affiliates.value_object
class BankDetails:
    """Destination bank account for a payout."""

    bank_name = String(max_length=100)
    account_name = String(max_length=100)
    account_number = String(max_length=50)
    branch_code = String(max_length=20)
    swift_code = String(max_length=20)

    def missing(self, required_fields):
        """Names of required fields that are empty."""
        return [name for name in required_fields if not (getattr(self, name, None) or "").strip()]

    @property
    def masked_account_number(self):
        number = self.account_number or ""
        return f"****{number[-4:]}" if len(number) > 4 else "****"


def net_amount_for(amount, tax_rate, processing_fee):
    """Amount left after withholding tax and the flat fee."""
    tax_amount = round_amount(amount * tax_rate)
    return tax_amount, round_amount(amount - tax_amount - processing_fee)


@affiliates.aggregate
class Payout:
    """A withdrawal from an affiliate's approved commission balance."""

    affiliate_id = Identifier(required=True)
    amount = Float(required=True, min_value=0.0)
    tax_rate = Float(default=0.0, min_value=0.0, max_value=1.0)
    tax_amount = Float(default=0.0, min_value=0.0)
    processing_fee = Float(default=0.0, min_value=0.0)
    net_amount = Float(required=True)
    payment_method = String(required=True, max_length=50)
    country = String(max_length=100)
    bank_details = ValueObject(BankDetails, required=True)
    status = String(choices=PayoutStatus, default=PayoutStatus.PENDING.value)

    processed_by = String(max_length=100)
    transaction_id = String(max_length=100)
    rejection_reason = Text()

    requested_at = DateTime()
    processed_at = DateTime()
    completed_at = DateTime()
    rejected_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def net_amount_cannot_be_negative(self):
        if self.net_amount is not None and self.net_amount < 0:
            raise ValidationError({"amount": ["Amount does not cover tax and processing fee"]})

    @classmethod
    def request(cls, affiliate_id, amount, payment_method, country, tax_rate, processing_fee, bank_details):
        now = datetime.now(UTC)
        amount = round_amount(amount)
        tax_amount, net_amount = net_amount_for(amount, tax_rate, processing_fee)

        payout = cls(
            affiliate_id=affiliate_id,
            amount=amount,
            tax_rate=tax_rate,
            tax_amount=tax_amount,
            processing_fee=processing_fee,
            net_amount=net_amount,
            payment_method=payment_method,
            country=country,
            bank_details=bank_details,
            status=PayoutStatus.PENDING.value,
            requested_at=now,
            updated_at=now,
        )
        payout.raise_(
            PayoutRequested(
                payout_id=str(payout.id),
                affiliate_id=str(affiliate_id),
                amount=amount,
                tax_amount=tax_amount,
                processing_fee=processing_fee,
                net_amount=net_amount,
                payment_method=payment_method,
                status=payout.status,
                requested_at=now,
            )
        )
        return payout

    def _assert_can_transition(self, target_status):
        current = PayoutStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def start_processing(self, processed_by=None):
        self._assert_can_transition(PayoutStatus.PROCESSING)

        now = datetime.now(UTC)
        self.status = PayoutStatus.PROCESSING.value
        self.processed_by = processed_by
        self.processed_at = now
        self.updated_at = now

        self.raise_(
            PayoutProcessingStarted(
                payout_id=str(self.id),
                affiliate_id=str(self.affiliate_id),
                processed_by=processed_by,
                processed_at=now,
            )
        )

    def complete(self, transaction_id=None):
        self._assert_can_transition(PayoutStatus.COMPLETED)

        now = datetime.now(UTC)
        self.status = PayoutStatus.COMPLETED.value
        self.transaction_id = transaction_id
        self.completed_at = now
        self.updated_at = now

        self.raise_(
            PayoutCompleted(
                payout_id=str(self.id),
                affiliate_id=str(self.affiliate_id),
                amount=self.amount,
                net_amount=self.net_amount,
                transaction_id=transaction_id,
                completed_at=now,
            )
        )

    def reject(self, reason):
        if not reason or not reason.strip():
            raise ValidationError({"reason": ["Reason is required when rejecting a payout"]})
        self._assert_can_transition(PayoutStatus.REJECTED)

        now = datetime.now(UTC)
        self.status = PayoutStatus.REJECTED.value
        self.rejection_reason = reason
        self.rejected_at = now
        self.updated_at = now

        self.raise_(
            PayoutRejected(
                payout_id=str(self.id),
                affiliate_id=str(self.affiliate_id),
                amount=self.amount,
                reason=reason,
                rejected_at=now,
            )
        )
