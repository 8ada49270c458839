"""SavedPaymentMethod aggregate and SavePaymentMethod command.

Bank details used for a payout are remembered for the affiliate's next
request. One record per (affiliate, method, account number); saving the
same account again only refreshes it.
"""

from datetime import UTC, datetime

import structlog
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String, Text, ValueObject
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from affiliates.domain import affiliates
from affiliates.payout.events import PaymentMethodSaved
from affiliates.payout.payout import BankDetails
from affiliates.payout.request import parse_bank_details
from affiliates.program.settings import current_settings

logger = structlog.get_logger(__name__)


@affiliates.aggregate
class SavedPaymentMethod:
    affiliate_id = Identifier(required=True)
    method = String(required=True, max_length=50)
    country = String(required=True, max_length=100)
    bank_details = ValueObject(BankDetails, required=True)
    created_at = DateTime()
    last_used_at = DateTime()

    @classmethod
    def save_for(cls, affiliate_id, method, country, bank_details):
        now = datetime.now(UTC)
        saved = cls(
            affiliate_id=affiliate_id,
            method=method,
            country=country,
            bank_details=bank_details,
            created_at=now,
            last_used_at=now,
        )
        saved.raise_(
            PaymentMethodSaved(
                payment_method_id=str(saved.id),
                affiliate_id=str(affiliate_id),
                method=method,
                country=country,
                saved_at=now,
            )
        )
        return saved

    def touch(self, bank_details):
        self.bank_details = bank_details
        self.last_used_at = datetime.now(UTC)


@affiliates.command(part_of="SavedPaymentMethod")
class SavePaymentMethod:
    affiliate_id = Identifier(required=True)
    payment_method = String(required=True, max_length=50)
    bank_details = Text(required=True)  # JSON, same shape as RequestPayout.bank_details


def saved_methods_for(affiliate_id):
    """The affiliate's saved payment methods, most recently used first."""
    results = (
        current_domain.repository_for(SavedPaymentMethod)
        ._dao.query.filter(affiliate_id=str(affiliate_id))
        .order_by("-last_used_at")
        .all()
    )
    return results.items


@affiliates.command_handler(part_of=SavedPaymentMethod)
class SavePaymentMethodHandler:
    @handle(SavePaymentMethod)
    def save_payment_method(self, command):
        rule = current_settings().payout_method(command.payment_method)
        if rule is None:
            raise ValidationError({"payment_method": ["Please select a supported payment method"]})

        bank_details = parse_bank_details(command.bank_details)
        repo = current_domain.repository_for(SavedPaymentMethod)

        existing = next(
            (
                m
                for m in saved_methods_for(command.affiliate_id)
                if m.method == rule.method and m.bank_details.account_number == bank_details.account_number
            ),
            None,
        )
        if existing is not None:
            existing.touch(bank_details)
            repo.add(existing)
            return str(existing.id)

        saved = SavedPaymentMethod.save_for(
            affiliate_id=command.affiliate_id,
            method=rule.method,
            country=rule.country,
            bank_details=bank_details,
        )
        repo.add(saved)
        logger.info(
            "Payment method saved",
            affiliate_id=str(command.affiliate_id),
            method=rule.method,
            account=bank_details.masked_account_number,
        )
        return str(saved.id)
