"""RequestPayout — withdraw from the affiliate's approved balance.

Checks run in a fixed order and the first failure is reported; a refused
request changes nothing. On success the payout is recorded and the gross
amount taken from the affiliate's approved balance in one unit of work.
The affiliate aggregate is version-checked on save, so two concurrent
requests cannot both spend the same balance.
"""

import json

import structlog
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from affiliates.affiliate.affiliate import Affiliate
from affiliates.domain import affiliates
from affiliates.payout.payout import BankDetails, Payout, net_amount_for
from affiliates.program.settings import BANK_FIELDS, current_settings
from affiliates.shared.money import round_amount

logger = structlog.get_logger(__name__)


@affiliates.command(part_of="Payout")
class RequestPayout:
    affiliate_id = Identifier(required=True)
    amount = Float(required=True)
    payment_method = String(max_length=50)
    bank_details = Text()  # JSON: {bank_name, account_name, account_number, branch_code, swift_code}


def parse_bank_details(raw):
    data = json.loads(raw) if isinstance(raw, str) and raw else (raw or {})
    return BankDetails(**{name: data.get(name) for name in BANK_FIELDS})


def validate_payout_request(affiliate, amount, payment_method, bank_details, settings):
    """Return the matching payout-method rule, or raise the first failed check."""
    if amount is None or amount <= 0:
        raise ValidationError({"amount": ["Please enter a valid amount"]})
    if amount < settings.minimum_payout:
        raise ValidationError({"amount": [f"Minimum payout amount is ¥{settings.minimum_payout:,.0f}"]})
    if amount > settings.maximum_payout:
        raise ValidationError({"amount": [f"Maximum payout amount is ¥{settings.maximum_payout:,.0f}"]})
    if amount > affiliate.approved_commission:
        raise ValidationError({"amount": ["Amount exceeds available balance"]})

    rule = settings.payout_method(payment_method) if payment_method else None
    if rule is None:
        raise ValidationError({"payment_method": ["Please select a supported payment method"]})

    missing = bank_details.missing(rule.required_bank_fields)
    if missing:
        raise ValidationError({"bank_details": [f"Please fill in all required bank details: {', '.join(missing)}"]})

    _, net_amount = net_amount_for(amount, rule.tax_rate, rule.processing_fee)
    if net_amount < 0:
        raise ValidationError({"amount": ["Amount does not cover tax and processing fee"]})
    return rule


@affiliates.command_handler(part_of=Payout)
class RequestPayoutHandler:
    @handle(RequestPayout)
    def request_payout(self, command):
        affiliate_repo = current_domain.repository_for(Affiliate)
        affiliate = affiliate_repo.get(command.affiliate_id)
        if not affiliate.is_active:
            raise ValidationError({"affiliate_id": ["Suspended affiliates cannot request payouts"]})

        settings = current_settings()
        amount = round_amount(command.amount) if command.amount is not None else None
        bank_details = parse_bank_details(command.bank_details)
        rule = validate_payout_request(affiliate, amount, command.payment_method, bank_details, settings)

        payout = Payout.request(
            affiliate_id=str(affiliate.id),
            amount=amount,
            payment_method=rule.method,
            country=rule.country,
            tax_rate=rule.tax_rate,
            processing_fee=rule.processing_fee,
            bank_details=bank_details,
        )
        if settings.auto_approve_payouts:
            payout.start_processing(processed_by="auto-approval")

        affiliate.reserve_payout(amount)

        current_domain.repository_for(Payout).add(payout)
        affiliate_repo.add(affiliate)

        logger.info(
            "Payout requested",
            payout_id=str(payout.id),
            affiliate_id=str(affiliate.id),
            amount=amount,
            net_amount=payout.net_amount,
            payment_method=rule.method,
            account=bank_details.masked_account_number,
        )
        return str(payout.id)
