"""ProcessOrderCommission — turn a newly created order into exactly one commission.

The commissionable base is the product subtotal: shipping and the
cash-on-delivery surcharge never earn commission. The order is credited to:

1. the customer's open, bound attribution (most recent click wins), in the
   Attribution ledger; otherwise
2. the explicit referral code carried by the order, or the referral the
   customer signed up with, in the Legacy ledger.

No referral context means no commission; that is a normal outcome.

Idempotency: origin commissions share the unique key ``order:<order_id>``.
A duplicate attempt finds the existing row and becomes a no-op; a racing
duplicate that slips past the check is refused by the unique constraint
when the row is saved.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from affiliates.affiliate.affiliate import Affiliate
from affiliates.affiliate.registration import find_by_referral_code
from affiliates.attribution.attribution import Attribution, as_aware
from affiliates.attribution.tracking import open_attributions
from affiliates.commission.commission import Commission, Ledger, origin_key
from affiliates.domain import affiliates
from affiliates.program.settings import current_settings
from affiliates.referral.referral import Referral
from affiliates.referral.registration import find_referral_for_user
from affiliates.shared.money import round_amount

logger = structlog.get_logger(__name__)


@affiliates.command(part_of="Commission")
class ProcessOrderCommission:
    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    user_email = String(max_length=254)
    order_total = Float(required=True, min_value=0.0)
    product_subtotal = Float(min_value=0.0)
    shipping_fee = Float(default=0.0, min_value=0.0)
    cod_surcharge = Float(default=0.0, min_value=0.0)
    referral_code = String(max_length=20)  # Explicit referral context, if any
    placed_at = DateTime()  # Defaults to now


@dataclass(frozen=True)
class ReferralContext:
    """Who gets credited for an order, and in which ledger."""

    ledger: Ledger
    affiliate: Affiliate
    attribution: Attribution | None = None
    referral: Referral | None = None


def commissionable_base(order_total, product_subtotal=None, shipping_fee=0.0, cod_surcharge=0.0):
    """Product subtotal; derived from the total only when the subtotal is unknown."""
    if product_subtotal is not None:
        return round_amount(product_subtotal)
    return round_amount(max((order_total or 0.0) - (shipping_fee or 0.0) - (cod_surcharge or 0.0), 0.0))


def find_origin_commission(order_id):
    """The commission already recorded for ``order_id`` in either ledger, if any."""
    results = (
        current_domain.repository_for(Commission)._dao.query.filter(commission_key=origin_key(order_id)).all()
    )
    return results.items[0] if results.items else None


def resolve_referral_context(user_id, referral_code=None, at=None):
    """Find the affiliate to credit for an order placed by ``user_id`` at ``at``."""
    at = as_aware(at) or datetime.now(UTC)
    affiliate_repo = current_domain.repository_for(Affiliate)

    attribution_repo = current_domain.repository_for(Attribution)
    for attribution in open_attributions(attribution_repo, at, user_id=str(user_id)):
        affiliate = affiliate_repo.get(attribution.affiliate_id)
        if affiliate.is_active and str(affiliate.user_id) != str(user_id):
            return ReferralContext(ledger=Ledger.ATTRIBUTION, affiliate=affiliate, attribution=attribution)

    referral = find_referral_for_user(user_id)
    code = referral_code or (referral.referral_code if referral else None)
    affiliate = find_by_referral_code(code)
    if affiliate is None or not affiliate.is_active or str(affiliate.user_id) == str(user_id):
        return None
    if referral is not None and referral.referral_code != affiliate.referral_code:
        referral = None
    return ReferralContext(ledger=Ledger.LEGACY, affiliate=affiliate, referral=referral)


def record_order_commission(
    order_id,
    user_id,
    order_total,
    product_subtotal=None,
    shipping_fee=0.0,
    cod_surcharge=0.0,
    referral_code=None,
    user_email=None,
    placed_at=None,
):
    """Record the order's commission within the current unit of work.

    Returns the commission id (the existing one for a duplicate), or None
    when the order has no referral context.
    """
    existing = find_origin_commission(order_id)
    if existing is not None:
        logger.info(
            "Duplicate commission attempt skipped",
            order_id=str(order_id),
            commission_id=str(existing.id),
        )
        return str(existing.id)

    placed_at = as_aware(placed_at) or datetime.now(UTC)
    context = resolve_referral_context(user_id, referral_code, placed_at)
    if context is None:
        logger.info("No referral context for order", order_id=str(order_id), user_id=str(user_id))
        return None

    settings = current_settings()
    rate = context.affiliate.effective_rate(settings.default_commission_rate)
    base = commissionable_base(order_total, product_subtotal, shipping_fee, cod_surcharge)

    commission = Commission.record(
        ledger=context.ledger,
        order_id=order_id,
        affiliate_id=str(context.affiliate.id),
        referral_code=context.affiliate.referral_code,
        order_total=order_total,
        commissionable_base=base,
        commission_rate=rate,
        user_id=user_id,
        user_email=user_email,
        attribution_id=str(context.attribution.id) if context.attribution else None,
        recorded_at=placed_at,
    )

    try:
        current_domain.repository_for(Commission).add(commission)
    except ValidationError as exc:
        if "commission_key" not in exc.messages:
            raise
        logger.info("Concurrent duplicate commission refused", order_id=str(order_id))
        return None

    if context.attribution is not None:
        context.attribution.credit_order(
            order_id=order_id,
            order_total=order_total,
            commission_amount=commission.commission_amount,
            credited_at=placed_at,
        )
        current_domain.repository_for(Attribution).add(context.attribution)
    if context.referral is not None:
        context.referral.record_first_order(order_id)
        current_domain.repository_for(Referral).add(context.referral)

    context.affiliate.record_commission(commission.commission_amount)
    current_domain.repository_for(Affiliate).add(context.affiliate)

    logger.info(
        "Commission recorded",
        commission_id=str(commission.id),
        order_id=str(order_id),
        ledger=commission.ledger,
        affiliate_id=str(context.affiliate.id),
        commissionable_base=base,
        commission_amount=commission.commission_amount,
    )
    return str(commission.id)


@affiliates.command_handler(part_of=Commission)
class ProcessOrderCommissionHandler:
    @handle(ProcessOrderCommission)
    def process_order(self, command):
        return record_order_commission(
            order_id=command.order_id,
            user_id=command.user_id,
            order_total=command.order_total,
            product_subtotal=command.product_subtotal,
            shipping_fee=command.shipping_fee,
            cod_surcharge=command.cod_surcharge,
            referral_code=command.referral_code,
            user_email=command.user_email,
            placed_at=command.placed_at,
        )
