"""Payout request flow and payout queries.

``request_payout`` records the payout, then remembers the bank details for
next time. Remembering them is a convenience: if it fails the payout still
stands and the failure is only logged.
"""

import json

import structlog
from protean.utils.globals import current_domain

from affiliates.payout.payment_methods import SavePaymentMethod
from affiliates.payout.payout import Payout, PayoutStatus
from affiliates.payout.request import RequestPayout
from affiliates.shared.queries import all_items

logger = structlog.get_logger(__name__)


def request_payout(affiliate_id, amount, payment_method, bank_details, save_payment_method=True):
    """Request a payout and return the stored Payout."""
    bank_details_json = bank_details if isinstance(bank_details, str) else json.dumps(bank_details or {})

    payout_id = current_domain.process(
        RequestPayout(
            affiliate_id=affiliate_id,
            amount=amount,
            payment_method=payment_method,
            bank_details=bank_details_json,
        ),
        asynchronous=False,
    )

    if save_payment_method:
        try:
            current_domain.process(
                SavePaymentMethod(
                    affiliate_id=affiliate_id,
                    payment_method=payment_method,
                    bank_details=bank_details_json,
                ),
                asynchronous=False,
            )
        except Exception as exc:
            logger.warning(
                "Saving payment method failed",
                affiliate_id=str(affiliate_id),
                payout_id=payout_id,
                error=str(exc),
            )

    return current_domain.repository_for(Payout).get(payout_id)


def payouts_for(affiliate_id):
    """The affiliate's payouts, newest first."""
    return (
        current_domain.repository_for(Payout)
        ._dao.query.filter(affiliate_id=str(affiliate_id))
        .order_by("-requested_at")
        .all()
        .items
    )


def payout_stats():
    """Count and gross amount of payouts per status."""
    query = current_domain.repository_for(Payout)._dao.query
    stats = {}
    for status in PayoutStatus:
        payouts = all_items(query.filter(status=status.value).order_by("requested_at"))
        stats[status.value] = {
            "count": len(payouts),
            "amount": sum(p.amount for p in payouts),
        }
    return stats
