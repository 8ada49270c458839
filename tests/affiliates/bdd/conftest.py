"""Shared BDD fixtures and step definitions for the Affiliates domain."""

import pytest
from affiliates.commission.commission import Commission
from affiliates.commission.events import (
    CommissionApproved,
    CommissionPaid,
    CommissionRecorded,
    CommissionRejected,
    CommissionSynced,
)
from affiliates.payout.events import PayoutCompleted, PayoutProcessingStarted, PayoutRejected, PayoutRequested
from affiliates.payout.payout import BankDetails, Payout
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then

_EVENT_CLASSES = {
    "CommissionRecorded": CommissionRecorded,
    "CommissionApproved": CommissionApproved,
    "CommissionRejected": CommissionRejected,
    "CommissionSynced": CommissionSynced,
    "CommissionPaid": CommissionPaid,
    "PayoutRequested": PayoutRequested,
    "PayoutProcessingStarted": PayoutProcessingStarted,
    "PayoutCompleted": PayoutCompleted,
    "PayoutRejected": PayoutRejected,
}


@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse('a pending {ledger} commission on a base of {base:g} at {rate:g} percent'),
    target_fixture="commission",
)
def pending_commission(ledger, base, rate):
    commission = Commission.record(
        ledger=ledger,
        order_id="order-bdd",
        affiliate_id="aff-bdd",
        referral_code="ABC123",
        order_total=base,
        commissionable_base=base,
        commission_rate=rate,
        user_id="user-bdd",
    )
    commission._events.clear()
    return commission


@given(parsers.cfparse("an approved {ledger} commission"), target_fixture="commission")
def approved_commission(ledger):
    commission = Commission.record(
        ledger=ledger,
        order_id="order-bdd-approved",
        affiliate_id="aff-bdd",
        referral_code="ABC123",
        order_total=5000.0,
        commissionable_base=5000.0,
        commission_rate=20.0,
    )
    commission.approve("admin-bdd")
    commission._events.clear()
    return commission


@given(
    parsers.cfparse('a pending payout of {amount:g} with tax rate {tax_rate:g} and fee {fee:g}'),
    target_fixture="payout",
)
def pending_payout(amount, tax_rate, fee):
    payout = Payout.request(
        affiliate_id="aff-bdd",
        amount=amount,
        payment_method="japan_bank",
        country="Japan",
        tax_rate=tax_rate,
        processing_fee=fee,
        bank_details=BankDetails(bank_name="Mizuho", account_name="Hana Sato", account_number="1234567"),
    )
    payout._events.clear()
    return payout


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the commission status is "{status}"'))
def commission_status_is(commission, status):
    assert commission.status == status


@then(parsers.cfparse('the payout status is "{status}"'))
def payout_status_is(payout, status):
    assert payout.status == status


@then("the action fails with a validation error")
def action_fails(error):
    assert error["exc"] is not None, "Expected a validation error but none was raised"
    assert isinstance(error["exc"], ValidationError)


@then(parsers.cfparse("the commission raises a {event_type} event"))
def commission_event_raised(commission, event_type):
    event_cls = _EVENT_CLASSES[event_type]
    assert any(
        isinstance(e, event_cls) for e in commission._events
    ), f"No {event_type} event found. Events: {[type(e).__name__ for e in commission._events]}"


@then(parsers.cfparse("the payout raises a {event_type} event"))
def payout_event_raised(payout, event_type):
    event_cls = _EVENT_CLASSES[event_type]
    assert any(
        isinstance(e, event_cls) for e in payout._events
    ), f"No {event_type} event found. Events: {[type(e).__name__ for e in payout._events]}"
