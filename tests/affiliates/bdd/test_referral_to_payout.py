"""BDD tests for the end-to-end referral flow, driven through domain commands."""

import json

from affiliates.affiliate.affiliate import Affiliate
from affiliates.affiliate.registration import RegisterAffiliate
from affiliates.attribution.binding import bind_to_user
from affiliates.attribution.tracking import RecordClick
from affiliates.commission import coordinator
from affiliates.commission.commission import Commission, Ledger, origin_key
from affiliates.commission.processing import ProcessOrderCommission
from affiliates.payout.payout import Payout
from affiliates.payout.request import RequestPayout
from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, scenarios, then, when

scenarios("features/referral_to_payout.feature")

BANK_DETAILS = {"bank_name": "Mizuho", "account_name": "Hana Sato", "account_number": "1234567"}


def _origin_commission(order_id):
    results = current_domain.repository_for(Commission)._dao.query.filter(commission_key=origin_key(order_id)).all()
    return results.items[0]


@given(
    parsers.cfparse('affiliate "{referral_code}" earns {rate:g} percent commission'),
    target_fixture="affiliate_id",
)
def affiliate_with_rate(referral_code, rate):
    return current_domain.process(
        RegisterAffiliate(
            user_id="user-aff-bdd",
            email="aff-bdd@example.com",
            referral_code=referral_code,
            commission_rate=rate,
        ),
        asynchronous=False,
    )


@given(
    parsers.cfparse('visitor "{visitor_id}" clicked referral code "{referral_code}"'),
    target_fixture="visitor_id",
)
def visitor_clicked(visitor_id, referral_code):
    current_domain.process(RecordClick(visitor_id=visitor_id, referral_code=referral_code), asynchronous=False)
    return visitor_id


@given(parsers.cfparse('the visitor signed up as "{user_id}"'))
def visitor_signed_up(visitor_id, user_id):
    assert bind_to_user(user_id, visitor_id=visitor_id) is not None


@when(parsers.cfparse('"{user_id}" places order "{order_id}" with subtotal {subtotal:g} and shipping {shipping:g}'))
def place_order(user_id, order_id, subtotal, shipping):
    current_domain.process(
        ProcessOrderCommission(
            order_id=order_id,
            user_id=user_id,
            order_total=subtotal + shipping,
            product_subtotal=subtotal,
            shipping_fee=shipping,
        ),
        asynchronous=False,
    )


@when(parsers.cfparse('the commission for order "{order_id}" is approved'))
def approve_order_commission(order_id):
    assert coordinator.approve(str(_origin_commission(order_id).id), "admin-bdd") == "synced"


@when(
    parsers.cfparse('the affiliate requests a payout of {amount:g} to "{payment_method}"'),
    target_fixture="payout",
)
def request_payout(affiliate_id, amount, payment_method, error):
    try:
        payout_id = current_domain.process(
            RequestPayout(
                affiliate_id=affiliate_id,
                amount=amount,
                payment_method=payment_method,
                bank_details=json.dumps(BANK_DETAILS),
            ),
            asynchronous=False,
        )
    except ValidationError as exc:
        error["exc"] = exc
        return None
    return current_domain.repository_for(Payout).get(payout_id)


@then(parsers.cfparse('an Attribution commission of {amount:g} is pending for order "{order_id}"'))
def attribution_commission_pending(amount, order_id):
    commission = _origin_commission(order_id)
    assert commission.ledger == Ledger.ATTRIBUTION.value
    assert commission.status == "Pending"
    assert commission.commission_amount == amount


@then(parsers.cfparse('the commission for order "{order_id}" is synced'))
def commission_synced(order_id):
    assert _origin_commission(order_id).synced_to_other_ledger is True


@then(parsers.cfparse("the affiliate has {amount:g} {balance} commission"))
def affiliate_balance(affiliate_id, amount, balance):
    affiliate = current_domain.repository_for(Affiliate).get(affiliate_id)
    assert getattr(affiliate, f"{balance}_commission") == amount


@then(parsers.cfparse("the payout net amount is {amount:g}"))
def payout_net_amount(payout, amount):
    assert payout.net_amount == amount


@then(parsers.cfparse('the payout is refused with "{message}"'))
def payout_refused(error, message):
    assert isinstance(error["exc"], ValidationError)
    assert message in str(error["exc"])
