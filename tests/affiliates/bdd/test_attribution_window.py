"""BDD tests for attribution windows."""

from datetime import datetime

from affiliates.attribution.attribution import Attribution
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, scenarios, then, when

scenarios("features/attribution_window.feature")


@given(
    parsers.cfparse('a click on referral code "{referral_code}" at "{clicked_at}"'),
    target_fixture="attribution",
)
def first_click(referral_code, clicked_at):
    attribution = Attribution.start(
        referral_code=referral_code,
        affiliate_id="aff-bdd",
        visitor_id="visitor-bdd",
        window_hours=24,
        clicked_at=datetime.fromisoformat(clicked_at),
    )
    attribution._events.clear()
    return attribution


@when(parsers.cfparse('the visitor clicks again at "{clicked_at}"'), target_fixture="attribution")
def repeat_click(attribution, clicked_at):
    attribution.refresh(clicked_at=datetime.fromisoformat(clicked_at))
    return attribution


@when(
    parsers.cfparse('the visitor signs in as "{user_id}" at "{bound_at}"'),
    target_fixture="attribution",
)
def sign_in(attribution, user_id, bound_at, error):
    try:
        attribution.bind(user_id, bound_at=datetime.fromisoformat(bound_at))
    except ValidationError as exc:
        error["exc"] = exc
    return attribution


@then(parsers.cfparse('the attribution expires at "{expires_at}"'))
def expires_at_is(attribution, expires_at):
    assert attribution.attribution_window_expires_at == datetime.fromisoformat(expires_at)


@then(parsers.cfparse('the attribution is open at "{moment}"'))
def open_at(attribution, moment):
    assert attribution.is_active_at(datetime.fromisoformat(moment)) is True


@then(parsers.cfparse('the attribution is closed at "{moment}"'))
def closed_at(attribution, moment):
    assert attribution.is_active_at(datetime.fromisoformat(moment)) is False


@then(parsers.cfparse('the attribution is bound to "{user_id}"'))
def bound_to(attribution, user_id):
    assert attribution.user_id == user_id


@then(parsers.cfparse('the referral code is still "{referral_code}"'))
def referral_code_unchanged(attribution, referral_code):
    assert attribution.referral_code == referral_code
