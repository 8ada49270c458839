"""Application tests for the inbound Identity event handler."""

from datetime import UTC, datetime
from unittest.mock import patch

from affiliates.affiliate.affiliate import Affiliate
from affiliates.affiliate.registration import RegisterAffiliate
from affiliates.attribution.attribution import Attribution
from affiliates.attribution.identity_events import IdentityEventsHandler
from affiliates.attribution.tracking import RecordClick
from affiliates.referral.referral import Referral, ReferralStatus
from affiliates.referral.registration import find_referral_for_user
from protean import current_domain
from shared.events.identity import CustomerLoggedIn, CustomerRegistered


def _register_affiliate(user_id="user-aff-001", code="ABC123"):
    return current_domain.process(
        RegisterAffiliate(user_id=user_id, email=f"{user_id}@example.com", referral_code=code),
        asynchronous=False,
    )


def _click(visitor_id="visitor-001", code="ABC123", session_id="sess-001"):
    return current_domain.process(
        RecordClick(visitor_id=visitor_id, referral_code=code, session_id=session_id),
        asynchronous=False,
    )


def _registered(**overrides):
    defaults = {
        "customer_id": "cust-001",
        "email": "cust@example.com",
        "visitor_id": "visitor-001",
        "session_id": "sess-001",
        "registered_at": datetime.now(UTC),
    }
    defaults.update(overrides)
    return CustomerRegistered(**defaults)


class TestCustomerRegistered:
    def test_binds_attribution(self):
        _register_affiliate()
        attribution_id = _click()
        IdentityEventsHandler().on_customer_registered(_registered())
        assert current_domain.repository_for(Attribution).get(attribution_id).user_id == "cust-001"

    def test_registers_referral_from_signup_code(self):
        affiliate_id = _register_affiliate()
        IdentityEventsHandler().on_customer_registered(_registered(referral_code="abc123", visitor_id=None))

        referral = find_referral_for_user("cust-001")
        assert referral is not None
        assert referral.referral_code == "ABC123"
        assert referral.status == ReferralStatus.REGISTERED.value
        assert current_domain.repository_for(Affiliate).get(affiliate_id).total_referrals == 1

    def test_repeat_signup_event_registers_once(self):
        _register_affiliate()
        handler = IdentityEventsHandler()
        handler.on_customer_registered(_registered(referral_code="ABC123"))
        handler.on_customer_registered(_registered(referral_code="ABC123"))
        referrals = current_domain.repository_for(Referral)._dao.query.filter(referred_user_id="cust-001").all()
        assert referrals.total == 1

    def test_self_referral_is_ignored(self):
        _register_affiliate(user_id="cust-001")
        IdentityEventsHandler().on_customer_registered(_registered(referral_code="ABC123"))
        assert find_referral_for_user("cust-001") is None

    def test_unknown_code_is_ignored(self):
        IdentityEventsHandler().on_customer_registered(_registered(referral_code="NOPE99"))
        assert find_referral_for_user("cust-001") is None

    def test_failures_never_propagate(self):
        _register_affiliate()
        with (
            patch("affiliates.attribution.identity_events.bind_attribution", side_effect=RuntimeError("boom")),
            patch("affiliates.attribution.identity_events.register_referral", side_effect=RuntimeError("boom")),
        ):
            IdentityEventsHandler().on_customer_registered(_registered(referral_code="ABC123"))


class TestCustomerLoggedIn:
    def test_binds_attribution(self):
        _register_affiliate()
        attribution_id = _click()
        IdentityEventsHandler().on_customer_logged_in(
            CustomerLoggedIn(
                customer_id="cust-002",
                email="cust2@example.com",
                visitor_id="visitor-001",
                session_id="sess-001",
                logged_in_at=datetime.now(UTC),
            )
        )
        assert current_domain.repository_for(Attribution).get(attribution_id).user_id == "cust-002"

    def test_without_browsing_context_does_nothing(self):
        IdentityEventsHandler().on_customer_logged_in(
            CustomerLoggedIn(customer_id="cust-002", email="cust2@example.com", logged_in_at=datetime.now(UTC))
        )
