"""Application tests for the checkout referral lookup and the admin attribution listing."""

from datetime import UTC, datetime, timedelta

import pytest
from affiliates.affiliate.registration import RegisterAffiliate
from affiliates.attribution.attribution import Attribution
from affiliates.attribution.binding import bind_to_user
from affiliates.attribution.lookup import active_attribution, attributions_for, referral_code_for_checkout
from affiliates.attribution.tracking import RecordClick
from protean import current_domain
from protean.exceptions import ValidationError


def _register_affiliate(user_id="user-aff-001", code="ABC123"):
    return current_domain.process(
        RegisterAffiliate(user_id=user_id, email=f"{user_id}@example.com", referral_code=code),
        asynchronous=False,
    )


def _click(visitor_id="visitor-001", code="ABC123", session_id=None, clicked_at=None):
    return current_domain.process(
        RecordClick(visitor_id=visitor_id, referral_code=code, session_id=session_id, clicked_at=clicked_at),
        asynchronous=False,
    )


class TestActiveAttribution:
    def test_latest_click_wins_across_codes(self):
        _register_affiliate()
        _register_affiliate(user_id="user-aff-002", code="XYZ789")
        now = datetime.now(UTC)
        _click(code="ABC123", clicked_at=now - timedelta(hours=2))
        latest = _click(code="XYZ789", clicked_at=now - timedelta(hours=1))

        assert str(active_attribution(visitor_id="visitor-001").id) == latest
        assert referral_code_for_checkout(visitor_id="visitor-001") == "XYZ789"

    def test_bound_user_takes_precedence(self):
        _register_affiliate()
        _register_affiliate(user_id="user-aff-002", code="XYZ789")
        _click(visitor_id="visitor-001", code="ABC123")
        bind_to_user("user-100", visitor_id="visitor-001")
        _click(visitor_id="visitor-002", code="XYZ789")

        assert referral_code_for_checkout(user_id="user-100", visitor_id="visitor-002") == "ABC123"

    def test_session_before_visitor(self):
        _register_affiliate()
        _register_affiliate(user_id="user-aff-002", code="XYZ789")
        now = datetime.now(UTC)
        _click(visitor_id="visitor-001", code="ABC123", session_id="sess-1", clicked_at=now - timedelta(hours=2))
        _click(visitor_id="visitor-001", code="XYZ789", clicked_at=now - timedelta(hours=1))

        assert referral_code_for_checkout(visitor_id="visitor-001", session_id="sess-1") == "ABC123"

    def test_elapsed_window_is_expired_and_ignored(self):
        _register_affiliate()
        attribution_id = _click(clicked_at=datetime.now(UTC) - timedelta(hours=30))

        assert active_attribution(visitor_id="visitor-001") is None
        assert referral_code_for_checkout(visitor_id="visitor-001") is None
        assert current_domain.repository_for(Attribution).get(attribution_id).is_active is False

    def test_lookup_at_a_given_moment(self):
        _register_affiliate()
        clicked_at = datetime.now(UTC) - timedelta(hours=30)
        _click(clicked_at=clicked_at)

        assert referral_code_for_checkout(visitor_id="visitor-001", at=clicked_at + timedelta(hours=1)) == "ABC123"

    def test_nothing_for_unknown_visitor(self):
        assert active_attribution(visitor_id="visitor-unknown") is None

    def test_context_required(self):
        with pytest.raises(ValidationError) as exc:
            active_attribution()
        assert "visitor_id" in exc.value.messages


class TestAttributionListing:
    def test_newest_click_first(self):
        _register_affiliate()
        now = datetime.now(UTC)
        older = _click(visitor_id="visitor-001", clicked_at=now - timedelta(hours=3))
        newer = _click(visitor_id="visitor-002", clicked_at=now - timedelta(hours=1))

        views = attributions_for(referral_code="abc123")
        assert [str(v.attribution.id) for v in views] == [newer, older]

    def test_activity_is_computed_at_read_time(self):
        _register_affiliate()
        attribution_id = _click(clicked_at=datetime.now(UTC) - timedelta(hours=30))

        (view,) = attributions_for(referral_code="ABC123")
        assert view.is_active is False
        # The listing does not write: the stored flag is still set
        assert current_domain.repository_for(Attribution).get(attribution_id).is_active is True

    def test_active_only(self):
        _register_affiliate()
        now = datetime.now(UTC)
        _click(visitor_id="visitor-001", clicked_at=now - timedelta(hours=30))
        fresh = _click(visitor_id="visitor-002", clicked_at=now)

        views = attributions_for(referral_code="ABC123", active_only=True)
        assert [str(v.attribution.id) for v in views] == [fresh]

    def test_filter_by_affiliate(self):
        affiliate_id = _register_affiliate()
        _register_affiliate(user_id="user-aff-002", code="XYZ789")
        _click(code="ABC123")
        _click(code="XYZ789")

        views = attributions_for(affiliate_id=affiliate_id)
        assert [v.attribution.referral_code for v in views] == ["ABC123"]
