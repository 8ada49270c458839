"""Integration tests for the AffiliateTraffic projection."""

from datetime import UTC, datetime, timedelta

from affiliates.affiliate.registration import RegisterAffiliate
from affiliates.attribution.attribution import as_aware
from affiliates.attribution.tracking import RecordClick
from affiliates.projections.affiliate_traffic import AffiliateTraffic, traffic_for
from protean import current_domain


def _register(referral_code="ABC123"):
    return current_domain.process(
        RegisterAffiliate(
            user_id=f"user-aff-{referral_code}",
            email=f"{referral_code.lower()}@example.com",
            referral_code=referral_code,
        ),
        asynchronous=False,
    )


def _click(visitor_id, referral_code="ABC123", clicked_at=None):
    current_domain.process(
        RecordClick(visitor_id=visitor_id, referral_code=referral_code, clicked_at=clicked_at),
        asynchronous=False,
    )


class TestAffiliateTraffic:
    def test_no_row_before_first_click(self):
        affiliate_id = _register()
        assert traffic_for(affiliate_id) is None

    def test_first_click_opens_row(self):
        affiliate_id = _register()
        clicked_at = datetime.now(UTC) - timedelta(minutes=5)
        _click("visitor-1", clicked_at=clicked_at)

        traffic = current_domain.repository_for(AffiliateTraffic).get(affiliate_id)
        assert traffic.referral_code == "ABC123"
        assert traffic.total_clicks == 1
        assert traffic.attributions_opened == 1
        assert as_aware(traffic.last_clicked_at) == clicked_at

    def test_repeat_click_counts_without_opening(self):
        affiliate_id = _register()
        now = datetime.now(UTC)
        _click("visitor-1", clicked_at=now - timedelta(hours=2))
        _click("visitor-1", clicked_at=now - timedelta(hours=1))

        traffic = traffic_for(affiliate_id)
        assert traffic.total_clicks == 2
        assert traffic.attributions_opened == 1
        assert as_aware(traffic.last_clicked_at) == now - timedelta(hours=1)

    def test_click_after_window_opens_again(self):
        affiliate_id = _register()
        now = datetime.now(UTC)
        _click("visitor-1", clicked_at=now - timedelta(hours=30))
        _click("visitor-1", clicked_at=now)

        traffic = traffic_for(affiliate_id)
        assert traffic.total_clicks == 2
        assert traffic.attributions_opened == 2

    def test_rows_per_affiliate(self):
        first = _register("ABC123")
        second = _register("XYZ789")
        _click("visitor-1", "ABC123")
        _click("visitor-2", "ABC123")
        _click("visitor-1", "XYZ789")

        assert traffic_for(first).total_clicks == 2
        assert traffic_for(second).total_clicks == 1
