"""AffiliateTraffic — click totals per affiliate, fed by attribution events.

Kept outside the Affiliate aggregate: balances are version-checked, and a
burst of clicks must not race commission or payout writes on the same row.
"""

from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from affiliates.attribution.attribution import Attribution, as_aware
from affiliates.attribution.events import AttributionClicked, AttributionRefreshed
from affiliates.domain import affiliates


@affiliates.projection
class AffiliateTraffic:
    affiliate_id = Identifier(identifier=True, required=True)
    referral_code = String(required=True)
    total_clicks = Integer(default=0)
    attributions_opened = Integer(default=0)  # first clicks within a window
    last_clicked_at = DateTime()


def traffic_for(affiliate_id):
    """Stored traffic for ``affiliate_id``, or None before its first click."""
    try:
        return current_domain.repository_for(AffiliateTraffic).get(affiliate_id)
    except ObjectNotFoundError:
        return None


@affiliates.projector(projector_for=AffiliateTraffic, aggregates=[Attribution])
class AffiliateTrafficProjector:
    @on(AttributionClicked)
    def on_attribution_clicked(self, event):
        self._count_click(event, opened=True)

    @on(AttributionRefreshed)
    def on_attribution_refreshed(self, event):
        self._count_click(event, opened=False)

    def _count_click(self, event, opened):
        traffic = traffic_for(event.affiliate_id) or AffiliateTraffic(
            affiliate_id=event.affiliate_id,
            referral_code=event.referral_code,
        )
        traffic.total_clicks = (traffic.total_clicks or 0) + 1
        if opened:
            traffic.attributions_opened = (traffic.attributions_opened or 0) + 1
        clicked_at = as_aware(event.clicked_at)
        if traffic.last_clicked_at is None or clicked_at > as_aware(traffic.last_clicked_at):
            traffic.last_clicked_at = clicked_at
        current_domain.repository_for(AffiliateTraffic).add(traffic)
