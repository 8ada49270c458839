"""Attribution reads for checkout and the admin listing.

The checkout lookup goes through the same reader as RecordClick and
BindAttribution, so an elapsed window found here is expired and persisted.
The admin listing is read-only and reports each row's activity as of the
time of the read, whatever the stored flag still says.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from affiliates.affiliate.affiliate import normalize_referral_code
from affiliates.attribution.attribution import Attribution, as_aware
from affiliates.attribution.tracking import open_attributions
from affiliates.shared.queries import all_items


@dataclass(frozen=True)
class AttributionView:
    attribution: Attribution
    is_active: bool


def active_attribution(visitor_id=None, session_id=None, user_id=None, at=None):
    """The most recently clicked open attribution for the context, or None.

    A bound user wins over the browsing context; between session and visitor
    the session is tried first, as binding does.
    """
    if not (visitor_id or session_id or user_id):
        raise ValidationError({"visitor_id": ["A user, session or visitor id is required"]})

    at = as_aware(at) or datetime.now(UTC)
    repo = current_domain.repository_for(Attribution)
    for field, value in (("user_id", user_id), ("session_id", session_id), ("visitor_id", visitor_id)):
        if not value:
            continue
        candidates = open_attributions(repo, at, **{field: str(value)})
        if candidates:
            return candidates[0]
    return None


def referral_code_for_checkout(visitor_id=None, session_id=None, user_id=None, at=None):
    attribution = active_attribution(visitor_id=visitor_id, session_id=session_id, user_id=user_id, at=at)
    return attribution.referral_code if attribution else None


def attributions_for(referral_code=None, affiliate_id=None, active_only=False, at=None):
    """Attributions for the admin listing, most recent click first."""
    at = as_aware(at) or datetime.now(UTC)
    filters = {}
    if referral_code:
        filters["referral_code"] = normalize_referral_code(referral_code)
    if affiliate_id:
        filters["affiliate_id"] = str(affiliate_id)

    query = current_domain.repository_for(Attribution)._dao.query
    if filters:
        query = query.filter(**filters)

    views = [AttributionView(a, a.is_active_at(at)) for a in all_items(query.order_by("-last_click_at"))]
    if active_only:
        views = [v for v in views if v.is_active]
    return views
