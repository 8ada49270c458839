"""RecordClick — a visitor followed a referral link.

Refreshes the visitor's open attribution for that code (last-click model) or
opens a new one. Different codes never compete here: each (visitor, code)
pair keeps its own record, and choosing between them is the order-time
caller's concern.

The affiliate itself is only read here; click totals live in the
AffiliateTraffic projection so clicks never contend with balance writes.
"""

from datetime import UTC, datetime

import structlog
from protean.exceptions import ValidationError
from protean.fields import DateTime, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from affiliates.affiliate.affiliate import normalize_referral_code
from affiliates.affiliate.registration import find_by_referral_code
from affiliates.attribution.attribution import Attribution, as_aware
from affiliates.domain import affiliates
from affiliates.program.settings import current_settings

logger = structlog.get_logger(__name__)


@affiliates.command(part_of="Attribution")
class RecordClick:
    visitor_id = String(required=True, max_length=100)
    referral_code = String(required=True, max_length=20)
    session_id = String(max_length=100)
    clicked_at = DateTime()  # Defaults to now


def open_attributions(repo, at, **filters):
    """Active attributions matching ``filters`` whose window is open at ``at``.

    Rows whose window has elapsed are expired and queued on ``repo`` so the
    caller's unit of work persists the fact.
    """
    candidates = repo._dao.query.filter(is_active=True, **filters).all().items
    open_rows = []
    for attribution in candidates:
        if attribution.is_active_at(at):
            open_rows.append(attribution)
        else:
            attribution.expire(at)
            repo.add(attribution)
            logger.info(
                "Attribution window elapsed",
                attribution_id=str(attribution.id),
                referral_code=attribution.referral_code,
            )
    return sorted(open_rows, key=lambda a: as_aware(a.last_click_at), reverse=True)


@affiliates.command_handler(part_of=Attribution)
class RecordClickHandler:
    @handle(RecordClick)
    def record_click(self, command):
        clicked_at = as_aware(command.clicked_at) or datetime.now(UTC)
        code = normalize_referral_code(command.referral_code)

        affiliate = find_by_referral_code(code)
        if affiliate is None:
            raise ValidationError({"referral_code": ["Unknown referral code"]})
        if not affiliate.is_active:
            raise ValidationError({"referral_code": ["Referral code is not active"]})

        repo = current_domain.repository_for(Attribution)
        existing = open_attributions(repo, clicked_at, visitor_id=command.visitor_id, referral_code=code)

        if existing:
            attribution = existing[0]
            attribution.refresh(clicked_at=clicked_at, session_id=command.session_id)
        else:
            settings = current_settings()
            attribution = Attribution.start(
                referral_code=code,
                affiliate_id=str(affiliate.id),
                visitor_id=command.visitor_id,
                session_id=command.session_id,
                window_hours=settings.attribution_window_hours,
                clicked_at=clicked_at,
            )
        repo.add(attribution)

        logger.info(
            "Referral click recorded",
            attribution_id=str(attribution.id),
            referral_code=code,
            visitor_id=command.visitor_id,
            refreshed=bool(existing),
        )
        return str(attribution.id)
