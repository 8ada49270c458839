"""Domain events for the Attribution aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from affiliates.domain import affiliates


@affiliates.event(part_of="Attribution")
class AttributionClicked:
    """A visitor arrived through a referral link for the first time in this window."""

    __version__ = 1

    attribution_id = Identifier(required=True)
    affiliate_id = Identifier(required=True)
    referral_code = String(required=True)
    visitor_id = String(required=True)
    session_id = String()
    clicked_at = DateTime(required=True)
    expires_at = DateTime(required=True)


@affiliates.event(part_of="Attribution")
class AttributionRefreshed:
    """A repeat click moved the attribution window forward (last-click wins)."""

    __version__ = 1

    attribution_id = Identifier(required=True)
    affiliate_id = Identifier(required=True)
    referral_code = String(required=True)
    visitor_id = String(required=True)
    clicked_at = DateTime(required=True)
    expires_at = DateTime(required=True)


@affiliates.event(part_of="Attribution")
class AttributionBound:
    """The attribution was tied to a signed-in user."""

    __version__ = 1

    attribution_id = Identifier(required=True)
    referral_code = String(required=True)
    user_id = Identifier(required=True)
    user_email = String()
    bound_at = DateTime(required=True)


@affiliates.event(part_of="Attribution")
class AttributionExpired:
    """A reader found the window elapsed and retired the attribution."""

    __version__ = 1

    attribution_id = Identifier(required=True)
    referral_code = String(required=True)
    expired_at = DateTime(required=True)


@affiliates.event(part_of="Attribution")
class AttributionOrderCredited:
    """An order placed within the window was credited to the attribution."""

    __version__ = 1

    attribution_id = Identifier(required=True)
    order_id = Identifier(required=True)
    order_total = Float(required=True)
    commission_amount = Float(required=True)
    total_orders = Integer(required=True)
    credited_at = DateTime(required=True)
