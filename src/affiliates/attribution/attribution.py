"""Attribution aggregate (CQRS) — one visitor's referral click and its window.

An attribution exists per (visitor, referral code). The most recent click
wins: a repeat click inside the window moves ``last_click_at`` and the
expiry forward instead of creating another record.

Expiry is computed, not swept. ``is_active_at`` is the single rule every
reader applies; a reader that finds an elapsed window calls ``expire`` to
persist the fact, but nothing relies on that having happened.

Lifecycle:
    created on first click → refreshed by later clicks → bound to a user on
    login/signup → credited with orders → expires when the window elapses
"""

from datetime import UTC, datetime, timedelta

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from affiliates.attribution.events import (
    AttributionBound,
    AttributionClicked,
    AttributionExpired,
    AttributionOrderCredited,
    AttributionRefreshed,
)
from affiliates.domain import affiliates
from affiliates.shared.money import round_amount


def as_aware(moment):
    """Treat naive datetimes read back from the store as UTC."""
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


@affiliates.aggregate
class Attribution:
    """A visitor's referral click, held open for the attribution window."""

    referral_code = String(required=True, max_length=20)
    affiliate_id = Identifier(required=True)
    visitor_id = String(required=True, max_length=100)
    session_id = String(max_length=100)

    # Identity binding, empty until login/signup
    user_id = Identifier()
    user_email = String(max_length=254)
    bound_at = DateTime()

    # Window
    first_click_at = DateTime(required=True)
    last_click_at = DateTime(required=True)
    attribution_window_hours = Integer(required=True, min_value=1)
    attribution_window_expires_at = DateTime(required=True)
    is_active = Boolean(default=True)

    # Credited orders
    total_orders = Integer(default=0)
    total_gmv = Float(default=0.0)
    total_commission = Float(default=0.0)

    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def window_follows_last_click(self):
        if self.last_click_at is None or self.attribution_window_expires_at is None:
            return
        expected = as_aware(self.last_click_at) + timedelta(hours=self.attribution_window_hours)
        if as_aware(self.attribution_window_expires_at) != expected:
            raise ValidationError(
                {"attribution_window_expires_at": ["Attribution window must end one window after the last click"]}
            )

    @invariant.post
    def counters_cannot_be_negative(self):
        for field_name in ("total_orders", "total_gmv", "total_commission"):
            value = getattr(self, field_name)
            if value is not None and value < 0:
                raise ValidationError({field_name: ["Counter cannot be negative"]})

    @classmethod
    def start(cls, referral_code, affiliate_id, visitor_id, window_hours, session_id=None, clicked_at=None):
        """Open a new attribution on a visitor's first referral click."""
        clicked_at = as_aware(clicked_at) or datetime.now(UTC)
        expires_at = clicked_at + timedelta(hours=window_hours)

        attribution = cls(
            referral_code=referral_code,
            affiliate_id=affiliate_id,
            visitor_id=visitor_id,
            session_id=session_id,
            first_click_at=clicked_at,
            last_click_at=clicked_at,
            attribution_window_hours=window_hours,
            attribution_window_expires_at=expires_at,
            is_active=True,
            total_orders=0,
            total_gmv=0.0,
            total_commission=0.0,
            created_at=clicked_at,
            updated_at=clicked_at,
        )
        attribution.raise_(
            AttributionClicked(
                attribution_id=str(attribution.id),
                affiliate_id=attribution.affiliate_id,
                referral_code=referral_code,
                visitor_id=visitor_id,
                session_id=session_id,
                clicked_at=clicked_at,
                expires_at=expires_at,
            )
        )
        return attribution

    def is_active_at(self, moment):
        """True while the window is open at ``moment`` (inclusive of the expiry instant)."""
        if not self.is_active:
            return False
        return as_aware(moment) <= as_aware(self.attribution_window_expires_at)

    @property
    def is_bound(self):
        return self.user_id is not None

    def refresh(self, clicked_at=None, session_id=None):
        """Record a repeat click: the window restarts from this click."""
        clicked_at = as_aware(clicked_at) or datetime.now(UTC)
        if not self.is_active_at(clicked_at):
            raise ValidationError({"attribution": ["Cannot refresh an expired attribution"]})

        expires_at = clicked_at + timedelta(hours=self.attribution_window_hours)
        with atomic_change(self):
            self.last_click_at = clicked_at
            self.attribution_window_expires_at = expires_at
            if session_id:
                self.session_id = session_id
            self.updated_at = clicked_at

        self.raise_(
            AttributionRefreshed(
                attribution_id=str(self.id),
                affiliate_id=self.affiliate_id,
                referral_code=self.referral_code,
                visitor_id=self.visitor_id,
                clicked_at=clicked_at,
                expires_at=expires_at,
            )
        )

    def expire(self, now=None):
        """Persist that the window has elapsed. No-op when already inactive."""
        if not self.is_active:
            return

        now = as_aware(now) or datetime.now(UTC)
        self.is_active = False
        self.updated_at = now
        self.raise_(
            AttributionExpired(
                attribution_id=str(self.id),
                referral_code=self.referral_code,
                expired_at=now,
            )
        )

    def bind(self, user_id, user_email=None, bound_at=None):
        """Tie the attribution to a signed-in user. The referral code never changes."""
        bound_at = as_aware(bound_at) or datetime.now(UTC)
        if self.is_bound:
            raise ValidationError({"user_id": ["Attribution is already bound to a user"]})
        if not self.is_active_at(bound_at):
            raise ValidationError({"attribution": ["Cannot bind an expired attribution"]})

        self.user_id = user_id
        self.user_email = user_email
        self.bound_at = bound_at
        self.updated_at = bound_at

        self.raise_(
            AttributionBound(
                attribution_id=str(self.id),
                referral_code=self.referral_code,
                user_id=str(user_id),
                user_email=user_email,
                bound_at=bound_at,
            )
        )

    def credit_order(self, order_id, order_total, commission_amount, credited_at=None):
        """Count an attributed order. Saved in the same unit of work as its commission."""
        credited_at = as_aware(credited_at) or datetime.now(UTC)
        with atomic_change(self):
            self.total_orders = (self.total_orders or 0) + 1
            self.total_gmv = round_amount((self.total_gmv or 0.0) + order_total)
            self.total_commission = round_amount((self.total_commission or 0.0) + commission_amount)
            self.updated_at = credited_at

        self.raise_(
            AttributionOrderCredited(
                attribution_id=str(self.id),
                order_id=str(order_id),
                order_total=order_total,
                commission_amount=commission_amount,
                total_orders=self.total_orders,
                credited_at=credited_at,
            )
        )
