"""Inbound cross-domain event handler — Affiliates reacts to Identity events.

Signup and login bind the visitor's open attribution to the new identity.
Signup with a referral code also registers a legacy referral. Both are
side effects of authentication and never fail it: errors are logged and
swallowed here.

Cross-domain events are imported from shared.events.identity and registered
as external events via affiliates.register_external_event().
"""

import structlog
from protean.utils.mixins import handle
from shared.events.identity import CustomerLoggedIn, CustomerRegistered

from affiliates.attribution.attribution import Attribution
from affiliates.attribution.binding import bind_attribution
from affiliates.domain import affiliates
from affiliates.referral.registration import register_referral

logger = structlog.get_logger(__name__)

# Register external events so Protean can deserialize them
affiliates.register_external_event(CustomerRegistered, "Identity.CustomerRegistered.v1")
affiliates.register_external_event(CustomerLoggedIn, "Identity.CustomerLoggedIn.v1")


@affiliates.event_handler(part_of=Attribution, stream_category="identity::customer")
class IdentityEventsHandler:
    """Reacts to Identity domain events to attach referral context to users."""

    @handle(CustomerRegistered)
    def on_customer_registered(self, event: CustomerRegistered) -> None:
        """Bind the signup's attribution and register its legacy referral."""
        self._bind(event.customer_id, event.email, event.visitor_id, event.session_id, event.registered_at)

        if event.referral_code:
            try:
                register_referral(event.referral_code, str(event.customer_id), event.email)
            except Exception as exc:
                logger.warning(
                    "Referral registration failed on signup",
                    customer_id=str(event.customer_id),
                    referral_code=event.referral_code,
                    error=str(exc),
                )

    @handle(CustomerLoggedIn)
    def on_customer_logged_in(self, event: CustomerLoggedIn) -> None:
        """Bind any attribution opened before the customer signed in."""
        self._bind(event.customer_id, event.email, event.visitor_id, event.session_id, event.logged_in_at)

    def _bind(self, customer_id, email, visitor_id, session_id, at):
        if not visitor_id and not session_id:
            return
        try:
            bind_attribution(
                user_id=str(customer_id),
                user_email=email,
                visitor_id=visitor_id,
                session_id=session_id,
                bound_at=at,
            )
        except Exception as exc:
            logger.warning(
                "Attribution binding failed",
                customer_id=str(customer_id),
                visitor_id=visitor_id,
                error=str(exc),
            )
