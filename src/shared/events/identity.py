"""Cross-domain event contracts for Identity domain events.

These classes define the event shape for consumption by the Affiliates
domain. They are registered as external events via
domain.register_external_event() with matching __type__ strings so
Protean's stream deserialization works correctly.

Signup and login carry the browsing context (visitor and session ids) and,
for signup, the referral code captured at link-click time, so the consumer
never has to read ambient browser state.
"""

from protean.core.event import BaseEvent
from protean.fields import DateTime, Identifier, String


class CustomerRegistered(BaseEvent):
    """A new customer account was created on the storefront."""

    __version__ = 1

    customer_id = Identifier(required=True)
    email = String(required=True)
    display_name = String()
    referral_code = String()
    visitor_id = String()
    session_id = String()
    registered_at = DateTime(required=True)


class CustomerLoggedIn(BaseEvent):
    """A customer signed in."""

    __version__ = 1

    customer_id = Identifier(required=True)
    email = String(required=True)
    visitor_id = String()
    session_id = String()
    logged_in_at = DateTime(required=True)
