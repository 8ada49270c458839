"""BindAttribution — tie the browsing context's open attribution to a user.

Invoked on login and signup. The most recently clicked open attribution
without a user in the caller's browsing context (session first, then
visitor) is bound. Finding nothing to bind is a normal outcome.

``bind_to_user`` is the entry point for login/signup flows: binding is
best-effort and must never block authentication.
"""

from datetime import UTC, datetime

import structlog
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from affiliates.attribution.attribution import Attribution, as_aware
from affiliates.attribution.tracking import open_attributions
from affiliates.domain import affiliates

logger = structlog.get_logger(__name__)


@affiliates.command(part_of="Attribution")
class BindAttribution:
    user_id = Identifier(required=True)
    user_email = String(max_length=254)
    visitor_id = String(max_length=100)
    session_id = String(max_length=100)
    bound_at = DateTime()  # Defaults to now


def bind_attribution(user_id, user_email=None, visitor_id=None, session_id=None, bound_at=None):
    """Bind within the current unit of work. Returns the attribution id or None."""
    if not session_id and not visitor_id:
        raise ValidationError({"visitor_id": ["A session or visitor id is required to bind an attribution"]})

    bound_at = as_aware(bound_at) or datetime.now(UTC)
    repo = current_domain.repository_for(Attribution)

    candidates = []
    if session_id:
        candidates = open_attributions(repo, bound_at, session_id=session_id)
    if not candidates and visitor_id:
        candidates = open_attributions(repo, bound_at, visitor_id=visitor_id)

    unbound = [a for a in candidates if not a.is_bound]
    if not unbound:
        logger.info("No open attribution to bind", user_id=str(user_id), visitor_id=visitor_id)
        return None

    attribution = unbound[0]
    attribution.bind(user_id=user_id, user_email=user_email, bound_at=bound_at)
    repo.add(attribution)

    logger.info(
        "Attribution bound to user",
        attribution_id=str(attribution.id),
        referral_code=attribution.referral_code,
        user_id=str(user_id),
    )
    return str(attribution.id)


@affiliates.command_handler(part_of=Attribution)
class BindAttributionHandler:
    @handle(BindAttribution)
    def bind(self, command):
        return bind_attribution(
            user_id=command.user_id,
            user_email=command.user_email,
            visitor_id=command.visitor_id,
            session_id=command.session_id,
            bound_at=command.bound_at,
        )


def bind_to_user(user_id, user_email=None, visitor_id=None, session_id=None, bound_at=None):
    """Bind without ever failing the caller. Returns the attribution id or None."""
    try:
        return current_domain.process(
            BindAttribution(
                user_id=user_id,
                user_email=user_email,
                visitor_id=visitor_id,
                session_id=session_id,
                bound_at=bound_at,
            ),
            asynchronous=False,
        )
    except Exception as exc:
        logger.warning(
            "Attribution binding failed",
            user_id=str(user_id),
            visitor_id=visitor_id,
            error=str(exc),
        )
        return None
