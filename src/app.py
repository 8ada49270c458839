"""FreshCart Affiliates FastAPI application.

Web server for the affiliate program: referral tracking, commission
approval and sync, payouts, and program settings. Commands are processed
synchronously; each request runs inside the affiliates domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - "test"       → event_processing = "sync"  (projectors fire in UoW)
#   - "production" → event_processing = "async" (projectors fire via Engine)
import uuid

from affiliates.domain import affiliates  # noqa: E402
from affiliates.utils.logging import add_context, clear_context
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

affiliates.init()

# ---------------------------------------------------------------------------
# Route-to-domain mapping
# ---------------------------------------------------------------------------
_ROUTE_DOMAIN_MAP = {
    "/affiliates": affiliates,
    "/attributions": affiliates,
    "/commissions": affiliates,
    "/payouts": affiliates,
    "/program": affiliates,
}


def _resolve_domain(path: str):
    """Return the domain for the given request path, or None."""
    for prefix, domain in _ROUTE_DOMAIN_MAP.items():
        if path.startswith(prefix):
            return domain
    return None


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="FreshCart Affiliates API",
    description="Grocery storefront affiliate program: attribution, commissions and payouts",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the affiliates domain context and bind a request id to the logs."""
    domain = _resolve_domain(request.url.path)
    if domain is None:
        # No domain match: health check, docs, etc.
        return await call_next(request)

    add_context(request_id=request.headers.get("X-Request-ID", str(uuid.uuid4())), path=request.url.path)
    try:
        with domain.domain_context():
            response = await call_next(request)
    finally:
        clear_context()
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from affiliates.api import (  # noqa: E402
    affiliate_router,
    attribution_router,
    commission_router,
    payout_router,
    program_router,
)

app.include_router(affiliate_router)
app.include_router(attribution_router)
app.include_router(commission_router)
app.include_router(payout_router)
app.include_router(program_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {
                "affiliates": {"name": affiliates.name},
            },
        }
    )
