"""FastAPI routes for the Affiliates bounded context.

Each route translates between Pydantic schemas (external contract) and
Protean commands or the domain's coordination functions.
"""

import json
from datetime import UTC, datetime

from fastapi import APIRouter
from protean.utils.globals import current_domain

from affiliates.affiliate.affiliate import Affiliate
from affiliates.affiliate.registration import ReactivateAffiliate, RegisterAffiliate, SuspendAffiliate
from affiliates.api.schemas import (
    AffiliateIdResponse,
    ApproveCommissionRequest,
    ApproveCommissionResponse,
    AttributionResponse,
    BalanceResponse,
    BindAttributionRequest,
    BindAttributionResponse,
    CheckoutReferralResponse,
    CombinedBalanceResponse,
    CommissionResponse,
    CompletePayoutRequest,
    PayoutMethodRuleSchema,
    PayoutResponse,
    ProcessOrderRequest,
    ProcessPayoutRequest,
    ProgramSettingsResponse,
    RecordClickRequest,
    RegisterAffiliateRequest,
    RejectCommissionRequest,
    RejectPayoutRequest,
    RequestPayoutRequest,
    StatusResponse,
    SuspendAffiliateRequest,
    SyncReportResponse,
    SyncStatusResponse,
    TrafficResponse,
    UpdateProgramSettingsRequest,
)
from affiliates.attribution.attribution import Attribution
from affiliates.attribution.binding import bind_to_user
from affiliates.attribution.lookup import active_attribution, attributions_for
from affiliates.attribution.tracking import RecordClick
from affiliates.commission import coordinator
from affiliates.commission.processing import ProcessOrderCommission
from affiliates.payout import processor
from affiliates.payout.settlement import CompletePayout, RejectPayout, StartPayoutProcessing
from affiliates.program.settings import current_settings
from affiliates.projections.affiliate_traffic import traffic_for
from affiliates.program.updating import UpdateProgramSettings

affiliate_router = APIRouter(prefix="/affiliates", tags=["affiliates"])
attribution_router = APIRouter(prefix="/attributions", tags=["attributions"])
commission_router = APIRouter(prefix="/commissions", tags=["commissions"])
payout_router = APIRouter(prefix="/payouts", tags=["payouts"])
program_router = APIRouter(prefix="/program", tags=["program"])


def _payout_response(payout) -> PayoutResponse:
    return PayoutResponse(
        payout_id=str(payout.id),
        affiliate_id=str(payout.affiliate_id),
        amount=payout.amount,
        tax_rate=payout.tax_rate,
        tax_amount=payout.tax_amount,
        processing_fee=payout.processing_fee,
        net_amount=payout.net_amount,
        payment_method=payout.payment_method,
        status=payout.status,
        requested_at=payout.requested_at,
    )


def _attribution_response(attribution, is_active=None) -> AttributionResponse:
    """``is_active`` defaults to whether the window is open right now."""
    if is_active is None:
        is_active = attribution.is_active_at(datetime.now(UTC))
    return AttributionResponse(
        attribution_id=str(attribution.id),
        referral_code=attribution.referral_code,
        visitor_id=attribution.visitor_id,
        user_id=str(attribution.user_id) if attribution.user_id else None,
        first_click_at=attribution.first_click_at,
        last_click_at=attribution.last_click_at,
        attribution_window_expires_at=attribution.attribution_window_expires_at,
        is_active=is_active,
    )


# ---------------------------------------------------------------------------
# Affiliates
# ---------------------------------------------------------------------------
@affiliate_router.post("", status_code=201, response_model=AffiliateIdResponse)
async def register_affiliate(body: RegisterAffiliateRequest) -> AffiliateIdResponse:
    """Enroll a user in the affiliate program."""
    command = RegisterAffiliate(
        user_id=body.user_id,
        email=body.email,
        display_name=body.display_name,
        referral_code=body.referral_code,
        commission_rate=body.commission_rate,
    )
    affiliate_id = current_domain.process(command, asynchronous=False)
    return AffiliateIdResponse(affiliate_id=affiliate_id)


@affiliate_router.get("/{affiliate_id}/balance", response_model=BalanceResponse)
async def get_balance(affiliate_id: str) -> BalanceResponse:
    affiliate = current_domain.repository_for(Affiliate).get(affiliate_id)
    return BalanceResponse(
        affiliate_id=str(affiliate.id),
        referral_code=affiliate.referral_code,
        total_commission=affiliate.total_commission,
        pending_commission=affiliate.pending_commission,
        approved_commission=affiliate.approved_commission,
        paid_commission=affiliate.paid_commission,
    )


@affiliate_router.get("/{affiliate_id}/combined-balance", response_model=CombinedBalanceResponse)
async def get_combined_balance(affiliate_id: str) -> CombinedBalanceResponse:
    """Approved balance plus Attribution commission approved but not yet synced."""
    return CombinedBalanceResponse(**coordinator.combined_balance(affiliate_id).as_dict())


@affiliate_router.get("/{affiliate_id}/traffic", response_model=TrafficResponse)
async def get_traffic(affiliate_id: str) -> TrafficResponse:
    affiliate = current_domain.repository_for(Affiliate).get(affiliate_id)
    traffic = traffic_for(str(affiliate.id))
    if traffic is None:
        return TrafficResponse(affiliate_id=str(affiliate.id))
    return TrafficResponse(
        affiliate_id=str(affiliate.id),
        total_clicks=traffic.total_clicks,
        attributions_opened=traffic.attributions_opened,
        last_clicked_at=traffic.last_clicked_at,
    )


@affiliate_router.put("/{affiliate_id}/suspend", response_model=StatusResponse)
async def suspend_affiliate(affiliate_id: str, body: SuspendAffiliateRequest) -> StatusResponse:
    current_domain.process(SuspendAffiliate(affiliate_id=affiliate_id, reason=body.reason), asynchronous=False)
    return StatusResponse()


@affiliate_router.put("/{affiliate_id}/reactivate", response_model=StatusResponse)
async def reactivate_affiliate(affiliate_id: str) -> StatusResponse:
    current_domain.process(ReactivateAffiliate(affiliate_id=affiliate_id), asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Attribution
# ---------------------------------------------------------------------------
@attribution_router.post("/clicks", status_code=201, response_model=AttributionResponse)
async def record_click(body: RecordClickRequest) -> AttributionResponse:
    """Record a referral-link visit (last-click model)."""
    command = RecordClick(
        visitor_id=body.visitor_id,
        referral_code=body.referral_code,
        session_id=body.session_id,
    )
    attribution_id = current_domain.process(command, asynchronous=False)
    attribution = current_domain.repository_for(Attribution).get(attribution_id)
    return _attribution_response(attribution)


@attribution_router.get("", response_model=list[AttributionResponse])
async def list_attributions(
    referral_code: str | None = None, affiliate_id: str | None = None, active_only: bool = False
) -> list[AttributionResponse]:
    """Admin listing, most recent click first. ``is_active`` is as of this request."""
    views = attributions_for(referral_code=referral_code, affiliate_id=affiliate_id, active_only=active_only)
    return [_attribution_response(v.attribution, is_active=v.is_active) for v in views]


@attribution_router.get("/active", response_model=CheckoutReferralResponse)
async def get_active_attribution(
    visitor_id: str | None = None, session_id: str | None = None, user_id: str | None = None
) -> CheckoutReferralResponse:
    """The referral code checkout should carry for this user or browsing context."""
    attribution = active_attribution(visitor_id=visitor_id, session_id=session_id, user_id=user_id)
    if attribution is None:
        return CheckoutReferralResponse()
    return CheckoutReferralResponse(
        referral_code=attribution.referral_code,
        attribution=_attribution_response(attribution, is_active=True),
    )


@attribution_router.post("/bind", response_model=BindAttributionResponse)
async def bind_attribution(body: BindAttributionRequest) -> BindAttributionResponse:
    """Bind the browsing context's attribution to a user. Never fails the caller."""
    attribution_id = bind_to_user(
        user_id=body.user_id,
        user_email=body.user_email,
        visitor_id=body.visitor_id,
        session_id=body.session_id,
    )
    return BindAttributionResponse(attribution_id=attribution_id)


# ---------------------------------------------------------------------------
# Commissions
# ---------------------------------------------------------------------------
@commission_router.post("/orders", response_model=CommissionResponse)
async def process_order(body: ProcessOrderRequest) -> CommissionResponse:
    """Record the commission for a newly created order (idempotent per order)."""
    command = ProcessOrderCommission(
        order_id=body.order_id,
        user_id=body.user_id,
        user_email=body.user_email,
        order_total=body.order_total,
        product_subtotal=body.product_subtotal,
        shipping_fee=body.shipping_fee,
        cod_surcharge=body.cod_surcharge,
        referral_code=body.referral_code,
    )
    commission_id = current_domain.process(command, asynchronous=False)
    return CommissionResponse(commission_id=commission_id)


@commission_router.get("/sync-status", response_model=SyncStatusResponse)
async def get_sync_status() -> SyncStatusResponse:
    return SyncStatusResponse(**coordinator.sync_status().as_dict())


@commission_router.post("/sync", response_model=SyncReportResponse)
async def bulk_sync() -> SyncReportResponse:
    """Mirror every approved, unsynced Attribution commission into the Legacy ledger."""
    return SyncReportResponse(**coordinator.bulk_sync().as_dict())


@commission_router.put("/{commission_id}/approve", response_model=ApproveCommissionResponse)
async def approve_commission(commission_id: str, body: ApproveCommissionRequest) -> ApproveCommissionResponse:
    outcome = coordinator.approve(commission_id, body.approver_id, ledger=body.ledger)
    return ApproveCommissionResponse(sync=outcome)


@commission_router.put("/{commission_id}/reject", response_model=StatusResponse)
async def reject_commission(commission_id: str, body: RejectCommissionRequest) -> StatusResponse:
    coordinator.reject(commission_id, body.approver_id, body.reason, ledger=body.ledger)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------
@payout_router.post("", status_code=201, response_model=PayoutResponse)
async def request_payout(body: RequestPayoutRequest) -> PayoutResponse:
    payout = processor.request_payout(
        affiliate_id=body.affiliate_id,
        amount=body.amount,
        payment_method=body.payment_method,
        bank_details=body.bank_details.model_dump(),
        save_payment_method=body.save_payment_method,
    )
    return _payout_response(payout)


@payout_router.get("", response_model=list[PayoutResponse])
async def list_payouts(affiliate_id: str) -> list[PayoutResponse]:
    """Payouts for one affiliate, newest first."""
    return [_payout_response(p) for p in processor.payouts_for(affiliate_id)]


@payout_router.get("/stats")
async def get_payout_stats() -> dict:
    return processor.payout_stats()


@payout_router.put("/{payout_id}/process", response_model=StatusResponse)
async def start_payout_processing(payout_id: str, body: ProcessPayoutRequest) -> StatusResponse:
    current_domain.process(
        StartPayoutProcessing(payout_id=payout_id, processed_by=body.processed_by),
        asynchronous=False,
    )
    return StatusResponse()


@payout_router.put("/{payout_id}/complete", response_model=StatusResponse)
async def complete_payout(payout_id: str, body: CompletePayoutRequest) -> StatusResponse:
    current_domain.process(
        CompletePayout(payout_id=payout_id, transaction_id=body.transaction_id),
        asynchronous=False,
    )
    return StatusResponse()


@payout_router.put("/{payout_id}/reject", response_model=StatusResponse)
async def reject_payout(payout_id: str, body: RejectPayoutRequest) -> StatusResponse:
    current_domain.process(RejectPayout(payout_id=payout_id, reason=body.reason), asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Program settings
# ---------------------------------------------------------------------------
def _settings_response(settings) -> ProgramSettingsResponse:
    return ProgramSettingsResponse(
        default_commission_rate=settings.default_commission_rate,
        attribution_window_hours=settings.attribution_window_hours,
        minimum_payout=settings.minimum_payout,
        maximum_payout=settings.maximum_payout,
        auto_approve_payouts=bool(settings.auto_approve_payouts),
        payout_methods=[
            PayoutMethodRuleSchema(
                method=rule.method,
                country=rule.country,
                label=rule.label,
                tax_rate=rule.tax_rate,
                processing_fee=rule.processing_fee,
                required_fields=rule.required_bank_fields,
            )
            for rule in settings.payout_methods
        ],
    )


@program_router.get("/settings", response_model=ProgramSettingsResponse)
async def get_settings() -> ProgramSettingsResponse:
    return _settings_response(current_settings())


@program_router.put("/settings", response_model=ProgramSettingsResponse)
async def update_settings(body: UpdateProgramSettingsRequest) -> ProgramSettingsResponse:
    command = UpdateProgramSettings(
        updated_by=body.updated_by,
        default_commission_rate=body.default_commission_rate,
        attribution_window_hours=body.attribution_window_hours,
        minimum_payout=body.minimum_payout,
        maximum_payout=body.maximum_payout,
        auto_approve_payouts=body.auto_approve_payouts,
        payout_methods=json.dumps([m.model_dump() for m in body.payout_methods]) if body.payout_methods else None,
    )
    current_domain.process(command, asynchronous=False)
    return _settings_response(current_settings())
