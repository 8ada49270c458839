"""Pydantic request/response schemas for the Affiliates API.

These are separate from Protean commands (anti-corruption pattern).
The API layer is the external contract; commands are internal domain concepts.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class RegisterAffiliateRequest(BaseModel):
    user_id: str
    email: str
    display_name: str | None = None
    referral_code: str | None = Field(default=None, max_length=20)
    commission_rate: float | None = Field(default=None, ge=0, le=100)


class SuspendAffiliateRequest(BaseModel):
    reason: str


class RecordClickRequest(BaseModel):
    visitor_id: str
    referral_code: str
    session_id: str | None = None


class BindAttributionRequest(BaseModel):
    user_id: str
    user_email: str | None = None
    visitor_id: str | None = None
    session_id: str | None = None


class ProcessOrderRequest(BaseModel):
    order_id: str
    user_id: str
    user_email: str | None = None
    order_total: float = Field(ge=0)
    product_subtotal: float | None = Field(default=None, ge=0)
    shipping_fee: float = Field(default=0.0, ge=0)
    cod_surcharge: float = Field(default=0.0, ge=0)
    referral_code: str | None = None


class ApproveCommissionRequest(BaseModel):
    approver_id: str
    ledger: str | None = None  # "Legacy" or "Attribution"


class RejectCommissionRequest(BaseModel):
    approver_id: str
    reason: str
    ledger: str | None = None


class BankDetailsSchema(BaseModel):
    bank_name: str | None = None
    account_name: str | None = None
    account_number: str | None = None
    branch_code: str | None = None
    swift_code: str | None = None


class RequestPayoutRequest(BaseModel):
    affiliate_id: str
    amount: float
    payment_method: str | None = None
    bank_details: BankDetailsSchema = Field(default_factory=BankDetailsSchema)
    save_payment_method: bool = True


class ProcessPayoutRequest(BaseModel):
    processed_by: str


class CompletePayoutRequest(BaseModel):
    transaction_id: str | None = None


class RejectPayoutRequest(BaseModel):
    reason: str


class PayoutMethodRuleSchema(BaseModel):
    method: str
    country: str
    label: str | None = None
    tax_rate: float = Field(default=0.0, ge=0, le=1)
    processing_fee: float = Field(default=0.0, ge=0)
    required_fields: list[str] | None = None


class UpdateProgramSettingsRequest(BaseModel):
    updated_by: str
    default_commission_rate: float | None = Field(default=None, ge=0, le=100)
    attribution_window_hours: int | None = Field(default=None, ge=1)
    minimum_payout: float | None = Field(default=None, ge=0)
    maximum_payout: float | None = Field(default=None, ge=0)
    auto_approve_payouts: bool | None = None
    payout_methods: list[PayoutMethodRuleSchema] | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class AffiliateIdResponse(BaseModel):
    affiliate_id: str


class BalanceResponse(BaseModel):
    affiliate_id: str
    referral_code: str
    total_commission: float
    pending_commission: float
    approved_commission: float
    paid_commission: float


class CombinedBalanceResponse(BaseModel):
    affiliate_id: str
    legacy_approved: float
    awaiting_sync: float
    pending_attribution: float
    total_available: float


class TrafficResponse(BaseModel):
    affiliate_id: str
    total_clicks: int = 0
    attributions_opened: int = 0
    last_clicked_at: datetime | None = None


class AttributionResponse(BaseModel):
    attribution_id: str
    referral_code: str
    visitor_id: str
    user_id: str | None = None
    first_click_at: datetime
    last_click_at: datetime
    attribution_window_expires_at: datetime
    is_active: bool


class CheckoutReferralResponse(BaseModel):
    referral_code: str | None = None
    attribution: AttributionResponse | None = None


class BindAttributionResponse(BaseModel):
    attribution_id: str | None = None


class CommissionResponse(BaseModel):
    commission_id: str | None = None


class ApproveCommissionResponse(BaseModel):
    status: str = "ok"
    sync: str | None = None  # "synced", "skipped", "failed", or None for Legacy


class SyncReportResponse(BaseModel):
    synced: int
    skipped: int
    failed: int


class SyncStatusResponse(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    synced: int
    unsynced: int


class PayoutResponse(BaseModel):
    payout_id: str
    affiliate_id: str
    amount: float
    tax_rate: float
    tax_amount: float
    processing_fee: float
    net_amount: float
    payment_method: str
    status: str
    requested_at: datetime | None = None


class ProgramSettingsResponse(BaseModel):
    default_commission_rate: float
    attribution_window_hours: int
    minimum_payout: float
    maximum_payout: float
    auto_approve_payouts: bool
    payout_methods: list[PayoutMethodRuleSchema]


class StatusResponse(BaseModel):
    status: str = "ok"
