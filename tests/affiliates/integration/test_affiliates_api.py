"""Integration tests for the Affiliates API endpoints via TestClient."""

from datetime import UTC, datetime, timedelta

import pytest
from affiliates.api import (
    affiliate_router,
    attribution_router,
    commission_router,
    payout_router,
    program_router,
)
from affiliates.attribution.tracking import RecordClick
from affiliates.commission.moderation import ApproveCommission
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean import current_domain
from protean.integrations.fastapi import register_exception_handlers

BANK_DETAILS = {"bank_name": "Mizuho", "account_name": "Hana Sato", "account_number": "1234567"}


@pytest.fixture()
def client():
    app = FastAPI()
    for router in (affiliate_router, attribution_router, commission_router, payout_router, program_router):
        app.include_router(router)
    register_exception_handlers(app)
    return TestClient(app)


def _register(client, **overrides):
    payload = {
        "user_id": "user-aff-api",
        "email": "aff-api@example.com",
        "referral_code": "ABC123",
        "commission_rate": 20.0,
    }
    payload.update(overrides)
    response = client.post("/affiliates", json=payload)
    assert response.status_code == 201
    return response.json()["affiliate_id"]


def _attributed_order(client, order_id="order-api-1", user_id="user-api-1", visitor_id="visitor-api-1"):
    client.post("/attributions/clicks", json={"visitor_id": visitor_id, "referral_code": "ABC123"})
    client.post("/attributions/bind", json={"user_id": user_id, "visitor_id": visitor_id})
    response = client.post(
        "/commissions/orders",
        json={"order_id": order_id, "user_id": user_id, "order_total": 5000.0, "product_subtotal": 5000.0},
    )
    assert response.status_code == 200
    return response.json()["commission_id"]


def _approved_balance(client):
    affiliate_id = _register(client)
    commission_id = _attributed_order(client)
    response = client.put(f"/commissions/{commission_id}/approve", json={"approver_id": "admin-1"})
    assert response.json()["sync"] == "synced"
    return affiliate_id


class TestAffiliateAPI:
    def test_register_and_read_balance(self, client):
        affiliate_id = _register(client)
        response = client.get(f"/affiliates/{affiliate_id}/balance")
        assert response.status_code == 200
        body = response.json()
        assert body["referral_code"] == "ABC123"
        assert body["approved_commission"] == 0.0

    def test_duplicate_referral_code_returns_400(self, client):
        _register(client)
        response = client.post(
            "/affiliates",
            json={"user_id": "user-other", "email": "other@example.com", "referral_code": "ABC123"},
        )
        assert response.status_code == 400

    def test_unknown_affiliate_returns_404(self, client):
        response = client.get("/affiliates/missing/balance")
        assert response.status_code == 404

    def test_suspend_and_reactivate(self, client):
        affiliate_id = _register(client)
        response = client.put(f"/affiliates/{affiliate_id}/suspend", json={"reason": "Fraud review"})
        assert response.status_code == 200
        response = client.put(f"/affiliates/{affiliate_id}/reactivate")
        assert response.status_code == 200


class TestAttributionAPI:
    def test_click_opens_window(self, client):
        _register(client)
        response = client.post("/attributions/clicks", json={"visitor_id": "visitor-1", "referral_code": "abc123"})
        assert response.status_code == 201
        body = response.json()
        assert body["referral_code"] == "ABC123"
        assert body["is_active"] is True

    def test_click_with_unknown_code_returns_error(self, client):
        response = client.post("/attributions/clicks", json={"visitor_id": "visitor-1", "referral_code": "NOPE99"})
        assert response.status_code == 400

    def test_bind_without_attribution_is_not_an_error(self, client):
        response = client.post("/attributions/bind", json={"user_id": "user-1", "visitor_id": "visitor-none"})
        assert response.status_code == 200
        assert response.json()["attribution_id"] is None


class TestCommissionAPI:
    def test_order_without_referral_context(self, client):
        response = client.post(
            "/commissions/orders",
            json={"order_id": "order-plain", "user_id": "user-plain", "order_total": 3000.0},
        )
        assert response.status_code == 200
        assert response.json()["commission_id"] is None

    def test_duplicate_order_returns_same_commission(self, client):
        _register(client)
        first = _attributed_order(client)
        second = client.post(
            "/commissions/orders",
            json={"order_id": "order-api-1", "user_id": "user-api-1", "order_total": 5000.0},
        )
        assert second.json()["commission_id"] == first

    def test_approve_syncs_and_updates_status(self, client):
        _approved_balance(client)
        status = client.get("/commissions/sync-status").json()
        assert status["approved"] == 1
        assert status["synced"] == 1
        assert status["unsynced"] == 0

    def test_bulk_sync_with_nothing_to_do(self, client):
        response = client.post("/commissions/sync")
        assert response.status_code == 200
        assert response.json() == {"synced": 0, "skipped": 0, "failed": 0}

    def test_reject_commission(self, client):
        _register(client)
        commission_id = _attributed_order(client)
        response = client.put(
            f"/commissions/{commission_id}/reject",
            json={"approver_id": "admin-1", "reason": "Returned"},
        )
        assert response.status_code == 200
        assert client.get("/commissions/sync-status").json()["rejected"] == 1


class TestPayoutAPI:
    def test_request_payout(self, client):
        affiliate_id = _approved_balance(client)
        response = client.post(
            "/payouts",
            json={
                "affiliate_id": affiliate_id,
                "amount": 1000,
                "payment_method": "japan_bank",
                "bank_details": BANK_DETAILS,
            },
        )
        assert response.status_code == 201
        body = response.json()
        assert body["net_amount"] == 600.0
        assert body["status"] == "Pending"

        listed = client.get("/payouts", params={"affiliate_id": affiliate_id}).json()
        assert [p["payout_id"] for p in listed] == [body["payout_id"]]

    def test_refused_payout_returns_400(self, client):
        affiliate_id = _approved_balance(client)
        response = client.post(
            "/payouts",
            json={"affiliate_id": affiliate_id, "amount": 500, "payment_method": "japan_bank"},
        )
        assert response.status_code == 400

    def test_settle_payout(self, client):
        affiliate_id = _approved_balance(client)
        payout_id = client.post(
            "/payouts",
            json={
                "affiliate_id": affiliate_id,
                "amount": 1000,
                "payment_method": "japan_bank",
                "bank_details": BANK_DETAILS,
            },
        ).json()["payout_id"]

        assert client.put(f"/payouts/{payout_id}/process", json={"processed_by": "admin-1"}).status_code == 200
        assert client.put(f"/payouts/{payout_id}/complete", json={"transaction_id": "TX-9"}).status_code == 200

        balance = client.get(f"/affiliates/{affiliate_id}/balance").json()
        assert balance["paid_commission"] == 1000.0
        stats = client.get("/payouts/stats").json()
        assert stats["Completed"]["count"] == 1


class TestProgramSettingsAPI:
    def test_defaults(self, client):
        body = client.get("/program/settings").json()
        assert body["minimum_payout"] == 1000.0
        assert {m["method"] for m in body["payout_methods"]} == {"japan_bank", "indonesia_bank"}

    def test_update(self, client):
        response = client.put(
            "/program/settings",
            json={
                "updated_by": "admin-1",
                "attribution_window_hours": 48,
                "payout_methods": [{"method": "japan_bank", "country": "Japan", "tax_rate": 0.2}],
            },
        )
        assert response.status_code == 200
        body = response.json()
        assert body["attribution_window_hours"] == 48
        assert [m["method"] for m in body["payout_methods"]] == ["japan_bank"]


class TestAttributionQueriesAPI:
    def test_listing_reports_activity_at_request_time(self, client):
        _register(client)
        current_domain.process(
            RecordClick(
                visitor_id="visitor-old",
                referral_code="ABC123",
                clicked_at=datetime.now(UTC) - timedelta(hours=30),
            ),
            asynchronous=False,
        )
        client.post("/attributions/clicks", json={"visitor_id": "visitor-new", "referral_code": "ABC123"})

        listed = client.get("/attributions", params={"referral_code": "ABC123"}).json()
        assert [(a["visitor_id"], a["is_active"]) for a in listed] == [("visitor-new", True), ("visitor-old", False)]

        active = client.get("/attributions", params={"referral_code": "ABC123", "active_only": "true"}).json()
        assert [a["visitor_id"] for a in active] == ["visitor-new"]

    def test_checkout_referral_code(self, client):
        _register(client)
        client.post("/attributions/clicks", json={"visitor_id": "visitor-1", "referral_code": "abc123"})

        body = client.get("/attributions/active", params={"visitor_id": "visitor-1"}).json()
        assert body["referral_code"] == "ABC123"
        assert body["attribution"]["is_active"] is True

    def test_checkout_without_attribution(self, client):
        response = client.get("/attributions/active", params={"visitor_id": "visitor-none"})
        assert response.status_code == 200
        assert response.json() == {"referral_code": None, "attribution": None}

    def test_checkout_requires_context(self, client):
        assert client.get("/attributions/active").status_code == 400


class TestAffiliateReportsAPI:
    def test_combined_balance(self, client):
        affiliate_id = _approved_balance(client)
        commission_id = _attributed_order(client, order_id="order-api-2")
        current_domain.process(
            ApproveCommission(commission_id=commission_id, approver_id="admin-1"), asynchronous=False
        )

        body = client.get(f"/affiliates/{affiliate_id}/combined-balance").json()
        assert body["legacy_approved"] == 1000.0
        assert body["awaiting_sync"] == 1000.0
        assert body["pending_attribution"] == 0.0
        assert body["total_available"] == 2000.0

    def test_traffic(self, client):
        affiliate_id = _register(client)
        assert client.get(f"/affiliates/{affiliate_id}/traffic").json()["total_clicks"] == 0

        client.post("/attributions/clicks", json={"visitor_id": "visitor-1", "referral_code": "ABC123"})
        client.post("/attributions/clicks", json={"visitor_id": "visitor-1", "referral_code": "ABC123"})

        body = client.get(f"/affiliates/{affiliate_id}/traffic").json()
        assert body["total_clicks"] == 2
        assert body["attributions_opened"] == 1
