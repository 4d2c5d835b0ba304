"""
Payments Router - entitlement status, manual grants and profile sync
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from auth import get_current_user
from dependencies import (
    get_billing_service,
    get_entitlement_service,
    require_admin_token,
    require_premium_access,
)
from services.access_gate import AccessGate
from services.billing_service import BillingService
from services.entitlement_service import EntitlementService
from utils.responses import success_response, error_response

logger = logging.getLogger(__name__)

payments_router = APIRouter(prefix="/api/payments", tags=["payments"])
user_router = APIRouter(prefix="/api/user", tags=["user"])
premium_router = APIRouter(prefix="/api/premium", tags=["premium"])


class GrantRequest(BaseModel):
    email: str
    tier: str
    name: Optional[str] = None
    organization: Optional[str] = None


@payments_router.get("/status")
async def payment_status(
    current_user: dict = Depends(get_current_user),
    service: EntitlementService = Depends(get_entitlement_service),
):
    """
    Unified payment status for dashboards.
    Field names are the wire contract bound by the frontend.
    """
    status = await service.get_status(current_user["user_id"], email=current_user.get("email"))
    return status.to_wire()


@payments_router.get("/entitlement")
async def entitlement(
    current_user: dict = Depends(get_current_user),
    service: EntitlementService = Depends(get_entitlement_service),
):
    decision = await service.decide(current_user["user_id"])
    return decision.model_dump(by_alias=True)


@payments_router.post("/manual-grant", dependencies=[Depends(require_admin_token)])
async def manual_grant(
    request: GrantRequest,
    billing: BillingService = Depends(get_billing_service),
):
    """
    Grant paid access by hand when a Stripe webhook failed.
    Requires Authorization: Bearer <ADMIN_GRANT_TOKEN>.
    """
    result = await billing.grant_access(
        email=request.email,
        tier=request.tier,
        name=request.name,
        organization=request.organization,
    )
    if result.get("is_error"):
        return error_response(result.get("error", "grant_failed"), status=400, message="Manual grant failed")
    return success_response(result["data"])


@payments_router.get("/manual-grant")
async def manual_grant_health():
    return {"service": "manual-grant", "ok": True}


@user_router.post("/sync-payment")
async def sync_payment(
    current_user: dict = Depends(get_current_user),
    billing: BillingService = Depends(get_billing_service),
):
    """Copy the current payment state onto the caller's profile."""
    result = await billing.sync_profile(current_user["user_id"], current_user.get("email"))
    if result.get("is_error"):
        return error_response(result.get("error", "sync_failed"), status=500, message="Failed to sync subscription")
    return success_response(result["data"])


@premium_router.get("/check")
async def premium_check(
    current_user: dict = Depends(require_premium_access),
    service: EntitlementService = Depends(get_entitlement_service),
):
    """
    Capability snapshot for premium pages; only reachable with premium access.
    hasPremiumAccess mirrors the route guard, canAccessPremiumFeatures the
    narrower paid-or-trial rule.
    """

    async def fetch_status():
        status = await service.get_status(current_user["user_id"], email=current_user.get("email"))
        payload = status.to_wire()
        payload["hasPremiumAccess"] = await service.check_premium_access(
            current_user["user_id"],
            user_created_at=current_user.get("created_at"),
        )
        return payload

    gate = await AccessGate().refresh(fetch_status)
    return gate.snapshot()
