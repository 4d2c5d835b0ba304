"""
FastAPI dependency providers for services and route guards
"""

import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user
from config.settings import settings
from crud.payment import PaymentRepository
from crud.profile import ProfileRepository
from crud.user import UserRepository
from database import get_db
from services.billing_service import BillingService
from services.entitlement_service import EntitlementService
from services.trial_service import TrialService

logger = logging.getLogger(__name__)


def get_entitlement_service(db: AsyncSession = Depends(get_db)) -> EntitlementService:
    return EntitlementService(PaymentRepository(db), ProfileRepository(db))


def get_billing_service(db: AsyncSession = Depends(get_db)) -> BillingService:
    return BillingService(PaymentRepository(db), ProfileRepository(db), UserRepository(db))


def get_trial_service(db: AsyncSession = Depends(get_db)) -> TrialService:
    return TrialService(ProfileRepository(db))


def bearer_matches(authorization: Optional[str], secret: Optional[str]) -> bool:
    """Constant-time check of an `Authorization: Bearer <secret>` header."""
    if not secret or not authorization or not authorization.startswith("Bearer "):
        return False
    token = authorization[len("Bearer "):].strip()
    return hmac.compare_digest(token.encode(), secret.encode())


async def require_admin_token(authorization: Optional[str] = Header(None, alias="Authorization")) -> None:
    if not bearer_matches(authorization, settings.admin_grant_token):
        raise HTTPException(status_code=401, detail="unauthorized")


async def require_cron_secret(authorization: Optional[str] = Header(None, alias="Authorization")) -> None:
    if not bearer_matches(authorization, settings.cron_secret):
        logger.error("Unauthorized cron request")
        raise HTTPException(status_code=401, detail="Unauthorized")


async def require_premium_access(
    current_user: dict = Depends(get_current_user),
    service: EntitlementService = Depends(get_entitlement_service),
) -> dict:
    """Route guard: 403 unless the user has paid, trial or grace access."""
    allowed = await service.check_premium_access(
        current_user["user_id"],
        user_created_at=current_user.get("created_at"),
    )
    if not allowed:
        raise HTTPException(status_code=403, detail="Premium subscription required")
    return current_user
