"""
Billing Service - writes payment records from Stripe and administrative grants
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import stripe

from config.settings import settings
from crud.payment import PaymentRepository
from crud.profile import ProfileRepository
from crud.user import UserRepository
from models.entitlement import PaymentRecord, PaymentStatus

logger = logging.getLogger(__name__)

# Initialize Stripe client
if settings.stripe_secret_key:
    stripe.api_key = settings.stripe_secret_key
else:
    logger.warning("STRIPE_SECRET_KEY is not set. Stripe functionality will be unavailable.")


class BillingService:
    """
    Service class for handling billing-related writes.
    Every public method returns {"data": ..., "is_error": False} or
    {"error": str, "is_error": True}.
    """

    def __init__(
        self,
        payment_repo: PaymentRepository,
        profile_repo: ProfileRepository,
        user_repo: Optional[UserRepository] = None,
    ):
        """
        Initialize the billing service.

        Args:
            payment_repo: Repository over user_payments
            profile_repo: Repository over user_profiles
            user_repo: Repository over users, needed for manual grants
        """
        self.payment_repo = payment_repo
        self.profile_repo = profile_repo
        self.user_repo = user_repo

    async def grant_access(
        self,
        email: str,
        tier: str,
        name: Optional[str] = None,
        organization: Optional[str] = None,
    ):
        """
        Manually grant paid access, e.g. after a failed Stripe webhook.
        Idempotent per (user, tier): an existing granted row is returned as-is.

        When no account exists for the email yet, the row is stored with
        user_id NULL and attached to the account later by the email claim
        on the first status check or profile sync.

        Args:
            email: Email the payment was made with
            tier: One of the configured subscription tiers
            name: Optional customer name
            organization: Optional institution name

        Returns:
            {"data": {"created": bool, "pending_claim": bool, "row": dict}, "is_error": False} on success
        """
        email = (email or "").strip().lower()
        tier = (tier or "").strip().lower()
        if not email or not tier:
            return {"error": "missing_fields", "is_error": True}
        if tier not in settings.subscription_tiers:
            return {"error": f"unknown_tier: {tier}", "is_error": True}

        user = None
        if self.user_repo is not None:
            user = await self.user_repo.get_user_by_email(email)
        user_id = user.id if user is not None else None

        if user_id is not None:
            existing = await self.payment_repo.find_granted(user_id, tier)
        else:
            existing = await self.payment_repo.find_granted_for_email(email, tier)
        if existing is not None:
            return {
                "data": {"created": False, "pending_claim": existing.user_id is None, "row": _serialize(existing)},
                "is_error": False,
            }

        now = datetime.now(timezone.utc)
        payment = await self.payment_repo.create({
            "user_id": user_id,
            "email": email,
            "name": name or "Customer",
            "organization": organization,
            "tier": tier,
            "stripe_customer_id": "manual",
            "stripe_session_id": f"manual-{int(now.timestamp() * 1000)}",
            "payment_amount": 0,
            "payment_status": PaymentStatus.COMPLETED.value,
            "access_granted": True,
            "created_at": now,
            "updated_at": now,
        })
        if user_id is None:
            logger.info(f"Manual access grant for {email} (tier={tier}) stored until the account claims it")
        else:
            logger.info(f"Manual access grant created for user {user_id} (tier={tier})")
        return {
            "data": {"created": True, "pending_claim": user_id is None, "row": _serialize(payment)},
            "is_error": False,
        }

    async def sync_profile(self, user_id: str, email: Optional[str] = None):
        """
        Copy the current payment state onto the user's profile.

        Claims an unclaimed email-matched granted row first, then writes
        "active" for a granted row, "expired" for a revoked one and
        "inactive" when there is no payment at all.
        """
        claimed = False
        if email:
            unclaimed = await self.payment_repo.find_unclaimed_by_email(email)
            if unclaimed is not None:
                await self.payment_repo.claim(unclaimed, user_id)
                claimed = True
                logger.info(f"Claimed payment {unclaimed.id} for user {user_id}")

        rows = await self.payment_repo.list_recent_for_user(user_id, limit=settings.payment_lookup_limit)
        payment = rows[0] if rows else None
        granted = next((row for row in rows if row.access_granted is True), None)

        if granted is not None:
            subscription_status, subscription_tier = "active", granted.plan_type or granted.tier
        elif payment is not None and payment.access_granted is False:
            subscription_status, subscription_tier = "expired", payment.plan_type or payment.tier
        else:
            subscription_status, subscription_tier = "inactive", None

        profile = await self.profile_repo.get_by_user_id(user_id)
        if profile is not None and subscription_status == "inactive":
            # Nothing paid yet; leave a running trial alone
            return {
                "data": {
                    "status": profile.subscription_status,
                    "tier": profile.subscription_tier,
                    "hasPayment": False,
                    "claimed": claimed,
                },
                "is_error": False,
            }

        await self.profile_repo.update_subscription(user_id, subscription_status, subscription_tier, email=email)
        logger.info(f"Subscription synced for user {user_id}: status={subscription_status} tier={subscription_tier}")
        return {
            "data": {
                "status": subscription_status,
                "tier": subscription_tier,
                "hasPayment": payment is not None,
                "claimed": claimed,
            },
            "is_error": False,
        }

    async def create_checkout_session(self, user_id: str, email: Optional[str] = None, tier: str = "paid-monthly"):
        """
        Create a Stripe Checkout session for a subscription.

        Args:
            user_id: Stored in session metadata so the webhook can attach the payment
            email: Prefills the Stripe customer email
            tier: Tier label recorded when the checkout completes

        Returns:
            Normalized response: {"data": url, "is_error": False} or {"error": str(e), "is_error": True}
        """
        if not settings.stripe_secret_key:
            logger.error("STRIPE_SECRET_KEY is not set. Cannot create checkout session.")
            return {"error": "STRIPE_SECRET_KEY is not set. Cannot create checkout session.", "is_error": True}

        if not settings.stripe_price_id:
            logger.error("STRIPE_PRICE_ID is not set. Cannot create checkout session.")
            return {"error": "STRIPE_PRICE_ID is not set. Cannot create checkout session.", "is_error": True}

        try:
            frontend_url = settings.frontend_url or "http://localhost:3000"
            checkout_session = stripe.checkout.Session.create(
                customer_email=email,
                payment_method_types=["card"],
                line_items=[{
                    "price": settings.stripe_price_id,
                    "quantity": 1,
                }],
                mode="subscription",
                success_url=f"{frontend_url}/ai-readiness/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{frontend_url}/pricing",
                metadata={
                    "user_id": user_id,
                    "tier": tier,
                },
            )
            return {"data": checkout_session.url, "is_error": False}
        except Exception as e:
            logger.error(f"Failed to create checkout session: {e}", exc_info=True)
            return {"error": str(e), "is_error": True}

    async def process_webhook(self, event):
        """
        Process a verified Stripe webhook event.

        checkout.session.completed inserts a granted payment record;
        customer.subscription.deleted revokes every record of that subscription.
        Other event types are acknowledged and ignored.
        """
        if hasattr(event, "to_dict"):
            # stripe.Event from construct_event; handle it as plain dicts
            event = event.to_dict()

        try:
            event_type = event["type"]
            obj = event["data"]["object"]
            logger.info(f"Processing Stripe webhook event: {event_type}")

            if event_type == "checkout.session.completed":
                metadata = obj.get("metadata") or {}
                details = obj.get("customer_details") or {}
                email = obj.get("customer_email") or details.get("email")
                now = datetime.now(timezone.utc)
                payment = await self.payment_repo.create({
                    "user_id": metadata.get("user_id"),
                    "email": email,
                    "name": details.get("name"),
                    "organization": metadata.get("organization"),
                    "tier": metadata.get("tier"),
                    "stripe_customer_id": obj.get("customer"),
                    "stripe_subscription_id": obj.get("subscription"),
                    "stripe_session_id": obj.get("id"),
                    "payment_amount": obj.get("amount_total"),
                    "payment_status": PaymentStatus.PAID.value,
                    "access_granted": True,
                    "created_at": now,
                    "updated_at": now,
                })
                return {"data": {"payment_id": payment.id}, "is_error": False}

            if event_type == "customer.subscription.deleted":
                revoked = await self.payment_repo.revoke_subscription(obj.get("id"))
                logger.info(f"Revoked {revoked} payment record(s) for subscription {obj.get('id')}")
                return {"data": {"revoked": revoked}, "is_error": False}

            return {"data": True, "is_error": False}

        except Exception as e:
            logger.error(f"Error processing webhook: {e}", exc_info=True)
            return {"error": str(e), "is_error": True}


def _serialize(payment) -> dict:
    record = PaymentRecord.model_validate(payment)
    return record.model_dump(mode="json")
