"""
Tests for BillingService writes: manual grants, profile sync and Stripe webhooks
"""
import pytest
import stripe

from crud.payment import PaymentRepository
from crud.profile import ProfileRepository
from crud.user import UserRepository
from services.billing_service import BillingService


async def make_billing(test_db, email="dean@school.edu"):
    users = UserRepository(test_db)
    user = await users.create_user({"email": email, "hashed_password": "x"})
    service = BillingService(PaymentRepository(test_db), ProfileRepository(test_db), users)
    return service, user


@pytest.mark.asyncio
async def test_manual_grant_is_idempotent(test_db):
    billing, user = await make_billing(test_db)

    first = await billing.grant_access("Dean@School.edu", "enterprise", organization="Hill School")
    second = await billing.grant_access("dean@school.edu", "enterprise")

    assert first["is_error"] is False
    assert first["data"]["created"] is True
    row = first["data"]["row"]
    assert row["user_id"] == user.id
    assert row["payment_status"] == "completed"
    assert row["access_granted"] is True
    assert second["data"]["created"] is False
    assert second["data"]["row"]["id"] == row["id"]
    assert first["data"]["pending_claim"] is False


@pytest.mark.asyncio
async def test_manual_grant_for_unknown_email_waits_for_claim(test_db):
    billing, _ = await make_billing(test_db)

    first = await billing.grant_access("Ghost@School.edu", "enterprise")
    second = await billing.grant_access("ghost@school.edu", "enterprise")

    assert first["is_error"] is False
    assert first["data"]["created"] is True
    assert first["data"]["pending_claim"] is True
    assert first["data"]["row"]["user_id"] is None
    assert first["data"]["row"]["email"] == "ghost@school.edu"
    assert second["data"]["created"] is False
    assert second["data"]["row"]["id"] == first["data"]["row"]["id"]

    unclaimed = await billing.payment_repo.find_unclaimed_by_email("ghost@school.edu")
    assert unclaimed.id == first["data"]["row"]["id"]


@pytest.mark.asyncio
async def test_manual_grant_rejects_bad_input(test_db):
    billing, _ = await make_billing(test_db)

    assert (await billing.grant_access("", "enterprise"))["error"] == "missing_fields"
    assert (await billing.grant_access("dean@school.edu", "gold"))["error"].startswith("unknown_tier")


@pytest.mark.asyncio
async def test_sync_claims_payment_and_activates_profile(test_db):
    billing, user = await make_billing(test_db)
    await billing.payment_repo.create({
        "id": "stripe-row",
        "email": "dean@school.edu",
        "tier": "paid-yearly",
        "payment_status": "paid",
        "access_granted": True,
    })

    result = await billing.sync_profile(user.id, user.email)

    assert result["data"] == {"status": "active", "tier": "paid-yearly", "hasPayment": True, "claimed": True}
    profile = await billing.profile_repo.get_by_user_id(user.id)
    assert profile.subscription_status == "active"


@pytest.mark.asyncio
async def test_sync_leaves_trial_alone_without_payment(test_db):
    billing, user = await make_billing(test_db)
    await billing.profile_repo.create({"user_id": user.id, "subscription_status": "trial", "subscription_tier": "trial"})

    result = await billing.sync_profile(user.id, user.email)

    assert result["data"]["status"] == "trial"
    assert result["data"]["hasPayment"] is False


@pytest.mark.asyncio
async def test_sync_marks_revoked_payment_expired(test_db):
    billing, user = await make_billing(test_db)
    await billing.payment_repo.create({
        "user_id": user.id,
        "tier": "paid-monthly",
        "payment_status": "inactive",
        "access_granted": False,
    })

    result = await billing.sync_profile(user.id)

    assert result["data"]["status"] == "expired"
    assert result["data"]["tier"] == "paid-monthly"


@pytest.mark.asyncio
async def test_checkout_completed_webhook_records_payment(test_db):
    billing, user = await make_billing(test_db)
    event = {
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": "cs_test_1",
            "customer": "cus_1",
            "subscription": "sub_1",
            "customer_email": "Dean@School.edu",
            "amount_total": 49900,
            "metadata": {"user_id": user.id, "tier": "paid-yearly"},
        }},
    }

    result = await billing.process_webhook(event)

    assert result["is_error"] is False
    rows = await billing.payment_repo.list_recent_for_user(user.id)
    assert len(rows) == 1
    assert rows[0].email == "dean@school.edu"
    assert rows[0].payment_status == "paid"
    assert rows[0].access_granted is True


@pytest.mark.asyncio
async def test_subscription_deleted_webhook_revokes(test_db):
    billing, user = await make_billing(test_db)
    await billing.payment_repo.create({
        "id": "p1",
        "user_id": user.id,
        "stripe_subscription_id": "sub_9",
        "payment_status": "paid",
        "access_granted": True,
    })

    result = await billing.process_webhook({
        "type": "customer.subscription.deleted",
        "data": {"object": {"id": "sub_9"}},
    })

    assert result["data"] == {"revoked": 1}


@pytest.mark.asyncio
async def test_unhandled_webhook_is_acknowledged(test_db):
    billing, _ = await make_billing(test_db)

    result = await billing.process_webhook({"type": "invoice.created", "data": {"object": {}}})

    assert result == {"data": True, "is_error": False}


@pytest.mark.asyncio
async def test_checkout_requires_stripe_key(test_db, monkeypatch):
    billing, user = await make_billing(test_db)
    monkeypatch.setattr("services.billing_service.settings.stripe_secret_key", None)

    result = await billing.create_checkout_session(user.id, user.email)

    assert result["is_error"] is True
    assert "STRIPE_SECRET_KEY" in result["error"]


@pytest.mark.asyncio
async def test_webhook_accepts_stripe_event_objects(test_db):
    billing, user = await make_billing(test_db)
    event = stripe.Event.construct_from({
        "id": "evt_1",
        "object": "event",
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": "cs_test_2",
            "object": "checkout.session",
            "customer_email": "dean@school.edu",
            "metadata": {"user_id": user.id, "tier": "paid-monthly"},
        }},
    }, "sk_test")

    result = await billing.process_webhook(event)

    assert result["is_error"] is False
    rows = await billing.payment_repo.list_recent_for_user(user.id)
    assert [row.tier for row in rows] == ["paid-monthly"]
