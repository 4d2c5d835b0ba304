"""
Unit tests for the pure entitlement rules
"""
from datetime import timedelta

import pytest

from models.entitlement import PaymentRecord, PaymentStatus, UserProfile
from services.entitlement_service import (
    has_active_payment,
    has_premium_access,
    resolve_organization,
    resolve_payment_tier,
    select_relevant_payment,
)
from tests.conftest import NOW

ACTIVE = ["active", "completed", "paid", "premium", "trialing"]
INACTIVE = ["inactive", "failed", "unknown", "cancelled", "past_due"]


def record(record_id="p1", **fields):
    return PaymentRecord(id=record_id, **fields)


def test_status_parse_normalizes_free_text():
    assert PaymentStatus.parse(None) is None
    assert PaymentStatus.parse("   ") is None
    assert PaymentStatus.parse("ACTIVE") is PaymentStatus.ACTIVE
    assert PaymentStatus.parse(" Trialing ") is PaymentStatus.TRIALING
    assert PaymentStatus.parse("refunded") is PaymentStatus.UNKNOWN


def test_record_parses_status_on_read():
    assert record(payment_status="Paid").payment_status is PaymentStatus.PAID
    assert record(payment_status="").payment_status is None


@pytest.mark.parametrize("status", ACTIVE)
def test_granted_with_active_status_is_active(status):
    assert has_active_payment(record(access_granted=True, payment_status=status)) is True


def test_granted_without_status_is_active():
    assert has_active_payment(record(access_granted=True, payment_status=None)) is True


@pytest.mark.parametrize("status", INACTIVE)
def test_granted_with_bad_status_is_not_active(status):
    assert has_active_payment(record(access_granted=True, payment_status=status)) is False


@pytest.mark.parametrize("granted", [False, None])
def test_missing_status_without_grant_is_not_active(granted):
    assert has_active_payment(record(access_granted=granted, payment_status=None)) is False


@pytest.mark.parametrize("granted", [False, None])
@pytest.mark.parametrize("status", ACTIVE)
def test_active_status_counts_without_grant(granted, status):
    assert has_active_payment(record(access_granted=granted, payment_status=status)) is True


@pytest.mark.parametrize("granted", [False, None])
def test_inactive_status_without_grant_is_not_active(granted):
    assert has_active_payment(record(access_granted=granted, payment_status="failed")) is False


def test_no_payment_is_not_active():
    assert has_active_payment(None) is False


def test_grant_outranks_recency():
    newest = record("new", payment_status="failed", access_granted=False, updated_at=NOW)
    granted = record("old", payment_status="active", access_granted=True, updated_at=NOW - timedelta(days=3))
    assert select_relevant_payment([newest, granted]).id == "old"


def test_newest_active_status_wins_without_grant():
    records = [
        record("failed", payment_status="failed", updated_at=NOW),
        record("paid-newer", payment_status="paid", updated_at=NOW - timedelta(days=1)),
        record("paid-older", payment_status="active", updated_at=NOW - timedelta(days=2)),
    ]
    assert select_relevant_payment(records).id == "paid-newer"


def test_falls_back_to_newest_record():
    records = [
        record("a", payment_status="failed"),
        record("b", payment_status="inactive"),
    ]
    assert select_relevant_payment(records).id == "a"


def test_no_records_resolves_to_none():
    assert select_relevant_payment([]) is None
    assert resolve_payment_tier(None) is None


def test_plan_type_takes_priority_over_tier():
    assert resolve_payment_tier(record(tier="paid-monthly", plan_type="enterprise")) == "enterprise"
    assert resolve_payment_tier(record(tier="paid-monthly")) == "paid-monthly"
    assert resolve_payment_tier(record()) is None


def test_organization_prefers_payment():
    profile = UserProfile(user_id="u", institution_name="Lakeside College")
    assert resolve_organization(record(organization="Hill School"), profile) == "Hill School"
    assert resolve_organization(record(), profile) == "Lakeside College"
    assert resolve_organization(None, None) is None


class TestPremiumAccess:
    def test_active_payment(self):
        assert has_premium_access(record(payment_status="paid"), None, now=NOW) is True

    def test_premium_profile_status(self):
        profile = UserProfile(user_id="u", subscription_status="Grace_Period")
        assert has_premium_access(None, profile, now=NOW) is True

    def test_tier_label(self):
        profile = UserProfile(user_id="u", subscription_status="expired", subscription_tier="Premium-Annual")
        assert has_premium_access(None, profile, now=NOW) is True

    def test_future_trial_end(self):
        profile = UserProfile(user_id="u", subscription_status="expired", trial_ends_at=NOW + timedelta(hours=2))
        assert has_premium_access(None, profile, now=NOW) is True

    def test_new_account_within_window(self):
        assert has_premium_access(None, None, now=NOW, user_created_at=NOW - timedelta(days=6)) is True
        assert has_premium_access(None, None, now=NOW, user_created_at=NOW - timedelta(days=8)) is False

    def test_nothing_grants_access(self):
        profile = UserProfile(
            user_id="u",
            subscription_status="expired",
            subscription_tier="free",
            trial_ends_at=NOW - timedelta(days=1),
        )
        assert has_premium_access(record(payment_status="failed"), profile, now=NOW) is False
